import asyncio

import pytest

from ghostclip.embed import to_data_url
from ghostclip.raster import decode_image
from ghostclip.sdk import GhostClip

from helpers import FakeSegmenter, blob, png

MATTE = png(blob(30, 20, (5, 14, 5, 14)))


def run(source, **kwargs):
    return asyncio.run(GhostClip(segmenter=FakeSegmenter()).remove_background(source, **kwargs))


def test_bytes_with_options():
    out = decode_image(run(MATTE, background_color="#ffffff", crop="tight", stroke={"width": 1}))
    assert out.size == (14, 14)
    assert out.alpha.min() == 255


def test_path_and_data_url_sources(tmp_path):
    path = tmp_path / "matte.png"
    path.write_bytes(MATTE)
    assert decode_image(run(str(path))).size == (30, 20)
    assert decode_image(run(path)).size == (30, 20)
    assert decode_image(run(to_data_url(MATTE))).size == (30, 20)


def test_raster_source():
    assert decode_image(run(blob(8, 8, (1, 2, 1, 2)))).size == (8, 8)


def test_unsupported_source():
    with pytest.raises(TypeError):
        run(12345)


def test_device_option_pins_segmenter():
    gc = GhostClip(model="u2net", segmenter=FakeSegmenter())
    gpu = gc.segmenter_for("gpu")
    assert gpu.device == "gpu"
    assert gpu.model_name == "u2net"
    assert gc.segmenter_for("gpu") is gpu
    assert gc.segmenter_for("cpu").device == "cpu"
    assert isinstance(gc.segmenter_for(None), FakeSegmenter)
    with pytest.raises(ValueError):
        gc.segmenter_for("tpu")
