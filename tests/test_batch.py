import asyncio
import io
import zipfile

import pytest

from ghostclip.batch import ARCHIVE_NAME, BatchOrchestrator, ItemStatus, build_archive
from ghostclip.errors import NothingToExportError
from ghostclip.pipeline import CompositionOptions
from ghostclip.raster import decode_image
from ghostclip.router import ExecutionRouter

from helpers import FakeSegmenter, blob, png, solid

LIMIT = 2000


def small(i):
    return png(blob(20, 20, (i, i + 5, i, i + 5)))


def oversize():
    return png(solid(4, 4)) + b"\0" * (LIMIT * 2)


def make(**kwargs):
    segmenter = FakeSegmenter()
    router = ExecutionRouter(offload=False)
    return segmenter, BatchOrchestrator(segmenter, router, max_bytes=LIMIT, **kwargs)


def test_oversize_items_fail_and_the_rest_export():
    progress = []
    segmenter, orch = make(on_progress=lambda done, total: progress.append((done, total)))
    inputs = [small(0), oversize(), small(2), small(3), oversize(), small(5)]

    run = asyncio.run(orch.run(inputs))

    assert run.completed == 6
    assert [item.status for item in run.items] == [
        ItemStatus.DONE, ItemStatus.ERROR, ItemStatus.DONE,
        ItemStatus.DONE, ItemStatus.ERROR, ItemStatus.DONE,
    ]
    assert run.items[1].error.startswith("File too large.")
    # oversize items never reach the segmenter
    assert segmenter.calls == 4
    assert progress[-1] == (6, 6)

    entries = asyncio.run(orch.export(CompositionOptions(background_color="#ffffff")))
    assert [name for name, _ in entries] == [f"ghostclip-{i}.png" for i in range(1, 5)]
    for _, data in entries:
        img = decode_image(data)
        assert img.size == (20, 20)
        assert img.alpha.min() == 255


def test_items_run_one_at_a_time():
    segmenter, orch = make()
    asyncio.run(orch.run([small(i) for i in range(5)]))
    assert segmenter.calls == 5
    assert segmenter.max_active == 1


def test_segmentation_failure_is_per_item():
    seen = []
    segmenter, orch = make(on_item=lambda i, item: seen.append((i, item.status)))
    run = asyncio.run(orch.run([small(0), b"FAIL", small(1)]))
    assert [item.status for item in run.items] == [ItemStatus.DONE, ItemStatus.ERROR, ItemStatus.DONE]
    assert run.items[1].error == "segmentation failed"
    assert seen[:2] == [(0, ItemStatus.PROCESSING), (0, ItemStatus.DONE)]
    assert (1, ItemStatus.ERROR) in seen


def test_batch_is_capped():
    _, orch = make()
    run = orch.prepare([small(0)] * 53)
    assert run.total == 50
    assert run.discarded == 3
    assert all(item.status is ItemStatus.PENDING for item in run.items)


def test_named_inputs_keep_their_names():
    _, orch = make()
    run = orch.prepare([("cat.png", small(0)), small(1)])
    assert [item.name for item in run.items] == ["cat.png", "image-2"]


def test_export_without_successes():
    _, orch = make()
    with pytest.raises(NothingToExportError):
        asyncio.run(orch.export(CompositionOptions()))
    asyncio.run(orch.run([b"FAIL"]))
    with pytest.raises(NothingToExportError, match="No successfully processed images"):
        asyncio.run(orch.export_archive(CompositionOptions()))


def test_export_can_repeat_with_new_options():
    _, orch = make()
    asyncio.run(orch.run([small(3)]))
    first = asyncio.run(orch.export(CompositionOptions()))
    second = asyncio.run(orch.export(CompositionOptions(background_color="#000000")))
    assert decode_image(first[0][1]).alpha[0, 0] == 0
    assert decode_image(second[0][1]).alpha[0, 0] == 255


def test_archive_contents():
    _, orch = make()
    asyncio.run(orch.run([small(0), small(1)]))
    archive = asyncio.run(orch.export_archive(CompositionOptions()))
    with zipfile.ZipFile(io.BytesIO(archive)) as zf:
        assert zf.namelist() == ["ghostclip-1.png", "ghostclip-2.png"]
    assert ARCHIVE_NAME == "ghostclip-batch.zip"


def test_build_archive_round_trip():
    data = build_archive([("a.png", b"1"), ("b.png", b"22")])
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        assert zf.read("b.png") == b"22"


def test_reset_forgets_run():
    _, orch = make()
    asyncio.run(orch.run([small(0)]))
    orch.reset()
    assert orch.run_state is None
