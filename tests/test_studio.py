import asyncio

import pytest

from ghostclip.errors import OversizeInputError
from ghostclip.pipeline import CropMode
from ghostclip.raster import decode_image
from ghostclip.router import ExecutionRouter
from ghostclip.studio import Studio

from helpers import FakeSegmenter, blob, png


class GatedRouter:
    """Each build_final call blocks until the test releases it."""

    def __init__(self):
        self.gates = []

    async def build_final(self, request):
        gate = asyncio.Event()
        index = len(self.gates)
        self.gates.append(gate)
        await gate.wait()
        return f"result-{index}".encode()


class Recorder:
    def __init__(self):
        self.results = []
        self.errors = []
        self.statuses = []


def make_studio(router=None, segmenter=None, **kwargs):
    rec = Recorder()
    studio = Studio(
        segmenter or FakeSegmenter(),
        router or ExecutionRouter(offload=False),
        on_result=rec.results.append,
        on_error=rec.errors.append,
        on_status=rec.statuses.append,
        **kwargs,
    )
    return studio, rec


MATTE = png(blob(40, 30, (10, 19, 10, 19)))


def test_process_publishes_composed_result():
    studio, rec = make_studio()
    studio.set_background("ffffff")
    out = asyncio.run(studio.process(MATTE))
    assert rec.results == [out]
    assert decode_image(out).alpha.min() == 255
    assert "Removing background" in rec.statuses
    assert studio.matte is not None


def test_only_newest_preview_is_applied():
    router = GatedRouter()
    studio, rec = make_studio(router=router)
    studio.matte = decode_image(MATTE)

    async def scenario():
        tasks = [asyncio.ensure_future(studio.update_preview()) for _ in range(3)]
        while len(router.gates) < 3:
            await asyncio.sleep(0)
        # finish out of order: newest first, then the older two
        for index in (2, 0, 1):
            router.gates[index].set()
            await asyncio.sleep(0)
        return await asyncio.gather(*tasks)

    results = asyncio.run(scenario())
    assert results == [None, None, b"result-2"]
    assert rec.results == [b"result-2"]
    assert studio.result == b"result-2"


def test_preview_without_matte_is_noop():
    studio, rec = make_studio()
    assert asyncio.run(studio.update_preview()) is None
    assert asyncio.run(studio.download()) is None
    assert studio.sticker() is None


def test_superseded_process_is_dropped():
    router = GatedRouter()
    studio, rec = make_studio(router=router)

    async def scenario():
        first = asyncio.ensure_future(studio.process(MATTE))
        while len(router.gates) < 1:
            await asyncio.sleep(0)
        second = asyncio.ensure_future(studio.process(MATTE))
        while len(router.gates) < 2:
            await asyncio.sleep(0)
        for gate in router.gates:
            gate.set()
        return await first, await second

    first, second = asyncio.run(scenario())
    assert first is None
    assert second == b"result-1"
    assert rec.results == [b"result-1"]


def test_stale_progress_is_ignored():
    ticks = []

    class RecordingSegmenter(FakeSegmenter):
        async def segment(self, data, progress=None):
            ticks.append(progress)
            return await super().segment(data)

    router = GatedRouter()
    studio, rec = make_studio(router=router, segmenter=RecordingSegmenter())

    async def scenario():
        first = asyncio.ensure_future(studio.process(MATTE))
        while len(router.gates) < 1:
            await asyncio.sleep(0)
        second = asyncio.ensure_future(studio.process(MATTE))
        while len(router.gates) < 2:
            await asyncio.sleep(0)
        rec.statuses.clear()
        ticks[0]("fetch:model", 5, 10)
        ticks[1]("fetch:model", 5, 10)
        for gate in router.gates:
            gate.set()
        return await first, await second

    asyncio.run(scenario())
    assert rec.statuses == ["Loading AI model (first time only) 50%"]


def test_oversize_input_rejected_before_work():
    segmenter = FakeSegmenter()
    studio, rec = make_studio(segmenter=segmenter, max_bytes=10)
    with pytest.raises(OversizeInputError):
        asyncio.run(studio.process(MATTE))
    assert segmenter.calls == 0


def test_failure_reports_generic_message_and_resets():
    studio, rec = make_studio()
    asyncio.run(studio.process(MATTE))
    assert asyncio.run(studio.process(b"FAIL")) is None
    assert rec.errors == ["Something went wrong. Check the logs for details."]
    assert studio.matte is None
    assert studio.result is None


def test_options_apply_to_download_and_sticker():
    studio, rec = make_studio()
    asyncio.run(studio.process(MATTE))
    studio.set_crop("tight")
    studio.set_stroke(2, "#ff0000")
    assert studio.options.crop is CropMode.TIGHT
    out = decode_image(asyncio.run(studio.download()))
    assert out.size == (18, 18)
    data, ext = studio.sticker()
    assert decode_image(data).size == (512, 512)
    # the cached matte survives repeated use
    assert studio.matte.size == (40, 30)


def test_scene_selection():
    studio, _ = make_studio()
    studio.select_scene("studio")
    assert studio.options.scene is not None
    studio.select_scene("none")
    assert studio.options.scene is None
    with pytest.raises(ValueError):
        studio.select_scene("beach")


class FailingFirstRouter(GatedRouter):
    async def build_final(self, request):
        gate = asyncio.Event()
        index = len(self.gates)
        self.gates.append(gate)
        await gate.wait()
        if index == 0:
            raise RuntimeError("compose failed")
        return f"result-{index}".encode()


def test_superseded_preview_failure_is_silent():
    router = FailingFirstRouter()
    studio, rec = make_studio(router=router)
    studio.matte = decode_image(MATTE)

    async def scenario():
        older = asyncio.ensure_future(studio.update_preview())
        newer = asyncio.ensure_future(studio.update_preview())
        while len(router.gates) < 2:
            await asyncio.sleep(0)
        router.gates[0].set()
        router.gates[1].set()
        return await older, await newer

    older, newer = asyncio.run(scenario())
    assert older is None
    assert newer == b"result-1"
    assert rec.errors == []
    assert rec.results == [b"result-1"]


def test_current_preview_failure_reported_once():
    router = FailingFirstRouter()
    studio, rec = make_studio(router=router)
    studio.matte = decode_image(MATTE)

    async def scenario():
        task = asyncio.ensure_future(studio.update_preview())
        while not router.gates:
            await asyncio.sleep(0)
        router.gates[0].set()
        return await task

    assert asyncio.run(scenario()) is None
    assert rec.errors == ["Something went wrong. Check the logs for details."]
    assert rec.results == []
    assert studio.matte is not None
