import io
import zipfile
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple, Union

from . import config
from .errors import ExportError, NothingToExportError, OversizeInputError
from .logger import get_logger
from .pipeline import CompositionOptions
from .raster import RasterImage

log = get_logger("batch")

ARCHIVE_NAME = "ghostclip-batch.zip"

BatchInput = Union[bytes, Tuple[str, bytes]]
ProgressCallback = Callable[[int, int], None]


class ItemStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"


@dataclass
class BatchItem:
    data: bytes
    name: str
    status: ItemStatus = ItemStatus.PENDING
    result: Optional[RasterImage] = None
    error: Optional[str] = None


@dataclass
class BatchRun:
    items: List[BatchItem]
    discarded: int = 0
    completed: int = 0

    @property
    def total(self) -> int:
        return len(self.items)

    @property
    def done(self) -> List[BatchItem]:
        return [item for item in self.items if item.status is ItemStatus.DONE]

    @property
    def failed(self) -> List[BatchItem]:
        return [item for item in self.items if item.status is ItemStatus.ERROR]


class BatchOrchestrator:
    """Segments a batch one item at a time; composition waits until export.

    Items never run in parallel. A failing item is marked ERROR and the run
    moves on.
    """

    def __init__(
        self,
        segmenter,
        router,
        limit: int = config.BATCH_LIMIT,
        max_bytes: int = config.MAX_UPLOAD_BYTES,
        on_progress: Optional[ProgressCallback] = None,
        on_item: Optional[Callable[[int, BatchItem], None]] = None,
    ):
        self.segmenter = segmenter
        self.router = router
        self.limit = limit
        self.max_bytes = max_bytes
        self.on_progress = on_progress
        self.on_item = on_item
        self.run_state: Optional[BatchRun] = None

    def prepare(self, inputs: Sequence[BatchInput]) -> BatchRun:
        discarded = max(0, len(inputs) - self.limit)
        if discarded:
            log.warning("Maximum %d images per batch; discarding %d", self.limit, discarded)
        items = []
        for i, entry in enumerate(inputs[:self.limit]):
            name, data = entry if isinstance(entry, tuple) else (f"image-{i + 1}", entry)
            items.append(BatchItem(data=data, name=name))
        self.run_state = BatchRun(items=items, discarded=discarded)
        return self.run_state

    async def run(self, inputs: Sequence[BatchInput]) -> BatchRun:
        run = self.prepare(inputs)
        for i, item in enumerate(run.items):
            self._transition(i, item, ItemStatus.PROCESSING)
            self._report(run)
            try:
                if len(item.data) > self.max_bytes:
                    raise OversizeInputError(len(item.data), self.max_bytes)
                item.result = await self.segmenter.segment(item.data)
                self._transition(i, item, ItemStatus.DONE)
            except Exception as e:
                log.error("Batch item %d (%s) failed: %s", i, item.name, e)
                item.error = str(e)
                self._transition(i, item, ItemStatus.ERROR)

            run.completed += 1
            self._report(run)

        log.info("Batch finished: %d done, %d failed", len(run.done), len(run.failed))
        return run

    def _transition(self, index: int, item: BatchItem, status: ItemStatus) -> None:
        item.status = status
        if self.on_item:
            self.on_item(index, item)

    def _report(self, run: BatchRun) -> None:
        if self.on_progress:
            self.on_progress(run.completed, run.total)

    async def export(self, options: CompositionOptions) -> List[Tuple[str, bytes]]:
        """Compose every DONE item with ``options``; names are ghostclip-1.png, ghostclip-2.png, ..."""
        done = self.run_state.done if self.run_state else []
        if not done:
            raise NothingToExportError()
        entries = []
        for i, item in enumerate(done, start=1):
            # the cached matte stays valid for later exports
            png = await self.router.build_final(options.request(item.result.copy()))
            entries.append((f"ghostclip-{i}.png", png))
        return entries

    async def export_archive(self, options: CompositionOptions) -> bytes:
        return build_archive(await self.export(options))

    def reset(self) -> None:
        self.run_state = None


def build_archive(entries: Sequence[Tuple[str, bytes]]) -> bytes:
    """Pack (name, bytes) pairs into a ZIP archive."""
    buf = io.BytesIO()
    try:
        with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for name, data in entries:
                zf.writestr(name, data)
    except (OSError, ValueError, zipfile.BadZipFile) as exc:
        raise ExportError(f"Failed to build archive: {exc}") from exc
    return buf.getvalue()
