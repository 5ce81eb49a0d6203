import asyncio
import itertools
import multiprocessing
import queue
import threading
from dataclasses import replace
from typing import Any, Callable, Dict, Optional

from . import config
from .errors import UnsupportedEnvironment, WorkerFailure
from .logger import get_logger
from .pipeline import CompositionRequest, Scene, build_final
from .raster import RasterImage
from .worker import STOP, to_message, worker_main

log = get_logger("router")

ReplyCallback = Callable[[Dict[str, Any]], None]
FaultCallback = Callable[[str], None]


class ProcessTransport:
    """One persistent compositor process and a thread draining its replies."""

    POLL_INTERVAL = 0.5
    # fork would inherit rembg's native thread pools and hang the parent at exit
    START_METHOD = "spawn"

    def __init__(self, on_reply: ReplyCallback, on_fault: FaultCallback, context=None):
        ctx = context or multiprocessing.get_context(self.START_METHOD)
        try:
            self._requests = ctx.Queue()
            self._replies = ctx.Queue()
            self._process = ctx.Process(
                target=worker_main,
                args=(self._requests, self._replies),
                name="ghostclip-compositor",
                daemon=True,
            )
            self._process.start()
        except (OSError, ImportError, ValueError) as exc:
            raise UnsupportedEnvironment(f"cannot start compositor process: {exc}") from exc

        self._on_reply = on_reply
        self._on_fault = on_fault
        self._closed = False
        self._listener = threading.Thread(target=self._listen, name="ghostclip-replies", daemon=True)
        self._listener.start()

    def send(self, message: Dict[str, Any]) -> None:
        if self._closed or not self._process.is_alive():
            raise WorkerFailure("compositor process is not running")
        self._requests.put(message)

    def _listen(self) -> None:
        while not self._closed:
            try:
                reply = self._replies.get(timeout=self.POLL_INTERVAL)
            except queue.Empty:
                if not self._process.is_alive():
                    self._on_fault(f"compositor exited with code {self._process.exitcode}")
                    return
                continue
            except (EOFError, OSError) as exc:
                self._on_fault(f"reply channel broken: {exc}")
                return
            self._on_reply(reply)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._process.is_alive():
            self._requests.put(STOP)
            self._process.join(timeout=5)


TransportFactory = Callable[[ReplyCallback, FaultCallback], Any]


def _settle(fut: asyncio.Future, reply: Dict[str, Any]) -> None:
    if fut.done():
        return
    if "error" in reply:
        fut.set_exception(WorkerFailure(reply["error"]))
    else:
        fut.set_result(reply["image"])


class ExecutionRouter:
    """Runs compositions inline or on the offload worker.

    The worker is created lazily on first use. If it cannot be created, or any
    offloaded call fails, offloading is switched off for good and the failed
    call is retried inline once.
    """

    def __init__(
        self,
        offload: bool = config.OFFLOAD_ENABLED,
        transport_factory: Optional[TransportFactory] = None,
        timeout: Optional[float] = config.WORKER_TIMEOUT,
    ):
        self._offload = offload
        self._factory = transport_factory or ProcessTransport
        self._timeout = timeout
        self._transport = None
        self._probed = False
        self._ids = itertools.count()
        self._pending: Dict[int, asyncio.Future] = {}
        self._lock = threading.Lock()

    @property
    def offloading(self) -> bool:
        return self._offload and self._transport is not None

    @property
    def pending(self) -> int:
        return len(self._pending)

    def _get_transport(self):
        if not self._offload:
            return None
        if not self._probed:
            self._probed = True
            try:
                self._transport = self._factory(self._on_reply, self._on_fault)
                log.info("Offload worker ready")
            except UnsupportedEnvironment as exc:
                log.info("Offload unavailable, compositing inline: %s", exc)
                self._offload = False
        return self._transport

    def _trip(self, reason: str) -> None:
        if self._offload:
            log.warning("Offload worker failed (%s); compositing inline from now on", reason)
        self._offload = False
        transport, self._transport = self._transport, None
        if transport is not None:
            # calls still waiting on the worker retry inline too
            self._on_fault(f"offload disabled: {reason}")
            transport.close()

    # --- reply plumbing (listener thread) ---

    def _on_reply(self, reply: Dict[str, Any]) -> None:
        with self._lock:
            fut = self._pending.pop(reply.get("id"), None)
        if fut is None:
            log.debug("Ignoring reply for unknown call %r", reply.get("id"))
            return
        try:
            fut.get_loop().call_soon_threadsafe(_settle, fut, reply)
        except RuntimeError:
            log.debug("Event loop closed before call %r settled", reply.get("id"))

    def _on_fault(self, reason: str) -> None:
        with self._lock:
            orphans = list(self._pending.items())
            self._pending.clear()
        for call_id, fut in orphans:
            try:
                fut.get_loop().call_soon_threadsafe(_settle, fut, {"id": call_id, "error": reason})
            except RuntimeError:
                log.debug("Event loop closed before call %r failed", call_id)

    # --- public API ---

    async def build_final(self, request: CompositionRequest) -> bytes:
        """Encoded PNG for ``request``.

        A RasterImage source is moved: the caller's instance is unusable
        afterwards. A Scene raster is copied and stays valid.
        """
        if isinstance(request.source, RasterImage):
            request = replace(request, source=request.source.transfer())

        transport = self._get_transport()
        if transport is None or not self._offload:
            return build_final(request)

        if isinstance(request.background, Scene):
            request = replace(request, background=Scene(request.background.image.copy()))

        loop = asyncio.get_running_loop()
        call_id = next(self._ids)
        fut = loop.create_future()
        with self._lock:
            self._pending[call_id] = fut
        try:
            transport.send(to_message(call_id, request))
            return await asyncio.wait_for(fut, self._timeout)
        except (WorkerFailure, OSError, ValueError, asyncio.TimeoutError) as exc:
            with self._lock:
                self._pending.pop(call_id, None)
            self._trip(str(exc) or type(exc).__name__)
            return build_final(request)

    def close(self) -> None:
        if self._transport is not None:
            self._transport.close()
