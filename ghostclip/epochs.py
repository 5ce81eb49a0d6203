from typing import Dict, Iterable

PREVIEW = "preview"
PROCESS = "process"


class Epoch:
    """Token captured when an operation starts; stale once a newer one of its kind begins."""

    __slots__ = ("kind", "value", "_tracker")

    def __init__(self, kind: str, value: int, tracker: "EpochTracker"):
        self.kind = kind
        self.value = value
        self._tracker = tracker

    def is_current(self) -> bool:
        return self._tracker.current(self.kind) == self.value

    def is_stale(self) -> bool:
        return not self.is_current()

    def __repr__(self) -> str:
        state = "current" if self.is_current() else "stale"
        return f"Epoch({self.kind}={self.value}, {state})"


class EpochTracker:
    """Monotonic counter per operation kind.

    Cancellation is advisory: work already dispatched keeps running, callers
    just drop its result when their epoch is stale.
    """

    def __init__(self, kinds: Iterable[str] = (PREVIEW, PROCESS)):
        self._counters: Dict[str, int] = {kind: 0 for kind in kinds}

    def begin(self, kind: str) -> Epoch:
        if kind not in self._counters:
            raise ValueError(f"unknown operation kind {kind!r}")
        self._counters[kind] += 1
        return Epoch(kind, self._counters[kind], self)

    def current(self, kind: str) -> int:
        return self._counters[kind]
