"""Cooperative cancellation and progress reporting shared with a crawl."""
from __future__ import annotations

import logging
import queue
import threading
from enum import Enum
from typing import Iterator, List, Optional

from .models import CrawlError


logger = logging.getLogger(__name__)


class CrawlCancelled(CrawlError):
    """Raised inside the engine when the cancellation token is observed."""


class CrawlState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLING = "cancelling"
    CANCELLED = "cancelled"


_TERMINAL_STATES = {CrawlState.COMPLETED, CrawlState.FAILED, CrawlState.CANCELLED}

_TRANSITIONS = {
    CrawlState.IDLE: {CrawlState.RUNNING},
    CrawlState.RUNNING: {CrawlState.COMPLETED, CrawlState.FAILED, CrawlState.CANCELLING},
    CrawlState.CANCELLING: {CrawlState.CANCELLED},
}


class CrawlStateMachine:
    """Tracks the lifecycle of one crawl; safe to read from another thread."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state = CrawlState.IDLE
        self.history: List[CrawlState] = [CrawlState.IDLE]

    @property
    def state(self) -> CrawlState:
        with self._lock:
            return self._state

    @property
    def is_terminal(self) -> bool:
        return self.state in _TERMINAL_STATES

    def transition(self, target: CrawlState) -> bool:
        """Move to ``target`` if allowed; returns whether the move happened."""

        with self._lock:
            if target not in _TRANSITIONS.get(self._state, set()):
                logger.debug("Ignoring crawl state change %s -> %s", self._state.value, target.value)
                return False
            self._state = target
            self.history.append(target)
            return True


class CancellationToken:
    """Write-once-by-caller, read-many-by-engine stop flag."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CrawlCancelled("Crawl cancelled by caller")


class ProgressChannel:
    """Bounded single-producer/single-consumer queue of progress messages.

    ``report`` never blocks: when the consumer falls behind, new messages are
    dropped and counted rather than stalling the crawl.
    """

    def __init__(self, maxsize: int = 1024) -> None:
        self._queue: "queue.Queue[str]" = queue.Queue(maxsize=maxsize)
        self.dropped = 0

    def report(self, message: str) -> None:
        logger.debug("progress: %s", message)
        try:
            self._queue.put_nowait(message)
        except queue.Full:
            self.dropped += 1

    def get(self, timeout: Optional[float] = None) -> Optional[str]:
        try:
            if timeout is None:
                return self._queue.get_nowait()
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> Iterator[str]:
        while True:
            try:
                yield self._queue.get_nowait()
            except queue.Empty:
                return

    def __len__(self) -> int:
        return self._queue.qsize()


__all__ = [
    "CancellationToken",
    "CrawlCancelled",
    "CrawlState",
    "CrawlStateMachine",
    "ProgressChannel",
]
