"""Background execution of a crawl with a cancel/progress/result handle."""
from __future__ import annotations

import logging
import threading
from typing import Optional

from .cancellation import CancellationToken, CrawlState, CrawlStateMachine, ProgressChannel
from .engine import CrawlEngine, CrawlResult, new_crawl_id
from .models import CrawlSpec
from .sources import RelationSource
from .telemetry import TelemetrySink


logger = logging.getLogger(__name__)


class CrawlHandle:
    """Caller-side view of a crawl running on a worker thread."""

    def __init__(
        self,
        engine: CrawlEngine,
        spec: CrawlSpec,
        *,
        close_source: bool = False,
    ) -> None:
        self._engine = engine
        self._spec = spec
        self._close_source = close_source
        self._done = threading.Event()
        self._result: Optional[CrawlResult] = None
        self._error: Optional[BaseException] = None
        self._thread = threading.Thread(
            target=self._worker,
            name=f"crawl-{engine.crawl_id}",
            daemon=True,
        )

    @property
    def crawl_id(self) -> str:
        return self._engine.crawl_id

    @property
    def progress(self) -> ProgressChannel:
        return self._engine.progress

    @property
    def state(self) -> CrawlState:
        return self._engine.state.state

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def cancel(self) -> None:
        """Ask the crawl to stop at its next suspension point."""

        self._engine.cancellation.cancel()

    def result(self, timeout: Optional[float] = None) -> CrawlResult:
        if not self._done.wait(timeout):
            raise TimeoutError(f"Crawl {self.crawl_id} still running")
        if self._error is not None:
            raise self._error
        if self._result is None:
            raise RuntimeError(f"Crawl {self.crawl_id} finished without a result")
        return self._result

    def _start(self) -> None:
        self._thread.start()

    def _worker(self) -> None:
        try:
            self._result = self._engine.crawl(self._spec)
        except Exception as exc:
            logger.exception("Crawl %s failed unexpectedly", self.crawl_id)
            self._error = exc
        finally:
            if self._close_source:
                self._engine.source.close()
            self._done.set()


def start(
    spec: CrawlSpec,
    source: RelationSource,
    *,
    telemetry: TelemetrySink | None = None,
    crawl_id: str | None = None,
    progress_size: int = 1024,
    close_source: bool = False,
) -> CrawlHandle:
    """Start crawling ``spec`` on a daemon thread and return its handle."""

    engine = CrawlEngine(
        source,
        cancellation=CancellationToken(),
        progress=ProgressChannel(maxsize=progress_size),
        telemetry=telemetry,
        state=CrawlStateMachine(),
        crawl_id=crawl_id or new_crawl_id(),
    )
    handle = CrawlHandle(engine, spec, close_source=close_source)
    handle._start()
    logger.info("Started crawl %s from seed %s", handle.crawl_id, spec.seed_key)
    return handle


__all__ = ["CrawlHandle", "start"]
