"""Telemetry sinks receiving structured crawl lifecycle events."""
from __future__ import annotations

import logging
from typing import Dict, List, Tuple


logger = logging.getLogger(__name__)


class TelemetrySink:
    """Base class for sinks that consume structured crawl events."""

    def emit(self, event: str, payload: Dict[str, object]) -> None:  # pragma: no cover - interface only
        raise NotImplementedError


class NoOpTelemetry(TelemetrySink):
    """Telemetry sink that ignores all events."""

    def emit(self, event: str, payload: Dict[str, object]) -> None:  # pragma: no cover - intentionally empty
        return


class RecordingTelemetry(TelemetrySink):
    """Keeps events in memory, in emission order."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, Dict[str, object]]] = []

    def emit(self, event: str, payload: Dict[str, object]) -> None:
        self.events.append((event, dict(payload)))

    @property
    def names(self) -> List[str]:
        return [name for name, _ in self.events]


def safe_emit(sink: TelemetrySink, event: str, payload: Dict[str, object]) -> None:
    """Forward ``event`` to ``sink``; sink failures are logged, never raised."""

    try:
        sink.emit(event, payload)
    except Exception:
        logger.exception("Telemetry sink failed for event %s", event)


__all__ = ["NoOpTelemetry", "RecordingTelemetry", "TelemetrySink", "safe_emit"]
