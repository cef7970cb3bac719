"""Structured observability sink persisting crawl telemetry to disk."""
from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

from .telemetry import TelemetrySink


logger = logging.getLogger(__name__)

_SAFE_ID = re.compile(r"^[A-Za-z0-9_.-]+$")

_TERMINAL_EVENTS = {
    "crawl.completed": "completed",
    "crawl.partial_failure": "partial_failure",
    "crawl.cancelled": "cancelled",
}


class CrawlObservability(TelemetrySink):
    """Aggregates crawl telemetry into JSONL logs and a metrics summary."""

    def __init__(self, storage_root: Path | str = "artifacts/crawls") -> None:
        self.storage_root = Path(storage_root)
        self._metrics_cache: Dict[str, Dict[str, Any]] = {}

    # ------------------------------------------------------------------ public
    def emit(self, event: str, payload: Dict[str, object]) -> None:
        crawl_id = self._extract_crawl_id(payload)
        if not crawl_id:
            logger.debug("Telemetry event %s missing crawl_id; dropping", event)
            return

        entry = dict(payload)
        entry.setdefault("crawl_id", crawl_id)
        entry.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
        entry["event"] = event
        self._append_log(crawl_id, entry)

        metrics = self._metrics_cache.setdefault(crawl_id, {"crawl_id": crawl_id})
        self._update_metrics(metrics, entry)
        self._persist_metrics(crawl_id, metrics)

    def crawl_dir(self, crawl_id: str) -> Path:
        if not _SAFE_ID.match(crawl_id):
            raise ValueError(f"Unsafe crawl id: {crawl_id!r}")
        return self.storage_root / crawl_id

    # ---------------------------------------------------------------- internal
    def _append_log(self, crawl_id: str, entry: Dict[str, object]) -> None:
        logs_path = self._logs_path(crawl_id)
        logs_path.parent.mkdir(parents=True, exist_ok=True)
        with logs_path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(entry, default=str) + "\n")

    def _update_metrics(self, metrics: Dict[str, Any], entry: Dict[str, object]) -> None:
        event = str(entry.get("event", ""))
        if event == "crawl.started":
            metrics["seed_key"] = entry.get("seed_key")
            metrics["level"] = entry.get("level")
            metrics["directions"] = entry.get("directions")
            metrics["started_at"] = entry.get("timestamp")
            metrics["state"] = "running"
        elif event == "crawl.pass.started":
            passes = metrics.setdefault("passes", [])
            passes.append(entry.get("direction"))
        elif event == "crawl.backfill.started":
            metrics["backfill_candidates"] = _to_int(entry.get("candidates"))
        elif event in _TERMINAL_EVENTS:
            metrics["state"] = _TERMINAL_EVENTS[event]
            metrics["finished_at"] = entry.get("timestamp")
            for name in ("vertex_count", "edge_count"):
                if name in entry:
                    metrics[name] = _to_int(entry.get(name))
            if isinstance(entry.get("stats"), dict):
                metrics["requests"] = entry["stats"]
            if entry.get("error"):
                metrics["error"] = entry.get("error")

    def _persist_metrics(self, crawl_id: str, metrics: Dict[str, Any]) -> None:
        metrics_path = self._logs_path(crawl_id).parent / "metrics.json"
        metrics_path.write_text(json.dumps(metrics, indent=2, default=str), encoding="utf-8")

    def _logs_path(self, crawl_id: str) -> Path:
        return self.crawl_dir(crawl_id) / "observability" / "logs.jsonl"

    @staticmethod
    def _extract_crawl_id(payload: Dict[str, object]) -> str:
        for key in ("crawl_id", "crawlId", "id"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value
        return ""


def _to_int(value: object) -> int | None:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    try:
        return int(str(value))
    except (TypeError, ValueError):
        return None


__all__ = ["CrawlObservability"]
