import json
from pathlib import Path

import pytest

from relcrawl.engine import CrawlEngine, PartialFailure
from relcrawl.fetcher import RemoteApiError
from relcrawl.models import CrawlLevel, CrawlSpec
from relcrawl.observability import CrawlObservability
from relcrawl.sources import InMemoryRelationSource


def test_events_are_appended_and_summarised(tmp_path: Path) -> None:
    sink = CrawlObservability(tmp_path)
    engine = CrawlEngine(InMemoryRelationSource({"A": ["B"]}), telemetry=sink, crawl_id="CRAWL-OBS1")

    engine.crawl(CrawlSpec(seed_key="A", level=CrawlLevel.ONE))

    obs_dir = tmp_path / "CRAWL-OBS1" / "observability"
    entries = [json.loads(line) for line in (obs_dir / "logs.jsonl").read_text().splitlines()]
    assert [entry["event"] for entry in entries] == [
        "crawl.started",
        "crawl.pass.started",
        "crawl.backfill.started",
        "crawl.completed",
    ]
    assert all("timestamp" in entry for entry in entries)

    metrics = json.loads((obs_dir / "metrics.json").read_text())
    assert metrics["state"] == "completed"
    assert metrics["seed_key"] == "A"
    assert metrics["passes"] == ["outgoing"]
    assert metrics["backfill_candidates"] == 2
    assert metrics["edge_count"] == 1
    assert metrics["requests"]["success_count"] == 3


def test_partial_failure_metrics_record_error(tmp_path: Path) -> None:
    class RejectingSource(InMemoryRelationSource):
        def fetch_related(self, key, direction, page, *, depth=1):
            raise RemoteApiError("Rate limit exceeded")

    sink = CrawlObservability(tmp_path)
    result = CrawlEngine(RejectingSource(), telemetry=sink, crawl_id="CRAWL-OBS2").crawl(CrawlSpec(seed_key="A"))

    assert isinstance(result, PartialFailure)
    metrics = json.loads((tmp_path / "CRAWL-OBS2" / "observability" / "metrics.json").read_text())
    assert metrics["state"] == "partial_failure"
    assert metrics["error"] == "Rate limit exceeded"
    assert metrics["requests"]["failure_count"] == 1


def test_events_without_crawl_id_are_dropped(tmp_path: Path) -> None:
    sink = CrawlObservability(tmp_path)
    sink.emit("crawl.started", {"seed_key": "A"})
    assert list(tmp_path.iterdir()) == []


def test_unsafe_crawl_ids_are_rejected(tmp_path: Path) -> None:
    sink = CrawlObservability(tmp_path)
    with pytest.raises(ValueError):
        sink.crawl_dir("../escape")
