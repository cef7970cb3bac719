"""Bounded two-level relation crawl producing a deduplicated directed graph."""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Union

from .cancellation import CancellationToken, CrawlCancelled, CrawlState, CrawlStateMachine, ProgressChannel
from .graph import Graph, GraphAccumulator
from .models import CrawlSpec, RelatedPage, RelationDirection, parse_key
from .pages import PageEnumerator
from .policy import EdgeCondition, admission_policy
from .sources import RelationSource
from .stats import RequestStatistics
from .telemetry import NoOpTelemetry, TelemetrySink, safe_emit


logger = logging.getLogger(__name__)


# ---------------------------------------------------------------- results
@dataclass(frozen=True, slots=True)
class Completed:
    graph: Graph
    stats: RequestStatistics


@dataclass(frozen=True, slots=True)
class PartialFailure:
    """A crawl aborted by a load-bearing failure.

    ``graph`` holds everything accumulated before the failure and is meant to
    be used, not discarded.
    """

    graph: Graph
    stats: RequestStatistics
    cause: BaseException


@dataclass(frozen=True, slots=True)
class Cancelled:
    # Whatever was accumulated when the cancellation was observed; may be empty.
    graph: Optional[Graph] = None


CrawlResult = Union[Completed, PartialFailure, Cancelled]


def new_crawl_id() -> str:
    return f"CRAWL-{uuid.uuid4().hex[:12].upper()}"


_DIRECTION_LABELS = {
    RelationDirection.OUTGOING: "entities related from",
    RelationDirection.INCOMING: "entities related to",
}


class CrawlEngine:
    """Runs one crawl against a :class:`RelationSource`.

    An engine owns its accumulator, statistics and state machine, so each
    instance serves exactly one :meth:`crawl` call.
    """

    def __init__(
        self,
        source: RelationSource,
        *,
        cancellation: CancellationToken | None = None,
        progress: ProgressChannel | None = None,
        telemetry: TelemetrySink | None = None,
        state: CrawlStateMachine | None = None,
        crawl_id: str | None = None,
    ) -> None:
        self.source = source
        self.cancellation = cancellation or CancellationToken()
        self.progress = progress or ProgressChannel()
        self.telemetry = telemetry or NoOpTelemetry()
        self.state = state or CrawlStateMachine()
        self.crawl_id = crawl_id or new_crawl_id()
        self.stats = RequestStatistics()
        self._graph = GraphAccumulator()
        # Direct neighbours of the seed, shared by every direction pass.
        self._neighbors: Set[str] = set()

    # -------------------------------------------------------------------- public
    def crawl(self, spec: CrawlSpec) -> CrawlResult:
        if not self.state.transition(CrawlState.RUNNING):
            raise RuntimeError("A CrawlEngine runs a single crawl")

        self._emit(
            "crawl.started",
            {
                "seed_key": spec.seed_key,
                "level": spec.level.value,
                "directions": [direction.value for direction in spec.ordered_directions()],
                "max_items_per_direction": spec.max_items_per_direction,
            },
        )
        try:
            self.cancellation.raise_if_cancelled()
            self._define_schema(spec)
            self._graph.register_vertex(spec.seed_key)
            for direction in spec.ordered_directions():
                self.cancellation.raise_if_cancelled()
                self._emit("crawl.pass.started", {"direction": direction.value})
                self._expand(spec, spec.seed_key, direction, depth=1)
            self._backfill()
        except CrawlCancelled:
            logger.info("Crawl %s cancelled", self.crawl_id)
            self.state.transition(CrawlState.CANCELLING)
            return self._finish_cancelled()
        except Exception as exc:
            logger.exception("Crawl %s aborted", self.crawl_id)
            self.state.transition(CrawlState.FAILED)
            graph = self._graph.export()
            self._emit(
                "crawl.partial_failure",
                {
                    "error": str(exc),
                    "error_type": exc.__class__.__name__,
                    **self._summary(graph),
                },
            )
            return PartialFailure(graph=graph, stats=self.stats, cause=exc)

        graph = self._graph.export()
        self.state.transition(CrawlState.COMPLETED)
        self.progress.report(
            f"Done. {len(graph.vertices)} vertices and {len(graph.edges)} edges."
        )
        self._emit("crawl.completed", self._summary(graph))
        return Completed(graph=graph, stats=self.stats)

    # ------------------------------------------------------------------ internal
    def _define_schema(self, spec: CrawlSpec) -> None:
        for definition in self.source.attribute_definitions(spec.include_extra_attribute):
            self._graph.define_attribute(
                definition.attribute_id, definition.display_name, definition.type
            )

    def _expand(
        self,
        spec: CrawlSpec,
        current: str,
        direction: RelationDirection,
        depth: int,
    ) -> None:
        policy = admission_policy(spec.level, depth)
        self.progress.report(f'Getting {_DIRECTION_LABELS[direction]} "{current}".')

        enumerator = PageEnumerator(cancellation=self.cancellation)
        items = enumerator.over_pages(
            lambda page: self._fetch_related(current, direction, page, depth),
            self.source.page_size,
            spec.max_items_per_direction,
        )
        to_recurse: List[str] = []
        for item in items:
            other = parse_key(item.key)
            if other is None:
                logger.debug("Skipping related item of %s without a usable key", current)
                continue
            if policy.add_vertex:
                if self._graph.register_vertex(other):
                    self._graph.append_attributes(other, item.attributes)
                if depth == 1:
                    self._neighbors.add(other)
            if policy.edge_condition is EdgeCondition.ALWAYS or other in self._neighbors:
                if direction is RelationDirection.OUTGOING:
                    self._graph.append_edge(current, other)
                else:
                    self._graph.append_edge(other, current)
            if policy.recurse and other not in to_recurse:
                to_recurse.append(other)

        for other in to_recurse:
            self.cancellation.raise_if_cancelled()
            self._expand(spec, other, direction, depth + 1)

    def _fetch_related(
        self,
        key: str,
        direction: RelationDirection,
        page: int,
        depth: int,
    ) -> RelatedPage:
        try:
            result = self.source.fetch_related(key, direction, page, depth=depth)
        except CrawlCancelled:
            raise
        except Exception as exc:
            self.stats.record_failure(exc)
            raise
        self.stats.record_success()
        return result

    def _backfill(self) -> None:
        pending = self._graph.keys_without_attributes()
        self._emit("crawl.backfill.started", {"candidates": len(pending)})
        for key in pending:
            self.cancellation.raise_if_cancelled()
            self.progress.report(f'Getting information about "{key}".')
            try:
                attributes = self.source.fetch_attributes(key)
            except CrawlCancelled:
                raise
            except Exception as exc:
                # Attribute lookups are best effort.
                logger.warning("Attribute lookup for %s failed: %s", key, exc)
                self.stats.record_failure(exc)
                continue
            self.stats.record_success()
            if attributes is None:
                logger.warning("No record found for %s during attribute lookup", key)
                self.stats.record_unresolved(key)
                continue
            self._graph.append_attributes(key, attributes)

    def _finish_cancelled(self) -> Cancelled:
        self.state.transition(CrawlState.CANCELLED)
        graph = self._graph.export()
        self._emit("crawl.cancelled", self._summary(graph))
        return Cancelled(graph=graph)

    def _summary(self, graph: Graph) -> Dict[str, object]:
        return {
            "vertex_count": len(graph.vertices),
            "edge_count": len(graph.edges),
            "stats": self.stats.to_dict(),
        }

    def _emit(self, event: str, payload: Dict[str, object]) -> None:
        entry: Dict[str, object] = {"crawl_id": self.crawl_id}
        entry.update(payload)
        safe_emit(self.telemetry, event, entry)


__all__ = [
    "Cancelled",
    "Completed",
    "CrawlEngine",
    "CrawlResult",
    "PartialFailure",
    "new_crawl_id",
]
