"""Vertex/edge admission rules for each crawl level and recursion depth."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .models import CrawlLevel


class EdgeCondition(str, Enum):
    ALWAYS = "always"
    # Only when the other endpoint is one of the seed's direct neighbours.
    IF_NEIGHBOR = "if_neighbor"


@dataclass(frozen=True, slots=True)
class AdmissionPolicy:
    add_vertex: bool
    edge_condition: EdgeCondition
    recurse: bool


_POLICIES = {
    (CrawlLevel.ONE, 1): AdmissionPolicy(True, EdgeCondition.ALWAYS, False),
    (CrawlLevel.ONE_POINT_FIVE, 1): AdmissionPolicy(True, EdgeCondition.ALWAYS, True),
    (CrawlLevel.ONE_POINT_FIVE, 2): AdmissionPolicy(False, EdgeCondition.IF_NEIGHBOR, False),
    (CrawlLevel.TWO, 1): AdmissionPolicy(True, EdgeCondition.ALWAYS, True),
    (CrawlLevel.TWO, 2): AdmissionPolicy(True, EdgeCondition.ALWAYS, False),
}


def admission_policy(level: CrawlLevel, depth: int) -> AdmissionPolicy:
    """Return what to do with items discovered ``depth`` hops from the seed.

    Depth 1 covers items related to the seed itself; depth 2 covers items
    related to a depth-1 neighbour. Any other combination is never reached
    by a crawl and raises ``ValueError``.
    """

    try:
        return _POLICIES[(CrawlLevel.parse(level), depth)]
    except KeyError:
        raise ValueError(f"Level {CrawlLevel.parse(level).value} never reaches depth {depth}") from None


__all__ = ["AdmissionPolicy", "EdgeCondition", "admission_policy"]
