"""relcrawl core package."""
from .cancellation import CancellationToken, CrawlState, ProgressChannel
from .engine import Cancelled, Completed, CrawlEngine, CrawlResult, PartialFailure
from .fetcher import HttpFetcher, RemoteApiError, TransportError
from .graph import Graph, GraphAccumulator, SchemaError
from .models import CrawlError, CrawlLevel, CrawlSpec, Credentials, RelationDirection, ValidationError
from .pages import PageEnumerator
from .policy import admission_policy
from .runner import CrawlHandle, start
from .sources import HttpRelationSource, InMemoryRelationSource, RelationSource
from .stats import RequestStatistics

__all__ = [
    "CancellationToken",
    "Cancelled",
    "Completed",
    "CrawlEngine",
    "CrawlError",
    "CrawlHandle",
    "CrawlLevel",
    "CrawlResult",
    "CrawlSpec",
    "CrawlState",
    "Credentials",
    "Graph",
    "GraphAccumulator",
    "HttpFetcher",
    "HttpRelationSource",
    "InMemoryRelationSource",
    "PageEnumerator",
    "PartialFailure",
    "ProgressChannel",
    "RelationDirection",
    "RelationSource",
    "RemoteApiError",
    "RequestStatistics",
    "SchemaError",
    "TransportError",
    "ValidationError",
    "admission_policy",
    "start",
]
