"""Request counters collected while a crawl runs."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass(slots=True)
class RequestStatistics:
    """Success/failure counters owned by a single crawl.

    Only the crawl engine mutates these; fetchers and enumerators report
    outcomes back to it instead of counting on their own.
    """

    success_count: int = 0
    failure_count: int = 0
    last_error: Optional[BaseException] = None
    unresolved_keys: List[str] = field(default_factory=list)

    def record_success(self, count: int = 1) -> None:
        if count > 0:
            self.success_count += count

    def record_failure(self, error: BaseException) -> None:
        self.failure_count += 1
        self.last_error = error

    def record_unresolved(self, key: str) -> None:
        self.unresolved_keys.append(key)

    @property
    def total_requests(self) -> int:
        return self.success_count + self.failure_count

    def to_dict(self) -> Dict[str, object]:
        return {
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "last_error": str(self.last_error) if self.last_error else None,
            "last_error_type": self.last_error.__class__.__name__ if self.last_error else None,
            "unresolved_keys": list(self.unresolved_keys),
        }


__all__ = ["RequestStatistics"]
