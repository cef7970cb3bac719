"""Lazy, bounded enumeration over paginated relation endpoints."""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

from .cancellation import CancellationToken
from .fetcher import HttpFetcher, select_path
from .models import RelatedPage


logger = logging.getLogger(__name__)

PageFetch = Callable[[int], RelatedPage]


class PageEnumerator:
    """Yields items page by page until a budget or the last page is reached.

    Pages are 1-based. A page holding fewer than ``page_size`` items is the
    last one, so the following (known empty) page is never requested.
    """

    def __init__(
        self,
        fetcher: HttpFetcher | None = None,
        *,
        cancellation: CancellationToken | None = None,
        page_parameter: str = "page",
    ) -> None:
        self.fetcher = fetcher
        self.cancellation = cancellation
        self.page_parameter = page_parameter
        self.pages_fetched = 0

    def enumerate(
        self,
        base_url: str,
        item_path: str,
        page_size: int,
        max_items: Optional[int] = None,
        params: Optional[Mapping[str, object]] = None,
    ) -> Iterator[Any]:
        """Enumerate raw JSON items found at ``item_path`` on each page."""

        if self.fetcher is None:
            raise ValueError("enumerate() requires an HttpFetcher")
        return self.over_pages(
            lambda page: self.fetch_page(base_url, item_path, page_size, page, params=params),
            page_size,
            max_items,
        )

    def fetch_page(
        self,
        base_url: str,
        item_path: str,
        page_size: int,
        page: int,
        *,
        params: Optional[Mapping[str, object]] = None,
    ) -> RelatedPage:
        """Fetch one page and extract its raw items; a missing item list is empty."""

        if self.fetcher is None:
            raise ValueError("PageEnumerator needs an HttpFetcher to fetch pages")
        query: Dict[str, object] = dict(params or {})
        query[self.page_parameter] = page
        document = self.fetcher.fetch(base_url, params=query)
        items = select_path(document, item_path)
        if not isinstance(items, list):
            items = []
        return RelatedPage(items=items, has_more=len(items) >= page_size)

    def over_pages(
        self,
        fetch_page: PageFetch,
        page_size: int,
        max_items: Optional[int] = None,
    ) -> Iterator[Any]:
        """Enumerate items from any page-returning callable."""

        if page_size <= 0:
            raise ValueError("page_size must be > 0")
        if max_items is not None and max_items <= 0:
            return iter(())
        return self._iterate(fetch_page, page_size, max_items)

    def _iterate(
        self,
        fetch_page: PageFetch,
        page_size: int,
        max_items: Optional[int],
    ) -> Iterator[Any]:
        yielded = 0
        page = 1
        while True:
            if self.cancellation is not None:
                self.cancellation.raise_if_cancelled()
            result = fetch_page(page)
            self.pages_fetched += 1
            items: List[Any] = list(result.items)
            for item in items:
                yield item
                yielded += 1
                if max_items is not None and yielded >= max_items:
                    return
            if len(items) < page_size or not result.has_more:
                return
            page += 1


__all__ = ["PageEnumerator", "PageFetch"]
