import pytest

from relcrawl.cancellation import CancellationToken, CrawlCancelled
from relcrawl.fetcher import HttpFetcher
from relcrawl.models import RelatedPage
from relcrawl.pages import PageEnumerator
from stubs import StubSession


def _page(*names: str) -> dict:
    return {"data": {"items": [{"name": name} for name in names]}}


def test_enumerate_stops_on_short_page_without_requesting_next() -> None:
    session = StubSession([_page("a", "b"), _page("c")])
    enumerator = PageEnumerator(HttpFetcher(session=session))

    items = list(enumerator.enumerate("https://api.example.test/tags", "data.items", page_size=2))

    assert [item["name"] for item in items] == ["a", "b", "c"]
    assert [call["params"] for call in session.calls] == [{"page": 1}, {"page": 2}]
    assert enumerator.pages_fetched == 2


def test_enumerate_honours_max_items_mid_page() -> None:
    session = StubSession([_page("a", "b"), _page("c", "d")])
    enumerator = PageEnumerator(HttpFetcher(session=session))

    items = list(enumerator.enumerate("https://api.example.test/tags", "data.items", 2, max_items=3))

    assert [item["name"] for item in items] == ["a", "b", "c"]
    assert len(session.calls) == 2


def test_enumerate_full_last_page_needs_one_empty_page() -> None:
    session = StubSession([_page("a", "b"), _page()])
    enumerator = PageEnumerator(HttpFetcher(session=session))

    items = list(enumerator.enumerate("https://api.example.test/tags", "data.items", 2))

    assert len(items) == 2
    assert len(session.calls) == 2


def test_enumerate_is_lazy() -> None:
    session = StubSession([_page("a")])
    enumerator = PageEnumerator(HttpFetcher(session=session))

    iterator = enumerator.enumerate("https://api.example.test/tags", "data.items", 10)
    assert session.calls == []
    assert next(iterator) == {"name": "a"}
    assert len(session.calls) == 1


def test_enumerate_merges_extra_query_params_with_page() -> None:
    session = StubSession([_page("a")])
    enumerator = PageEnumerator(HttpFetcher(session=session), page_parameter="p")

    items = list(enumerator.enumerate("https://api.example.test/tags", "data.items", 5, params={"format": "json"}))

    assert items == [{"name": "a"}]
    assert session.calls[0]["params"] == {"format": "json", "p": 1}


def test_fetch_page_extracts_one_page_and_flags_more() -> None:
    session = StubSession([_page("a", "b")])
    enumerator = PageEnumerator(HttpFetcher(session=session))

    page = enumerator.fetch_page("https://api.example.test/tags", "data.items", 2, 4, params={"page": 1})

    assert page.items == [{"name": "a"}, {"name": "b"}]
    assert page.has_more is True
    assert session.calls[0]["params"] == {"page": 4}


def test_enumerate_treats_missing_item_path_as_empty_page() -> None:
    session = StubSession([{"data": {}}])
    enumerator = PageEnumerator(HttpFetcher(session=session))
    assert list(enumerator.enumerate("https://api.example.test/tags", "data.items", 10)) == []


def test_over_pages_stops_when_source_reports_no_more() -> None:
    requested = []

    def fetch_page(page: int) -> RelatedPage:
        requested.append(page)
        return RelatedPage(items=["x", "y"], has_more=False)

    items = list(PageEnumerator().over_pages(fetch_page, page_size=2))

    assert items == ["x", "y"]
    assert requested == [1]


def test_non_positive_budget_fetches_nothing() -> None:
    def fetch_page(page: int) -> RelatedPage:  # pragma: no cover - must not be called
        raise AssertionError("fetched")

    assert list(PageEnumerator().over_pages(fetch_page, page_size=5, max_items=0)) == []


def test_cancellation_is_checked_before_each_page() -> None:
    token = CancellationToken()
    requested = []

    def fetch_page(page: int) -> RelatedPage:
        requested.append(page)
        token.cancel()
        return RelatedPage(items=["x"], has_more=True)

    iterator = PageEnumerator(cancellation=token).over_pages(fetch_page, page_size=1)
    assert next(iterator) == "x"
    with pytest.raises(CrawlCancelled):
        next(iterator)
    assert requested == [1]


def test_enumerate_requires_fetcher() -> None:
    with pytest.raises(ValueError):
        PageEnumerator().enumerate("https://api.example.test/tags", "items", 10)
    with pytest.raises(ValueError):
        PageEnumerator().fetch_page("https://api.example.test/tags", "items", 10, 1)
