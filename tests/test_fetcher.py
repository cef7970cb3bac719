import base64

import pytest
import requests

from relcrawl.fetcher import (
    FetcherConfig,
    HttpFetcher,
    RemoteApiError,
    RetryPolicy,
    TransportError,
    select_path,
)
from relcrawl.models import Credentials
from stubs import INVALID_JSON, StubResponse, StubSession


def test_fetch_sends_identifying_and_preemptive_auth_headers() -> None:
    session = StubSession([{"users": []}])
    fetcher = HttpFetcher(
        FetcherConfig(timeout_ms=2500, user_agent="relcrawl-test"),
        Credentials("alice", "s3cret"),
        session=session,
    )

    assert fetcher.fetch("https://api.example.test/users") == {"users": []}

    call = session.calls[0]
    expected = base64.b64encode(b"alice:s3cret").decode("ascii")
    assert call["headers"]["Authorization"] == f"Basic {expected}"
    assert call["headers"]["User-Agent"] == "relcrawl-test"
    assert call["timeout"] == 2.5


def test_fetch_without_credentials_sends_no_authorization() -> None:
    session = StubSession([{}])
    HttpFetcher(session=session).fetch("https://api.example.test/")
    assert "Authorization" not in session.calls[0]["headers"]


def test_transport_failures_are_retried_then_succeed() -> None:
    session = StubSession([requests.ConnectionError("reset"), StubResponse(INVALID_JSON), {"ok": 1}])
    fetcher = HttpFetcher(FetcherConfig(retries=2), session=session)

    assert fetcher.fetch("https://api.example.test/flaky") == {"ok": 1}
    assert len(session.calls) == 3


def test_final_failure_raises_transport_error_with_cause() -> None:
    cause = requests.Timeout("read timed out")
    session = StubSession([requests.Timeout("first"), cause])
    fetcher = HttpFetcher(FetcherConfig(retries=1), session=session)

    with pytest.raises(TransportError) as excinfo:
        fetcher.fetch("https://api.example.test/slow")

    assert excinfo.value.url == "https://api.example.test/slow"
    assert excinfo.value.cause is cause
    assert len(session.calls) == 2


def test_http_status_is_exposed_on_transport_error() -> None:
    session = StubSession([StubResponse({"error": "gone"}, status_code=404)])
    fetcher = HttpFetcher(session=session)

    with pytest.raises(TransportError) as excinfo:
        fetcher.fetch("https://api.example.test/missing")

    assert excinfo.value.status_code == 404


def test_api_status_failure_is_not_retried() -> None:
    session = StubSession([{"stat": "fail", "code": 1, "message": "User not found"}])
    config = FetcherConfig(retries=3, status_field="stat", error_message_field="message")
    fetcher = HttpFetcher(config, session=session)

    with pytest.raises(RemoteApiError) as excinfo:
        fetcher.fetch("https://api.example.test/people")

    assert excinfo.value.message == "User not found"
    assert len(session.calls) == 1


def test_api_status_ok_passes_validation() -> None:
    session = StubSession([{"stat": "ok", "tags": []}])
    fetcher = HttpFetcher(FetcherConfig(status_field="stat"), session=session)
    assert fetcher.fetch("https://api.example.test/tags")["stat"] == "ok"


def test_missing_status_field_is_reported_generically() -> None:
    session = StubSession([{"tags": []}])
    fetcher = HttpFetcher(FetcherConfig(status_field="stat"), session=session)
    with pytest.raises(RemoteApiError, match="API returned status None"):
        fetcher.fetch("https://api.example.test/tags")


def test_fetcher_config_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RELCRAWL_USER_AGENT", "custom-agent/2.0")
    config = FetcherConfig.from_env(retries=4, status_field=None)
    assert config.user_agent == "custom-agent/2.0"
    assert config.retries == 4
    assert config.retry_policy.max_attempts == 5


def test_retry_policy_sleep_for_clamps_to_last_backoff() -> None:
    policy = RetryPolicy(max_attempts=3, backoff_seconds=(0.5, 1.0))
    assert policy.sleep_for(1) == 0.5
    assert policy.sleep_for(2) == 1.0
    assert policy.sleep_for(9) == 1.0


def test_close_only_closes_owned_sessions() -> None:
    session = StubSession([])
    with HttpFetcher(session=session):
        pass
    assert session.closed is False


def test_select_path_walks_dotted_paths() -> None:
    document = {"data": {"users": [{"name": "a"}, {"name": "b"}]}}
    assert select_path(document, "data.users.1.name") == "b"
    assert select_path(document, "data.missing.name") is None
    assert select_path(document, "") is document


def test_client_errors_fail_without_retrying() -> None:
    session = StubSession([StubResponse({"error": "gone"}, status_code=404), {"ok": 1}])
    fetcher = HttpFetcher(FetcherConfig(retries=2), session=session)

    with pytest.raises(TransportError) as excinfo:
        fetcher.fetch("https://api.example.test/missing")

    assert excinfo.value.status_code == 404
    assert len(session.calls) == 1


@pytest.mark.parametrize("status_code", [408, 429, 503])
def test_throttling_and_server_errors_are_retried(status_code: int) -> None:
    session = StubSession([StubResponse({}, status_code=status_code), {"ok": 1}])
    fetcher = HttpFetcher(FetcherConfig(retries=1), session=session)

    assert fetcher.fetch("https://api.example.test/busy") == {"ok": 1}
    assert len(session.calls) == 2
