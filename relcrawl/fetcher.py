"""Retried JSON fetches with API-status validation."""
from __future__ import annotations

import base64
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence

import requests

from .models import DEFAULT_HTTP_RETRIES, DEFAULT_HTTP_TIMEOUT_MS, CrawlError, Credentials


logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "relcrawl/0.1 (+https://github.com/relcrawl/relcrawl)"

# Client errors worth another attempt: request timeout and rate limiting.
_RETRYABLE_CLIENT_STATUSES = {408, 429}


class TransportError(CrawlError):
    """Raised when a request keeps failing at the transport or decode level."""

    def __init__(self, url: str, cause: BaseException) -> None:
        super().__init__(f"Request to {url} failed: {cause}")
        self.url = url
        self.cause = cause

    @property
    def status_code(self) -> Optional[int]:
        response = getattr(self.cause, "response", None)
        return getattr(response, "status_code", None)


class RemoteApiError(CrawlError):
    """Raised when the remote API answers with a non-success status field."""

    def __init__(self, message: str, *, url: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.url = url


@dataclass(slots=True)
class RetryPolicy:
    """Retry behaviour for a single fetch."""

    max_attempts: int = 1
    backoff_seconds: Sequence[float] = (0.0,)

    def sleep_for(self, attempt: int) -> float:
        if not self.backoff_seconds:
            return 0.0
        index = min(max(0, attempt - 1), len(self.backoff_seconds) - 1)
        return float(self.backoff_seconds[index])


@dataclass(slots=True)
class FetcherConfig:
    """Transport settings shared by every request of one crawl."""

    timeout_ms: int = DEFAULT_HTTP_TIMEOUT_MS
    retries: int = DEFAULT_HTTP_RETRIES
    user_agent: str = DEFAULT_USER_AGENT
    backoff_seconds: Sequence[float] = (0.0,)
    # Dotted path of the API status field; ``None`` disables validation.
    status_field: Optional[str] = None
    status_ok_values: Sequence[str] = ("ok",)
    error_message_field: Optional[str] = None

    @classmethod
    def from_env(cls, **overrides: Any) -> "FetcherConfig":
        config = cls(
            user_agent=os.getenv("RELCRAWL_USER_AGENT", DEFAULT_USER_AGENT),
        )
        for name, value in overrides.items():
            if value is not None:
                setattr(config, name, value)
        return config

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(max_attempts=self.retries + 1, backoff_seconds=self.backoff_seconds)


def basic_auth_header(credentials: Credentials) -> str:
    token = f"{credentials.user}:{credentials.secret}".encode("utf-8")
    return "Basic " + base64.b64encode(token).decode("ascii")


def _is_client_error(exc: BaseException) -> bool:
    if not isinstance(exc, requests.HTTPError):
        return False
    status = getattr(exc.response, "status_code", None)
    return status is not None and 400 <= status < 500 and status not in _RETRYABLE_CLIENT_STATUSES


def select_path(document: Any, path: Optional[str]) -> Any:
    """Resolve a dotted path (``"data.users"``) inside decoded JSON."""

    if not path:
        return document
    current = document
    for part in path.split("."):
        if isinstance(current, Mapping):
            current = current.get(part)
        elif isinstance(current, list) and part.isdigit():
            index = int(part)
            current = current[index] if index < len(current) else None
        else:
            return None
        if current is None:
            return None
    return current


class HttpFetcher:
    """Issues one GET at a time, retrying transient transport and decode failures."""

    def __init__(
        self,
        config: FetcherConfig | None = None,
        credentials: Credentials | None = None,
        *,
        session: requests.Session | None = None,
    ) -> None:
        self.config = config or FetcherConfig()
        self._session = session or requests.Session()
        self._owns_session = session is None
        self._headers: Dict[str, str] = {
            "User-Agent": self.config.user_agent,
            "Accept": "application/json",
        }
        if credentials is not None:
            # Some APIs never send a 401 challenge, so the header goes out up front.
            self._headers["Authorization"] = basic_auth_header(credentials)

    # -------------------------------------------------------------------- public
    def fetch(self, url: str, params: Optional[Mapping[str, object]] = None) -> Any:
        policy = self.config.retry_policy
        timeout = self.config.timeout_ms / 1000.0
        document: Any = None
        for attempt in range(1, policy.max_attempts + 1):
            try:
                response = self._session.get(
                    url,
                    params=dict(params) if params else None,
                    headers=self._headers,
                    timeout=timeout,
                )
                response.raise_for_status()
                document = response.json()
            except (requests.RequestException, ValueError) as exc:
                if _is_client_error(exc):
                    logger.warning("Request to %s was rejected: %s", url, exc)
                    raise TransportError(url, exc) from exc
                if attempt >= policy.max_attempts:
                    logger.error("Giving up on %s after %d attempt(s): %s", url, attempt, exc)
                    raise TransportError(url, exc) from exc
                logger.warning(
                    "Request to %s failed (attempt %d/%d): %s",
                    url,
                    attempt,
                    policy.max_attempts,
                    exc,
                )
                sleep_for = policy.sleep_for(attempt + 1)
                if sleep_for > 0:
                    time.sleep(sleep_for)
                continue
            break
        self._validate_status(url, document)
        return document

    def close(self) -> None:
        if self._owns_session:
            self._session.close()

    def __enter__(self) -> "HttpFetcher":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------ internal
    def _validate_status(self, url: str, document: Any) -> None:
        status_field = self.config.status_field
        if not status_field:
            return
        status = select_path(document, status_field)
        if status is not None and str(status) in self.config.status_ok_values:
            return
        message = select_path(document, self.config.error_message_field)
        if not message:
            message = f"API returned status {status!r}"
        raise RemoteApiError(str(message), url=url)


__all__ = [
    "DEFAULT_USER_AGENT",
    "FetcherConfig",
    "HttpFetcher",
    "RemoteApiError",
    "RetryPolicy",
    "TransportError",
    "basic_auth_header",
    "select_path",
]
