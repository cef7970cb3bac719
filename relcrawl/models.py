"""Core data models for relcrawl crawl requests."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional


DEFAULT_HTTP_TIMEOUT_MS = 10000
DEFAULT_HTTP_RETRIES = 0


class CrawlError(Exception):
    """Base class for failures raised while crawling a relation graph."""


class ValidationError(Exception):
    """Raised when payload validation fails."""

    def __init__(self, errors: Dict[str, str]):
        super().__init__("Payload validation failed")
        self.errors = errors

    def __str__(self) -> str:  # pragma: no cover - debug convenience
        return f"ValidationError(errors={self.errors!r})"


class CrawlLevel(str, Enum):
    """How far from the seed the crawl expands."""

    ONE = "one"
    ONE_POINT_FIVE = "one_point_five"
    TWO = "two"

    @classmethod
    def parse(cls, value: object) -> "CrawlLevel":
        if isinstance(value, CrawlLevel):
            return value
        text = str(value).strip().lower().replace("-", "_").replace(" ", "_")
        aliased = _LEVEL_ALIASES.get(text, text)
        return cls(aliased)


_LEVEL_ALIASES = {
    "1": "one",
    "1.5": "one_point_five",
    "onepointfive": "one_point_five",
    "2": "two",
}


class RelationDirection(str, Enum):
    """Which of the two complementary relations a pass queries."""

    OUTGOING = "outgoing"
    INCOMING = "incoming"

    @classmethod
    def parse(cls, value: object) -> "RelationDirection":
        if isinstance(value, RelationDirection):
            return value
        return cls(str(value).strip().lower())


@dataclass(frozen=True, slots=True)
class Credentials:
    user: str
    secret: str

    def __repr__(self) -> str:
        return f"Credentials(user={self.user!r}, secret='***')"


@dataclass(frozen=True, slots=True)
class RelatedItem:
    """One entity returned by a relation lookup.

    ``key`` is ``None`` when the remote payload carried no usable key; the
    engine skips such items.
    """

    key: Optional[str]
    attributes: Dict[str, object] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class RelatedPage:
    items: List[RelatedItem]
    has_more: bool = False


@dataclass(slots=True)
class CrawlSpec:
    """Normalized crawl request."""

    seed_key: str
    directions: FrozenSet[RelationDirection] = frozenset({RelationDirection.OUTGOING})
    level: CrawlLevel = CrawlLevel.ONE
    include_extra_attribute: bool = False
    max_items_per_direction: Optional[int] = None
    credentials: Optional[Credentials] = None
    http_timeout_ms: int = DEFAULT_HTTP_TIMEOUT_MS
    http_retries: int = DEFAULT_HTTP_RETRIES

    def ordered_directions(self) -> List[RelationDirection]:
        """Directions in a stable pass order: outgoing first, then incoming."""

        return [direction for direction in RelationDirection if direction in self.directions]

    @classmethod
    def from_dict(cls, raw: Dict[str, object]) -> "CrawlSpec":
        errors: Dict[str, str] = {}

        seed_key = str(raw.get("seed_key") or "").strip()
        if not seed_key:
            errors["seed_key"] = "seed_key is required"

        directions_raw = raw.get("directions")
        if directions_raw is None:
            directions_raw = [RelationDirection.OUTGOING.value]
        if isinstance(directions_raw, str):
            directions_raw = [directions_raw]
        directions: set[RelationDirection] = set()
        if not isinstance(directions_raw, (list, tuple, set, frozenset)):
            errors["directions"] = "directions must be an array"
        else:
            for value in directions_raw:
                try:
                    directions.add(RelationDirection.parse(value))
                except ValueError:
                    errors["directions"] = f"unknown direction: {value}"
            if not directions and "directions" not in errors:
                errors["directions"] = "at least one direction is required"

        level = CrawlLevel.ONE
        level_raw = raw.get("level")
        if level_raw is not None:
            try:
                level = CrawlLevel.parse(level_raw)
            except ValueError:
                errors["level"] = f"unknown level: {level_raw}"

        include_extra = _coerce_bool(raw.get("include_extra_attribute"), default=False)

        max_items_raw = raw.get("max_items_per_direction")
        max_items: Optional[int] = None
        if max_items_raw is not None:
            max_items = _coerce_int(max_items_raw, default=0)
            if max_items <= 0:
                errors["max_items_per_direction"] = "must be > 0 or omitted for unbounded"

        credentials: Optional[Credentials] = None
        cred_raw = raw.get("credentials") or {}
        if not isinstance(cred_raw, dict):
            errors["credentials"] = "credentials must be an object"
            cred_raw = {}
        user = str(cred_raw.get("user") or "").strip()
        secret = str(cred_raw.get("secret") or "")
        if bool(user) != bool(secret):
            errors["credentials"] = "user and secret must be supplied together"
        elif user:
            credentials = Credentials(user=user, secret=secret)

        http_timeout_ms = _coerce_int(
            raw.get("http_timeout_ms"),
            default=_env_int("RELCRAWL_HTTP_TIMEOUT_MS", DEFAULT_HTTP_TIMEOUT_MS),
        )
        if http_timeout_ms <= 0:
            errors["http_timeout_ms"] = "must be > 0"
        http_retries = _coerce_int(
            raw.get("http_retries"),
            default=_env_int("RELCRAWL_HTTP_RETRIES", DEFAULT_HTTP_RETRIES),
        )
        if http_retries < 0:
            errors["http_retries"] = "must be >= 0"

        if errors:
            raise ValidationError(errors)

        return cls(
            seed_key=seed_key,
            directions=frozenset(directions),
            level=level,
            include_extra_attribute=include_extra,
            max_items_per_direction=max_items,
            credentials=credentials,
            http_timeout_ms=http_timeout_ms,
            http_retries=http_retries,
        )

    def to_dict(self) -> Dict[str, object]:
        return {
            "seed_key": self.seed_key,
            "directions": [direction.value for direction in self.ordered_directions()],
            "level": self.level.value,
            "include_extra_attribute": self.include_extra_attribute,
            "max_items_per_direction": self.max_items_per_direction,
            "credentials": {"user": self.credentials.user} if self.credentials else None,
            "http_timeout_ms": self.http_timeout_ms,
            "http_retries": self.http_retries,
        }


def parse_key(value: object) -> Optional[str]:
    """Return a usable entity key or ``None`` for absent/unparseable values."""

    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return None


def _coerce_int(value: object, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _coerce_bool(value: object, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    return _coerce_int(os.getenv(name), default=default)


__all__ = [
    "CrawlError",
    "CrawlLevel",
    "CrawlSpec",
    "Credentials",
    "RelatedItem",
    "RelatedPage",
    "RelationDirection",
    "ValidationError",
    "parse_key",
]
