"""Relation sources: the lookups a crawl needs from a remote API."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence
from urllib.parse import quote

import requests

from .fetcher import FetcherConfig, HttpFetcher, TransportError, select_path
from .graph import AttributeDefinition, AttributeType
from .models import CrawlSpec, RelatedItem, RelatedPage, RelationDirection, ValidationError, parse_key
from .pages import PageEnumerator


logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100

# Protected or deleted entities answer with these; below the seed they are not fatal.
_SKIPPABLE_STATUS_CODES = {401, 404}


class RelationSource:
    """Base class for adapters exposing one remote relation API to a crawl."""

    page_size: int = DEFAULT_PAGE_SIZE

    def fetch_related(
        self,
        key: str,
        direction: RelationDirection,
        page: int,
        *,
        depth: int = 1,
    ) -> RelatedPage:  # pragma: no cover - interface only
        raise NotImplementedError

    def fetch_attributes(self, key: str) -> Optional[Dict[str, object]]:  # pragma: no cover - interface only
        raise NotImplementedError

    def attribute_definitions(self, include_extra: bool) -> List[AttributeDefinition]:  # pragma: no cover - interface only
        raise NotImplementedError

    def close(self) -> None:
        return


# ---------------------------------------------------------------- in-memory
class InMemoryRelationSource(RelationSource):
    """Serves relations from adjacency mappings, keyed by direction.

    ``outgoing`` maps a key to the keys it points at. When ``incoming`` is
    omitted it is derived by reversing ``outgoing``.
    """

    def __init__(
        self,
        outgoing: Mapping[str, Sequence[str]] | None = None,
        *,
        incoming: Mapping[str, Sequence[str]] | None = None,
        attributes: Mapping[str, Mapping[str, object]] | None = None,
        definitions: Iterable[AttributeDefinition] = (),
        extra_definition: AttributeDefinition | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self._adjacency: Dict[RelationDirection, Dict[str, List[str]]] = {
            RelationDirection.OUTGOING: {k: list(v) for k, v in (outgoing or {}).items()},
        }
        if incoming is None:
            incoming = _reverse(self._adjacency[RelationDirection.OUTGOING])
        self._adjacency[RelationDirection.INCOMING] = {k: list(v) for k, v in incoming.items()}
        self._attributes = {key: dict(value) for key, value in (attributes or {}).items()}
        self._definitions = list(definitions)
        self._extra_definition = extra_definition
        self.page_size = page_size
        self.related_calls: List[tuple[str, RelationDirection, int]] = []
        self.attribute_calls: List[str] = []

    def fetch_related(
        self,
        key: str,
        direction: RelationDirection,
        page: int,
        *,
        depth: int = 1,
    ) -> RelatedPage:
        self.related_calls.append((key, direction, page))
        related = self._adjacency[direction].get(key, [])
        start = (page - 1) * self.page_size
        chunk = related[start : start + self.page_size]
        items = [RelatedItem(other, dict(self._attributes.get(other, {}))) for other in chunk]
        return RelatedPage(items=items, has_more=start + self.page_size < len(related))

    def fetch_attributes(self, key: str) -> Optional[Dict[str, object]]:
        self.attribute_calls.append(key)
        record = self._attributes.get(key)
        return dict(record) if record is not None else None

    def attribute_definitions(self, include_extra: bool) -> List[AttributeDefinition]:
        definitions = list(self._definitions)
        if include_extra and self._extra_definition is not None:
            definitions.append(self._extra_definition)
        return definitions


def _reverse(adjacency: Mapping[str, Sequence[str]]) -> Dict[str, List[str]]:
    reversed_map: Dict[str, List[str]] = {}
    for source, targets in adjacency.items():
        for target in targets:
            reversed_map.setdefault(target, []).append(source)
    return reversed_map


# --------------------------------------------------------------------- http
@dataclass(slots=True)
class AttributeField:
    """Maps a (dotted) field of a remote item onto a graph attribute."""

    source_field: str
    attribute_id: str
    display_name: str
    type: AttributeType = AttributeType.STRING

    @property
    def definition(self) -> AttributeDefinition:
        return AttributeDefinition(self.attribute_id, self.display_name, self.type)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "AttributeField":
        source_field = str(raw.get("field") or "").strip()
        attribute_id = str(raw.get("id") or source_field).strip()
        if not source_field:
            raise ValueError("field is required")
        return cls(
            source_field=source_field,
            attribute_id=attribute_id,
            display_name=str(raw.get("name") or attribute_id),
            type=AttributeType(str(raw.get("type") or AttributeType.STRING.value)),
        )


@dataclass(slots=True)
class ApiEndpoints:
    """Describes a JSON REST API in terms of relation and attribute lookups.

    URL templates use a ``{key}`` placeholder for the (URL-quoted) entity key.
    """

    related_urls: Dict[RelationDirection, str] = field(default_factory=dict)
    attributes_url: Optional[str] = None
    item_path: str = ""
    entity_path: str = ""
    key_field: str = "id"
    attribute_fields: List[AttributeField] = field(default_factory=list)
    extra_field: Optional[AttributeField] = None
    page_size: int = DEFAULT_PAGE_SIZE
    page_parameter: str = "page"
    query: Dict[str, str] = field(default_factory=dict)
    status_field: Optional[str] = None
    status_ok_values: List[str] = field(default_factory=lambda: ["ok"])
    error_message_field: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "ApiEndpoints":
        errors: Dict[str, str] = {}

        related_raw = raw.get("related") or {}
        related_urls: Dict[RelationDirection, str] = {}
        if not isinstance(related_raw, Mapping):
            errors["api.related"] = "related must map directions to URL templates"
        else:
            for direction_raw, template in related_raw.items():
                try:
                    direction = RelationDirection.parse(direction_raw)
                except ValueError:
                    errors["api.related"] = f"unknown direction: {direction_raw}"
                    continue
                if not isinstance(template, str) or "{key}" not in template:
                    errors[f"api.related.{direction.value}"] = "URL template must contain {key}"
                    continue
                related_urls[direction] = template
        if not related_urls and "api.related" not in errors:
            errors["api.related"] = "at least one relation URL is required"

        attributes_url = raw.get("attributes")
        if attributes_url is not None and (
            not isinstance(attributes_url, str) or "{key}" not in attributes_url
        ):
            errors["api.attributes"] = "URL template must contain {key}"

        attribute_fields: List[AttributeField] = []
        for index, entry in enumerate(raw.get("fields") or []):
            try:
                attribute_fields.append(AttributeField.from_dict(entry))
            except (AttributeError, ValueError) as exc:
                errors[f"api.fields.{index}"] = str(exc)

        extra_field: Optional[AttributeField] = None
        if raw.get("extra_field") is not None:
            try:
                extra_field = AttributeField.from_dict(raw["extra_field"])
            except (AttributeError, ValueError) as exc:
                errors["api.extra_field"] = str(exc)

        try:
            page_size = int(raw.get("page_size", DEFAULT_PAGE_SIZE))
        except (TypeError, ValueError):
            page_size = 0
        if page_size <= 0:
            errors["api.page_size"] = "must be > 0"

        query = raw.get("query") or {}
        if not isinstance(query, Mapping):
            errors["api.query"] = "query must be an object"
            query = {}

        if errors:
            raise ValidationError(errors)

        ok_values = raw.get("status_ok_values") or ["ok"]
        if isinstance(ok_values, str):
            ok_values = [ok_values]
        return cls(
            related_urls=related_urls,
            attributes_url=attributes_url,
            item_path=str(raw.get("item_path") or ""),
            entity_path=str(raw.get("entity_path") or ""),
            key_field=str(raw.get("key_field") or "id"),
            attribute_fields=attribute_fields,
            extra_field=extra_field,
            page_size=page_size,
            page_parameter=str(raw.get("page_parameter") or "page"),
            query={str(k): str(v) for k, v in query.items()},
            status_field=raw.get("status_field") or None,
            status_ok_values=[str(value) for value in ok_values],
            error_message_field=raw.get("error_message_field") or None,
        )


class HttpRelationSource(RelationSource):
    """Relation source backed by a JSON REST API described by :class:`ApiEndpoints`."""

    def __init__(
        self,
        endpoints: ApiEndpoints,
        fetcher: HttpFetcher,
        *,
        include_extra: bool = False,
    ) -> None:
        self.endpoints = endpoints
        self.fetcher = fetcher
        self.include_extra = include_extra
        self.page_size = endpoints.page_size
        self.pages = PageEnumerator(fetcher, page_parameter=endpoints.page_parameter)

    @classmethod
    def from_spec(
        cls,
        spec: CrawlSpec,
        endpoints: ApiEndpoints,
        *,
        session: requests.Session | None = None,
    ) -> "HttpRelationSource":
        """Build a source whose fetcher honours the crawl's transport settings."""

        config = FetcherConfig.from_env(
            timeout_ms=spec.http_timeout_ms,
            retries=spec.http_retries,
            status_field=endpoints.status_field,
            status_ok_values=tuple(endpoints.status_ok_values),
            error_message_field=endpoints.error_message_field,
        )
        fetcher = HttpFetcher(config, spec.credentials, session=session)
        return cls(endpoints, fetcher, include_extra=spec.include_extra_attribute)

    def fetch_related(
        self,
        key: str,
        direction: RelationDirection,
        page: int,
        *,
        depth: int = 1,
    ) -> RelatedPage:
        template = self.endpoints.related_urls.get(direction)
        if template is None:
            raise ValueError(f"No {direction.value} relation URL configured")
        try:
            raw_page = self.pages.fetch_page(
                self._url(template, key),
                self.endpoints.item_path,
                self.page_size,
                page,
                params=self.endpoints.query,
            )
        except TransportError as exc:
            if depth > 1 and exc.status_code in _SKIPPABLE_STATUS_CODES:
                logger.info("Skipping %s relations of %s (HTTP %s)", direction.value, key, exc.status_code)
                return RelatedPage(items=[], has_more=False)
            raise
        items = [self._parse_item(raw) for raw in raw_page.items]
        return RelatedPage(items=items, has_more=raw_page.has_more)

    def fetch_attributes(self, key: str) -> Optional[Dict[str, object]]:
        template = self.endpoints.attributes_url
        if not template:
            return None
        try:
            document = self.fetcher.fetch(self._url(template, key), params=dict(self.endpoints.query) or None)
        except TransportError as exc:
            if exc.status_code == 404:
                return None
            raise
        entity = select_path(document, self.endpoints.entity_path)
        if not isinstance(entity, Mapping):
            return None
        return self._attributes_of(entity)

    def attribute_definitions(self, include_extra: bool) -> List[AttributeDefinition]:
        definitions = [entry.definition for entry in self.endpoints.attribute_fields]
        if include_extra and self.endpoints.extra_field is not None:
            definitions.append(self.endpoints.extra_field.definition)
        return definitions

    def close(self) -> None:
        self.fetcher.close()

    # ------------------------------------------------------------------ helpers
    @staticmethod
    def _url(template: str, key: str) -> str:
        return template.replace("{key}", quote(key, safe=""))

    def _parse_item(self, raw: Any) -> RelatedItem:
        if not isinstance(raw, Mapping):
            return RelatedItem(key=parse_key(raw))
        key = parse_key(select_path(raw, self.endpoints.key_field))
        return RelatedItem(key=key, attributes=self._attributes_of(raw))

    def _attributes_of(self, entity: Mapping[str, Any]) -> Dict[str, object]:
        fields = list(self.endpoints.attribute_fields)
        if self.include_extra and self.endpoints.extra_field is not None:
            fields.append(self.endpoints.extra_field)
        attributes: Dict[str, object] = {}
        for entry in fields:
            value = select_path(entity, entry.source_field)
            if value is not None:
                attributes[entry.attribute_id] = value
        return attributes


__all__ = [
    "ApiEndpoints",
    "AttributeField",
    "DEFAULT_PAGE_SIZE",
    "HttpRelationSource",
    "InMemoryRelationSource",
    "RelationSource",
]
