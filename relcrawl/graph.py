"""Deduplicating graph accumulator and the portable graph document it exports."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .models import CrawlError


logger = logging.getLogger(__name__)


class SchemaError(CrawlError):
    """Raised when the attribute schema is misused."""


class AttributeType(str, Enum):
    """Value types understood by graph writers (GraphML ``attr.type``)."""

    STRING = "string"
    INT = "int"
    DOUBLE = "double"
    BOOLEAN = "boolean"

    def coerce(self, value: object) -> object:
        """Convert ``value`` to this type; raises ``ValueError`` when it cannot."""

        if value is None:
            raise ValueError("null value")
        if self is AttributeType.STRING:
            return str(value)
        if self is AttributeType.INT:
            if isinstance(value, bool):
                return int(value)
            if isinstance(value, float):
                if not value.is_integer():
                    raise ValueError(f"{value!r} is not integral")
                return int(value)
            return int(str(value).strip())
        if self is AttributeType.DOUBLE:
            if isinstance(value, (int, float)):
                return float(value)
            return float(str(value).strip())
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return value != 0
        text = str(value).strip().lower()
        if text in {"true", "1", "yes"}:
            return True
        if text in {"false", "0", "no"}:
            return False
        raise ValueError(f"{value!r} is not a boolean")


@dataclass(frozen=True, slots=True)
class AttributeDefinition:
    attribute_id: str
    display_name: str
    type: AttributeType = AttributeType.STRING

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.attribute_id, "name": self.display_name, "type": self.type.value}


@dataclass(frozen=True, slots=True)
class Vertex:
    key: str
    attributes: Mapping[str, object] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        return {"id": self.key, "attributes": dict(self.attributes)}


@dataclass(frozen=True, slots=True)
class Edge:
    source: str
    target: str

    def to_dict(self) -> Dict[str, str]:
        return {"source": self.source, "target": self.target}


@dataclass(frozen=True, slots=True)
class Graph:
    """Directed graph document handed to writers and callers."""

    vertices: Tuple[Vertex, ...] = ()
    edges: Tuple[Edge, ...] = ()
    schema: Tuple[AttributeDefinition, ...] = ()

    def vertex(self, key: str) -> Optional[Vertex]:
        for vertex in self.vertices:
            if vertex.key == key:
                return vertex
        return None

    @property
    def vertex_keys(self) -> List[str]:
        return [vertex.key for vertex in self.vertices]

    @property
    def edge_pairs(self) -> List[Tuple[str, str]]:
        return [(edge.source, edge.target) for edge in self.edges]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "directed": True,
            "schema": [definition.to_dict() for definition in self.schema],
            "vertices": [vertex.to_dict() for vertex in self.vertices],
            "edges": [edge.to_dict() for edge in self.edges],
        }


class GraphAccumulator:
    """Mutable registry a single crawl builds its graph in.

    Vertices keep first-seen order and each key is registered once. Edges are
    appended as discovered; duplicates are kept. Attribute values are stored
    raw and coerced to their declared type by :meth:`export`.
    """

    def __init__(self) -> None:
        self._schema: Dict[str, AttributeDefinition] = {}
        self._vertices: Dict[str, Dict[str, object]] = {}
        self._edges: List[Edge] = []

    # ------------------------------------------------------------------ schema
    def define_attribute(
        self,
        attribute_id: str,
        display_name: str,
        type: AttributeType | str = AttributeType.STRING,
    ) -> AttributeDefinition:
        if attribute_id in self._schema:
            raise SchemaError(f"Attribute {attribute_id!r} is already defined")
        definition = AttributeDefinition(attribute_id, display_name, AttributeType(type))
        self._schema[attribute_id] = definition
        return definition

    # --------------------------------------------------------------- vertices
    def register_vertex(self, key: str) -> bool:
        if key in self._vertices:
            return False
        self._vertices[key] = {}
        return True

    def keys_without_attributes(self) -> List[str]:
        return [key for key, attributes in self._vertices.items() if not attributes]

    def append_attribute_value(self, key: str, attribute_id: str, value: object) -> None:
        if attribute_id not in self._schema:
            raise SchemaError(f"Attribute {attribute_id!r} must be defined before use")
        if key not in self._vertices:
            raise KeyError(f"Vertex {key!r} is not registered")
        self._vertices[key][attribute_id] = value

    def append_attributes(self, key: str, attributes: Mapping[str, object]) -> None:
        """Store every defined attribute of ``attributes``; unknown ids are ignored."""

        for attribute_id, value in attributes.items():
            if attribute_id in self._schema and value is not None:
                self.append_attribute_value(key, attribute_id, value)

    # ------------------------------------------------------------------ edges
    def append_edge(self, source: str, target: str) -> None:
        for key in (source, target):
            if key not in self._vertices:
                raise KeyError(f"Edge endpoint {key!r} is not registered")
        self._edges.append(Edge(source, target))

    # ----------------------------------------------------------------- export
    def export(self) -> Graph:
        vertices = []
        for key, raw in self._vertices.items():
            typed: Dict[str, object] = {}
            for attribute_id, value in raw.items():
                definition = self._schema[attribute_id]
                try:
                    typed[attribute_id] = definition.type.coerce(value)
                except (TypeError, ValueError):
                    logger.warning(
                        "Dropping %s value %r for vertex %s: not a valid %s",
                        attribute_id,
                        value,
                        key,
                        definition.type.value,
                    )
            vertices.append(Vertex(key, typed))
        return Graph(
            vertices=tuple(vertices),
            edges=tuple(self._edges),
            schema=tuple(self._schema.values()),
        )


__all__ = [
    "AttributeDefinition",
    "AttributeType",
    "Edge",
    "Graph",
    "GraphAccumulator",
    "SchemaError",
    "Vertex",
]
