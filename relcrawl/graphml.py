"""GraphML and JSON writers for exported crawl graphs."""
from __future__ import annotations

import json
import logging
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List

from .graph import Graph


logger = logging.getLogger(__name__)

GRAPHML_NAMESPACE = "http://graphml.graphdrawing.org/xmlns"
SUPPORTED_FORMATS = ("graphml", "json")
FILE_TIMESTAMP = "%Y%m%dT%H%M%SZ"


def _format_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_graphml(graph: Graph) -> ET.ElementTree:
    root = ET.Element("graphml", attrib={"xmlns": GRAPHML_NAMESPACE})
    key_ids: Dict[str, str] = {}
    for index, definition in enumerate(graph.schema):
        key_id = f"v{index}"
        key_ids[definition.attribute_id] = key_id
        ET.SubElement(
            root,
            "key",
            attrib={
                "id": key_id,
                "for": "node",
                "attr.name": definition.display_name,
                "attr.type": definition.type.value,
            },
        )

    body = ET.SubElement(root, "graph", attrib={"edgedefault": "directed"})
    for vertex in graph.vertices:
        node = ET.SubElement(body, "node", attrib={"id": vertex.key})
        for attribute_id, value in vertex.attributes.items():
            data = ET.SubElement(node, "data", attrib={"key": key_ids[attribute_id]})
            data.text = _format_value(value)
    for edge in graph.edges:
        ET.SubElement(body, "edge", attrib={"source": edge.source, "target": edge.target})
    return ET.ElementTree(root)


def write_graphml(graph: Graph, path: Path | str) -> Path:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    tree = build_graphml(graph)
    ET.indent(tree)
    tree.write(target, encoding="utf-8", xml_declaration=True)
    return target


def write_json(graph: Graph, path: Path | str) -> Path:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(json.dumps(graph.to_dict(), indent=2, ensure_ascii=True) + "\n", encoding="utf-8")
    return target


_WRITERS = {
    "graphml": write_graphml,
    "json": write_json,
}


def save_graph(
    graph: Graph,
    folder: Path | str,
    formats: Iterable[str] = ("graphml",),
    basename: str = "network",
) -> List[Path]:
    """Write ``graph`` once per requested format into ``folder``.

    Files are named ``<basename>_<UTC timestamp>.<format>`` so repeated crawls
    never overwrite each other.
    """

    stamp = datetime.now(timezone.utc).strftime(FILE_TIMESTAMP)
    written: List[Path] = []
    for name in formats:
        writer = _WRITERS.get(name)
        if writer is None:
            raise ValueError(f"Unsupported graph format: {name}")
        path = writer(graph, Path(folder) / f"{basename}_{stamp}.{name}")
        logger.info("Wrote %s graph to %s", name, path)
        written.append(path)
    return written


__all__ = [
    "GRAPHML_NAMESPACE",
    "SUPPORTED_FORMATS",
    "build_graphml",
    "save_graph",
    "write_graphml",
    "write_json",
]
