"""
Mermaid ER diagram rendered from a graph snapshot.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List

DECLARED_LINK = "||--o{"
INFERRED_LINK = "||..o{"

_UNSAFE = re.compile(r"[^A-Za-z0-9_]")


def _identifier(name: str) -> str:
    """Mermaid entity/attribute names only allow word characters."""
    return _UNSAFE.sub("_", name) or "_"


def render_mermaid(snapshot: Dict[str, Any]) -> str:
    """
    Render column-level relationships as an erDiagram.

    Declared foreign keys are drawn solid, inferred ones dashed; the label is
    the edge confidence.
    """
    nodes = snapshot.get("nodes", {})
    edges = snapshot.get("edges", {})

    tables: Dict[str, List[str]] = {}
    for node in nodes.values():
        if node.get("kind") == "table":
            tables.setdefault(node["id"], [])
    for node in nodes.values():
        if node.get("kind") != "column":
            continue
        props = node.get("properties", {})
        attr = f"{_identifier(props.get('data_type') or 'unknown')} {_identifier(node.get('name', ''))}"
        if props.get("is_primary_key"):
            attr += " PK"
        tables.setdefault(props.get("table", ""), []).append(attr)

    lines = ["erDiagram"]
    for table_name in sorted(tables):
        lines.append(f"    {_identifier(table_name)} {{")
        for attr in tables[table_name]:
            lines.append(f"        {attr}")
        lines.append("    }")

    lines.append("")

    for _, edge in sorted(edges.items()):
        kind = edge.get("kind")
        if kind not in ("foreign_key", "inferred_fk"):
            continue
        props = edge.get("properties", {})
        link = INFERRED_LINK if kind == "inferred_fk" else DECLARED_LINK
        lines.append(
            f"    {_identifier(props.get('to_table', ''))} {link} "
            f"{_identifier(props.get('from_table', ''))} : \"{edge.get('confidence', 0.0):.2f}\""
        )

    return "\n".join(lines) + "\n"
