"""
Markdown data dictionary rendered from a graph snapshot.

Only reads the exported snapshot dict. Node and edge properties are open
maps: every key is optional and unknown keys are ignored.
"""

from __future__ import annotations

from typing import Any, Dict, List

SOURCE_LABELS = {
    "rule_based": "rule",
    "ai_standard": "AI",
    "ai_inferred": "AI inferred",
    "relation": "relation",
}


def _cell(value: Any) -> str:
    text = "" if value is None else str(value)
    return text.replace("|", "\\|").replace("\n", " ")


def _pct(value: Any) -> str:
    return f"{value:.1%}" if isinstance(value, (int, float)) else ""


def _group_columns(nodes: Dict[str, Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
    columns: Dict[str, List[Dict[str, Any]]] = {}
    for node in nodes.values():
        if node.get("kind") == "column":
            table = node.get("properties", {}).get("table", "")
            columns.setdefault(table, []).append(node)
    return columns


def _render_relation(edge: Dict[str, Any]) -> List[str]:
    props = edge.get("properties", {})
    confidence = edge.get("confidence", 0.0)

    if "from_column" not in props or "to_column" not in props:
        rel_type = props.get("relation_type", edge.get("kind", ""))
        lines = [
            f"- **{rel_type}** `{props.get('from_table', edge.get('from'))}` -> "
            f"`{props.get('to_table', edge.get('to'))}` (confidence: {confidence:.2f})"
        ]
    else:
        label = "Foreign key" if edge.get("kind") == "foreign_key" else "Inferred foreign key"
        lines = [
            f"- **{label}** `{props['from_table']}.{props['from_column']}` -> "
            f"`{props['to_table']}.{props['to_column']}` (confidence: {confidence:.2f})"
        ]

    for ev in edge.get("evidence", []):
        lines.append(f"  - {ev.get('description', '')} ({ev.get('score', 0.0):.2f}): {ev.get('details', '')}")
    return lines


def render_markdown(snapshot: Dict[str, Any], title: str = "Database Schema Dictionary") -> str:
    """Render a snapshot as a Markdown data dictionary."""
    nodes = snapshot.get("nodes", {})
    edges = snapshot.get("edges", {})
    columns_by_table = _group_columns(nodes)

    table_names = sorted(
        {n["id"] for n in nodes.values() if n.get("kind") == "table"} | set(columns_by_table)
    )
    column_count = sum(len(cols) for cols in columns_by_table.values())

    lines = [
        f"# {title}",
        "",
        "## Summary",
        "",
        f"- **Tables**: {len(table_names)}",
        f"- **Columns**: {column_count}",
        f"- **Relationships**: {len(edges)}",
        "",
        "## Tables",
        "",
    ]

    has_explanations = False
    for table_name in table_names:
        table_props = nodes.get(table_name, {}).get("properties", {})
        table_exp = table_props.get("table_explanation")

        heading = table_name
        if table_exp and table_exp.get("localized_name") and table_exp["localized_name"] != table_name:
            heading = f"{table_name} ({table_exp['localized_name']})"
        lines.append(f"### {heading}")
        lines.append("")
        if table_exp and table_exp.get("description"):
            lines.append(f"{table_exp['description']}")
            lines.append("")

        enum_candidate = table_props.get("enum_candidate")
        if enum_candidate:
            lines.append(
                f"*Enum table*: key `{enum_candidate.get('key_column')}`, "
                f"value `{enum_candidate.get('value_column') or '-'}` "
                f"(confidence {enum_candidate.get('confidence', 0.0):.2f})"
            )
            lines.append("")

        lines.append("| Column | Name | Type | Nullable | PK | Nulls | Distinct | Meaning | Source | Confidence |")
        lines.append("|--------|------|------|----------|----|-------|----------|---------|--------|------------|")

        for col in columns_by_table.get(table_name, []):
            props = col.get("properties", {})
            exp = props.get("explanation") or {}
            if exp:
                has_explanations = True
            data_type = props.get("data_type", "")
            if props.get("length"):
                data_type = f"{data_type}({props['length']})"
            lines.append(
                f"| {_cell(col.get('name'))} "
                f"| {_cell(exp.get('localized_name'))} "
                f"| {_cell(data_type)} "
                f"| {'yes' if props.get('nullable') else 'no'} "
                f"| {'PK' if props.get('is_primary_key') else ''} "
                f"| {_pct(props.get('null_ratio'))} "
                f"| {_pct(props.get('distinct_rate'))} "
                f"| {_cell(exp.get('business_meaning') or exp.get('description'))} "
                f"| {SOURCE_LABELS.get(exp.get('source'), _cell(exp.get('source')))} "
                f"| {_pct(exp.get('confidence')) if exp else ''} |"
            )
        lines.append("")

        relations = [
            e for _, e in sorted(edges.items())
            if e.get("properties", {}).get("from_table") == table_name
        ]
        if relations:
            lines.append("#### Relationships")
            lines.append("")
            for edge in relations:
                lines.extend(_render_relation(edge))
            lines.append("")

    enum_tables = [
        nodes[name]["properties"]["enum_candidate"]
        for name in table_names
        if name in nodes and nodes[name].get("properties", {}).get("enum_candidate")
    ]
    if enum_tables:
        lines.extend([
            "## Enum Tables",
            "",
            "| Table | Rows | Key | Value | Confidence | Referenced by |",
            "|-------|------|-----|-------|------------|---------------|",
        ])
        for cand in enum_tables:
            lines.append(
                f"| {_cell(cand.get('name'))} | {cand.get('row_count', '')} "
                f"| {_cell(cand.get('key_column'))} | {_cell(cand.get('value_column'))} "
                f"| {cand.get('confidence', 0.0):.2f} | {_cell(', '.join(cand.get('referenced_by', [])))} |"
            )
        lines.append("")

    if has_explanations:
        lines.extend([
            "## Legend",
            "",
            "- **rule**: derived from column naming conventions",
            "- **AI**: explained directly by the AI source",
            "- **AI inferred**: custom column explained by the AI from its relationships",
            "- **relation**: custom column explained from its relationships only",
            "- **Confidence**: how certain the source is about the explanation",
            "",
        ])

    return "\n".join(lines)
