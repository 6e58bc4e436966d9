"""
DashScope (Qwen) semantic source.

Prompts only carry names, types and the privacy-preserving statistics
summary; sampled values are never sent. Every HTTP or parsing problem is
raised as ExplanationError so the analyzer can degrade per item.
"""

from __future__ import annotations

import json
import logging
import math
import re
from typing import Any, Dict, List, Optional

import httpx

from schema_scout.config import SemanticConfig
from schema_scout.errors import ExplanationError
from schema_scout.models import (
    FieldContext,
    FieldExplanation,
    RelatedField,
    SourceKind,
    Table,
    TableExplanation,
    TableRelationship,
    column_id,
)
from schema_scout.semantics.base import SemanticSource
from schema_scout.semantics.rules import summarize_stats

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a database expert for Yonyou U8 and similar ERP systems and know "
    "their table layouts and column naming conventions."
)

_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


def extract_json(text: str) -> Any:
    """Parse a model reply that may wrap its JSON in a fenced code block."""
    match = _FENCE.search(text)
    payload = match.group(1) if match else text
    payload = payload.strip()
    try:
        return json.loads(payload)
    except json.JSONDecodeError as e:
        raise ExplanationError(f"Unparseable model response: {e}") from e


def _confidence(value: Any) -> float:
    try:
        score = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(score):
        return 0.0
    return max(0.0, min(1.0, score))


class DashScopeClient(SemanticSource):
    """
    Semantic source backed by the DashScope text-generation API.

    Args:
        api_key: API key; falls back to the DASHSCOPE_API_KEY environment variable
        config: Endpoint, model and timeout settings
        client: Pre-built httpx.Client (tests pass one with a MockTransport)
    """

    name = "dashscope"

    def __init__(
        self,
        api_key: Optional[str] = None,
        config: Optional[SemanticConfig] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.config = config or SemanticConfig()
        self.api_key = api_key or self.config.resolve_api_key()
        if not self.api_key:
            raise ExplanationError("DashScope API key not configured")
        self._client = client or httpx.Client(timeout=self.config.request_timeout)
        self._owns_client = client is None

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def _call(self, prompt: str) -> str:
        logger.debug(f"Calling {self.config.model}, prompt length {len(prompt)}")
        body = {
            "model": self.config.model,
            "input": {
                "messages": [
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ]
            },
            "parameters": {"result_format": "message"},
        }
        try:
            response = self._client.post(
                self.config.endpoint,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json=body,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise ExplanationError(
                f"DashScope returned {e.response.status_code}: {e.response.text[:200]}"
            ) from e
        except httpx.HTTPError as e:
            raise ExplanationError(f"DashScope request failed: {e}") from e
        except ValueError as e:
            raise ExplanationError(f"DashScope returned invalid JSON: {e}") from e

        try:
            return data["output"]["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ExplanationError("DashScope returned an empty response") from e

    def explain_batch(self, contexts: List[FieldContext]) -> Dict[str, FieldExplanation]:
        lines = []
        for i, ctx in enumerate(contexts, start=1):
            line = f"{i}. table: {ctx.table_name}, column: {ctx.column_name}, type: {ctx.data_type}"
            if ctx.stats is not None:
                line += f", stats: {json.dumps(summarize_stats(ctx.stats))}"
            lines.append(line)

        prompt = (
            "Explain the following columns:\n\n"
            + "\n".join(lines)
            + "\n\nReturn a JSON array with one object per column:\n"
            '[{"table_name": "...", "column_name": "...", "localized_name": "Chinese name", '
            '"description": "...", "business_meaning": "...", "confidence": 0.95}]\n'
            "Return only the JSON array. Use a confidence below 0.5 when unsure."
        )

        items = extract_json(self._call(prompt))
        if not isinstance(items, list):
            raise ExplanationError("Expected a JSON array of column explanations")

        by_name = {ctx.column_name.lower(): ctx for ctx in contexts}
        by_id = {ctx.column_id.lower(): ctx for ctx in contexts}
        result: Dict[str, FieldExplanation] = {}
        for item in items:
            if not isinstance(item, dict) or not item.get("column_name"):
                continue
            name = str(item["column_name"])
            table = item.get("table_name")
            ctx = by_id.get(column_id(str(table), name).lower()) if table else None
            if ctx is None:
                ctx = by_name.get(name.lower())
            if ctx is None:
                logger.debug(f"Ignoring explanation for unknown column {name}")
                continue
            result[ctx.column_id] = FieldExplanation(
                column_name=ctx.column_name,
                localized_name=str(item.get("localized_name", "")),
                description=str(item.get("description", "")),
                business_meaning=str(item.get("business_meaning", "")),
                confidence=_confidence(item.get("confidence")),
                source=SourceKind.AI_STANDARD,
            )
        return result

    def infer_custom_field(self, column_name: str, related: List[RelatedField]) -> FieldExplanation:
        relations = "\n".join(
            f"- references {rf.table_name}.{rf.column_name} ({rf.localized_name}), "
            f"confidence {rf.confidence:.2f}"
            for rf in related
        )
        prompt = (
            f"Column {column_name} is a user-defined extension column (cFree/cDefine). "
            f"Infer its meaning from the columns it references:\n\n{relations}\n\n"
            'Return JSON: {"localized_name": "Chinese name", "description": "...", '
            '"business_meaning": "...", "confidence": 0.75}\n'
            "Return only JSON. Keep confidence between 0.5 and 0.8."
        )

        item = extract_json(self._call(prompt))
        if not isinstance(item, dict):
            raise ExplanationError("Expected a JSON object for custom field inference")
        return FieldExplanation(
            column_name=column_name,
            localized_name=str(item.get("localized_name", "")),
            description=str(item.get("description", "")),
            business_meaning=str(item.get("business_meaning", "")),
            confidence=_confidence(item.get("confidence")),
            source=SourceKind.AI_INFERRED,
        )

    def explain_table_meaning(self, table: Table) -> TableExplanation:
        columns = "\n".join(
            f"- {c.name}{' [PK]' if c.is_primary_key else ''}: {c.data_type}({c.length})"
            for c in table.columns
        )
        prompt = (
            f"Explain what this table holds.\n\nTable: {table.name}\n\nColumns:\n{columns}\n\n"
            'Return JSON: {"localized_name": "Chinese name", "description": "...", '
            '"business_meaning": "...", "confidence": 0.95}\n'
            "Return only JSON."
        )

        item = extract_json(self._call(prompt))
        if not isinstance(item, dict):
            raise ExplanationError(f"Expected a JSON object for table {table.name}")
        return TableExplanation(
            table_name=table.name,
            localized_name=str(item.get("localized_name", "")),
            description=str(item.get("description", "")),
            business_meaning=str(item.get("business_meaning", "")),
            confidence=_confidence(item.get("confidence")),
        )

    def infer_table_relationships(self, tables: List[Table]) -> List[TableRelationship]:
        blocks = []
        for table in tables:
            block = f"Table: {table.name}"
            pk = [c.name for c in table.columns if c.is_primary_key]
            if pk:
                block += f"\n  primary key: {', '.join(pk)}"
            others = [c.name for c in table.columns if not c.is_primary_key][:5]
            if others:
                block += f"\n  key columns: {', '.join(others)}"
            blocks.append(block)

        prompt = (
            "Infer the relationships between these tables:\n\n"
            + "\n\n".join(blocks)
            + "\n\nReturn a JSON array:\n"
            '[{"from_table": "...", "to_table": "...", '
            '"relation_type": "one_to_many|many_to_many|one_to_one", '
            '"description": "...", "confidence": 0.85}]\n'
            "Return only the JSON array; return [] when there is no clear relationship."
        )

        items = extract_json(self._call(prompt))
        if not isinstance(items, list):
            raise ExplanationError("Expected a JSON array of table relationships")

        known = {t.name for t in tables}
        relationships = []
        for item in items:
            if not isinstance(item, dict):
                continue
            from_table = item.get("from_table")
            to_table = item.get("to_table")
            if not isinstance(from_table, str) or not isinstance(to_table, str):
                logger.debug(f"Ignoring relationship with malformed table names: {from_table!r} -> {to_table!r}")
                continue
            if from_table not in known or to_table not in known:
                logger.debug(f"Ignoring relationship with unknown table: {from_table} -> {to_table}")
                continue
            relationships.append(TableRelationship(
                from_table=from_table,
                to_table=to_table,
                relation_type=str(item.get("relation_type", "one_to_many")),
                description=str(item.get("description", "")),
                confidence=_confidence(item.get("confidence")),
            ))
        return relationships
