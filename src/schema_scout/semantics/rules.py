"""
Rule-based semantic source.

Explains columns from naming conventions alone: a dictionary of common ERP
column stems, entity + suffix rules (InvCode -> inventory item code) and the
column statistics for the semantic type. It never fails and never calls out,
so it doubles as the baseline every scan starts from.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from schema_scout.config import SemanticConfig
from schema_scout.models import (
    ColumnStats,
    FieldContext,
    FieldExplanation,
    SourceKind,
    Table,
    TableExplanation,
    TableRelationship,
    is_custom_field,
)
from schema_scout.semantics.base import SemanticSource

logger = logging.getLogger(__name__)

STEM_CONFIDENCE = 0.6
ENTITY_SUFFIX_CONFIDENCE = 0.5
SUFFIX_CONFIDENCE = 0.3
UNMATCHED_CONFIDENCE = 0.1
TABLE_MATCH_CONFIDENCE = 0.4

IDENTIFIER_DISTINCT_RATE = 0.95
CATEGORY_DISTINCT_RATE = 0.1

# Hungarian type prefixes: c(har), i(nt), d(ate), b(ool), n(umeric), f(loat)
TYPE_PREFIXES = ("c", "i", "d", "b", "n", "f")

# stem -> (localized name, description)
COLUMN_STEMS: Dict[str, Tuple[str, str]] = {
    "id": ("标识", "Row identifier"),
    "autoid": ("自动编号", "Auto-increment row identifier"),
    "code": ("编码", "Business code"),
    "name": ("名称", "Display name"),
    "memo": ("备注", "Free-text remark"),
    "maker": ("制单人", "User who created the document"),
    "handler": ("审核人", "User who approved the document"),
    "verifier": ("审核人", "User who approved the document"),
    "createtime": ("创建时间", "Creation timestamp"),
    "modifytime": ("修改时间", "Last modification timestamp"),
    "status": ("状态", "Status flag"),
    "state": ("状态", "Status flag"),
    "type": ("类型", "Type classifier"),
    "email": ("邮箱", "E-mail address"),
    "phone": ("电话", "Phone number"),
    "address": ("地址", "Postal address"),
    "date": ("日期", "Business date"),
    "quantity": ("数量", "Quantity"),
    "qty": ("数量", "Quantity"),
    "price": ("单价", "Unit price"),
    "money": ("金额", "Amount of money"),
    "amount": ("金额", "Amount of money"),
    "tax": ("税额", "Tax amount"),
    "taxrate": ("税率", "Tax rate"),
    "unit": ("计量单位", "Unit of measure"),
}

# entity token -> (localized name, English noun)
ENTITY_TOKENS: Dict[str, Tuple[str, str]] = {
    "inv": ("存货", "inventory item"),
    "inventory": ("存货", "inventory item"),
    "dep": ("部门", "department"),
    "dept": ("部门", "department"),
    "department": ("部门", "department"),
    "cus": ("客户", "customer"),
    "customer": ("客户", "customer"),
    "ven": ("供应商", "vendor"),
    "vendor": ("供应商", "vendor"),
    "wh": ("仓库", "warehouse"),
    "warehouse": ("仓库", "warehouse"),
    "person": ("人员", "employee"),
    "pos": ("货位", "storage position"),
    "user": ("用户", "user"),
    "order": ("订单", "order"),
    "so": ("销售订单", "sales order"),
    "po": ("采购订单", "purchase order"),
    "bank": ("银行", "bank"),
    "exch": ("币种", "currency"),
    "currency": ("币种", "currency"),
    "status": ("状态", "status"),
    "main": ("主表", "header"),
    "details": ("明细", "detail line"),
    "detail": ("明细", "detail line"),
    "rd": ("收发记录", "stock movement"),
    "dict": ("字典", "dictionary"),
}

# Checked in order; longer suffixes first where they overlap
SUFFIX_RULES: List[Tuple[str, str, str]] = [
    ("quantity", "数量", "quantity"),
    ("status", "状态", "status"),
    ("amount", "金额", "amount"),
    ("money", "金额", "amount"),
    ("price", "单价", "unit price"),
    ("code", "编码", "code"),
    ("name", "名称", "name"),
    ("memo", "备注", "remark"),
    ("date", "日期", "date"),
    ("time", "时间", "time"),
    ("type", "类型", "type"),
    ("flag", "标志", "flag"),
    ("qty", "数量", "quantity"),
    ("num", "数量", "number"),
    ("id", "标识", "identifier"),
]

_CAMEL_SPLIT = re.compile(r"[A-Z]+(?![a-z])|[A-Z]?[a-z]+|\d+")
_NUMERIC = re.compile(r"^[0-9]+$")


def strip_type_prefix(name: str) -> str:
    """Drop a Hungarian type prefix (cInvCode -> InvCode, iQuantity -> Quantity)."""
    if len(name) > 1 and name[0] in TYPE_PREFIXES and name[1].isupper():
        return name[1:]
    return name


def infer_semantic_type(stats: Optional[ColumnStats]) -> Optional[str]:
    """identifier / category / attribute from the distinct rate."""
    if stats is None or stats.total_rows == 0:
        return None
    rate = stats.distinct_rate
    if rate > IDENTIFIER_DISTINCT_RATE:
        return "identifier"
    if rate < CATEGORY_DISTINCT_RATE:
        return "category"
    return "attribute"


def detect_pattern(value: str) -> str:
    """Shape of a value without exposing it: empty, numeric, date, email or text."""
    if not value:
        return "empty"
    if _NUMERIC.match(value):
        return "numeric"
    if len(value) >= 8 and ("-" in value or "/" in value):
        return "date"
    if "@" in value and "." in value:
        return "email"
    return "text"


def summarize_stats(stats: ColumnStats) -> Dict[str, Any]:
    """
    Privacy-preserving summary of a column sample.

    Only ratios, value lengths, counts and patterns are reported; raw values
    never leave the process.
    """
    summary: Dict[str, Any] = {}
    if stats.total_rows > 0:
        summary["null_ratio"] = round(stats.null_ratio, 4)
        summary["distinct_ratio"] = round(stats.distinct_rate, 4)
    if stats.top_values:
        summary["top_patterns"] = [
            {"length": len(v.value), "count": v.count, "pattern": detect_pattern(v.value)}
            for v in stats.top_values
        ]
    return summary


def split_name(name: str) -> List[str]:
    """Split a table or column name into lower-cased tokens."""
    tokens: List[str] = []
    for part in re.split(r"[_\-\s.]+", name):
        tokens.extend(t.lower() for t in _CAMEL_SPLIT.findall(part))
    return tokens


class RuleBasedExplainer(SemanticSource):
    """Naming-convention explainer; deterministic and offline."""

    name = "rule_based"

    def __init__(self, config: Optional[SemanticConfig] = None):
        self.config = config or SemanticConfig()

    def explain_field(self, context: FieldContext) -> FieldExplanation:
        column = context.column_name
        semantic_type = infer_semantic_type(context.stats)

        if is_custom_field(column, self.config.custom_prefixes, self.config.custom_exact_names):
            return FieldExplanation(
                column_name=column,
                localized_name="自定义字段",
                description="User-defined extension column",
                business_meaning="Meaning depends on how this installation configured the slot",
                confidence=self.config.placeholder_confidence,
                source=SourceKind.RULE_BASED,
                semantic_type=semantic_type,
            )

        stem = strip_type_prefix(column).lower()

        if stem in COLUMN_STEMS:
            localized, description = COLUMN_STEMS[stem]
            return FieldExplanation(
                column_name=column,
                localized_name=localized,
                description=description,
                business_meaning=f"{description} of {context.table_name}",
                confidence=STEM_CONFIDENCE,
                source=SourceKind.RULE_BASED,
                semantic_type=semantic_type,
            )

        for suffix, suffix_localized, suffix_english in SUFFIX_RULES:
            if not stem.endswith(suffix) or stem == suffix:
                continue
            entity = ENTITY_TOKENS.get(stem[: -len(suffix)])
            if entity is not None:
                entity_localized, entity_english = entity
                return FieldExplanation(
                    column_name=column,
                    localized_name=entity_localized + suffix_localized,
                    description=f"{entity_english.capitalize()} {suffix_english}",
                    business_meaning=f"References the {entity_english} by its {suffix_english}",
                    confidence=ENTITY_SUFFIX_CONFIDENCE,
                    source=SourceKind.RULE_BASED,
                    semantic_type=semantic_type,
                )
            return FieldExplanation(
                column_name=column,
                localized_name=suffix_localized,
                description=f"{suffix_english.capitalize()} ({column})",
                business_meaning="",
                confidence=SUFFIX_CONFIDENCE,
                source=SourceKind.RULE_BASED,
                semantic_type=semantic_type,
            )

        return FieldExplanation(
            column_name=column,
            localized_name=column,
            description="No naming rule matched",
            business_meaning="",
            confidence=UNMATCHED_CONFIDENCE,
            source=SourceKind.RULE_BASED,
            semantic_type=semantic_type,
        )

    def explain_batch(self, contexts: List[FieldContext]) -> Dict[str, FieldExplanation]:
        return {ctx.column_id: self.explain_field(ctx) for ctx in contexts}

    def explain_table_meaning(self, table: Table) -> TableExplanation:
        matched: List[Tuple[str, str]] = []
        for token in split_name(table.name):
            entity = ENTITY_TOKENS.get(token)
            if entity is not None and entity not in matched:
                matched.append(entity)
        pk = ", ".join(c.name for c in table.get_pk_columns()) or "none"
        meaning = f"{len(table.columns)} columns, primary key: {pk}"

        if not matched:
            return TableExplanation(
                table_name=table.name,
                localized_name=table.name,
                description="No naming rule matched",
                business_meaning=meaning,
                confidence=UNMATCHED_CONFIDENCE,
            )

        return TableExplanation(
            table_name=table.name,
            localized_name="".join(loc for loc, _ in matched),
            description=f"Stores {' '.join(eng for _, eng in matched)} records",
            business_meaning=meaning,
            confidence=TABLE_MATCH_CONFIDENCE,
        )

    def infer_table_relationships(self, tables: List[Table]) -> List[TableRelationship]:
        return []
