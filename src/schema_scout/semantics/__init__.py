"""
Semantic sources: attach business meaning to columns and tables.
"""

from schema_scout.semantics.base import SemanticSource
from schema_scout.semantics.dashscope import DashScopeClient
from schema_scout.semantics.rules import RuleBasedExplainer, summarize_stats

__all__ = ["SemanticSource", "RuleBasedExplainer", "DashScopeClient", "summarize_stats"]
