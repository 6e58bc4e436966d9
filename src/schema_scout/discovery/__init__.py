"""
Inference stages: relationships, enum tables and the semantic merge.
"""

from schema_scout.discovery.enum_detector import EnumDetector
from schema_scout.discovery.hybrid import EnhancedSchema, HybridAnalyzer
from schema_scout.discovery.pipeline import SchemaScan, ScanReport, ScanStatus
from schema_scout.discovery.relationship_inferrer import RelationshipInferrer

__all__ = [
    "RelationshipInferrer",
    "EnumDetector",
    "HybridAnalyzer",
    "EnhancedSchema",
    "SchemaScan",
    "ScanReport",
    "ScanStatus",
]
