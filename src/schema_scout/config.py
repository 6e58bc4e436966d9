"""
Scan configuration.

Every weight and threshold used by the inference engine is a named constant
here and is used as the default of the matching config field, so thresholds
can be tuned from a YAML file without touching the algorithms.
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from schema_scout.errors import ConfigError

logger = logging.getLogger(__name__)

# Relationship scoring weights (sum to 1.0)
NAMING_WEIGHT = 0.3
TYPE_WEIGHT = 0.2
CONTAINMENT_WEIGHT = 0.5

# Relationship thresholds
EDGE_ACCEPTANCE_THRESHOLD = 0.3
NAME_SIMILARITY_FLOOR = 0.7
NAME_EVIDENCE_MIN = 0.3
CONTAINMENT_EVIDENCE_MIN = 0.3
LENGTH_RATIO_MIN = 0.8

# Type scores
TYPE_EXACT_LENGTH_SCORE = 1.0
TYPE_CLOSE_LENGTH_SCORE = 0.8
TYPE_COMPATIBLE_SCORE = 0.6

# Sample sizes
FROM_SAMPLE_SIZE = 1000
KEY_SAMPLE_SIZE = 10000
PROFILE_SAMPLE_SIZE = 1000

PROGRESS_EVERY = 100

STRING_TYPES = ("varchar", "nvarchar", "char", "nchar", "text")
INTEGER_TYPES = ("int", "bigint", "smallint", "tinyint")

# Enum detection
ENUM_MAX_ROWS = 1000
ENUM_SMALL_ROWS = 100
ENUM_MEDIUM_ROWS = 500
ENUM_SMALL_ROWS_SCORE = 0.4
ENUM_MEDIUM_ROWS_SCORE = 0.3
ENUM_LARGE_ROWS_SCORE = 0.2
ENUM_KEY_VALUE_SCORE = 0.4
ENUM_KEY_ONLY_SCORE = 0.2
ENUM_COMPACT_SCORE = 0.2
ENUM_MAX_COMPACT_COLUMNS = 5
# Wide tables are never enum tables, whatever their score
ENUM_REQUIRE_COMPACT = True
ENUM_THRESHOLD = 0.6
ENUM_KEY_PATTERNS = ("code", "id", "key", "type")
ENUM_VALUE_PATTERNS = ("name", "label", "desc", "description", "value")

# Semantic merge
EXPLAIN_BATCH_SIZE = 50
RELATION_DECAY = 0.7
PLACEHOLDER_CONFIDENCE = 0.1
CUSTOM_PREFIXES = ("cfree", "cdefine")
CUSTOM_EXACT_NAMES = ("ufts",)

DASHSCOPE_ENDPOINT = "https://dashscope.aliyuncs.com/api/v1/services/aigc/text-generation/generation"
DASHSCOPE_MODEL = "qwen-plus"
DASHSCOPE_API_KEY_ENV = "DASHSCOPE_API_KEY"


@dataclass
class InferenceConfig:
    """Weights and thresholds for pairwise relationship scoring."""
    naming_weight: float = NAMING_WEIGHT
    type_weight: float = TYPE_WEIGHT
    containment_weight: float = CONTAINMENT_WEIGHT
    acceptance_threshold: float = EDGE_ACCEPTANCE_THRESHOLD
    name_similarity_floor: float = NAME_SIMILARITY_FLOOR
    name_evidence_min: float = NAME_EVIDENCE_MIN
    containment_evidence_min: float = CONTAINMENT_EVIDENCE_MIN
    length_ratio_min: float = LENGTH_RATIO_MIN
    from_sample_size: int = FROM_SAMPLE_SIZE
    key_sample_size: int = KEY_SAMPLE_SIZE
    progress_every: int = PROGRESS_EVERY
    max_workers: int = 1
    string_types: List[str] = field(default_factory=lambda: list(STRING_TYPES))
    integer_types: List[str] = field(default_factory=lambda: list(INTEGER_TYPES))

    def validate(self) -> None:
        total = self.naming_weight + self.type_weight + self.containment_weight
        if abs(total - 1.0) > 1e-9:
            raise ConfigError(f"Relationship weights must sum to 1.0, got {total:.3f}")
        if self.max_workers < 1:
            raise ConfigError("max_workers must be at least 1")
        if self.progress_every < 1:
            raise ConfigError("progress_every must be at least 1")


@dataclass
class EnumConfig:
    """Bands used to score small code/lookup tables."""
    max_rows: int = ENUM_MAX_ROWS
    small_rows: int = ENUM_SMALL_ROWS
    medium_rows: int = ENUM_MEDIUM_ROWS
    small_rows_score: float = ENUM_SMALL_ROWS_SCORE
    medium_rows_score: float = ENUM_MEDIUM_ROWS_SCORE
    large_rows_score: float = ENUM_LARGE_ROWS_SCORE
    key_value_score: float = ENUM_KEY_VALUE_SCORE
    key_only_score: float = ENUM_KEY_ONLY_SCORE
    compact_score: float = ENUM_COMPACT_SCORE
    max_compact_columns: int = ENUM_MAX_COMPACT_COLUMNS
    require_compact: bool = ENUM_REQUIRE_COMPACT
    threshold: float = ENUM_THRESHOLD
    key_patterns: List[str] = field(default_factory=lambda: list(ENUM_KEY_PATTERNS))
    value_patterns: List[str] = field(default_factory=lambda: list(ENUM_VALUE_PATTERNS))

    def validate(self) -> None:
        top = (
            max(self.small_rows_score, self.medium_rows_score, self.large_rows_score)
            + max(self.key_value_score, self.key_only_score)
            + self.compact_score
        )
        if top > 1.0 + 1e-9:
            raise ConfigError(f"Enum score bands can exceed 1.0 (max {top:.2f})")


@dataclass
class SemanticConfig:
    """Explanation merge settings and AI client options."""
    batch_size: int = EXPLAIN_BATCH_SIZE
    relation_decay: float = RELATION_DECAY
    placeholder_confidence: float = PLACEHOLDER_CONFIDENCE
    custom_prefixes: List[str] = field(default_factory=lambda: list(CUSTOM_PREFIXES))
    custom_exact_names: List[str] = field(default_factory=lambda: list(CUSTOM_EXACT_NAMES))
    enable_ai: bool = False
    api_key: Optional[str] = None
    endpoint: str = DASHSCOPE_ENDPOINT
    model: str = DASHSCOPE_MODEL
    request_timeout: float = 60.0

    def resolve_api_key(self) -> Optional[str]:
        """Return the configured key, falling back to the environment."""
        return self.api_key or os.environ.get(DASHSCOPE_API_KEY_ENV)

    def validate(self) -> None:
        if self.batch_size < 1:
            raise ConfigError("batch_size must be at least 1")
        if not 0.0 <= self.relation_decay <= 1.0:
            raise ConfigError("relation_decay must be within [0, 1]")


@dataclass
class ScanConfig:
    """Configuration for one scan."""
    inference: InferenceConfig = field(default_factory=InferenceConfig)
    enum: EnumConfig = field(default_factory=EnumConfig)
    semantic: SemanticConfig = field(default_factory=SemanticConfig)
    sample_size: int = PROFILE_SAMPLE_SIZE
    timeout_seconds: Optional[float] = None

    def validate(self) -> ScanConfig:
        self.inference.validate()
        self.enum.validate()
        self.semantic.validate()
        if self.sample_size < 1:
            raise ConfigError("sample_size must be at least 1")
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        data = asdict(self)
        data["semantic"].pop("api_key", None)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ScanConfig:
        """Create from dictionary, rejecting unknown keys."""
        data = dict(data or {})
        sections = {
            "inference": InferenceConfig,
            "enum": EnumConfig,
            "semantic": SemanticConfig,
        }
        kwargs: Dict[str, Any] = {}
        for name, section_cls in sections.items():
            kwargs[name] = _build_section(section_cls, data.pop(name, None) or {}, name)

        for key in ("sample_size", "timeout_seconds"):
            if key in data:
                kwargs[key] = data.pop(key)

        if data:
            raise ConfigError(f"Unknown configuration keys: {', '.join(sorted(data))}")

        return cls(**kwargs).validate()

    @classmethod
    def from_yaml(cls, path: Path) -> ScanConfig:
        """Load configuration from a YAML file."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")

        with open(path, "r") as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")

        logger.info(f"Loaded scan configuration from {path}")
        return cls.from_dict(data)


def _build_section(section_cls: type, values: Dict[str, Any], name: str) -> Any:
    if not isinstance(values, dict):
        raise ConfigError(f"Config section '{name}' must be a mapping")

    known = {f.name for f in fields(section_cls)}
    unknown = set(values) - known
    if unknown:
        raise ConfigError(
            f"Unknown keys in '{name}' section: {', '.join(sorted(unknown))}"
        )
    return section_cls(**values)


def type_families(config: InferenceConfig) -> Tuple[frozenset, frozenset]:
    """Return the (string, integer) type families as lower-cased sets."""
    return (
        frozenset(t.lower() for t in config.string_types),
        frozenset(t.lower() for t in config.integer_types),
    )
