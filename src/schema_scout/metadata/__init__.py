"""
Metadata providers for Oracle, SQLAlchemy-reachable databases and offline
sample files.

Every provider implements MetadataProvider: schema introspection, row-count
estimates and column statistics sampling.
"""

from schema_scout.metadata.base import MetadataProvider
from schema_scout.metadata.oracle import OracleMetadataProvider
from schema_scout.metadata.samples import SampleFileProvider
from schema_scout.metadata.sql import SQLAlchemyMetadataProvider

__all__ = [
    "MetadataProvider",
    "OracleMetadataProvider",
    "SampleFileProvider",
    "SQLAlchemyMetadataProvider",
]
