"""
Offline metadata provider reading sample Parquet/CSV extracts.

Each file is one table named after the file stem. Column types come from the
Arrow schema (Parquet) or the pandas dtype (CSV); primary keys come from an
explicit mapping or, failing that, from the first column when it is non-null
and unique in the sample.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from schema_scout.errors import MetadataUnavailableError
from schema_scout.metadata.base import TOP_VALUES_LIMIT, MetadataProvider
from schema_scout.models import Column, ColumnStats, SchemaMetadata, Table, ValueCount

logger = logging.getLogger(__name__)


class SampleFileProvider(MetadataProvider):
    """Metadata provider over a directory of sample files."""

    def __init__(
        self,
        sample_dir: Path,
        schema: Optional[str] = None,
        primary_keys: Optional[Dict[str, List[str]]] = None,
    ):
        """
        Args:
            sample_dir: Directory containing *.parquet / *.csv files
            schema: Schema name recorded on the tables
            primary_keys: Optional table -> PK column list overrides
        """
        self.sample_dir = Path(sample_dir)
        self.schema = schema
        self.primary_keys = {k.lower(): [c.lower() for c in v] for k, v in (primary_keys or {}).items()}
        self._frames: Dict[str, pd.DataFrame] = {}
        self._arrow_schemas: Dict[str, pa.Schema] = {}
        self._loaded = False

    def connect(self) -> None:
        if self._loaded:
            return
        if not self.sample_dir.is_dir():
            raise MetadataUnavailableError(f"Sample directory not found: {self.sample_dir}")

        parquet_files = sorted(self.sample_dir.glob("**/*.parquet"))
        csv_files = sorted(self.sample_dir.glob("**/*.csv"))
        logger.info(f"Found {len(parquet_files) + len(csv_files)} sample files in {self.sample_dir}")

        for file_path in parquet_files + csv_files:
            table_name = file_path.stem
            if table_name in self._frames:
                logger.warning(f"Duplicate sample for table {table_name}, keeping first: {file_path}")
                continue
            try:
                if file_path.suffix == ".parquet":
                    arrow_table = pq.read_table(file_path)
                    self._arrow_schemas[table_name] = arrow_table.schema
                    self._frames[table_name] = arrow_table.to_pandas()
                else:
                    self._frames[table_name] = pd.read_csv(file_path)
            except (OSError, ValueError, pa.ArrowException) as e:
                logger.warning(f"Could not read sample file {file_path}: {e}")

        self._loaded = True

    def close(self) -> None:
        self._frames.clear()
        self._arrow_schemas.clear()
        self._loaded = False

    def _frame(self, table: str) -> pd.DataFrame:
        self.connect()
        if table not in self._frames:
            raise KeyError(f"No sample data for table {table}")
        return self._frames[table]

    def introspect_schema(self) -> SchemaMetadata:
        self.connect()
        tables = []
        for table_name, df in self._frames.items():
            arrow_schema = self._arrow_schemas.get(table_name)
            columns = []
            for col_name in df.columns:
                series = df[col_name]
                if arrow_schema is not None:
                    data_type = self._map_arrow_type(arrow_schema.field(col_name).type)
                else:
                    data_type = self._map_pandas_type(series.dtype)
                length = 0
                if data_type == "varchar":
                    lengths = series.dropna().astype(str).str.len()
                    length = int(lengths.max()) if not lengths.empty else 0
                columns.append(Column(
                    name=str(col_name),
                    data_type=data_type,
                    length=length,
                    nullable=bool(series.isna().any()),
                ))
            self._mark_primary_key(table_name, df, columns)
            tables.append(Table(name=table_name, schema=self.schema, columns=columns))
        return SchemaMetadata(tables=tables)

    def _mark_primary_key(self, table_name: str, df: pd.DataFrame, columns: List[Column]) -> None:
        configured = self.primary_keys.get(table_name.lower())
        if configured is not None:
            for col in columns:
                col.is_primary_key = col.name.lower() in configured
            return

        if not columns:
            return
        first = df[columns[0].name]
        if not first.isna().any() and first.is_unique:
            columns[0].is_primary_key = True

    def estimate_row_count(self, table: str) -> int:
        return len(self._frame(table))

    def sample_column_stats(self, table: str, column: str, sample_size: int) -> ColumnStats:
        series = self._frame(table)[column].head(sample_size)
        counts = series.dropna().astype(str).value_counts()
        return ColumnStats(
            total_rows=int(len(series)),
            null_count=int(series.isna().sum()),
            distinct_count=int(series.nunique(dropna=True)),
            top_values=[
                ValueCount(value=str(value), count=int(count))
                for value, count in counts.head(TOP_VALUES_LIMIT).items()
            ],
        )

    def _map_arrow_type(self, arrow_type: pa.DataType) -> str:
        """Map Arrow type to canonical type name."""
        if pa.types.is_string(arrow_type) or pa.types.is_large_string(arrow_type):
            return "varchar"
        elif pa.types.is_int8(arrow_type):
            return "tinyint"
        elif pa.types.is_int16(arrow_type):
            return "smallint"
        elif pa.types.is_int32(arrow_type):
            return "int"
        elif pa.types.is_int64(arrow_type):
            return "bigint"
        elif pa.types.is_decimal(arrow_type):
            return "decimal"
        elif pa.types.is_floating(arrow_type):
            return "float"
        elif pa.types.is_date(arrow_type) or pa.types.is_timestamp(arrow_type):
            return "datetime"
        elif pa.types.is_boolean(arrow_type):
            return "bit"
        elif pa.types.is_binary(arrow_type):
            return "binary"
        else:
            return "unknown"

    def _map_pandas_type(self, dtype) -> str:
        """Map pandas dtype to canonical type name."""
        dtype_str = str(dtype).lower()

        if "int64" in dtype_str:
            return "bigint"
        elif "int32" in dtype_str:
            return "int"
        elif "int16" in dtype_str:
            return "smallint"
        elif "int8" in dtype_str:
            return "tinyint"
        elif "float" in dtype_str:
            return "float"
        elif "datetime" in dtype_str:
            return "datetime"
        elif "bool" in dtype_str:
            return "bit"
        elif "object" in dtype_str or "str" in dtype_str:
            return "varchar"
        else:
            return "unknown"
