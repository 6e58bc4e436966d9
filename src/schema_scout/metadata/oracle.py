"""
Oracle metadata provider using oracledb.

Reads tables, columns, indexes and PK/FK constraints from the Oracle data
dictionary views and samples column statistics with FETCH FIRST queries.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from schema_scout.errors import MetadataUnavailableError
from schema_scout.metadata.base import TOP_VALUES_LIMIT, MetadataProvider
from schema_scout.models import (
    Column,
    ColumnStats,
    ForeignKey,
    Index,
    SchemaMetadata,
    Table,
    ValueCount,
)

logger = logging.getLogger(__name__)


# Oracle type -> canonical type name used by the type-compatibility families
ORACLE_TYPE_MAP = {
    "VARCHAR2": "varchar",
    "VARCHAR": "varchar",
    "NVARCHAR2": "nvarchar",
    "CHAR": "char",
    "NCHAR": "nchar",
    "CLOB": "text",
    "NCLOB": "text",
    "LONG": "text",
    "INTEGER": "int",
    "SMALLINT": "smallint",
    "FLOAT": "float",
    "BINARY_FLOAT": "float",
    "BINARY_DOUBLE": "double",
    "DATE": "datetime",
    "TIMESTAMP": "datetime",
    "RAW": "binary",
    "BLOB": "binary",
    "LONG RAW": "binary",
}


def map_oracle_type(data_type: str, precision: Optional[int], scale: Optional[int]) -> str:
    """Map an Oracle column type to its canonical name."""
    upper = data_type.upper()
    if upper.startswith("TIMESTAMP"):
        return "datetime"
    if upper == "NUMBER":
        if scale == 0 and precision is not None:
            return "int" if precision <= 9 else "bigint"
        return "decimal"
    return ORACLE_TYPE_MAP.get(upper, data_type.lower())


class OracleMetadataProvider(MetadataProvider):
    """
    Metadata provider backed by the Oracle data dictionary.

    Uses ALL_TABLES, ALL_TAB_COLUMNS, ALL_CONSTRAINTS, ALL_CONS_COLUMNS and
    ALL_IND_COLUMNS for the configured owner.
    """

    def __init__(self, connection_string: str, schema: str):
        """
        Initialize provider with Oracle connection.

        Args:
            connection_string: Oracle connection string (user/pwd@host:port/service)
            schema: Owner whose tables are scanned
        """
        self.connection_string = connection_string
        self.schema = schema.upper()
        self._conn = None

    def connect(self) -> None:
        """Establish database connection."""
        import oracledb

        parts = self.connection_string.split("@")
        user_pwd = parts[0]
        host_service = parts[1] if len(parts) > 1 else ""

        user, password = user_pwd.split("/", 1) if "/" in user_pwd else (user_pwd, "")

        if ":" in host_service:
            host_port, service = host_service.rsplit("/", 1) if "/" in host_service else (host_service, "")
            host, port = host_port.split(":") if ":" in host_port else (host_port, "1521")
            dsn = oracledb.makedsn(host, int(port), service_name=service)
        else:
            dsn = host_service

        try:
            self._conn = oracledb.connect(user=user, password=password, dsn=dsn)
        except oracledb.Error as e:
            raise MetadataUnavailableError(f"Cannot connect to Oracle: {e}") from e
        logger.info(f"Connected to Oracle database as {user}")

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def _cursor(self):
        if not self._conn:
            self.connect()
        return self._conn.cursor()

    def introspect_schema(self) -> SchemaMetadata:
        import oracledb

        try:
            cursor = self._cursor()
            cursor.execute("""
                SELECT table_name
                FROM all_tables
                WHERE owner = :owner
                ORDER BY table_name
            """, owner=self.schema)
            table_names = [row[0] for row in cursor]

            tables = []
            for table_name in table_names:
                columns = self._get_columns(cursor, table_name)
                pk_columns = set(self._get_primary_key(cursor, table_name))
                for col in columns:
                    if col.name in pk_columns:
                        col.is_primary_key = True
                tables.append(Table(name=table_name, schema=self.schema, columns=columns))

            indexes = self._get_indexes(cursor)
            cursor.close()
        except oracledb.Error as e:
            raise MetadataUnavailableError(f"Oracle introspection failed: {e}") from e

        logger.info(f"Introspected {len(tables)} tables from Oracle schema {self.schema}")
        return SchemaMetadata(tables=tables, indexes=indexes)

    def _get_columns(self, cursor, table_name: str) -> List[Column]:
        """Get column metadata for a table."""
        cursor.execute("""
            SELECT
                column_name,
                data_type,
                nullable,
                char_length,
                data_precision,
                data_scale,
                data_default
            FROM all_tab_columns
            WHERE owner = :owner AND table_name = :table_name
            ORDER BY column_id
        """, owner=self.schema, table_name=table_name)

        columns = []
        for row in cursor.fetchall():
            col_name, data_type, nullable, char_length, precision, scale, default = row
            columns.append(Column(
                name=col_name,
                data_type=map_oracle_type(data_type, precision, scale),
                length=int(char_length or 0),
                nullable=nullable == "Y",
                default_value=default.strip() if default else None,
            ))

        return columns

    def _get_primary_key(self, cursor, table_name: str) -> List[str]:
        """Get primary key columns for a table."""
        cursor.execute("""
            SELECT cc.column_name
            FROM all_constraints c
            JOIN all_cons_columns cc
                ON c.owner = cc.owner
                AND c.constraint_name = cc.constraint_name
            WHERE c.owner = :owner
                AND c.table_name = :table_name
                AND c.constraint_type = 'P'
            ORDER BY cc.position
        """, owner=self.schema, table_name=table_name)

        return [row[0] for row in cursor.fetchall()]

    def _get_indexes(self, cursor) -> List[Index]:
        cursor.execute("""
            SELECT i.table_name, i.index_name, ic.column_name, i.uniqueness
            FROM all_indexes i
            JOIN all_ind_columns ic
                ON i.owner = ic.index_owner AND i.index_name = ic.index_name
            WHERE i.table_owner = :owner
            ORDER BY i.table_name, i.index_name, ic.column_position
        """, owner=self.schema)

        indexes: Dict[str, Index] = {}
        for table_name, index_name, column_name, uniqueness in cursor.fetchall():
            key = f"{table_name}.{index_name}"
            if key not in indexes:
                indexes[key] = Index(
                    table=table_name,
                    name=index_name,
                    unique=uniqueness == "UNIQUE",
                )
            indexes[key].columns.append(column_name)
        return list(indexes.values())

    def get_foreign_keys(self) -> List[ForeignKey]:
        """Get all single-column FK mappings declared in the schema."""
        cursor = self._cursor()
        cursor.execute("""
            SELECT
                c.table_name,
                cc.column_name,
                rc.table_name as ref_table,
                rcc.column_name as ref_column
            FROM all_constraints c
            JOIN all_cons_columns cc
                ON c.owner = cc.owner
                AND c.constraint_name = cc.constraint_name
            JOIN all_constraints rc
                ON c.r_owner = rc.owner
                AND c.r_constraint_name = rc.constraint_name
            JOIN all_cons_columns rcc
                ON rc.owner = rcc.owner
                AND rc.constraint_name = rcc.constraint_name
                AND cc.position = rcc.position
            WHERE c.owner = :owner
                AND c.constraint_type = 'R'
        """, owner=self.schema)

        fks = [
            ForeignKey(from_table=row[0], from_column=row[1], to_table=row[2], to_column=row[3])
            for row in cursor.fetchall()
        ]
        cursor.close()
        return fks

    def estimate_row_count(self, table: str) -> int:
        """Row estimate from optimizer statistics (0 when never analyzed)."""
        cursor = self._cursor()
        cursor.execute("""
            SELECT num_rows
            FROM all_tables
            WHERE owner = :owner AND table_name = :table_name
        """, owner=self.schema, table_name=table)
        row = cursor.fetchone()
        cursor.close()
        if not row or row[0] is None:
            return 0
        return int(row[0])

    def sample_column_stats(self, table: str, column: str, sample_size: int) -> ColumnStats:
        source = f'"{self.schema}"."{table}"'
        col = f'"{column}"'
        cursor = self._cursor()

        cursor.execute(f"""
            SELECT
                COUNT(*),
                SUM(CASE WHEN v IS NULL THEN 1 ELSE 0 END),
                COUNT(DISTINCT v)
            FROM (SELECT {col} AS v FROM {source} FETCH FIRST {int(sample_size)} ROWS ONLY)
        """)
        total, nulls, distincts = cursor.fetchone()

        cursor.execute(f"""
            SELECT v, COUNT(*) AS cnt
            FROM (SELECT {col} AS v FROM {source} FETCH FIRST {int(sample_size)} ROWS ONLY)
            WHERE v IS NOT NULL
            GROUP BY v
            ORDER BY cnt DESC
            FETCH FIRST {TOP_VALUES_LIMIT} ROWS ONLY
        """)
        top_values = [ValueCount(value=str(v), count=int(cnt)) for v, cnt in cursor.fetchall()]
        cursor.close()

        return ColumnStats(
            total_rows=int(total or 0),
            null_count=int(nulls or 0),
            distinct_count=int(distincts or 0),
            top_values=top_values,
        )
