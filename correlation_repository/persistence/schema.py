"""
Correlation table registration.

Creates the correlation table and its indexes if they are missing. This is
not a migration tool: an existing table is used as it is.
"""

import logging
import re
import weakref
from dataclasses import dataclass
from typing import Tuple

from .database import Database

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

COLUMNS: Tuple[str, ...] = (
    "id",
    "correlation_id",
    "process_instance_id",
    "process_model_id",
    "process_model_hash",
    "parent_process_instance_id",
    "identity",
    "state",
    "error",
    "created_at",
    "updated_at",
)

INDEXED_COLUMNS: Tuple[str, ...] = (
    "correlation_id",
    "process_model_id",
    "parent_process_instance_id",
)


@dataclass(frozen=True)
class CorrelationTable:
    """Handle on the registered correlation table."""
    name: str
    columns: Tuple[str, ...] = COLUMNS

    @property
    def select_columns(self) -> str:
        return ", ".join(self.columns)


# Databases whose schema has already been registered in this process
_registered: "weakref.WeakKeyDictionary[Database, CorrelationTable]" = weakref.WeakKeyDictionary()


def _create_table_sql(table: str) -> str:
    return f"""
        CREATE TABLE IF NOT EXISTS {table} (
            id BIGSERIAL PRIMARY KEY,
            correlation_id TEXT NOT NULL,
            process_instance_id TEXT NOT NULL UNIQUE,
            process_model_id TEXT NOT NULL,
            process_model_hash TEXT NOT NULL,
            parent_process_instance_id TEXT NULL,
            identity TEXT NULL,
            state TEXT NOT NULL CHECK (state IN ('running', 'finished', 'error')),
            error TEXT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """


def register_schema(db: Database, table_name: str = "correlations") -> CorrelationTable:
    """
    Ensure the correlation table exists on db and return its handle.

    The DDL runs once per Database object; later calls return the cached
    handle without touching the database.
    """
    if not _IDENTIFIER.match(table_name):
        raise ValueError(f"Invalid correlation table name: {table_name!r}")

    table = _registered.get(db)
    if table is not None and table.name == table_name:
        return table

    logger.debug(f"Registering correlation table '{table_name}'")
    with db.get_cursor() as cur:
        cur.execute(_create_table_sql(table_name))
        for column in INDEXED_COLUMNS:
            cur.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{table_name}_{column} "
                f"ON {table_name} ({column})"
            )

    table = CorrelationTable(name=table_name)
    _registered[db] = table
    return table
