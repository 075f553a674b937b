# Persistence layer
from .database import (
    ConnectionManager,
    Database,
    DatabaseClosedError,
    get_connection_manager,
    set_connection_manager,
)
from .repositories import CorrelationRepository
from .schema import CorrelationTable, register_schema

__all__ = [
    "ConnectionManager",
    "Database",
    "DatabaseClosedError",
    "get_connection_manager",
    "set_connection_manager",
    "CorrelationRepository",
    "CorrelationTable",
    "register_schema",
]
