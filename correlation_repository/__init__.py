# Correlation repository for the process engine
from .domain import (
    Correlation,
    CorrelationDecodeError,
    CorrelationError,
    CorrelationRepositoryError,
    CorrelationState,
    Identity,
    NotFoundError,
)
from .persistence import ConnectionManager, CorrelationRepository, get_connection_manager

__all__ = [
    "Correlation",
    "CorrelationDecodeError",
    "CorrelationError",
    "CorrelationRepositoryError",
    "CorrelationState",
    "Identity",
    "NotFoundError",
    "ConnectionManager",
    "CorrelationRepository",
    "get_connection_manager",
]
