# Domain models
from .enums import CorrelationState
from .entities import Correlation, CorrelationError, Identity
from .exceptions import CorrelationDecodeError, CorrelationRepositoryError, NotFoundError

__all__ = [
    "CorrelationState",
    "Correlation",
    "CorrelationError",
    "Identity",
    "CorrelationRepositoryError",
    "CorrelationDecodeError",
    "NotFoundError",
]
