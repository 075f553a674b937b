"""
Domain entities for correlation tracking.

These are plain records handed to the process engine runtime. They carry no
persistence behavior; all reads and writes go through CorrelationRepository.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from .enums import CorrelationState


@dataclass
class Identity:
    """
    The principal that started a process instance.

    Only user_id and token are known to the repository, and either may be
    missing. Any other keys found in a stored payload are kept in claims so
    they survive a read/write cycle.
    """
    user_id: Optional[str] = None
    token: Optional[str] = None
    claims: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CorrelationError:
    """
    Serializable description of the error a correlation ended with.
    """
    name: str
    message: str
    code: Optional[Any] = None
    additional_information: Optional[Any] = None

    @classmethod
    def from_exception(cls, error: BaseException) -> "CorrelationError":
        """Capture the serializable fields of an exception."""
        return cls(
            name=type(error).__name__,
            message=str(error),
            code=getattr(error, "code", None),
            additional_information=getattr(error, "additional_information", None),
        )


@dataclass
class Correlation:
    """
    One process instance participating in a correlation.

    Several records share the same id when a correlation spans more than one
    process instance; process_instance_id is unique.
    """
    id: str
    process_instance_id: str
    process_model_id: str
    process_model_hash: str
    state: CorrelationState
    parent_process_instance_id: Optional[str] = None
    identity: Optional[Identity] = None
    error: Optional[CorrelationError] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None