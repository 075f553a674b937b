"""
Domain enums for correlation tracking.
"""

from enum import Enum


class CorrelationState(str, Enum):
    """
    State of a single process instance within a correlation.

    Transitions:
    RUNNING → FINISHED (success path)
    RUNNING → ERROR (failure path)

    Both FINISHED and ERROR are terminal in intended use. The repository
    does not enforce this; finalizing twice overwrites the earlier state.
    """
    RUNNING = "running"
    FINISHED = "finished"
    ERROR = "error"
