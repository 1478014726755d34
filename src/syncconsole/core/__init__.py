"""Core module - Shared config and pipeline types."""

from syncconsole.core.config import DEFAULT_TOPIC, ConsoleConfig
from syncconsole.core.types import (
    INITIALIZATION_ERROR_RECORD,
    SUCCESS_MARKER,
    ErrorKind,
    PipelinePhase,
    PipelineStatus,
    SubscriptionState,
)

__all__ = [
    # Config
    "ConsoleConfig",
    "DEFAULT_TOPIC",
    # Types
    "ErrorKind",
    "INITIALIZATION_ERROR_RECORD",
    "PipelinePhase",
    "PipelineStatus",
    "SUCCESS_MARKER",
    "SubscriptionState",
]
