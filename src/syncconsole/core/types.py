"""Shared types for syncconsole.

This module defines the pipeline enums used by the backend client,
the event channel and the console state machine.
"""

from __future__ import annotations

from enum import Enum

# Reserved catalog record carrying the initialization error message
INITIALIZATION_ERROR_RECORD = "Initialization_Error"

# Error text the backend publishes when a phase completed cleanly
SUCCESS_MARKER = "success"


def _normalize(value: str) -> str:
    return "".join(c for c in value.lower() if c.isalnum())


class PipelinePhase(str, Enum):
    """Pipeline stage last reported by the backend."""

    NONE = "None"
    INITIALIZE = "Initialize"
    FULL_SYNC = "Full Sync"
    INCREMENTAL_SYNC = "Incremental Sync"

    @classmethod
    def parse(cls, value: str | None) -> PipelinePhase:
        """Parse a phase as published on the channel.

        Matching ignores case, spaces, hyphens and underscores so that
        "Full Sync", "FullSync" and "full_sync" are the same phase.
        Unknown or empty values map to NONE.
        """
        if not value:
            return cls.NONE
        key = _normalize(value)
        for phase in cls:
            if _normalize(phase.value) == key or _normalize(phase.name) == key:
                return phase
        return cls.NONE


class PipelineStatus(str, Enum):
    """Outcome of the current pipeline phase."""

    NOT_STARTED = "Not Started"
    IN_PROGRESS = "In Progress"
    SUCCESS = "Success"
    FAILURE = "Failure"

    @classmethod
    def parse(cls, value: str | None) -> PipelineStatus:
        """Parse a status as published on the channel.

        "In-Progress", "in progress" and "IN_PROGRESS" all map to
        IN_PROGRESS; "Failed" and "Error" map to FAILURE.
        """
        if not value:
            return cls.NOT_STARTED
        key = _normalize(value)
        if key in ("failed", "error"):
            return cls.FAILURE
        for status in cls:
            if _normalize(status.value) == key:
                return status
        return cls.NOT_STARTED


class ErrorKind(str, Enum):
    """Source of an error surfaced to the user."""

    CALL_ERROR = "call_error"
    CHANNEL_ERROR = "channel_error"
    PIPELINE_FAILURE = "pipeline_failure"


class SubscriptionState(str, Enum):
    """Lifecycle of the event channel subscription."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RECONNECTING = "reconnecting"
