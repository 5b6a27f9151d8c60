"""Errors raised by the timetable engine.

`InsufficientInputData` and `NoRoomAvailable` abort a run before any
population is built. `IllegalManualMove` is recoverable: the caller rejects
the edit and keeps the schedule as it was.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class SchedulingError(Exception):
    """Base class for scheduling errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class InsufficientInputData(SchedulingError):
    """Raised when one or more reference lists are empty."""

    def __init__(self, missing: tuple[str, ...]):
        super().__init__(
            f"Cannot build a timetable without: {', '.join(missing)}",
            details={"missing": list(missing)},
        )
        self.missing = missing


class NoRoomAvailable(SchedulingError):
    """Raised when no room of the type a subject needs was supplied."""

    def __init__(self, subject_id: str, room_type: str):
        super().__init__(
            f"No {room_type} room available for subject {subject_id}",
            details={"subject_id": subject_id, "room_type": room_type},
        )
        self.subject_id = subject_id
        self.room_type = room_type


class IllegalManualMove(SchedulingError):
    """Raised when a manual rearrangement would break a scheduling rule."""
