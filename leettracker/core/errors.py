"""Domain errors raised by the tracker services."""

from typing import Any


class TrackerError(Exception):
    """Base class for all tracker errors"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class InvalidTimezone(TrackerError):
    """Raised when a timezone name is not a known IANA zone"""


# Submission source
class SourceError(TrackerError):
    """Base for failures talking to LeetCode"""


class SourceUnavailable(SourceError):
    """Transport failure, timeout or non-2xx response"""


class SourceProtocolError(SourceError):
    """Response arrived but could not be understood"""


# Persistence
class StoreError(TrackerError):
    """Raised when the database driver fails"""


# Lookups and registration
class DuplicateUser(TrackerError):
    """Raised when a username is already tracked in the same room"""


class RoomNotFound(TrackerError):
    """Raised when no room has the given code or id"""


class UserNotFound(TrackerError):
    """Raised when a tracked user (or LeetCode profile) does not exist"""
