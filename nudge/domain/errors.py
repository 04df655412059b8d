"""Base class shared by every domain error."""

from __future__ import annotations


class NudgeError(Exception):
    """Base class for matching engine errors."""

    reason: str = "unknown"

    def __init__(self, reason: str | None = None) -> None:
        super().__init__(reason or self.reason)
        if reason:
            self.reason = reason
