"""Domain-level exceptions for presence and nearby discovery."""

from __future__ import annotations

from nudge.domain.errors import NudgeError


class ProximityError(NudgeError):
    """Base class for presence errors."""


class InvalidPosition(ProximityError):
    reason = "invalid_position"


class NotActive(ProximityError):
    reason = "not_active"
