"""Domain-level exceptions for match creation."""

from __future__ import annotations

from nudge.domain.errors import NudgeError


class MatchError(NudgeError):
    """Base class for matching errors."""


class DuplicateMatchCandidate(MatchError):
    """An unexpired match already exists for the pair; resolved internally."""

    reason = "duplicate_match"

    def __init__(self, existing) -> None:
        super().__init__()
        self.existing = existing
