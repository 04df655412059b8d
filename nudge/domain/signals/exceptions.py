"""Domain-level exceptions for the signal ledger."""

from __future__ import annotations

from nudge.domain.errors import NudgeError


class SignalError(NudgeError):
    """Base class for signal ledger errors."""


class SelfSignalError(SignalError):
    reason = "self_signal"


class AffinityUpdateFailed(SignalError):
    """Raised inside the background affinity refresh; logged, never surfaced."""

    reason = "affinity_update_failed"
