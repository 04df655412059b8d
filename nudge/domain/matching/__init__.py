"""Match lifecycle: creation, expiry and outbound events."""
