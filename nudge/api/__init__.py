"""HTTP surface for the nudge matching service."""
