"""Directory Service adapters."""
