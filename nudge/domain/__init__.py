"""Domain components of the proximity matching engine."""
