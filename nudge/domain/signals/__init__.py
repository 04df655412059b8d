"""Signal ledger, reciprocity detection and affinity profiles."""
