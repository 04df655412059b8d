"""Candidate scoring."""
