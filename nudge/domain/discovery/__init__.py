"""Ranked discovery feed."""
