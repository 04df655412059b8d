"""Proximity-based ephemeral matching service."""
