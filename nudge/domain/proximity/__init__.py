"""Presence tracking and radius discovery for nudge mode."""
