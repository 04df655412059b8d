"""Observability package bootstrap."""

from __future__ import annotations

from fastapi import FastAPI

from nudge.obs import logging as obs_logging
from nudge.obs import middleware
from nudge.settings import settings


def init(app: FastAPI) -> None:
	if getattr(app.state, "obs_initialised", False):
		return
	if not settings.obs_enabled:
		return
	obs_logging.configure_logging()
	middleware.install(app)
	app.state.obs_initialised = True


__all__ = ["init"]
