"""FastAPI application entrypoint."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from nudge.api import discovery, matches, ops, presence, ranking, signals
from nudge.api.errors import install_error_handlers
from nudge.domain.proximity.sweeper import run_presence_sweeper
from nudge.domain.service import NudgeService
from nudge.infra import postgres
from nudge.obs import init as obs_init
from nudge.settings import settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
	service: NudgeService = app.state.nudge
	if settings.directory_backend == "postgres":
		await postgres.init_pool()
	worker_tasks: list[asyncio.Task] = []
	if settings.presence_sweep_interval_seconds > 0:
		worker_tasks.append(
			asyncio.create_task(
				run_presence_sweeper(service.registry, settings.presence_sweep_interval_seconds),
				name="presence-sweeper",
			)
		)
	try:
		yield
	finally:
		for task in worker_tasks:
			task.cancel()
		await asyncio.gather(*worker_tasks, return_exceptions=True)
		await service.close()
		await postgres.close_pool()


def create_app(service: Optional[NudgeService] = None) -> FastAPI:
	app = FastAPI(title="Nudge Matching Core", lifespan=lifespan)
	# Set eagerly: in-process test transports do not run the lifespan.
	app.state.nudge = service or NudgeService.build(settings)
	install_error_handlers(app)

	allow_origins = list(settings.cors_allow_origins)
	if not allow_origins and settings.is_dev():
		allow_origins = ["http://localhost:3000", "http://127.0.0.1:3000"]
	if allow_origins:
		app.add_middleware(
			CORSMiddleware,
			allow_origins=allow_origins,
			allow_credentials="*" not in allow_origins,
			allow_methods=["*"],
			allow_headers=["*"],
		)
	obs_init(app)

	app.include_router(presence.router)
	app.include_router(signals.router)
	app.include_router(matches.router)
	app.include_router(ranking.router)
	app.include_router(discovery.router)
	app.include_router(ops.router)
	logger.debug("nudge app created env=%s", settings.environment)
	return app


app = create_app()
