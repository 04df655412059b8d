"""Operations endpoints providing health checks and metrics."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from nudge.api.deps import get_service
from nudge.domain.service import NudgeService
from nudge.obs import health

router = APIRouter(prefix="", tags=["ops"])


@router.get("/health/live")
async def health_live() -> dict:
	return await health.liveness()


@router.get("/health/ready")
async def health_ready(service: NudgeService = Depends(get_service)) -> JSONResponse:
	status_code, payload = await health.readiness(len(service.registry))
	return JSONResponse(status_code=status_code, content=payload)


@router.get("/metrics")
async def metrics_endpoint() -> Response:
	return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
