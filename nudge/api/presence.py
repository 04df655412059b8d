"""REST API surface for nudge-mode presence."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from nudge.api.deps import get_actor_id, get_service
from nudge.domain.proximity.exceptions import InvalidPosition, NotActive
from nudge.domain.proximity.models import PresenceEntry
from nudge.domain.proximity.schemas import (
	ActivatePayload,
	NearbyActor,
	NearbyResponse,
	PresenceSummary,
	RenewPayload,
)
from nudge.domain.service import NudgeService

router = APIRouter(prefix="/presence", tags=["presence"])


def _map_error(exc: Exception) -> HTTPException:
	if isinstance(exc, InvalidPosition):
		return HTTPException(status.HTTP_400_BAD_REQUEST, detail=exc.reason)
	if isinstance(exc, NotActive):
		return HTTPException(status.HTTP_409_CONFLICT, detail=exc.reason)
	return HTTPException(status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _summary(entry: PresenceEntry) -> PresenceSummary:
	return PresenceSummary(
		actor_id=entry.actor_id,
		visibility=entry.visibility,
		entered_at=entry.entered_at,
		last_renewed_at=entry.last_renewed_at,
	)


@router.post("/activate", response_model=PresenceSummary)
async def activate(
	payload: ActivatePayload,
	actor_id: str = Depends(get_actor_id),
	service: NudgeService = Depends(get_service),
) -> PresenceSummary:
	try:
		entry = await service.activate_presence(actor_id, payload.position, payload.visibility)
	except InvalidPosition as exc:
		raise _map_error(exc) from None
	return _summary(entry)


@router.post("/renew", response_model=PresenceSummary)
async def renew(
	payload: RenewPayload,
	actor_id: str = Depends(get_actor_id),
	service: NudgeService = Depends(get_service),
) -> PresenceSummary:
	try:
		entry = await service.renew_presence(actor_id, payload.position)
	except (InvalidPosition, NotActive) as exc:
		raise _map_error(exc) from None
	return _summary(entry)


@router.post("/deactivate", status_code=status.HTTP_204_NO_CONTENT)
async def deactivate(
	actor_id: str = Depends(get_actor_id),
	service: NudgeService = Depends(get_service),
) -> None:
	await service.deactivate_presence(actor_id)


@router.get("/nearby", response_model=NearbyResponse)
async def nearby(
	radius_m: float = Query(default=50.0, gt=0),
	gender: Optional[List[str]] = Query(default=None),
	actor_id: str = Depends(get_actor_id),
	service: NudgeService = Depends(get_service),
) -> NearbyResponse:
	try:
		results = await service.query_nearby(actor_id, radius_m, gender)
	except NotActive as exc:
		raise _map_error(exc) from None
	items = [NearbyActor(**candidate.to_dict()) for candidate in results]
	return NearbyResponse(radius_m=service.registry.clamp_radius(radius_m), items=items)
