"""REST API surface for the ranked discovery feed."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from nudge.api.deps import get_actor_id, get_service
from nudge.domain.directory.models import ActorNotFound
from nudge.domain.discovery.schemas import DiscoveryCard, DiscoveryFeedResponse
from nudge.domain.service import NudgeService

router = APIRouter(prefix="/discovery", tags=["discovery"])


def _map_error(exc: Exception) -> HTTPException:
	if isinstance(exc, ActorNotFound):
		return HTTPException(status.HTTP_404_NOT_FOUND, detail=exc.reason)
	return HTTPException(status.HTTP_400_BAD_REQUEST, detail=str(exc))


@router.get("/feed", response_model=DiscoveryFeedResponse)
async def feed(
	limit: Optional[int] = Query(default=None, ge=1, le=200),
	seed: Optional[int] = Query(default=None),
	actor_id: str = Depends(get_actor_id),
	service: NudgeService = Depends(get_service),
) -> DiscoveryFeedResponse:
	try:
		items = await service.discovery_feed(actor_id, limit=limit, seed=seed)
	except ActorNotFound as exc:
		raise _map_error(exc) from None
	cards = [
		DiscoveryCard(
			actor_id=item.actor_id,
			distance_m=item.distance_m,
			age=item.age,
			gender=item.gender,
			last_active=item.last_active,
		)
		for item in items
	]
	return DiscoveryFeedResponse(items=cards, exhausted=len(cards) < (limit or service.feed_limit))
