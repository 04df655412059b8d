"""REST API surface for match listings."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from fastapi import APIRouter, Depends

from nudge.api.deps import get_actor_id, get_service
from nudge.domain.matching.models import Match
from nudge.domain.matching.schemas import MatchList, MatchSummary
from nudge.domain.service import NudgeService

router = APIRouter(prefix="/matches", tags=["matches"])


def _to_list(actor_id: str, matches: Iterable[Match], now: datetime) -> MatchList:
	return MatchList(
		items=[
			MatchSummary(
				id=match.id,
				other_actor_id=match.other(actor_id),
				match_type=match.match_type.value,
				created_at=match.created_at,
				expires_at=match.expires_at,
				expired=match.is_expired(now),
			)
			for match in matches
		]
	)


@router.get("", response_model=MatchList)
async def list_active(
	actor_id: str = Depends(get_actor_id),
	service: NudgeService = Depends(get_service),
) -> MatchList:
	return _to_list(actor_id, service.list_active_matches(actor_id), service.now())


@router.get("/history", response_model=MatchList)
async def list_history(
	actor_id: str = Depends(get_actor_id),
	service: NudgeService = Depends(get_service),
) -> MatchList:
	return _to_list(actor_id, service.list_match_history(actor_id), service.now())
