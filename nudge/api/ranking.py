"""REST API surface for on-demand candidate ranking."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from nudge.api.deps import get_actor_id, get_service
from nudge.domain.ranking.schemas import RankRequest, RankResponse
from nudge.domain.service import NudgeService

router = APIRouter(prefix="/ranking", tags=["ranking"])


@router.post("", response_model=RankResponse)
async def rank_candidates(
	payload: RankRequest,
	actor_id: str = Depends(get_actor_id),
	service: NudgeService = Depends(get_service),
) -> RankResponse:
	ordered = await service.rank_candidates(actor_id, payload.candidates, seed=payload.seed)
	return RankResponse(items=ordered)
