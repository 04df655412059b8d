"""REST API surface for likes, passes, nudges and passive interactions."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from nudge.api.deps import get_actor_id, get_service
from nudge.domain.matching.models import MatchCreatedEvent
from nudge.domain.matching.schemas import MatchCreatedPayload
from nudge.domain.proximity.exceptions import InvalidPosition
from nudge.domain.proximity.models import Position
from nudge.domain.service import NudgeService
from nudge.domain.signals.exceptions import SelfSignalError
from nudge.domain.signals.models import LocationContext
from nudge.domain.signals.schemas import (
	InteractionPayload,
	ReceivedNudge,
	ReceivedNudgeList,
	SentNudge,
	SentNudgeList,
	SignalPayload,
	SignalResult,
)

router = APIRouter(prefix="/signals", tags=["signals"])


def _map_error(exc: Exception) -> HTTPException:
	if isinstance(exc, (SelfSignalError, InvalidPosition)):
		return HTTPException(status.HTTP_400_BAD_REQUEST, detail=exc.reason)
	return HTTPException(status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _match_payload(event: MatchCreatedEvent) -> MatchCreatedPayload:
	match = event.match
	return MatchCreatedPayload(
		match_id=match.id,
		actor_a=match.actor_a,
		actor_b=match.actor_b,
		match_type=match.match_type.value,
		created_at=match.created_at,
		expires_at=match.expires_at,
	)


@router.post("", response_model=SignalResult)
async def record_signal(
	payload: SignalPayload,
	actor_id: str = Depends(get_actor_id),
	service: NudgeService = Depends(get_service),
) -> SignalResult:
	try:
		context = None
		if payload.location is not None:
			context = LocationContext(
				position=Position.parse(payload.location.position),
				venue_name=payload.location.venue_name,
			)
		event = await service.record_signal(actor_id, payload.to_actor_id, payload.kind, context)
	except (SelfSignalError, InvalidPosition) as exc:
		raise _map_error(exc) from None
	if event is None:
		return SignalResult()
	return SignalResult(match=_match_payload(event))


@router.post("/interactions", status_code=status.HTTP_202_ACCEPTED)
async def track_interaction(
	payload: InteractionPayload,
	actor_id: str = Depends(get_actor_id),
	service: NudgeService = Depends(get_service),
) -> dict:
	try:
		await service.track_interaction(
			actor_id,
			payload.target_id,
			payload.kind,
			dwell_seconds=payload.dwell_seconds,
		)
	except SelfSignalError as exc:
		raise _map_error(exc) from None
	return {"status": "accepted"}


@router.get("/nudges/received", response_model=ReceivedNudgeList)
async def received_nudges(
	pending_only: bool = Query(default=True),
	actor_id: str = Depends(get_actor_id),
	service: NudgeService = Depends(get_service),
) -> ReceivedNudgeList:
	items = []
	for signal in service.received_nudges(actor_id, pending_only=pending_only):
		context = signal.location_context
		items.append(
			ReceivedNudge(
				from_actor_id=signal.from_actor,
				sent_at=signal.created_at,
				venue_name=context.venue_name if context else None,
				distance_m=context.distance_m if context else None,
			)
		)
	return ReceivedNudgeList(items=items)


@router.get("/nudges/sent", response_model=SentNudgeList)
async def sent_nudges(
	actor_id: str = Depends(get_actor_id),
	service: NudgeService = Depends(get_service),
) -> SentNudgeList:
	items = []
	for signal in service.sent_nudges(actor_id):
		context = signal.location_context
		items.append(
			SentNudge(
				to_actor_id=signal.to_actor,
				sent_at=signal.created_at,
				venue_name=context.venue_name if context else None,
				distance_m=context.distance_m if context else None,
			)
		)
	return SentNudgeList(items=items)
