"""Pydantic schemas for signal endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from nudge.domain.matching.schemas import MatchCreatedPayload
from nudge.domain.proximity.schemas import PositionInput


class LocationContextInput(BaseModel):
	position: PositionInput
	venue_name: Optional[str] = Field(default=None, max_length=120)


class SignalPayload(BaseModel):
	"""Like, pass or nudge sent toward another actor."""

	to_actor_id: str = Field(..., min_length=1)
	kind: Literal["like", "pass", "nudge"]
	location: Optional[LocationContextInput] = None


class SignalResult(BaseModel):
	recorded: bool = True
	match: Optional[MatchCreatedPayload] = None


class InteractionPayload(BaseModel):
	target_id: str = Field(..., min_length=1)
	kind: Literal["viewed", "messaged"]
	dwell_seconds: Optional[float] = Field(default=None, ge=0)


class ReceivedNudge(BaseModel):
	from_actor_id: str
	sent_at: datetime
	venue_name: Optional[str] = None
	distance_m: Optional[float] = None


class ReceivedNudgeList(BaseModel):
	items: list[ReceivedNudge] = Field(default_factory=list)


class SentNudge(BaseModel):
	to_actor_id: str
	sent_at: datetime
	venue_name: Optional[str] = None
	distance_m: Optional[float] = None


class SentNudgeList(BaseModel):
	items: list[SentNudge] = Field(default_factory=list)
