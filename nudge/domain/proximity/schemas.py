"""Pydantic schemas for presence endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional, Union

from pydantic import BaseModel, Field


PositionInput = Union[Dict[str, float], str]


class ActivatePayload(BaseModel):
	"""Body sent when an actor enters nudge mode."""

	# Mapping with latitude/longitude keys or a WKT "POINT(lng lat)" string.
	position: PositionInput
	visibility: str = Field(..., min_length=1, max_length=32)


class RenewPayload(BaseModel):
	position: Optional[PositionInput] = None


class PresenceSummary(BaseModel):
	actor_id: str
	visibility: str
	entered_at: datetime
	last_renewed_at: datetime


class NearbyActor(BaseModel):
	actor_id: str
	distance_m: float = Field(..., ge=0)
	visibility: str
	has_signaled_you: bool = False


class NearbyResponse(BaseModel):
	radius_m: float
	items: list[NearbyActor] = Field(default_factory=list)
