"""Pydantic schemas for match listing endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field


class MatchSummary(BaseModel):
	id: str
	other_actor_id: str
	match_type: Literal["regular", "nudge"]
	created_at: datetime
	expires_at: Optional[datetime] = None
	expired: bool = False


class MatchList(BaseModel):
	items: list[MatchSummary] = Field(default_factory=list)


class MatchCreatedPayload(BaseModel):
	"""Match created by the signal that was just recorded."""

	match_id: str
	actor_a: str
	actor_b: str
	match_type: Literal["regular", "nudge"]
	created_at: datetime
	expires_at: Optional[datetime] = None
