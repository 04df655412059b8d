"""Pydantic schemas for the discovery feed."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class DiscoveryCard(BaseModel):
	actor_id: str
	distance_m: float = Field(..., ge=0)
	age: Optional[int] = None
	gender: Optional[str] = None
	last_active: Optional[datetime] = None


class DiscoveryFeedResponse(BaseModel):
	items: list[DiscoveryCard] = Field(default_factory=list)
	exhausted: bool = False
