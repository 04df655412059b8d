"""Pydantic schemas for the ranking endpoint."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class RankRequest(BaseModel):
	candidates: list[str] = Field(default_factory=list, max_length=500)
	seed: Optional[int] = None


class RankResponse(BaseModel):
	items: list[str] = Field(default_factory=list)
