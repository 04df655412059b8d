"""Domain models for matches and the events around them."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Tuple

NUDGE_MATCH_TTL = timedelta(hours=72)


class MatchType(str, Enum):
	REGULAR = "regular"
	NUDGE = "nudge"


def canonical_pair(actor_x: str, actor_y: str) -> Tuple[str, str]:
	"""Order an unordered pair with the lexicographically smaller id first."""
	return (actor_x, actor_y) if actor_x <= actor_y else (actor_y, actor_x)


@dataclass(frozen=True, slots=True)
class MatchCandidateEvent:
	"""Emitted by the signal ledger when two actors signal each other."""

	actor_a: str
	actor_b: str
	match_type: MatchType
	detected_at: Optional[datetime] = None

	@property
	def pair(self) -> Tuple[str, str]:
		return canonical_pair(self.actor_a, self.actor_b)


@dataclass(frozen=True, slots=True)
class Match:
	id: str
	actor_a: str
	actor_b: str
	created_at: datetime
	expires_at: Optional[datetime]
	match_type: MatchType

	@property
	def pair(self) -> Tuple[str, str]:
		return (self.actor_a, self.actor_b)

	def is_expired(self, now: datetime) -> bool:
		return self.expires_at is not None and now > self.expires_at

	def other(self, actor_id: str) -> str:
		if actor_id == self.actor_a:
			return self.actor_b
		if actor_id == self.actor_b:
			return self.actor_a
		raise ValueError(f"{actor_id} is not part of match {self.id}")

	def to_dict(self) -> dict:
		return {
			"id": self.id,
			"actor_a": self.actor_a,
			"actor_b": self.actor_b,
			"created_at": self.created_at.isoformat(),
			"expires_at": self.expires_at.isoformat() if self.expires_at else None,
			"match_type": self.match_type.value,
		}


@dataclass(frozen=True, slots=True)
class MatchCreatedEvent:
	"""Handed to the notification channel once a match exists."""

	match: Match
	emitted_at: datetime

	@property
	def event(self) -> str:
		return "match.created"

	def to_dict(self) -> dict:
		payload = self.match.to_dict()
		payload["match_id"] = payload.pop("id")
		payload["event"] = self.event
		payload["emitted_at"] = self.emitted_at.isoformat()
		return payload


@dataclass(frozen=True, slots=True)
class MatchResolution:
	match: Match
	created: bool
	event: Optional[MatchCreatedEvent] = None
