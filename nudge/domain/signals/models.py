"""Domain models for interest signals and affinity profiles."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from nudge.domain.proximity.models import Position

AFFINITY_PRIOR = 0.5
LIKE_BOOST = 0.2
MESSAGE_BOOST = 0.1
PASS_PENALTY = 0.3
MATCH_CONFIRMED_PROBABILITY = 0.9


class SignalKind(str, Enum):
	LIKE = "like"
	PASS = "pass"
	NUDGE = "nudge"

	def reciprocal(self) -> Optional["SignalKind"]:
		"""Kind that completes a match with this one, if any."""
		if self is SignalKind.PASS:
			return None
		return self


class InteractionKind(str, Enum):
	VIEWED = "viewed"
	LIKED = "liked"
	PASSED = "passed"
	NUDGED = "nudged"
	MATCHED = "matched"
	MESSAGED = "messaged"


SIGNAL_INTERACTIONS: Dict[SignalKind, InteractionKind] = {
	SignalKind.LIKE: InteractionKind.LIKED,
	SignalKind.PASS: InteractionKind.PASSED,
	SignalKind.NUDGE: InteractionKind.NUDGED,
}


@dataclass(frozen=True, slots=True)
class LocationContext:
	"""Where a nudge was sent from."""

	position: Position
	venue_name: Optional[str] = None
	distance_m: Optional[float] = None

	def to_dict(self) -> dict:
		return {
			"position": self.position.to_dict(),
			"venue_name": self.venue_name,
			"distance_m": self.distance_m,
		}


@dataclass(frozen=True, slots=True)
class Signal:
	seq: int
	from_actor: str
	to_actor: str
	kind: SignalKind
	created_at: datetime
	location_context: Optional[LocationContext] = None


@dataclass(frozen=True, slots=True)
class Interaction:
	actor_id: str
	target_id: str
	kind: InteractionKind
	occurred_at: datetime
	dwell_seconds: Optional[float] = None


@dataclass(slots=True)
class FrequentLocation:
	position: Position
	visit_count: int
	last_visit: datetime
	venue_name: Optional[str] = None


@dataclass(slots=True)
class AffinityProfile:
	"""Per-actor learned interest in other actors.

	``match_probability`` keeps only the latest computed value per target;
	it is a recency-weighted indicator rather than a calibrated probability.
	"""

	actor_id: str
	match_probability: Dict[str, float] = field(default_factory=dict)
	frequent_locations: List[FrequentLocation] = field(default_factory=list)
	updated_at: Optional[datetime] = None

	def probability_for(self, target_id: str, default: float = 0.0) -> float:
		return self.match_probability.get(target_id, default)


def apply_interaction(prior: float, kind: InteractionKind) -> Optional[float]:
	"""Return the updated probability, or None when the interaction has no effect."""
	if kind is InteractionKind.LIKED:
		return min(1.0, prior + LIKE_BOOST)
	if kind is InteractionKind.MATCHED:
		return MATCH_CONFIRMED_PROBABILITY
	if kind is InteractionKind.MESSAGED:
		return min(1.0, prior + MESSAGE_BOOST)
	if kind is InteractionKind.PASSED:
		return max(0.0, prior - PASS_PENALTY)
	return None
