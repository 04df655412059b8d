"""Profile projections supplied by the Directory Service."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import FrozenSet, Mapping, Optional

from nudge.domain.errors import NudgeError
from nudge.domain.proximity.models import Position


class ActorNotFound(NudgeError):
	reason = "actor_not_found"


def _coerce(kind, value, default):
	"""``kind(value)``, or ``default`` when the value is missing or malformed."""
	if value is None or isinstance(value, bool):
		return default
	try:
		return kind(value)
	except (TypeError, ValueError):
		return default


@dataclass(frozen=True, slots=True)
class DirectoryPreferences:
	min_age: int = 18
	max_age: int = 99
	max_distance_km: float = 50.0
	interested_in: FrozenSet[str] = field(default_factory=frozenset)

	@classmethod
	def from_mapping(cls, raw: Optional[Mapping]) -> "DirectoryPreferences":
		if not raw:
			return cls()
		interested = raw.get("interested_in") or raw.get("interestedIn") or ()
		if isinstance(interested, str):
			interested = [interested]
		defaults = cls()
		return cls(
			min_age=_coerce(int, raw.get("min_age", raw.get("minAge")), defaults.min_age),
			max_age=_coerce(int, raw.get("max_age", raw.get("maxAge")), defaults.max_age),
			max_distance_km=_coerce(float, raw.get("max_distance_km", raw.get("maxDistance")), defaults.max_distance_km),
			interested_in=frozenset(str(value).lower() for value in interested),
		)

	def accepts_age(self, age: Optional[int]) -> bool:
		return age is not None and self.min_age <= age <= self.max_age

	def accepts_category(self, category: Optional[str]) -> bool:
		if not self.interested_in:
			return True
		return category is not None and category.lower() in self.interested_in


@dataclass(frozen=True, slots=True)
class DirectoryProfile:
	"""What the core needs to know about an actor; everything else lives upstream."""

	actor_id: str
	age: Optional[int] = None
	gender: Optional[str] = None
	preferences: DirectoryPreferences = field(default_factory=DirectoryPreferences)
	last_active: Optional[datetime] = None
	approximate_location: Optional[Position] = None

	def is_compatible_with(self, other: "DirectoryProfile") -> bool:
		"""True when ``other`` fits this actor's age range and interested-in set."""
		return self.preferences.accepts_age(other.age) and self.preferences.accepts_category(other.gender)
