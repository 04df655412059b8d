"""Domain models used by the presence registry."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping

from nudge.domain.proximity.exceptions import InvalidPosition

_WKT_POINT = re.compile(r"^\s*POINT\s*\(\s*(?P<lon>\S+)\s+(?P<lat>\S+)\s*\)\s*$", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class Position:
	"""A point on the Earth's surface in decimal degrees."""

	latitude: float
	longitude: float

	def __post_init__(self) -> None:
		for value in (self.latitude, self.longitude):
			if isinstance(value, bool) or not isinstance(value, (int, float)):
				raise InvalidPosition("non_numeric")
			if not math.isfinite(value):
				raise InvalidPosition("non_finite")
		if not -90.0 <= self.latitude <= 90.0:
			raise InvalidPosition("latitude_out_of_range")
		if not -180.0 <= self.longitude <= 180.0:
			raise InvalidPosition("longitude_out_of_range")

	@classmethod
	def parse(cls, value: Any) -> "Position":
		"""Normalise a boundary encoding into a Position.

		Accepted: a Position, a mapping with ``latitude``/``longitude`` (or
		``lat``/``lon``) keys, or a WKT ``"POINT(lng lat)"`` string. Bare
		two-element sequences are rejected because their axis order is ambiguous.
		"""
		if isinstance(value, Position):
			return value
		if isinstance(value, Mapping):
			lat = value.get("latitude", value.get("lat"))
			lon = value.get("longitude", value.get("lon"))
			if lat is None or lon is None:
				raise InvalidPosition("missing_coordinate")
			return cls(latitude=_as_float(lat), longitude=_as_float(lon))
		if isinstance(value, str):
			match = _WKT_POINT.match(value)
			if not match:
				raise InvalidPosition("unrecognised_encoding")
			return cls(latitude=_as_float(match.group("lat")), longitude=_as_float(match.group("lon")))
		raise InvalidPosition("unrecognised_encoding")

	def to_dict(self) -> dict:
		return {"latitude": self.latitude, "longitude": self.longitude}


def _as_float(raw: Any) -> float:
	if isinstance(raw, bool):
		raise InvalidPosition("non_numeric")
	try:
		return float(raw)
	except (TypeError, ValueError):
		raise InvalidPosition("non_numeric") from None


@dataclass(slots=True)
class PresenceEntry:
	"""An actor's current enrollment in nudge mode."""

	actor_id: str
	position: Position
	visibility: str
	entered_at: datetime
	last_renewed_at: datetime

	def is_stale(self, now: datetime, ttl_seconds: float) -> bool:
		return (now - self.last_renewed_at).total_seconds() > ttl_seconds


@dataclass(frozen=True, slots=True)
class NearbyCandidate:
	"""Anonymous view of a nearby actor returned to the requester."""

	actor_id: str
	distance_m: float
	visibility: str
	has_signaled_you: bool

	def to_dict(self) -> dict:
		return {
			"actor_id": self.actor_id,
			"distance_m": self.distance_m,
			"visibility": self.visibility,
			"has_signaled_you": self.has_signaled_you,
		}
