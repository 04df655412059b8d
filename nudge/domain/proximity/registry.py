"""In-process registry of actors currently active in nudge mode."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from nudge.domain.proximity.exceptions import InvalidPosition, NotActive
from nudge.domain.proximity.geo import GeoIndex
from nudge.domain.proximity.models import NearbyCandidate, Position, PresenceEntry
from nudge.domain.signals.models import SignalKind
from nudge.infra.clock import Clock, utcnow
from nudge.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

DEFAULT_MIN_RADIUS_M = 20.0
DEFAULT_MAX_RADIUS_M = 50.0
DEFAULT_STALE_SECONDS = 15.0
DEFAULT_EDGE_TOLERANCE_M = 1.0

_SIGNALED_KINDS = frozenset({SignalKind.NUDGE, SignalKind.LIKE})


class PresenceRegistry:
	"""Tracks presence entries and answers clamped radius queries.

	Every mutation, including lazy staleness eviction, happens under a single
	lock so that concurrent activate/deactivate calls for one actor always
	leave either a full entry or none.
	"""

	def __init__(
		self,
		*,
		geo_index: Optional[GeoIndex] = None,
		ledger: Any = None,
		min_radius_m: float = DEFAULT_MIN_RADIUS_M,
		max_radius_m: float = DEFAULT_MAX_RADIUS_M,
		stale_seconds: float = DEFAULT_STALE_SECONDS,
		edge_tolerance_m: float = DEFAULT_EDGE_TOLERANCE_M,
		clock: Clock = utcnow,
	) -> None:
		if min_radius_m <= 0 or max_radius_m < min_radius_m:
			raise ValueError("radius band must satisfy 0 < min <= max")
		self._geo = geo_index or GeoIndex()
		self._ledger = ledger
		self._entries: Dict[str, PresenceEntry] = {}
		self._lock = asyncio.Lock()
		self.min_radius_m = float(min_radius_m)
		self.max_radius_m = float(max_radius_m)
		self.stale_seconds = float(stale_seconds)
		self.edge_tolerance_m = max(0.0, float(edge_tolerance_m))
		self._clock = clock

	def __len__(self) -> int:
		return len(self._entries)

	def clamp_radius(self, radius_m: float) -> float:
		return min(self.max_radius_m, max(self.min_radius_m, float(radius_m)))

	def get(self, actor_id: str) -> Optional[PresenceEntry]:
		entry = self._entries.get(actor_id)
		if entry is None or entry.is_stale(self._clock(), self.stale_seconds):
			return None
		return entry

	def is_active(self, actor_id: str) -> bool:
		return self.get(actor_id) is not None

	async def activate(self, actor_id: str, position: Any, visibility: str) -> PresenceEntry:
		"""Enter nudge mode, replacing any existing entry for the actor."""
		try:
			parsed = Position.parse(position)
		except InvalidPosition:
			obs_metrics.inc_presence_activation("invalid")
			raise
		now = self._clock()
		async with self._lock:
			existing = self._entries.get(actor_id)
			if existing is not None and not existing.is_stale(now, self.stale_seconds):
				existing.position = parsed
				existing.visibility = visibility
				existing.last_renewed_at = now
				self._geo.update(actor_id, parsed)
				entry = existing
				result = "refreshed"
			else:
				entry = PresenceEntry(
					actor_id=actor_id,
					position=parsed,
					visibility=visibility,
					entered_at=now,
					last_renewed_at=now,
				)
				self._entries[actor_id] = entry
				self._geo.insert(actor_id, parsed)
				result = "ok"
			obs_metrics.set_presence_active(len(self._entries))
		obs_metrics.inc_presence_activation(result)
		logger.debug("presence activated actor=%s result=%s", actor_id, result)
		return entry

	async def renew(self, actor_id: str, position: Any = None) -> PresenceEntry:
		"""Refresh liveness and optionally move the actor."""
		parsed = Position.parse(position) if position is not None else None
		now = self._clock()
		async with self._lock:
			entry = self._entries.get(actor_id)
			if entry is None:
				raise NotActive()
			if entry.is_stale(now, self.stale_seconds):
				self._drop(actor_id)
				obs_metrics.inc_presence_eviction("stale")
				raise NotActive()
			if parsed is not None:
				entry.position = parsed
				self._geo.update(actor_id, parsed)
			entry.last_renewed_at = now
			return entry

	async def deactivate(self, actor_id: str) -> bool:
		"""Leave nudge mode. Returns False when the actor was not active."""
		async with self._lock:
			removed = self._drop(actor_id)
		if removed:
			obs_metrics.inc_presence_eviction("deactivate")
		return removed

	async def evict_stale(self, now: Optional[datetime] = None) -> List[str]:
		async with self._lock:
			evicted = self._evict_locked(now or self._clock())
		if evicted:
			logger.debug("presence evicted %s stale entries", len(evicted))
		return evicted

	async def query_nearby(
		self,
		actor_id: str,
		radius_m: float,
		gender_filter: Optional[Iterable[str]] = None,
	) -> List[NearbyCandidate]:
		"""Return other active actors within the clamped radius.

		``gender_filter`` of None disables visibility filtering; any other
		collection restricts results to those visibility attributes.
		"""
		radius = self.clamp_radius(radius_m)
		allowed = None if gender_filter is None else frozenset(gender_filter)
		async with self._lock:
			self._evict_locked(self._clock())
			entry = self._entries.get(actor_id)
			if entry is None:
				raise NotActive()
			# Includes candidates up to edge_tolerance_m past the band edge.
			hits = self._geo.query_within_radius(entry.position, radius + self.edge_tolerance_m)
			results: List[NearbyCandidate] = []
			for other_id, dist in hits:
				if other_id == actor_id:
					continue
				other = self._entries.get(other_id)
				if other is None:
					continue
				if allowed is not None and other.visibility not in allowed:
					continue
				results.append(
					NearbyCandidate(
						actor_id=other_id,
						distance_m=dist,
						visibility=other.visibility,
						has_signaled_you=self._has_signaled(other_id, actor_id),
					)
				)
		obs_metrics.inc_nearby_query(radius, len(results))
		return results

	def _has_signaled(self, from_actor: str, to_actor: str) -> bool:
		if self._ledger is None:
			return False
		return self._ledger.has_signaled(from_actor, to_actor, kinds=_SIGNALED_KINDS)

	def _drop(self, actor_id: str) -> bool:
		entry = self._entries.pop(actor_id, None)
		self._geo.remove(actor_id)
		obs_metrics.set_presence_active(len(self._entries))
		return entry is not None

	def _evict_locked(self, now: datetime) -> List[str]:
		stale = [actor_id for actor_id, entry in self._entries.items() if entry.is_stale(now, self.stale_seconds)]
		for actor_id in stale:
			self._drop(actor_id)
		obs_metrics.inc_presence_eviction("stale", len(stale))
		return stale


__all__ = [
	"DEFAULT_EDGE_TOLERANCE_M",
	"DEFAULT_MAX_RADIUS_M",
	"DEFAULT_MIN_RADIUS_M",
	"DEFAULT_STALE_SECONDS",
	"PresenceRegistry",
]
