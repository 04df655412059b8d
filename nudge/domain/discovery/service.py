"""Discovery feed: directory candidates filtered by preferences, then ranked."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from nudge.domain.directory.models import DirectoryProfile
from nudge.domain.directory.repo import DirectoryService
from nudge.domain.proximity.geo import distance_m
from nudge.domain.proximity.models import Position
from nudge.domain.proximity.registry import PresenceRegistry
from nudge.domain.ranking.engine import RankingEngine
from nudge.domain.signals.ledger import SignalLedger

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FeedItem:
	actor_id: str
	distance_m: float
	age: Optional[int]
	gender: Optional[str]
	last_active: Optional[datetime]


def _position_for(profile: DirectoryProfile, registry: PresenceRegistry) -> Optional[Position]:
	entry = registry.get(profile.actor_id)
	if entry is not None:
		return entry.position
	return profile.approximate_location


async def build_feed(
	requester: DirectoryProfile,
	*,
	directory: DirectoryService,
	registry: PresenceRegistry,
	ledger: SignalLedger,
	ranking: RankingEngine,
	limit: int = 50,
	seed: Optional[int] = None,
	now: Optional[datetime] = None,
) -> List[FeedItem]:
	"""Return up to ``limit`` ranked candidates for ``requester``.

	Candidates must fit the requester's age range and interested-in set, lie
	within the distance cap, and not have been liked or passed before.
	"""
	origin = _position_for(requester, registry)
	if origin is None:
		logger.debug("discovery feed skipped for actor=%s (no location)", requester.actor_id)
		return []

	cap_m = requester.preferences.max_distance_km * 1000.0
	judged = ledger.judged_targets(requester.actor_id)
	# Over-fetch; distance and history filters drop part of the page.
	pool = await directory.search_candidates(requester, limit=max(limit * 3, 20))

	positions: Dict[str, Position] = {}
	kept: Dict[str, FeedItem] = {}
	for profile in pool:
		if profile.actor_id == requester.actor_id or profile.actor_id in judged:
			continue
		position = _position_for(profile, registry)
		if position is None:
			continue
		dist = distance_m(origin, position)
		if dist > cap_m:
			continue
		positions[profile.actor_id] = position
		kept[profile.actor_id] = FeedItem(
			actor_id=profile.actor_id,
			distance_m=dist,
			age=profile.age,
			gender=profile.gender,
			last_active=profile.last_active,
		)

	last_active = {actor_id: item.last_active for actor_id, item in kept.items() if item.last_active}
	ordered = ranking.rank(
		requester.actor_id,
		list(kept),
		origin,
		positions,
		ledger.get_profile(requester.actor_id),
		last_active=last_active,
		seed=seed,
		now=now,
	)
	return [kept[actor_id] for actor_id in ordered[:limit]]


__all__ = ["FeedItem", "build_feed"]
