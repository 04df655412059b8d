"""Service facade wiring the presence, signal, match and ranking components."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Iterable, List, Optional, Sequence

from nudge.domain.directory.models import ActorNotFound
from nudge.domain.directory.repo import DirectoryService, build_directory
from nudge.domain.discovery.service import FeedItem, build_feed
from nudge.domain.matching.engine import MatchEngine
from nudge.domain.matching.events import EventPublisher, QueueOutbox, RedisStreamPublisher
from nudge.domain.matching.models import Match, MatchCreatedEvent
from nudge.domain.proximity.geo import GeoIndex, distance_m
from nudge.domain.proximity.models import NearbyCandidate, Position, PresenceEntry
from nudge.domain.proximity.registry import PresenceRegistry
from nudge.domain.ranking.engine import RankingEngine
from nudge.domain.signals.ledger import SignalLedger
from nudge.domain.signals.models import Interaction, InteractionKind, LocationContext, Signal, SignalKind
from nudge.infra.clock import Clock, utcnow
from nudge.settings import Settings, settings as default_settings


class NudgeService:
	"""The call contract exposed to the HTTP layer.

	Components are injected; ``build`` assembles them from settings.
	"""

	def __init__(
		self,
		*,
		registry: PresenceRegistry,
		ledger: SignalLedger,
		engine: MatchEngine,
		ranking: RankingEngine,
		directory: DirectoryService,
		outbox: Optional[QueueOutbox] = None,
		hide_passed: bool = True,
		ranking_seed: Optional[int] = None,
		feed_limit: int = 50,
		clock: Clock = utcnow,
	) -> None:
		self.registry = registry
		self.ledger = ledger
		self.engine = engine
		self.ranking = ranking
		self.directory = directory
		self.outbox = outbox
		self.hide_passed = hide_passed
		self.ranking_seed = ranking_seed
		self.feed_limit = feed_limit
		self._clock = clock

	@classmethod
	def build(
		cls,
		config: Optional[Settings] = None,
		*,
		directory: Optional[DirectoryService] = None,
		publisher: Optional[EventPublisher] = None,
		clock: Clock = utcnow,
	) -> "NudgeService":
		config = config or default_settings
		ledger = SignalLedger(
			affinity_window=config.affinity_window,
			cluster_m=config.frequent_location_cluster_m,
			clock=clock,
		)
		registry = PresenceRegistry(
			geo_index=GeoIndex(),
			ledger=ledger,
			min_radius_m=config.nearby_min_radius_m,
			max_radius_m=config.nearby_max_radius_m,
			stale_seconds=config.presence_stale_seconds,
			edge_tolerance_m=config.nearby_edge_tolerance_m,
			clock=clock,
		)
		if publisher is None:
			if config.events_redis_enabled:
				publisher = RedisStreamPublisher(config.events_stream)
			else:
				publisher = QueueOutbox(maxsize=max(1, config.events_outbox_maxsize))
		outbox = publisher if isinstance(publisher, QueueOutbox) else None
		engine = MatchEngine(
			ledger=ledger,
			publisher=publisher,
			nudge_match_ttl=timedelta(hours=config.nudge_match_ttl_hours),
			clock=clock,
		)
		return cls(
			registry=registry,
			ledger=ledger,
			engine=engine,
			ranking=RankingEngine(clock=clock),
			directory=directory or build_directory(config.directory_backend),
			outbox=outbox,
			hide_passed=config.nearby_hide_passed,
			ranking_seed=config.ranking_seed,
			feed_limit=config.discovery_feed_limit,
			clock=clock,
		)

	def now(self) -> datetime:
		return self._clock()

	async def activate_presence(self, actor_id: str, position: Any, visibility: str) -> PresenceEntry:
		entry = await self.registry.activate(actor_id, position, visibility.strip().lower())
		await self.ledger.record_visit(actor_id, entry.position)
		return entry

	async def renew_presence(self, actor_id: str, position: Any = None) -> PresenceEntry:
		return await self.registry.renew(actor_id, position)

	async def deactivate_presence(self, actor_id: str) -> None:
		await self.registry.deactivate(actor_id)

	async def query_nearby(
		self,
		actor_id: str,
		radius_m: float,
		gender_filter: Optional[Iterable[str]] = None,
	) -> List[NearbyCandidate]:
		"""Nearby actors for ``actor_id``.

		Without an explicit filter the requester's interested-in categories
		from the directory apply; unknown actors see everyone.
		"""
		if gender_filter is None:
			gender_filter = await self._interested_in(actor_id)
		else:
			gender_filter = {value.strip().lower() for value in gender_filter}
		results = await self.registry.query_nearby(actor_id, radius_m, gender_filter)
		if self.hide_passed:
			passed = self.ledger.passed_targets(actor_id)
			if passed:
				results = [candidate for candidate in results if candidate.actor_id not in passed]
		return results

	async def record_signal(
		self,
		from_actor: str,
		to_actor: str,
		kind: SignalKind | str,
		location_context: Optional[LocationContext] = None,
	) -> Optional[MatchCreatedEvent]:
		"""Record a signal; returns the created match event when it completes a pair."""
		kind = SignalKind(kind)
		if kind is SignalKind.NUDGE and location_context is None:
			location_context = self._nudge_context(from_actor, to_actor)
		candidate = await self.ledger.record_signal(from_actor, to_actor, kind, location_context)
		if candidate is None:
			return None
		resolution = await self.engine.resolve_candidate(candidate)
		return resolution.event if resolution.created else None

	async def track_interaction(
		self,
		actor_id: str,
		target_id: str,
		kind: InteractionKind | str,
		*,
		dwell_seconds: Optional[float] = None,
	) -> Interaction:
		return await self.ledger.track_interaction(actor_id, target_id, kind, dwell_seconds=dwell_seconds)

	def list_active_matches(self, actor_id: str) -> List[Match]:
		return self.engine.list_active_matches(actor_id)

	def list_match_history(self, actor_id: str) -> List[Match]:
		return self.engine.list_matches(actor_id)

	def received_nudges(self, actor_id: str, *, pending_only: bool = True) -> List[Signal]:
		return self.ledger.received_nudges(actor_id, pending_only=pending_only)

	def sent_nudges(self, actor_id: str) -> List[Signal]:
		return self.ledger.sent_nudges(actor_id)

	async def rank_candidates(
		self,
		actor_id: str,
		candidates: Sequence[str],
		*,
		seed: Optional[int] = None,
	) -> List[str]:
		"""Order ``candidates`` for ``actor_id`` using stored affinity and current positions."""
		unique = list(dict.fromkeys(c for c in candidates if c != actor_id))
		profiles = await self.directory.get_profiles([actor_id, *unique])
		requester_position = self._position_of(actor_id, profiles.get(actor_id))
		positions = {}
		for candidate in unique:
			position = self._position_of(candidate, profiles.get(candidate))
			if position is not None:
				positions[candidate] = position
		last_active = {
			candidate: profiles[candidate].last_active
			for candidate in unique
			if candidate in profiles and profiles[candidate].last_active is not None
		}
		return self.ranking.rank(
			actor_id,
			unique,
			requester_position,
			positions,
			self.ledger.get_profile(actor_id),
			last_active=last_active,
			seed=self.ranking_seed if seed is None else seed,
		)

	async def discovery_feed(
		self,
		actor_id: str,
		*,
		limit: Optional[int] = None,
		seed: Optional[int] = None,
	) -> List[FeedItem]:
		requester = await self.directory.get_profile(actor_id)
		return await build_feed(
			requester,
			directory=self.directory,
			registry=self.registry,
			ledger=self.ledger,
			ranking=self.ranking,
			limit=limit or self.feed_limit,
			seed=self.ranking_seed if seed is None else seed,
		)

	async def close(self) -> None:
		await self.ledger.drain()

	async def _interested_in(self, actor_id: str) -> Optional[frozenset]:
		try:
			profile = await self.directory.get_profile(actor_id)
		except ActorNotFound:
			return None
		return profile.preferences.interested_in or None

	def _position_of(self, actor_id: str, profile) -> Optional[Position]:
		entry = self.registry.get(actor_id)
		if entry is not None:
			return entry.position
		return profile.approximate_location if profile is not None else None

	def _nudge_context(self, from_actor: str, to_actor: str) -> Optional[LocationContext]:
		sender = self.registry.get(from_actor)
		if sender is None:
			return None
		receiver = self.registry.get(to_actor)
		dist = distance_m(sender.position, receiver.position) if receiver is not None else None
		return LocationContext(position=sender.position, distance_m=dist)


__all__ = ["NudgeService"]
