"""Match creation with at-most-one-active-match-per-pair semantics."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from nudge.domain.matching.events import EventPublisher
from nudge.domain.matching.exceptions import DuplicateMatchCandidate
from nudge.domain.matching.models import (
	NUDGE_MATCH_TTL,
	Match,
	MatchCandidateEvent,
	MatchCreatedEvent,
	MatchResolution,
	MatchType,
	canonical_pair,
)
from nudge.infra.clock import Clock, utcnow
from nudge.infra.locks import KeyedLock
from nudge.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


class MatchEngine:
	"""Sole owner of the match lifecycle.

	The check-then-create sequence for a canonical pair runs under a per-pair
	lock, and the insert itself refuses a second unexpired match for the pair.
	Expiry is evaluated lazily on every read.
	"""

	def __init__(
		self,
		*,
		ledger: Any = None,
		publisher: Optional[EventPublisher] = None,
		nudge_match_ttl: timedelta = NUDGE_MATCH_TTL,
		clock: Clock = utcnow,
	) -> None:
		self._ledger = ledger
		self._publisher = publisher
		self._nudge_ttl = nudge_match_ttl
		self._clock = clock
		self._pair_locks = KeyedLock()
		self._matches: Dict[str, Match] = {}
		self._active_by_pair: Dict[Tuple[str, str], str] = {}
		self._by_actor: Dict[str, List[str]] = {}

	def __len__(self) -> int:
		return len(self._matches)

	async def handle_candidate(self, event: MatchCandidateEvent) -> Match:
		resolution = await self.resolve_candidate(event)
		return resolution.match

	async def resolve_candidate(self, event: MatchCandidateEvent) -> MatchResolution:
		"""Return the pair's active match, creating it when none exists."""
		pair = event.pair
		async with self._pair_locks.acquire(pair):
			try:
				match = self._insert_unique(pair, event.match_type)
			except DuplicateMatchCandidate as dup:
				obs_metrics.inc_match_duplicate()
				logger.debug("duplicate match candidate pair=%s:%s", *pair)
				# The reciprocal signals were answered by the existing match.
				if self._ledger is not None:
					await self._ledger.consume_pair(*pair)
				return MatchResolution(match=dup.existing, created=False)
			if self._ledger is not None:
				await self._ledger.confirm_match(match.actor_a, match.actor_b)

		obs_metrics.inc_match_created(match.match_type.value)
		logger.info(
			"match created",
			extra={"match_id": match.id, "match_type": match.match_type.value},
		)
		created_event = MatchCreatedEvent(match=match, emitted_at=self._clock())
		await self._publish(created_event)
		return MatchResolution(match=match, created=True, event=created_event)

	def _insert_unique(self, pair: Tuple[str, str], match_type: MatchType) -> Match:
		now = self._clock()
		existing = self._active_for_pair(pair, now)
		if existing is not None:
			raise DuplicateMatchCandidate(existing)
		expires_at = now + self._nudge_ttl if match_type is MatchType.NUDGE else None
		match = Match(
			id=uuid4().hex,
			actor_a=pair[0],
			actor_b=pair[1],
			created_at=now,
			expires_at=expires_at,
			match_type=match_type,
		)
		self._matches[match.id] = match
		self._active_by_pair[pair] = match.id
		for actor_id in pair:
			self._by_actor.setdefault(actor_id, []).append(match.id)
		return match

	def _active_for_pair(self, pair: Tuple[str, str], now: datetime) -> Optional[Match]:
		match_id = self._active_by_pair.get(pair)
		if match_id is None:
			return None
		match = self._matches[match_id]
		if match.is_expired(now):
			self._active_by_pair.pop(pair, None)
			return None
		return match

	async def _publish(self, event: MatchCreatedEvent) -> None:
		if self._publisher is None:
			return
		try:
			await self._publisher.publish(event)
		except Exception:
			label = getattr(self._publisher, "name", type(self._publisher).__name__)
			obs_metrics.inc_publish_failure(label)
			logger.warning("match event publish failed match_id=%s", event.match.id, exc_info=True)

	def active_match_between(self, actor_x: str, actor_y: str, now: Optional[datetime] = None) -> Optional[Match]:
		pair = canonical_pair(actor_x, actor_y)
		match_id = self._active_by_pair.get(pair)
		if match_id is None:
			return None
		match = self._matches[match_id]
		return None if match.is_expired(now or self._clock()) else match

	def list_active_matches(self, actor_id: str, now: Optional[datetime] = None) -> List[Match]:
		"""Unexpired matches for ``actor_id``, newest first."""
		now = now or self._clock()
		return [match for match in self.list_matches(actor_id) if not match.is_expired(now)]

	def list_matches(self, actor_id: str) -> List[Match]:
		"""Every match the actor ever had, expired ones included, newest first."""
		matches = [self._matches[match_id] for match_id in self._by_actor.get(actor_id, ())]
		matches.sort(key=lambda match: match.created_at, reverse=True)
		return matches


__all__ = ["MatchEngine"]
