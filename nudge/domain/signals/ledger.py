"""Append-only signal log with reciprocity detection and affinity refresh."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from datetime import datetime
from typing import Deque, Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from nudge.domain.matching.models import MatchCandidateEvent, MatchType, canonical_pair
from nudge.domain.proximity.geo import distance_m
from nudge.domain.proximity.models import Position
from nudge.domain.signals.exceptions import AffinityUpdateFailed, SelfSignalError
from nudge.domain.signals.models import (
	AFFINITY_PRIOR,
	SIGNAL_INTERACTIONS,
	AffinityProfile,
	FrequentLocation,
	Interaction,
	InteractionKind,
	LocationContext,
	Signal,
	SignalKind,
	apply_interaction,
)
from nudge.infra.clock import Clock, utcnow
from nudge.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

DEFAULT_AFFINITY_WINDOW = 100
DEFAULT_CLUSTER_M = 100.0

Pair = Tuple[str, str]


class SignalLedger:
	"""Owns the signal log and the affinity profiles derived from it.

	Signals are never mutated or removed. Creating a match advances a per-pair
	watermark so that the signals which produced it no longer count toward
	reciprocity or ``has_signaled`` lookups; they stay in the log as history.
	"""

	def __init__(
		self,
		*,
		affinity_window: int = DEFAULT_AFFINITY_WINDOW,
		cluster_m: float = DEFAULT_CLUSTER_M,
		clock: Clock = utcnow,
	) -> None:
		if affinity_window <= 0:
			raise ValueError("affinity_window must be positive")
		self._window = int(affinity_window)
		self._cluster_m = float(cluster_m)
		self._clock = clock
		self._lock = asyncio.Lock()
		self._seq = 0
		self._log: List[Signal] = []
		self._by_pair: Dict[Pair, List[Signal]] = {}
		self._consumed_through: Dict[Pair, int] = {}
		self._interactions: Dict[str, Deque[Interaction]] = {}
		self._visits: Dict[str, List[FrequentLocation]] = {}
		self._profiles: Dict[str, AffinityProfile] = {}
		self._pending: Set[asyncio.Task] = set()

	def __len__(self) -> int:
		return len(self._log)

	async def record_signal(
		self,
		from_actor: str,
		to_actor: str,
		kind: SignalKind | str,
		location_context: Optional[LocationContext] = None,
	) -> Optional[MatchCandidateEvent]:
		"""Append a signal and report a match candidate if it completes a pair."""
		if from_actor == to_actor:
			raise SelfSignalError()
		kind = SignalKind(kind)
		if kind is not SignalKind.NUDGE:
			location_context = None
		now = self._clock()
		async with self._lock:
			self._seq += 1
			signal = Signal(
				seq=self._seq,
				from_actor=from_actor,
				to_actor=to_actor,
				kind=kind,
				created_at=now,
				location_context=location_context,
			)
			self._log.append(signal)
			self._by_pair.setdefault((from_actor, to_actor), []).append(signal)
			self._append_interaction(Interaction(from_actor, to_actor, SIGNAL_INTERACTIONS[kind], now))
			self._profiles.setdefault(from_actor, AffinityProfile(actor_id=from_actor))
			if location_context is not None:
				self._add_visit(from_actor, location_context.position, now, location_context.venue_name)
			event = self._detect_reciprocity(signal)
		obs_metrics.inc_signal(kind.value)
		if event is not None:
			obs_metrics.inc_match_candidate(event.match_type.value)
			logger.info(
				"match candidate detected",
				extra={"actor_a": event.actor_a, "actor_b": event.actor_b, "match_type": event.match_type.value},
			)
		self._schedule_update(from_actor)
		return event

	async def track_interaction(
		self,
		actor_id: str,
		target_id: str,
		kind: InteractionKind | str,
		*,
		dwell_seconds: Optional[float] = None,
	) -> Interaction:
		"""Record a passive interaction (viewed, messaged) for affinity purposes."""
		if actor_id == target_id:
			raise SelfSignalError()
		interaction = Interaction(actor_id, target_id, InteractionKind(kind), self._clock(), dwell_seconds)
		async with self._lock:
			self._append_interaction(interaction)
		self._schedule_update(actor_id)
		return interaction

	async def confirm_match(self, actor_a: str, actor_b: str) -> None:
		"""Consume the pair's outstanding signals and credit both affinity profiles."""
		now = self._clock()
		async with self._lock:
			self._consumed_through[canonical_pair(actor_a, actor_b)] = self._seq
			self._append_interaction(Interaction(actor_a, actor_b, InteractionKind.MATCHED, now))
			self._append_interaction(Interaction(actor_b, actor_a, InteractionKind.MATCHED, now))
		self._schedule_update(actor_a)
		self._schedule_update(actor_b)

	async def consume_pair(self, actor_a: str, actor_b: str) -> None:
		"""Mark every signal recorded so far between the pair as answered."""
		async with self._lock:
			self._consumed_through[canonical_pair(actor_a, actor_b)] = self._seq

	async def record_visit(
		self,
		actor_id: str,
		position: Position,
		*,
		venue_name: Optional[str] = None,
	) -> FrequentLocation:
		async with self._lock:
			location = self._add_visit(actor_id, position, self._clock(), venue_name)
			has_profile = actor_id in self._profiles
		if has_profile:
			self._schedule_update(actor_id)
		return location

	async def update_affinity(self, actor_id: str) -> Optional[AffinityProfile]:
		"""Recompute match probabilities from the actor's recent interactions.

		Interactions are replayed oldest first starting each target at the
		prior. The result replaces the stored map, so targets that fell out of
		the window are dropped.
		"""
		async with self._lock:
			profile = self._profiles.get(actor_id)
			if profile is None:
				return None
			recent = list(self._interactions.get(actor_id, ()))
			visits = [
				FrequentLocation(loc.position, loc.visit_count, loc.last_visit, loc.venue_name)
				for loc in self._visits.get(actor_id, ())
			]
		try:
			probabilities = self._compute_probabilities(recent)
		except Exception as exc:
			raise AffinityUpdateFailed() from exc
		async with self._lock:
			profile.match_probability = probabilities
			profile.frequent_locations = visits
			profile.updated_at = self._clock()
		return profile

	def _compute_probabilities(self, interactions: Iterable[Interaction]) -> Dict[str, float]:
		probabilities: Dict[str, float] = {}
		for interaction in interactions:
			prior = probabilities.get(interaction.target_id, AFFINITY_PRIOR)
			updated = apply_interaction(prior, interaction.kind)
			if updated is not None:
				probabilities[interaction.target_id] = updated
		return probabilities

	def _schedule_update(self, actor_id: str) -> None:
		task = asyncio.create_task(self._safe_update(actor_id), name=f"affinity-update:{actor_id}")
		self._pending.add(task)
		task.add_done_callback(self._pending.discard)

	async def _safe_update(self, actor_id: str) -> None:
		try:
			await self.update_affinity(actor_id)
		except asyncio.CancelledError:
			raise
		except AffinityUpdateFailed:
			obs_metrics.inc_affinity_update("failed")
			logger.exception("affinity update failed for actor=%s", actor_id)
			return
		obs_metrics.inc_affinity_update("ok")

	async def drain(self) -> None:
		"""Wait for every scheduled affinity refresh to finish."""
		while self._pending:
			await asyncio.gather(*list(self._pending), return_exceptions=True)

	def get_profile(self, actor_id: str) -> Optional[AffinityProfile]:
		return self._profiles.get(actor_id)

	def signals_between(self, from_actor: str, to_actor: str) -> List[Signal]:
		return list(self._by_pair.get((from_actor, to_actor), ()))

	def latest_signal(
		self,
		from_actor: str,
		to_actor: str,
		kinds: Optional[Iterable[SignalKind]] = None,
	) -> Optional[Signal]:
		allowed = None if kinds is None else frozenset(kinds)
		for signal in reversed(self._by_pair.get((from_actor, to_actor), ())):
			if allowed is None or signal.kind in allowed:
				return signal
		return None

	def has_signaled(self, from_actor: str, to_actor: str, *, kinds: FrozenSet[SignalKind] | Set[SignalKind]) -> bool:
		"""True when ``from_actor``'s latest outstanding signal toward ``to_actor`` is one of ``kinds``.

		Signals already consumed by a match are ignored, and a later Pass hides
		an earlier Like or Nudge.
		"""
		latest = self._latest_pending(from_actor, to_actor)
		return latest is not None and latest.kind in kinds

	def passed_targets(self, actor_id: str) -> Set[str]:
		"""Targets whose latest Like/Pass verdict from ``actor_id`` is Pass."""
		verdicts = (SignalKind.LIKE, SignalKind.PASS)
		passed: Set[str] = set()
		for (from_actor, to_actor) in self._by_pair:
			if from_actor != actor_id:
				continue
			latest = self.latest_signal(from_actor, to_actor, verdicts)
			if latest is not None and latest.kind is SignalKind.PASS:
				passed.add(to_actor)
		return passed

	def judged_targets(self, actor_id: str) -> Set[str]:
		"""Targets ``actor_id`` has ever liked or passed."""
		judged: Set[str] = set()
		for (from_actor, to_actor), signals in self._by_pair.items():
			if from_actor != actor_id:
				continue
			if any(signal.kind in (SignalKind.LIKE, SignalKind.PASS) for signal in signals):
				judged.add(to_actor)
		return judged

	def received_nudges(self, actor_id: str, *, pending_only: bool = True) -> List[Signal]:
		"""Nudges sent toward ``actor_id``, newest first."""
		nudges = [
			signal
			for signal in self._log
			if signal.to_actor == actor_id
			and signal.kind is SignalKind.NUDGE
			and (not pending_only or not self._is_consumed(signal))
		]
		nudges.reverse()
		return nudges

	def sent_nudges(self, actor_id: str) -> List[Signal]:
		nudges = [s for s in self._log if s.from_actor == actor_id and s.kind is SignalKind.NUDGE]
		nudges.reverse()
		return nudges

	def frequent_locations(self, actor_id: str) -> List[FrequentLocation]:
		return list(self._visits.get(actor_id, ()))

	def _append_interaction(self, interaction: Interaction) -> None:
		history = self._interactions.get(interaction.actor_id)
		if history is None:
			history = deque(maxlen=self._window)
			self._interactions[interaction.actor_id] = history
		history.append(interaction)

	def _add_visit(
		self,
		actor_id: str,
		position: Position,
		at: datetime,
		venue_name: Optional[str],
	) -> FrequentLocation:
		locations = self._visits.setdefault(actor_id, [])
		for location in locations:
			if distance_m(location.position, position) <= self._cluster_m:
				location.visit_count += 1
				location.last_visit = at
				if venue_name:
					location.venue_name = venue_name
				return location
		location = FrequentLocation(position=position, visit_count=1, last_visit=at, venue_name=venue_name)
		locations.append(location)
		return location

	def _is_consumed(self, signal: Signal) -> bool:
		watermark = self._consumed_through.get(canonical_pair(signal.from_actor, signal.to_actor), 0)
		return signal.seq <= watermark

	def _latest_pending(self, from_actor: str, to_actor: str) -> Optional[Signal]:
		signals = self._by_pair.get((from_actor, to_actor))
		if not signals or self._is_consumed(signals[-1]):
			return None
		return signals[-1]

	def _detect_reciprocity(self, signal: Signal) -> Optional[MatchCandidateEvent]:
		wanted = signal.kind.reciprocal()
		if wanted is None:
			return None
		for prior in self._by_pair.get((signal.to_actor, signal.from_actor), ()):
			if prior.kind is wanted and not self._is_consumed(prior):
				match_type = MatchType.REGULAR if signal.kind is SignalKind.LIKE else MatchType.NUDGE
				return MatchCandidateEvent(
					actor_a=signal.to_actor,
					actor_b=signal.from_actor,
					match_type=match_type,
					detected_at=signal.created_at,
				)
		return None


__all__ = ["SignalLedger", "DEFAULT_AFFINITY_WINDOW", "DEFAULT_CLUSTER_M"]
