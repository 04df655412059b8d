"""Weighted scoring of candidate actors for a requester."""

from __future__ import annotations

import random
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Mapping, Optional, Sequence

from nudge.domain.proximity.geo import distance_m
from nudge.domain.proximity.models import Position
from nudge.domain.signals.models import AffinityProfile
from nudge.infra.clock import Clock, utcnow
from nudge.obs import metrics as obs_metrics


@dataclass(frozen=True, slots=True)
class RankingWeights:
	probability: float = 0.4
	proximity: float = 0.3
	frequent_location: float = 0.2
	recency: float = 0.1
	proximity_cutoff_m: float = 10_000.0
	frequent_location_radius_m: float = 500.0
	recency_window: timedelta = timedelta(hours=24)


DEFAULT_WEIGHTS = RankingWeights()


@dataclass(frozen=True, slots=True)
class CandidateScore:
	actor_id: str
	probability: float
	proximity: float
	frequent_location: float
	recency: float
	total: float


def proximity_score(
	requester_position: Optional[Position],
	candidate_position: Optional[Position],
	*,
	cutoff_m: float = DEFAULT_WEIGHTS.proximity_cutoff_m,
) -> float:
	"""1.0 at zero distance falling linearly to 0.0 at ``cutoff_m``."""

	if requester_position is None or candidate_position is None:
		return 0.0
	return max(0.0, 1.0 - distance_m(requester_position, candidate_position) / cutoff_m)


def frequent_location_bonus(
	profile: AffinityProfile,
	requester_position: Optional[Position],
	*,
	radius_m: float = DEFAULT_WEIGHTS.frequent_location_radius_m,
) -> float:
	"""Bonus when the requester is near one of their own frequent locations.

	The term ignores the candidate entirely, so it lifts every candidate of
	a requester equally and never changes the relative order.
	"""

	if requester_position is None:
		return 0.0
	for location in profile.frequent_locations:
		if distance_m(location.position, requester_position) <= radius_m:
			return 0.2
	return 0.0


def recency_bonus(last_active: Optional[datetime], now: datetime, *, window: timedelta = DEFAULT_WEIGHTS.recency_window) -> float:
	if last_active is None:
		return 0.0
	return 0.1 if now - last_active < window else 0.0


class RankingEngine:
	"""Stateless scorer; affinity is supplied by the caller on every call."""

	def __init__(self, *, weights: RankingWeights = DEFAULT_WEIGHTS, clock: Clock = utcnow) -> None:
		self.weights = weights
		self._clock = clock

	def score(
		self,
		candidates: Sequence[str],
		requester_position: Optional[Position],
		candidate_positions: Mapping[str, Position],
		affinity: AffinityProfile,
		last_active: Optional[Mapping[str, datetime]] = None,
		now: Optional[datetime] = None,
	) -> List[CandidateScore]:
		now = now or self._clock()
		last_active = last_active or {}
		w = self.weights
		location_term = frequent_location_bonus(affinity, requester_position, radius_m=w.frequent_location_radius_m)
		scores: List[CandidateScore] = []
		for actor_id in candidates:
			probability = affinity.probability_for(actor_id, 0.0)
			proximity = proximity_score(
				requester_position,
				candidate_positions.get(actor_id),
				cutoff_m=w.proximity_cutoff_m,
			)
			recency = recency_bonus(last_active.get(actor_id), now, window=w.recency_window)
			total = (
				w.probability * probability
				+ w.proximity * proximity
				+ w.frequent_location * location_term
				+ w.recency * recency
			)
			scores.append(
				CandidateScore(
					actor_id=actor_id,
					probability=probability,
					proximity=proximity,
					frequent_location=location_term,
					recency=recency,
					total=total,
				)
			)
		return scores

	def rank(
		self,
		requester: str,
		candidates: Sequence[str],
		requester_position: Optional[Position],
		candidate_positions: Mapping[str, Position],
		affinity: Optional[AffinityProfile],
		*,
		last_active: Optional[Mapping[str, datetime]] = None,
		seed: Optional[int] = None,
		now: Optional[datetime] = None,
	) -> List[str]:
		"""Order ``candidates`` by descending score.

		Equal scores keep their input order. Without an affinity profile the
		candidates come back shuffled by ``random.Random(seed)``.
		"""

		started = time.perf_counter()
		if affinity is None:
			shuffled = list(candidates)
			random.Random(seed).shuffle(shuffled)
			obs_metrics.observe_ranking("fallback", time.perf_counter() - started)
			return shuffled

		scores = self.score(candidates, requester_position, candidate_positions, affinity, last_active, now)
		# list.sort is stable, so ties keep their input order.
		scores.sort(key=lambda item: item.total, reverse=True)
		obs_metrics.observe_ranking("scored", time.perf_counter() - started)
		return [item.actor_id for item in scores]

