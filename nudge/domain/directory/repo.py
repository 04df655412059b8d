"""Directory Service adapters: an in-memory table and an asyncpg-backed one."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence

from nudge.domain.directory.models import ActorNotFound, DirectoryPreferences, DirectoryProfile
from nudge.domain.proximity.exceptions import InvalidPosition
from nudge.domain.proximity.models import Position
from nudge.infra.postgres import get_pool

logger = logging.getLogger(__name__)


class DirectoryService(Protocol):
	async def get_profile(self, actor_id: str) -> DirectoryProfile:
		...

	async def get_profiles(self, actor_ids: Sequence[str]) -> Dict[str, DirectoryProfile]:
		...

	async def search_candidates(self, requester: DirectoryProfile, *, limit: int = 50) -> List[DirectoryProfile]:
		...


class InMemoryDirectory:
	"""Directory held in a dict; used for local runs and tests."""

	def __init__(self, profiles: Optional[Iterable[DirectoryProfile]] = None) -> None:
		self._profiles: Dict[str, DirectoryProfile] = {}
		for profile in profiles or ():
			self.upsert(profile)

	def upsert(self, profile: DirectoryProfile) -> None:
		self._profiles[profile.actor_id] = profile

	async def get_profile(self, actor_id: str) -> DirectoryProfile:
		profile = self._profiles.get(actor_id)
		if profile is None:
			raise ActorNotFound()
		return profile

	async def get_profiles(self, actor_ids: Sequence[str]) -> Dict[str, DirectoryProfile]:
		return {actor_id: self._profiles[actor_id] for actor_id in actor_ids if actor_id in self._profiles}

	async def search_candidates(self, requester: DirectoryProfile, *, limit: int = 50) -> List[DirectoryProfile]:
		matches = [
			profile
			for actor_id, profile in sorted(self._profiles.items())
			if actor_id != requester.actor_id and requester.is_compatible_with(profile)
		]
		return matches[:limit]


_PROFILE_COLUMNS = "u.id, u.age, u.gender, u.preferences, u.last_active, u.lat, u.lon"


def _row_to_profile(row: Mapping[str, Any]) -> DirectoryProfile:
	raw_prefs = row.get("preferences")
	if isinstance(raw_prefs, str):
		try:
			raw_prefs = json.loads(raw_prefs)
		except json.JSONDecodeError:
			logger.warning("directory preferences not valid JSON for actor=%s", row.get("id"))
			raw_prefs = None
	location: Optional[Position] = None
	if row.get("lat") is not None and row.get("lon") is not None:
		try:
			location = Position(latitude=float(row["lat"]), longitude=float(row["lon"]))
		except InvalidPosition:
			location = None
	return DirectoryProfile(
		actor_id=str(row["id"]),
		age=row.get("age"),
		gender=row.get("gender"),
		preferences=DirectoryPreferences.from_mapping(raw_prefs),
		last_active=row.get("last_active"),
		approximate_location=location,
	)


class PostgresDirectory:
	"""Reads profile projections from the ``users`` table."""

	async def get_profile(self, actor_id: str) -> DirectoryProfile:
		pool = await get_pool()
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				f"SELECT {_PROFILE_COLUMNS} FROM users u WHERE u.id = $1 AND u.deleted_at IS NULL",
				actor_id,
			)
		if row is None:
			raise ActorNotFound()
		return _row_to_profile(dict(row))

	async def get_profiles(self, actor_ids: Sequence[str]) -> Dict[str, DirectoryProfile]:
		if not actor_ids:
			return {}
		pool = await get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				f"SELECT {_PROFILE_COLUMNS} FROM users u WHERE u.id = ANY($1::text[]) AND u.deleted_at IS NULL",
				list(actor_ids),
			)
		profiles = [_row_to_profile(dict(row)) for row in rows]
		return {profile.actor_id: profile for profile in profiles}

	async def search_candidates(self, requester: DirectoryProfile, *, limit: int = 50) -> List[DirectoryProfile]:
		prefs = requester.preferences
		params: List[object] = [requester.actor_id, prefs.min_age, prefs.max_age]
		conditions = ["u.id <> $1", "u.age BETWEEN $2 AND $3", "u.deleted_at IS NULL"]
		if prefs.interested_in:
			conditions.append(f"lower(u.gender) = ANY(${len(params) + 1}::text[])")
			params.append(sorted(prefs.interested_in))
		where_clause = " AND ".join(conditions)
		pool = await get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				f"""
				SELECT {_PROFILE_COLUMNS}
				FROM users u
				WHERE {where_clause}
				ORDER BY u.last_active DESC NULLS LAST, u.id
				LIMIT ${len(params) + 1}
				""",
				*params,
				limit,
			)
		return [_row_to_profile(dict(row)) for row in rows]


def build_directory(backend: str) -> DirectoryService:
	if backend == "postgres":
		return PostgresDirectory()
	return InMemoryDirectory()


__all__ = ["DirectoryService", "InMemoryDirectory", "PostgresDirectory", "build_directory"]
