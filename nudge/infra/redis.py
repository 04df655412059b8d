"""Redis connection management.

Provides a stable proxy object so imports like `from nudge.infra.redis import redis_client`
always reference the same proxy instance. The underlying client can be swapped at
runtime (e.g., to fakeredis in tests) without breaking previously imported references.
"""

from __future__ import annotations

from typing import Any, Mapping

import redis.asyncio as redis

from nudge.settings import settings


class RedisProxy:
	"""Lightweight proxy that forwards attribute access to an underlying Redis client."""

	def __init__(self, client: redis.Redis):
		self._client: redis.Redis = client

	def set_client(self, client: redis.Redis) -> None:
		self._client = client

	async def xadd(self, name: str, fields: Mapping[str, Any], **kwargs):
		"""Stream values must be scalars; render None as an empty string."""
		flat = {key: ("" if value is None else value) for key, value in fields.items()}
		return await self._client.xadd(name, flat, **kwargs)

	# Fallback: delegate everything else to the underlying client
	def __getattr__(self, item):
		return getattr(self._client, item)


# Create proxy with the real client by default; connections are opened lazily.
_real_client = redis.from_url(settings.redis_url, decode_responses=True)
redis_client: RedisProxy = RedisProxy(_real_client)


def set_redis_client(client: redis.Redis) -> None:
	redis_client.set_client(client)
