"""Outbound channels for MatchCreatedEvent delivery."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional, Protocol

from nudge.domain.matching.models import MatchCreatedEvent
from nudge.infra.redis import redis_client
from nudge.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

MATCH_EVENTS_STREAM = "x:matches.events"


class EventPublisher(Protocol):
    async def publish(self, event: MatchCreatedEvent) -> None:
        ...


class QueueOutbox:
    """In-process outbox drained by the notification collaborator.

    When ``maxsize`` is set and the queue is full, the oldest event is dropped
    to make room for the new one.
    """

    name = "queue"

    def __init__(self, maxsize: int = 0) -> None:
        self._queue: asyncio.Queue[MatchCreatedEvent] = asyncio.Queue(maxsize=maxsize)

    def __len__(self) -> int:
        return self._queue.qsize()

    async def publish(self, event: MatchCreatedEvent) -> None:
        if self._queue.full():
            dropped = self._queue.get_nowait()
            obs_metrics.inc_publish_failure(self.name)
            logger.warning("match outbox full, dropped match_id=%s", dropped.match.id)
        self._queue.put_nowait(event)

    async def get(self) -> MatchCreatedEvent:
        return await self._queue.get()

    def drain(self) -> List[MatchCreatedEvent]:
        events: List[MatchCreatedEvent] = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except asyncio.QueueEmpty:
                return events


class RedisStreamPublisher:
    """Appends match events to a Redis stream for the realtime gateway."""

    name = "redis"

    def __init__(self, stream: str = MATCH_EVENTS_STREAM, client: Any = None, maxlen: Optional[int] = 10_000) -> None:
        self.stream = stream
        self._client = client if client is not None else redis_client
        self._maxlen = maxlen

    async def publish(self, event: MatchCreatedEvent) -> None:
        payload = {key: "" if value is None else str(value) for key, value in event.to_dict().items()}
        kwargs = {"maxlen": self._maxlen, "approximate": True} if self._maxlen else {}
        await self._client.xadd(self.stream, payload, **kwargs)


__all__ = ["EventPublisher", "MATCH_EVENTS_STREAM", "QueueOutbox", "RedisStreamPublisher"]
