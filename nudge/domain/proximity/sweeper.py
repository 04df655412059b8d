"""Background sweep that evicts stale presence entries."""

from __future__ import annotations

import asyncio
import logging

from nudge.domain.proximity.registry import PresenceRegistry

logger = logging.getLogger(__name__)


async def sweep_once(registry: PresenceRegistry) -> int:
    evicted = await registry.evict_stale()
    return len(evicted)


async def run_presence_sweeper(registry: PresenceRegistry, interval_s: float = 5.0) -> None:
    """Periodically evicts presence entries whose renewal window elapsed."""
    interval = max(0.05, float(interval_s))
    try:
        while True:
            await asyncio.sleep(interval)
            try:
                removed = await sweep_once(registry)
            except Exception:
                logger.exception("presence sweeper iteration failed")
                continue
            if removed:
                logger.info("presence sweeper removed %s stale entries", removed)
    except asyncio.CancelledError:
        raise


__all__ = ["run_presence_sweeper", "sweep_once"]
