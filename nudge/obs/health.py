"""Health check helpers for liveness and readiness probes."""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Any, Dict, Tuple

from nudge.infra.redis import redis_client
from nudge.obs import metrics
from nudge.settings import settings

LOGGER = logging.getLogger(__name__)


async def _redis_status(timeout: float = 0.2) -> Dict[str, Any]:
	start = perf_counter()
	try:
		await asyncio.wait_for(redis_client.ping(), timeout=timeout)
		latency = perf_counter() - start
		metrics.mark_redis(True, latency_seconds=latency)
		return {"ok": True, "latency_ms": round(latency * 1000, 2)}
	except Exception as exc:  # pragma: no cover - depends on runtime
		metrics.mark_redis(False)
		LOGGER.warning("Redis readiness check failed", exc_info=True)
		return {"ok": False, "error": str(exc)}


async def liveness() -> Dict[str, Any]:
	return {"status": "ok"}


async def readiness(active_presence: int) -> Tuple[int, Dict[str, Any]]:
	checks: Dict[str, Any] = {"presence": {"ok": True, "active": active_presence}}
	if settings.events_redis_enabled:
		checks["redis"] = await _redis_status()
	ok = all(check.get("ok") for check in checks.values())
	status_code = 200 if ok else 503
	return status_code, {"status": "ok" if ok else "degraded", "checks": checks}
