"""Per-request logging context, request ids and HTTP metrics."""

from __future__ import annotations

import logging
import time
from uuid import uuid4

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from nudge.obs import logging as obs_logging
from nudge.obs import metrics

REQUEST_ID_HEADER = "X-Request-Id"
ACTOR_HEADER = "X-Actor-Id"

logger = logging.getLogger("nudge.http")


def _route_label(request: Request) -> str:
	# Templated path keeps metric cardinality bounded.
	route = request.scope.get("route")
	return getattr(route, "path", None) or request.url.path


class RequestContextMiddleware(BaseHTTPMiddleware):
	"""Binds request id and actor to the log context, then times the request."""

	async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
		request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
		request.state.request_id = request_id
		tokens = obs_logging.bind_context(
			request_id=request_id,
			actor_id=request.headers.get(ACTOR_HEADER),
			client_ip=request.client.host if request.client else None,
		)
		started = time.perf_counter()
		status_code = 500
		try:
			response = await call_next(request)
			status_code = response.status_code
		except Exception:
			logger.exception("request failed", extra={"method": request.method, "path": request.url.path})
			raise
		finally:
			elapsed = time.perf_counter() - started
			route = _route_label(request)
			metrics.observe_request(route, request.method, status_code, elapsed)
			logger.info(
				"%s %s -> %s",
				request.method,
				route,
				status_code,
				extra={"latency_ms": round(elapsed * 1000, 3)},
			)
			obs_logging.reset_context(tokens)
		response.headers.setdefault(REQUEST_ID_HEADER, request_id)
		return response


def install(app: FastAPI) -> None:
	app.add_middleware(RequestContextMiddleware)
