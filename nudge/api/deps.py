"""Request dependencies shared by the routers."""

from __future__ import annotations

from fastapi import Header, HTTPException, Request, status

from nudge.domain.service import NudgeService


async def get_actor_id(x_actor_id: str | None = Header(default=None, alias="X-Actor-Id")) -> str:
	"""Acting actor as asserted by the upstream gateway."""
	actor_id = (x_actor_id or "").strip()
	if not actor_id:
		raise HTTPException(status.HTTP_401_UNAUTHORIZED, detail="missing_actor")
	return actor_id


def get_service(request: Request) -> NudgeService:
	service = getattr(request.app.state, "nudge", None)
	if service is None:
		raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail="service_unavailable")
	return service
