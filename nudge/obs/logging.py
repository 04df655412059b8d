"""JSON log lines for the nudge service, with request context and coordinate redaction."""

from __future__ import annotations

import json
import logging
import random
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from nudge.settings import settings

_LOGGER_NAME = "nudge"

# Context field -> key used in the emitted JSON.
_CONTEXT_KEYS = {"request_id": "request_id", "actor_id": "actor_id", "client_ip": "ip"}
_CONTEXT: Dict[str, ContextVar[Optional[str]]] = {
	field: ContextVar(f"nudge_log_{field}", default=None) for field in _CONTEXT_KEYS
}

# Matched against whole underscore-separated parts of a field name.
_REDACTED_PARTS = frozenset(
	{
		"authorization",
		"token",
		"secret",
		"password",
		"position",
		"coordinate",
		"coordinates",
		"latitude",
		"longitude",
		"lat",
		"lon",
		"lng",
	}
)
_REDACTED = "[redacted]"

_MAX_STR = 256
_MAX_ITEMS = 10

# Attributes every LogRecord carries; anything else came in through ``extra``.
_STANDARD_ATTRS = frozenset(logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__) | {
	"message",
	"asctime",
	"taskName",
}


def bind_context(**fields: Optional[str]) -> Dict[str, Token]:
	"""Set request-scoped fields; pass the returned tokens to ``reset_context``."""
	tokens: Dict[str, Token] = {}
	for field, value in fields.items():
		var = _CONTEXT.get(field)
		if var is None:
			raise KeyError(f"unknown log context field: {field}")
		if value is not None:
			tokens[field] = var.set(value)
	return tokens


def reset_context(tokens: Mapping[str, Token]) -> None:
	for field, token in tokens.items():
		_CONTEXT[field].reset(token)


def current_request_id() -> Optional[str]:
	return _CONTEXT["request_id"].get()


def _is_redacted(key: str) -> bool:
	return any(part in _REDACTED_PARTS for part in key.lower().split("_"))


def _clean(value: Any) -> Any:
	if value is None or isinstance(value, (bool, int, float)):
		return value
	if isinstance(value, str):
		return value if len(value) <= _MAX_STR else value[:_MAX_STR] + "…"
	if isinstance(value, Mapping):
		cleaned: Dict[str, Any] = {}
		for index, (key, nested) in enumerate(value.items()):
			if index == _MAX_ITEMS:
				cleaned["…"] = f"+{len(value) - _MAX_ITEMS} keys"
				break
			cleaned[str(key)] = _REDACTED if _is_redacted(str(key)) else _clean(nested)
		return cleaned
	if isinstance(value, (list, tuple, set, frozenset)):
		items = [_clean(item) for item in value]
		return items if len(items) <= _MAX_ITEMS else items[:_MAX_ITEMS] + ["…"]
	return str(value)


class JSONLogFormatter(logging.Formatter):
	"""One JSON object per record: base fields, bound context, then ``extra`` fields."""

	def format(self, record: logging.LogRecord) -> str:  # noqa: A003
		payload: Dict[str, Any] = {
			"ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
			"level": record.levelname.lower(),
			"logger": record.name,
			"msg": record.getMessage(),
			"service": settings.service_name,
			"env": settings.environment,
			"commit": settings.git_commit,
		}
		for field, key in _CONTEXT_KEYS.items():
			value = _CONTEXT[field].get()
			if value:
				payload[key] = value
		if record.exc_info:
			payload["exc_info"] = self.formatException(record.exc_info)
		for key, value in vars(record).items():
			if key in _STANDARD_ATTRS or key.startswith("_"):
				continue
			payload[key] = _REDACTED if _is_redacted(key) else _clean(value)
		return json.dumps(payload, separators=(",", ":"), default=str)


class InfoSamplingFilter(logging.Filter):
	"""Drop a share of INFO records; other levels always pass."""

	def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
		if record.levelno != logging.INFO:
			return True
		rate = min(1.0, max(0.0, settings.obs_log_sampling_rate_info))
		return rate >= 1.0 or random.random() < rate


def configure_logging() -> logging.Logger:
	"""Route the root logger through a single JSON stream handler."""
	handler = logging.StreamHandler()
	handler.setFormatter(JSONLogFormatter())
	handler.addFilter(InfoSamplingFilter())
	root = logging.getLogger()
	root.handlers[:] = [handler]
	root.setLevel(settings.obs_log_level)
	return logging.getLogger(_LOGGER_NAME)


def get_logger(name: Optional[str] = None) -> logging.Logger:
	return logging.getLogger(name or _LOGGER_NAME)
