from __future__ import annotations

import logging
import os

from fuel_dispatch.infra.request_context import get_actor_id, get_correlation_id, get_role

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(role)s:%(actor)s %(correlation)s] %(message)s"


class RequestContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.actor = get_actor_id() or "-"
        record.role = get_role() or "-"
        record.correlation = get_correlation_id() or "-"
        return True


def configure_logging(level: str | None = None) -> None:
    root = logging.getLogger("fuel_dispatch")
    if any(isinstance(f, RequestContextFilter) for h in root.handlers for f in h.filters):
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(RequestContextFilter())
    root.addHandler(handler)
    root.setLevel(level or LOG_LEVEL)
