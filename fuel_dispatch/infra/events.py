from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from fuel_dispatch.domain.models import EventEnvelope, EventRecord
from fuel_dispatch.infra.db import engine
from fuel_dispatch.infra.request_context import get_correlation_id

logger = logging.getLogger(__name__)

EventHandler = Callable[[EventEnvelope], None]


class EventBus:
    """Persists task lifecycle events and fans them out to in-process subscribers.

    Subscribers registered for "*" see every event. A failed insert or a failing
    subscriber is logged, and publishing carries on.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        self._subscribers[event_type].append(handler)

    def unsubscribe(self, event_type: str, handler: EventHandler) -> None:
        if handler in self._subscribers.get(event_type, []):
            self._subscribers[event_type].remove(handler)

    def _store(self, event: EventEnvelope, session: Session | None) -> None:
        record = EventRecord(**event.model_dump())
        if session is not None:
            session.add(record)
            return
        try:
            with Session(engine) as own_session:
                own_session.add(record)
                own_session.commit()
        except SQLAlchemyError:
            # The change the event describes has already been written.
            logger.exception("failed to persist event %s", event.event_type)

    def publish(self, event: EventEnvelope, session: Session | None = None) -> None:
        self._store(event, session)
        for handler in [*self._subscribers.get(event.event_type, []), *self._subscribers.get("*", [])]:
            try:
                handler(event)
            except Exception:
                logger.exception("subscriber failed for %s", event.event_type)

    def publish_dict(
        self,
        event_type: str,
        payload: dict[str, Any],
        actor_id: str | None = None,
    ) -> EventEnvelope:
        event = EventEnvelope(
            event_type=event_type,
            actor_id=actor_id,
            correlation_id=get_correlation_id(),
            payload=payload,
        )
        self.publish(event)
        logger.debug("event %s published: %s", event_type, payload)
        return event


event_bus = EventBus()
