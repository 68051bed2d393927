from __future__ import annotations

import logging
from pathlib import Path

import pytest
from sqlmodel import Session, SQLModel, create_engine, select

from fuel_dispatch.domain.models import EventEnvelope, EventRecord
from fuel_dispatch.infra import events
from fuel_dispatch.infra.events import EventBus


def test_event_bus_publish_and_subscribe() -> None:
    engine = create_engine("sqlite:///:memory:")
    SQLModel.metadata.create_all(engine)

    bus = EventBus()
    seen: list[str] = []

    def handler(event: EventEnvelope) -> None:
        seen.append(event.event_id)

    event = EventEnvelope(
        event_type="driver_task.completed",
        actor_id="Ali",
        payload={"task_id": "task-1", "liters": 40.0},
    )
    bus.subscribe("driver_task.completed", handler)

    with Session(engine) as session:
        bus.publish(event, session=session)
        session.commit()

    with Session(engine) as session:
        stored = session.exec(select(EventRecord)).all()

    assert len(stored) == 1
    assert stored[0].event_id == event.event_id
    assert stored[0].payload == {"task_id": "task-1", "liters": 40.0}
    assert seen == [event.event_id]


def test_wildcard_subscriber_and_unsubscribe(sqlite_engine) -> None:
    bus = EventBus()
    seen: list[str] = []

    def handler(event: EventEnvelope) -> None:
        seen.append(event.event_type)

    bus.subscribe("*", handler)
    bus.publish_dict("driver_task.started", {"task_id": "task-1"}, actor_id="Ali")
    bus.unsubscribe("*", handler)
    bus.publish_dict("driver_task.started", {"task_id": "task-2"}, actor_id="Ali")

    with Session(sqlite_engine) as session:
        stored = session.exec(select(EventRecord).where(EventRecord.actor_id == "Ali")).all()

    assert seen == ["driver_task.started"]
    assert sorted(record.payload["task_id"] for record in stored) == ["task-1", "task-2"]


def test_failing_subscriber_does_not_block_others(sqlite_engine) -> None:
    bus = EventBus()
    seen: list[str] = []

    def broken(_event: EventEnvelope) -> None:
        raise RuntimeError("subscriber down")

    bus.subscribe("driver_task.created", broken)
    bus.subscribe("driver_task.created", lambda event: seen.append(event.payload["task_id"]))

    bus.publish_dict("driver_task.created", {"task_id": "task-9"})

    assert seen == ["task-9"]


def test_failed_event_insert_is_logged_and_subscribers_still_run(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
    caplog: pytest.LogCaptureFixture,
) -> None:
    broken_engine = create_engine(f"sqlite:///{tmp_path / 'missing' / 'events.db'}")
    monkeypatch.setattr(events, "engine", broken_engine)
    bus = EventBus()
    seen: list[str] = []
    bus.subscribe("driver_task.started", lambda event: seen.append(event.payload["task_id"]))

    with caplog.at_level(logging.ERROR, logger="fuel_dispatch.infra.events"):
        event = bus.publish_dict("driver_task.started", {"task_id": "task-3"}, actor_id="Ali")

    assert event.payload == {"task_id": "task-3"}
    assert seen == ["task-3"]
    assert "failed to persist event driver_task.started" in caplog.text
