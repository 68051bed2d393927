from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine

from fuel_dispatch.api import deps
from fuel_dispatch.infra import audit, db, events
from fuel_dispatch.services.driver_workspace import workspace_registry


@pytest.fixture(autouse=True)
def sqlite_engine(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> Generator[Engine, None, None]:
    db_path = tmp_path / "fuel_dispatch_test.db"
    test_engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )
    SQLModel.metadata.create_all(test_engine)
    monkeypatch.setattr(db, "engine", test_engine)
    monkeypatch.setattr(audit, "engine", test_engine)
    monkeypatch.setattr(events, "engine", test_engine)
    monkeypatch.setenv("OBJECT_STORAGE_ROOT", str(tmp_path / "object_storage"))
    monkeypatch.setenv("FUEL_DATA_BACKEND", "sql")
    workspace_registry.clear()
    deps.reset_memory_store()
    yield test_engine
    workspace_registry.clear()
    test_engine.dispose()
