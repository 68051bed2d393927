from __future__ import annotations

from fastapi import FastAPI, HTTPException

from fuel_dispatch.api.routers import dispatch, driver, identity, media
from fuel_dispatch.infra.audit import AuditMiddleware
from fuel_dispatch.infra.db import check_db_ready
from fuel_dispatch.infra.log_config import configure_logging

configure_logging()

app = FastAPI(
    title="fuel-dispatch",
    description="Driver task lifecycle and field-capture engine for fuel deliveries.",
    version="0.1.0",
)

app.add_middleware(AuditMiddleware)

app.include_router(identity.router, prefix="/api/identity", tags=["identity"])
app.include_router(dispatch.router, prefix="/api/dispatch", tags=["dispatch"])
app.include_router(driver.router, prefix="/api/driver", tags=["driver"])
app.include_router(media.router, prefix="/media", tags=["media"])


@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/readyz")
def readyz() -> dict[str, object]:
    db_ok = check_db_ready()
    checks = {"db": "ok" if db_ok else "fail"}
    if not db_ok:
        raise HTTPException(
            status_code=503,
            detail={"status": "not_ready", "checks": checks},
        )
    return {"status": "ready", "checks": checks}
