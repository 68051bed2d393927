from __future__ import annotations

from contextvars import ContextVar, Token

actor_id_ctx: ContextVar[str | None] = ContextVar("actor_id", default=None)
role_ctx: ContextVar[str | None] = ContextVar("role", default=None)


def set_request_context(actor_id: str | None, role: str | None) -> None:
    actor_id_ctx.set(actor_id)
    role_ctx.set(role)


def get_actor_id() -> str | None:
    return actor_id_ctx.get()


def get_role() -> str | None:
    return role_ctx.get()


correlation_id_ctx: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def set_correlation_id(correlation_id: str | None) -> Token[str | None]:
    return correlation_id_ctx.set(correlation_id)


def reset_correlation_id(token: Token[str | None]) -> None:
    correlation_id_ctx.reset(token)


def get_correlation_id() -> str | None:
    return correlation_id_ctx.get()
