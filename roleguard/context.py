from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar, Token

correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)
actor_id_var: ContextVar[str | None] = ContextVar("actor_id", default=None)


def set_correlation_id(value: str | None) -> Token[str | None]:
    return correlation_id_var.set(value)


def reset_correlation_id(token: Token[str | None]) -> None:
    correlation_id_var.reset(token)


def get_correlation_id() -> str | None:
    return correlation_id_var.get()


def set_actor_id(value: str | None) -> Token[str | None]:
    return actor_id_var.set(value)


def reset_actor_id(token: Token[str | None]) -> None:
    actor_id_var.reset(token)


def get_actor_id() -> str | None:
    return actor_id_var.get()


@contextmanager
def acting_as(actor_id: str | None, correlation_id: str | None = None) -> Iterator[None]:
    """Attribute audit entries, log records and spans inside the block to ``actor_id``."""

    actor_token = set_actor_id(actor_id)
    correlation_token = set_correlation_id(correlation_id or get_correlation_id())
    try:
        yield
    finally:
        reset_correlation_id(correlation_token)
        reset_actor_id(actor_token)


def get_log_context() -> dict[str, str | None]:
    return {"correlation_id": get_correlation_id(), "actor_id": get_actor_id()}
