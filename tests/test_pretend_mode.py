from __future__ import annotations

from collections.abc import Generator
from dataclasses import dataclass

import pytest

from roleguard.authz.store import InMemoryAuthorizationStore
from roleguard.core.config import PretendSettings, RolesSettings, get_settings
from roleguard.security.core import AuthorizationCore
from roleguard.security.pretend import EntryPoint, PretendMode


@dataclass
class User:
    id: int


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_pretend_answers_without_a_backing_store() -> None:
    store = InMemoryAuthorizationStore()
    settings = RolesSettings(pretend=PretendSettings(enabled=True, options={"can": True, "is": False}))
    core = AuthorizationCore(store, settings)
    user = User(id=1)

    assert core.can(user, "anything") is True
    assert core.can(user, "x:not-even-parsed") is True
    assert core.is_(user, "admin") is False
    assert core.allowed(user, "edit.post", {"user_id": 1}) is False
    assert core.has(user, "r:admin") is False
    assert store.query_count == 0


def test_pretend_disabled_evaluates_normally() -> None:
    store = InMemoryAuthorizationStore()
    settings = RolesSettings(pretend=PretendSettings(enabled=False, options={"can": True}))
    core = AuthorizationCore(store, settings)

    assert core.can(User(id=1), "anything") is False


def test_pretend_mode_answer_defaults_to_false() -> None:
    pretend = PretendMode(enabled=True, options={"has": True})

    assert pretend.answer(EntryPoint.HAS) is True
    assert pretend.answer("has") is True
    assert pretend.answer(EntryPoint.ALLOWED) is False


def test_pretend_settings_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ROLES_PRETEND__ENABLED", "true")
    monkeypatch.setenv("ROLES_PRETEND__OPTIONS__CAN", "true")

    settings = get_settings()
    assert settings.pretend.enabled is True
    assert settings.pretend.options["can"] is True

    core = AuthorizationCore(InMemoryAuthorizationStore(), settings)
    assert core.pretend.enabled is True
    assert core.can(User(id=1), "edit.posts") is True
    assert core.is_(User(id=1), "admin") is False


def test_separator_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ROLES_SEPARATOR", "-")

    settings = get_settings()
    core = AuthorizationCore(InMemoryAuthorizationStore(), settings)
    assert settings.separator == "-"
    assert core.normalizer("Admin Users") == "admin-users"
