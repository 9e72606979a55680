from __future__ import annotations

from prometheus_client import REGISTRY

from roleguard.authz.schemas import PermissionRead, RoleRead
from roleguard.security.cache import AuthorizationCache


ADMIN = RoleRead(id=1, slug="admin", name="Admin", level=3)
EDIT = PermissionRead(id=1, slug="edit.posts", name="Edit posts")


def _sample(name: str, kind: str) -> float:
    return REGISTRY.get_sample_value(name, {"kind": kind}) or 0.0


def test_populates_on_miss_and_reuses_on_hit() -> None:
    cache = AuthorizationCache()
    calls: list[str] = []

    def load_roles() -> tuple[RoleRead, ...]:
        calls.append("roles")
        return (ADMIN,)

    hits_before = _sample("roleguard_authz_cache_hit_total", "roles")
    misses_before = _sample("roleguard_authz_cache_miss_total", "roles")

    assert cache.get_roles("1", load_roles) == (ADMIN,)
    assert cache.get_roles("1", load_roles) == (ADMIN,)
    assert calls == ["roles"]
    assert _sample("roleguard_authz_cache_hit_total", "roles") == hits_before + 1
    assert _sample("roleguard_authz_cache_miss_total", "roles") == misses_before + 1


def test_empty_results_are_cached() -> None:
    cache = AuthorizationCache()
    calls: list[str] = []

    def load_permissions() -> tuple[PermissionRead, ...]:
        calls.append("permissions")
        return ()

    cache.get_permissions("1", load_permissions)
    cache.get_permissions("1", load_permissions)
    assert calls == ["permissions"]


def test_invalidation_is_per_kind_and_per_subject() -> None:
    cache = AuthorizationCache()
    cache.get_roles("1", lambda: (ADMIN,))
    cache.get_permissions("1", lambda: (EDIT,))
    cache.get_roles("2", lambda: ())

    cache.invalidate_permissions("1")
    entry = cache.peek("1")
    assert entry is not None
    assert entry.roles == (ADMIN,)
    assert entry.permissions is None

    cache.invalidate_roles("1")
    assert cache.peek("1").roles is None  # type: ignore[union-attr]

    cache.invalidate("1")
    assert "1" not in cache
    assert "2" in cache
    assert len(cache) == 1

    cache.invalidate_roles("unknown")
    cache.clear()
    assert len(cache) == 0
