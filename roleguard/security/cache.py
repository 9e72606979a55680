from __future__ import annotations

from collections.abc import Callable, Hashable
from dataclasses import dataclass

from roleguard.authz.schemas import PermissionRead, RoleRead
from roleguard.metrics import observe_authz_cache_hit, observe_authz_cache_miss


@dataclass(slots=True)
class SubjectCacheEntry:
    roles: tuple[RoleRead, ...] | None = None
    permissions: tuple[PermissionRead, ...] | None = None


class AuthorizationCache:
    """Per-subject memo of resolved roles and permissions.

    ``None`` means unresolved. Entries never expire on their own; the owner
    invalidates them around every association mutation. Not safe for
    concurrent mutation of the same subject.
    """

    def __init__(self) -> None:
        self._entries: dict[Hashable, SubjectCacheEntry] = {}

    def get_roles(self, key: Hashable, loader: Callable[[], tuple[RoleRead, ...]]) -> tuple[RoleRead, ...]:
        entry = self._entry(key)
        if entry.roles is not None:
            observe_authz_cache_hit("roles")
            return entry.roles

        observe_authz_cache_miss("roles")
        roles = loader()
        entry.roles = roles
        return roles

    def get_permissions(
        self, key: Hashable, loader: Callable[[], tuple[PermissionRead, ...]]
    ) -> tuple[PermissionRead, ...]:
        entry = self._entry(key)
        if entry.permissions is not None:
            observe_authz_cache_hit("permissions")
            return entry.permissions

        observe_authz_cache_miss("permissions")
        permissions = loader()
        entry.permissions = permissions
        return permissions

    def peek(self, key: Hashable) -> SubjectCacheEntry | None:
        return self._entries.get(key)

    def invalidate_roles(self, key: Hashable) -> None:
        entry = self._entries.get(key)
        if entry is not None:
            entry.roles = None

    def invalidate_permissions(self, key: Hashable) -> None:
        entry = self._entries.get(key)
        if entry is not None:
            entry.permissions = None

    def invalidate(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def _entry(self, key: Hashable) -> SubjectCacheEntry:
        entry = self._entries.get(key)
        if entry is None:
            entry = SubjectCacheEntry()
            self._entries[key] = entry
        return entry
