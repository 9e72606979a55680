from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from roleguard.security.errors import MalformedRuleError, UnknownShortcutError
from roleguard.security.pretend import EntryPoint
from roleguard.security.slugs import SlugNormalizer

if TYPE_CHECKING:
    from roleguard.authz.schemas import PermissionRead, RoleRead
    from roleguard.security.core import AuthorizationCore, Subject


_NAME_RE = re.compile(r"^(is|can|allowed)(?:_|(?=[A-Z]))(.+)$")


@dataclass(frozen=True, slots=True)
class Shortcut:
    name: str
    entry_point: EntryPoint
    rule: str


class ShortcutTable:
    """Named checks such as ``is_admin`` or ``can_edit_post``, registered up front.

    Names are parsed once at registration: the prefix picks the entry point and
    the remainder becomes the rule slug (``can_edit_post`` -> ``can("edit.post")``).
    """

    def __init__(self, normalizer: SlugNormalizer | None = None) -> None:
        self._normalizer = normalizer or SlugNormalizer()
        self._entries: dict[str, Shortcut] = {}

    def register(self, name: str, rule: str | None = None) -> Shortcut:
        match = _NAME_RE.match(name)
        if match is None:
            raise MalformedRuleError(name, "shortcut names start with 'is', 'can' or 'allowed'")
        prefix, remainder = match.groups()
        shortcut = Shortcut(
            name=name,
            entry_point=EntryPoint(prefix),
            rule=rule if rule is not None else self._normalizer(remainder),
        )
        self._entries[name] = shortcut
        return shortcut

    def get(self, name: str) -> Shortcut:
        try:
            return self._entries[name]
        except KeyError:
            raise UnknownShortcutError(name) from None

    def __contains__(self, name: str) -> bool:
        return name in self._entries

    def names(self) -> list[str]:
        return sorted(self._entries)


class SubjectAuthorization:
    """Checks bound to one subject."""

    def __init__(self, core: AuthorizationCore, subject: Subject, shortcuts: ShortcutTable | None = None) -> None:
        self.core = core
        self.subject = subject
        self.shortcuts = shortcuts or core.shortcuts

    def is_(self, rule: Any) -> bool:
        return self.core.is_(self.subject, rule)

    def can(self, rule: Any) -> bool:
        return self.core.can(self.subject, rule)

    def has(self, rule: Any) -> bool:
        return self.core.has(self.subject, rule)

    def allowed(self, rule: Any, entity: Any, owner: bool = True, owner_field: str = "user_id") -> bool:
        return self.core.allowed(self.subject, rule, entity, owner, owner_field)

    def level(self) -> int:
        return self.core.level(self.subject)

    def roles(self) -> tuple[RoleRead, ...]:
        return self.core.get_roles(self.subject)

    def permissions(self) -> tuple[PermissionRead, ...]:
        return self.core.get_permissions(self.subject)

    def check(self, name: str, entity: Any = None, owner: bool = True, owner_field: str = "user_id") -> bool:
        shortcut = self.shortcuts.get(name)
        if shortcut.entry_point == EntryPoint.ALLOWED:
            if entity is None:
                raise TypeError(f"shortcut '{name}' needs an entity")
            return self.allowed(shortcut.rule, entity, owner, owner_field)
        if shortcut.entry_point == EntryPoint.CAN:
            return self.can(shortcut.rule)
        return self.is_(shortcut.rule)
