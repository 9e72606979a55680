from __future__ import annotations

from typing import Any


class RolesError(Exception):
    """Base error for role and permission handling."""


class ConfigurationError(RolesError):
    """Raised at startup when role/permission model settings are unusable."""


class MalformedRuleError(RolesError, ValueError):
    """Raised when a rule expression cannot be parsed."""

    def __init__(self, rule: Any, reason: str) -> None:
        self.rule = rule
        self.reason = reason
        super().__init__(f"Malformed rule {rule!r}: {reason}")


class UnknownShortcutError(RolesError, KeyError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(name)

    def __str__(self) -> str:
        return f"Shortcut '{self.name}' is not registered"


class NotFoundError(RolesError):
    def __init__(self, kind: str, ref: Any) -> None:
        self.kind = kind
        self.ref = ref
        super().__init__(f"{kind} not found: {ref!r}")


class DuplicateError(RolesError):
    def __init__(self, kind: str, slug: str) -> None:
        self.kind = kind
        self.slug = slug
        super().__init__(f"{kind} already exists: {slug}")
