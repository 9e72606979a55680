from roleguard.security.core import AuthorizationCore, Subject, entity_type_name
from roleguard.security.cache import AuthorizationCache
from roleguard.security.errors import (
    ConfigurationError,
    DuplicateError,
    MalformedRuleError,
    NotFoundError,
    RolesError,
    UnknownShortcutError,
)
from roleguard.security.pretend import EntryPoint, PretendMode
from roleguard.security.rules import Atom, AtomKind, Rule, RuleParser
from roleguard.security.shortcuts import Shortcut, ShortcutTable, SubjectAuthorization
from roleguard.security.slugs import SlugNormalizer
from roleguard.authz.schemas import PermissionRead, RoleRead
from roleguard.authz.store import (
    AuthorizationStore,
    DbAuthorizationStore,
    InMemoryAuthorizationStore,
    resolve_model_classes,
)
from roleguard.core.config import RolesSettings, get_settings

__all__ = [
    "AuthorizationCore",
    "AuthorizationCache",
    "AuthorizationStore",
    "InMemoryAuthorizationStore",
    "DbAuthorizationStore",
    "resolve_model_classes",
    "Subject",
    "entity_type_name",
    "RoleRead",
    "PermissionRead",
    "Rule",
    "RuleParser",
    "Atom",
    "AtomKind",
    "SlugNormalizer",
    "PretendMode",
    "EntryPoint",
    "Shortcut",
    "ShortcutTable",
    "SubjectAuthorization",
    "RolesSettings",
    "get_settings",
    "RolesError",
    "ConfigurationError",
    "MalformedRuleError",
    "UnknownShortcutError",
    "NotFoundError",
    "DuplicateError",
]
