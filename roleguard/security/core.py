from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any, Protocol, TypeVar

from roleguard import audit
from roleguard.authz.schemas import PermissionRead, RoleRead
from roleguard.authz.store import AuthorizationStore
from roleguard.core.config import RolesSettings
from roleguard.metrics import observe_authz_decision, observe_authz_pretend_decision
from roleguard.otel import decision_span, get_tracer
from roleguard.security.cache import AuthorizationCache
from roleguard.security.errors import MalformedRuleError
from roleguard.security.pretend import EntryPoint, PretendMode
from roleguard.security.rules import Atom, AtomKind, Rule, RuleParser, record_kind
from roleguard.security.shortcuts import ShortcutTable, SubjectAuthorization
from roleguard.security.slugs import SlugNormalizer, coerce_ref


logger = logging.getLogger("roleguard.authz")
decision_logger = logging.getLogger("roleguard.decisions")
tracer = get_tracer("roleguard.authz")

R = TypeVar("R", RoleRead, PermissionRead)


class Subject(Protocol):
    id: Any


def entity_type_name(entity: Any) -> str:
    """Fully-qualified type name matched against ``Permission.model``."""

    cls = entity if isinstance(entity, type) else type(entity)
    return f"{cls.__module__}.{cls.__qualname__}"


def _unique(records: Iterable[R]) -> tuple[R, ...]:
    seen: dict[int, R] = {}
    for record in records:
        seen.setdefault(record.id, record)
    return tuple(seen.values())


def _describe(rule: Any) -> str:
    return rule if isinstance(rule, str) else repr(rule)


class AuthorizationCore:
    """Role and permission checks for subjects, backed by an ``AuthorizationStore``.

    Decisions are always booleans. Unknown role or permission references count
    as "no match"; malformed rules raise ``MalformedRuleError``.
    """

    def __init__(
        self,
        store: AuthorizationStore,
        settings: RolesSettings | None = None,
        *,
        cache: AuthorizationCache | None = None,
    ) -> None:
        self.settings = settings or RolesSettings()
        self.store = store
        self.cache = cache or AuthorizationCache()
        self.normalizer = SlugNormalizer(self.settings.separator)
        self.parser = RuleParser(self.normalizer)
        self.pretend = PretendMode.from_settings(self.settings.pretend)
        self.shortcuts = ShortcutTable(self.normalizer)

    # Roles

    def get_roles(self, subject: Subject) -> tuple[RoleRead, ...]:
        subject_id = self._subject_id(subject)
        return self.cache.get_roles(subject_id, lambda: _unique(self.store.load_roles_for_subject(subject_id)))

    def has_role(self, subject: Subject, role: Any) -> bool:
        role_id = self._ref_id(role, AtomKind.ROLE, self.store.find_role)
        if role_id is None:
            return False
        return any(held.id == role_id for held in self.get_roles(subject))

    def is_(self, subject: Subject, rule: Any) -> bool:
        return self._decide(
            EntryPoint.IS,
            subject,
            rule,
            lambda: self._evaluate(subject, rule, AtomKind.ROLE),
        )

    def level(self, subject: Subject) -> int:
        return max((role.level for role in self.get_roles(subject)), default=0)

    # Permissions

    def role_permissions(self, subject: Subject) -> tuple[PermissionRead, ...]:
        """Permissions of held roles plus those of every role below the subject's level."""

        role_ids = [role.id for role in self.get_roles(subject)]
        return _unique(self.store.load_permissions_for_roles(role_ids, below_level=self.level(subject)))

    def get_permissions(self, subject: Subject) -> tuple[PermissionRead, ...]:
        subject_id = self._subject_id(subject)

        def load() -> tuple[PermissionRead, ...]:
            direct = self.store.load_direct_permissions_for_subject(subject_id)
            return _unique([*self.role_permissions(subject), *direct])

        return self.cache.get_permissions(subject_id, load)

    def has_permission(self, subject: Subject, permission: Any) -> bool:
        permission_id = self._ref_id(permission, AtomKind.PERMISSION, self.store.find_permission)
        if permission_id is None:
            return False
        return any(held.id == permission_id for held in self.get_permissions(subject))

    def can(self, subject: Subject, rule: Any) -> bool:
        return self._decide(
            EntryPoint.CAN,
            subject,
            rule,
            lambda: self._evaluate(subject, rule, AtomKind.PERMISSION),
        )

    def has(self, subject: Subject, rule: Any) -> bool:
        """Mixed check; every atom needs an ``r:`` or ``p:`` prefix."""

        return self._decide(EntryPoint.HAS, subject, rule, lambda: self._evaluate(subject, rule, None))

    # Entity-scoped permissions

    def allowed(
        self,
        subject: Subject,
        rule: Any,
        entity: Any,
        owner: bool = True,
        owner_field: str = "user_id",
    ) -> bool:
        def evaluate() -> bool:
            if owner and self._owns(subject, entity, owner_field):
                return True

            parsed = self.parser.parse(rule, AtomKind.PERMISSION)

            def test(atom: Atom) -> bool:
                if atom.kind == AtomKind.ROLE:
                    raise MalformedRuleError(rule, "role atoms are not valid in entity checks")
                return self.is_allowed(subject, atom.ref, entity)

            return parsed.evaluate(test)

        return self._decide(EntryPoint.ALLOWED, subject, rule, evaluate)

    def is_allowed(self, subject: Subject, permission: Any, entity: Any) -> bool:
        if isinstance(permission, bool):
            return False
        if isinstance(permission, (int, str)):
            ref = self._normalize_ref(permission)
        else:
            ref = self._record_id(permission, AtomKind.PERMISSION)
            if ref is None:
                return False
        type_name = entity_type_name(entity)

        for held in self.get_permissions(subject):
            if not held.model or held.model != type_name:
                continue
            if (isinstance(ref, int) and held.id == ref) or held.slug == ref:
                return True
        return False

    # Mutations

    def attach_role(self, subject: Subject, role: Any) -> bool:
        subject_id = self._subject_id(subject)
        resolved = self._resolve(role, AtomKind.ROLE, self.store.find_role)
        if resolved is None:
            logger.warning("authz.role_not_found", extra={"subject_id": subject_id, "target": _describe(role)})
            return False
        if any(held.id == resolved.id for held in self.get_roles(subject)):
            return True

        self.store.attach_association(subject_id, resolved.id, AtomKind.ROLE)
        self.cache.invalidate(subject_id)
        self._record(subject_id, "role.attached", AtomKind.ROLE, resolved.id, resolved.slug)
        return True

    def detach_role(self, subject: Subject, role: Any) -> int:
        subject_id = self._subject_id(subject)
        resolved = self._resolve(role, AtomKind.ROLE, self.store.find_role)
        if resolved is None:
            logger.warning("authz.role_not_found", extra={"subject_id": subject_id, "target": _describe(role)})
            return 0

        self.cache.invalidate(subject_id)
        removed = self.store.detach_association(subject_id, resolved.id, AtomKind.ROLE)
        if removed:
            self._record(subject_id, "role.detached", AtomKind.ROLE, resolved.id, resolved.slug)
        return removed

    def detach_all_roles(self, subject: Subject) -> int:
        subject_id = self._subject_id(subject)
        self.cache.invalidate(subject_id)
        removed = self.store.detach_association(subject_id, None, AtomKind.ROLE)
        if removed:
            self._record(subject_id, "role.detached", AtomKind.ROLE, None, None, removed=removed)
        return removed

    def attach_permission(self, subject: Subject, permission: Any) -> bool:
        subject_id = self._subject_id(subject)
        resolved = self._resolve(permission, AtomKind.PERMISSION, self.store.find_permission)
        if resolved is None:
            logger.warning(
                "authz.permission_not_found", extra={"subject_id": subject_id, "target": _describe(permission)}
            )
            return False
        if any(held.id == resolved.id for held in self.get_permissions(subject)):
            return True

        self.store.attach_association(subject_id, resolved.id, AtomKind.PERMISSION)
        self.cache.invalidate_permissions(subject_id)
        self._record(subject_id, "permission.attached", AtomKind.PERMISSION, resolved.id, resolved.slug)
        return True

    def detach_permission(self, subject: Subject, permission: Any) -> int:
        subject_id = self._subject_id(subject)
        resolved = self._resolve(permission, AtomKind.PERMISSION, self.store.find_permission)
        if resolved is None:
            logger.warning(
                "authz.permission_not_found", extra={"subject_id": subject_id, "target": _describe(permission)}
            )
            return 0

        self.cache.invalidate_permissions(subject_id)
        removed = self.store.detach_association(subject_id, resolved.id, AtomKind.PERMISSION)
        if removed:
            self._record(subject_id, "permission.detached", AtomKind.PERMISSION, resolved.id, resolved.slug)
        return removed

    def detach_all_permissions(self, subject: Subject) -> int:
        subject_id = self._subject_id(subject)
        self.cache.invalidate_permissions(subject_id)
        removed = self.store.detach_association(subject_id, None, AtomKind.PERMISSION)
        if removed:
            self._record(subject_id, "permission.detached", AtomKind.PERMISSION, None, None, removed=removed)
        return removed

    def invalidate(self, subject: Subject) -> None:
        self.cache.invalidate(self._subject_id(subject))

    # Convenience

    def register_shortcuts(self, *names: str) -> None:
        for name in names:
            self.shortcuts.register(name)

    def for_subject(self, subject: Subject) -> SubjectAuthorization:
        return SubjectAuthorization(self, subject, self.shortcuts)

    # Internals

    def _decide(self, entry_point: EntryPoint, subject: Subject, rule: Any, evaluate: Callable[[], bool]) -> bool:
        with decision_span(tracer, entry_point.value, _describe(rule)) as span:
            if self.pretend.enabled:
                decision = self.pretend.answer(entry_point)
                span.set_attribute("authz.pretend", True)
                observe_authz_pretend_decision(entry_point.value)
            else:
                decision = evaluate()
            span.set_attribute("authz.decision", decision)

        observe_authz_decision(entry_point.value, decision)
        decision_logger.debug(
            "authz.decision",
            extra={
                "subject_id": str(getattr(subject, "id", None)),
                "entry_point": entry_point.value,
                "rule": _describe(rule),
                "decision": decision,
            },
        )
        return decision

    def _evaluate(self, subject: Subject, rule: Any, default_kind: AtomKind | None) -> bool:
        parsed: Rule = self.parser.parse(rule, default_kind)

        def test(atom: Atom) -> bool:
            if atom.kind == AtomKind.ROLE:
                return self.has_role(subject, atom.ref)
            if atom.kind == AtomKind.PERMISSION:
                return self.has_permission(subject, atom.ref)
            raise MalformedRuleError(rule, f"atom '{atom.ref}' needs an 'r:' or 'p:' prefix")

        return parsed.evaluate(test)

    @staticmethod
    def _subject_id(subject: Subject) -> str:
        subject_id = getattr(subject, "id", None)
        if subject_id is None:
            raise TypeError(f"{type(subject).__name__} has no id; only persisted subjects can hold roles")
        return str(subject_id)

    @staticmethod
    def _owns(subject: Subject, entity: Any, owner_field: str) -> bool:
        if isinstance(entity, Mapping):
            owner_id = entity.get(owner_field)
        else:
            owner_id = getattr(entity, owner_field, None)
        subject_id = getattr(subject, "id", None)
        return owner_id is not None and subject_id is not None and str(owner_id) == str(subject_id)

    def _normalize_ref(self, ref: int | str) -> int | str:
        ref = coerce_ref(ref)
        return self.normalizer(ref) if isinstance(ref, str) else ref

    def _ref_id(self, ref: Any, kind: AtomKind, finder: Callable[[Any], Any]) -> int | None:
        if isinstance(ref, bool):
            return None
        if isinstance(ref, (int, str)):
            found = finder(self._normalize_ref(ref))
            return found.id if found is not None else None
        return self._record_id(ref, kind)

    def _resolve(self, ref: Any, kind: AtomKind, finder: Callable[[Any], R | None]) -> R | None:
        if isinstance(ref, bool):
            return None
        if isinstance(ref, (int, str)):
            return finder(self._normalize_ref(ref))
        ref_id = self._record_id(ref, kind)
        return finder(ref_id) if ref_id is not None else None

    @staticmethod
    def _record_id(record: Any, kind: AtomKind) -> int | None:
        # A role record never stands in for a permission and vice versa.
        if record_kind(record) not in (None, kind):
            return None
        ref_id = getattr(record, "id", None)
        return ref_id if isinstance(ref_id, int) and not isinstance(ref_id, bool) else None

    def _record(
        self,
        subject_id: str,
        action: str,
        kind: AtomKind,
        target_id: int | None,
        slug: str | None,
        *,
        removed: int | None = None,
    ) -> None:
        id_field = "role_id" if kind == AtomKind.ROLE else "permission_id"
        audit.record_association(subject_id, kind.value, action, target_id, slug, removed)
        logger.info(
            f"authz.{action.replace('.', '_')}",
            extra={"subject_id": subject_id, id_field: target_id, "removed": removed},
        )
