from __future__ import annotations

import importlib
import logging
from collections.abc import Iterable
from typing import Any, Protocol

from sqlalchemy import delete, or_, select
from sqlalchemy.orm import Session, sessionmaker

from roleguard.authz.models import Permission, Role, RolePermission, SubjectPermission, SubjectRole
from roleguard.authz.schemas import PermissionRead, RoleRead
from roleguard.core.config import ModelSettings
from roleguard.metrics import observe_authz_store_query
from roleguard.security.errors import ConfigurationError, DuplicateError
from roleguard.security.rules import AtomKind
from roleguard.security.slugs import SlugNormalizer, coerce_ref


logger = logging.getLogger("roleguard.store")

SubjectId = int | str
Ref = int | str


class AuthorizationStore(Protocol):
    """Persistence collaborator for role/permission associations.

    ``find_role``/``find_permission`` take an id, a digit string or an already
    normalized slug; slugs are matched exactly.
    """

    def load_roles_for_subject(self, subject_id: SubjectId) -> list[RoleRead]:
        ...

    def load_permissions_for_roles(self, role_ids: Iterable[int], below_level: int | None = None) -> list[PermissionRead]:
        ...

    def load_direct_permissions_for_subject(self, subject_id: SubjectId) -> list[PermissionRead]:
        ...

    def attach_association(self, subject_id: SubjectId, target_id: int, kind: AtomKind) -> None:
        ...

    def detach_association(self, subject_id: SubjectId, target_id: int | None, kind: AtomKind) -> int:
        ...

    def find_role(self, ref: Ref) -> RoleRead | None:
        ...

    def find_permission(self, ref: Ref) -> PermissionRead | None:
        ...


def _import_string(path: str) -> Any:
    module_path, _, attribute = path.rpartition(".")
    if not module_path:
        raise ConfigurationError(f"'{path}' is not a dotted import path")
    try:
        module = importlib.import_module(module_path)
    except ImportError as exc:
        raise ConfigurationError(f"cannot import '{module_path}': {exc}") from exc
    try:
        return getattr(module, attribute)
    except AttributeError as exc:
        raise ConfigurationError(f"'{module_path}' has no attribute '{attribute}'") from exc


def resolve_model_classes(models: ModelSettings) -> tuple[type[Role], type[Permission]]:
    """Resolve ``models.role`` / ``models.permission``; fails fast on incompatible types."""

    role_model = _import_string(models.role)
    if not isinstance(role_model, type) or not issubclass(role_model, Role):
        raise ConfigurationError(f"[models.role] must be a subclass of {Role.__module__}.{Role.__qualname__}")

    permission_model = _import_string(models.permission)
    if not isinstance(permission_model, type) or not issubclass(permission_model, Permission):
        raise ConfigurationError(
            f"[models.permission] must be a subclass of {Permission.__module__}.{Permission.__qualname__}"
        )
    return role_model, permission_model


class InMemoryAuthorizationStore:
    """Dictionary-backed store for tests and fixtures."""

    def __init__(self, normalizer: SlugNormalizer | None = None) -> None:
        self._normalizer = normalizer or SlugNormalizer()
        self._roles: dict[int, RoleRead] = {}
        self._permissions: dict[int, PermissionRead] = {}
        self._role_permissions: dict[int, list[int]] = {}
        self._subject_roles: dict[str, list[int]] = {}
        self._subject_permissions: dict[str, list[int]] = {}
        self.query_count = 0

    def add_role(self, slug: str, *, level: int = 1, name: str | None = None, description: str | None = None) -> RoleRead:
        normalized = self._normalizer(slug)
        if any(role.slug == normalized for role in self._roles.values()):
            raise DuplicateError("role", normalized)
        role = RoleRead(
            id=len(self._roles) + 1,
            slug=normalized,
            name=name or slug,
            description=description,
            level=level,
        )
        self._roles[role.id] = role
        return role

    def add_permission(
        self,
        slug: str,
        *,
        model: str | None = None,
        name: str | None = None,
        description: str | None = None,
    ) -> PermissionRead:
        normalized = self._normalizer(slug)
        if any(permission.slug == normalized for permission in self._permissions.values()):
            raise DuplicateError("permission", normalized)
        permission = PermissionRead(
            id=len(self._permissions) + 1,
            slug=normalized,
            name=name or slug,
            description=description,
            model=model,
        )
        self._permissions[permission.id] = permission
        return permission

    def grant(self, role: RoleRead, *permissions: PermissionRead) -> None:
        linked = self._role_permissions.setdefault(role.id, [])
        for permission in permissions:
            if permission.id not in linked:
                linked.append(permission.id)

    def load_roles_for_subject(self, subject_id: SubjectId) -> list[RoleRead]:
        self._count("load_roles_for_subject")
        return [self._roles[role_id] for role_id in self._subject_roles.get(str(subject_id), [])]

    def load_permissions_for_roles(self, role_ids: Iterable[int], below_level: int | None = None) -> list[PermissionRead]:
        self._count("load_permissions_for_roles")
        selected = set(role_ids)
        if below_level is not None:
            selected.update(role.id for role in self._roles.values() if role.level < below_level)

        permissions: dict[int, PermissionRead] = {}
        for role_id in sorted(selected):
            for permission_id in self._role_permissions.get(role_id, []):
                permissions.setdefault(permission_id, self._permissions[permission_id])
        return list(permissions.values())

    def load_direct_permissions_for_subject(self, subject_id: SubjectId) -> list[PermissionRead]:
        self._count("load_direct_permissions_for_subject")
        return [self._permissions[pid] for pid in self._subject_permissions.get(str(subject_id), [])]

    def attach_association(self, subject_id: SubjectId, target_id: int, kind: AtomKind) -> None:
        self._count("attach_association")
        links = self._links(kind).setdefault(str(subject_id), [])
        if target_id not in links:
            links.append(target_id)

    def detach_association(self, subject_id: SubjectId, target_id: int | None, kind: AtomKind) -> int:
        self._count("detach_association")
        links = self._links(kind).get(str(subject_id), [])
        if target_id is None:
            removed = len(links)
            links.clear()
            return removed
        if target_id in links:
            links.remove(target_id)
            return 1
        return 0

    def find_role(self, ref: Ref) -> RoleRead | None:
        self._count("find_role")
        ref = coerce_ref(ref)
        if isinstance(ref, int):
            return self._roles.get(ref)
        return next((role for role in self._roles.values() if role.slug == ref), None)

    def find_permission(self, ref: Ref) -> PermissionRead | None:
        self._count("find_permission")
        ref = coerce_ref(ref)
        if isinstance(ref, int):
            return self._permissions.get(ref)
        return next((permission for permission in self._permissions.values() if permission.slug == ref), None)

    def _links(self, kind: AtomKind) -> dict[str, list[int]]:
        return self._subject_roles if kind == AtomKind.ROLE else self._subject_permissions

    def _count(self, operation: str) -> None:
        self.query_count += 1
        observe_authz_store_query(operation)


class DbAuthorizationStore:
    """SQLAlchemy-backed store; one short session per call."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        models: ModelSettings | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._role_model, self._permission_model = resolve_model_classes(models or ModelSettings())

    def load_roles_for_subject(self, subject_id: SubjectId) -> list[RoleRead]:
        role_model = self._role_model
        with self._session_factory() as session:
            rows = session.scalars(
                select(role_model)
                .join(SubjectRole, SubjectRole.role_id == role_model.id)
                .where(SubjectRole.subject_id == str(subject_id))
                .order_by(SubjectRole.created_at.asc(), role_model.id.asc())
            ).all()
            observe_authz_store_query("load_roles_for_subject")
            return [RoleRead.model_validate(row) for row in rows]

    def load_permissions_for_roles(self, role_ids: Iterable[int], below_level: int | None = None) -> list[PermissionRead]:
        role_model = self._role_model
        permission_model = self._permission_model

        conditions = []
        ids = list(role_ids)
        if ids:
            conditions.append(role_model.id.in_(ids))
        if below_level is not None:
            conditions.append(role_model.level < below_level)
        if not conditions:
            return []

        with self._session_factory() as session:
            rows = session.scalars(
                select(permission_model)
                .join(RolePermission, RolePermission.permission_id == permission_model.id)
                .join(role_model, role_model.id == RolePermission.role_id)
                .where(or_(*conditions))
                .distinct()
                .order_by(permission_model.id.asc())
            ).all()
            observe_authz_store_query("load_permissions_for_roles")
            return [PermissionRead.model_validate(row) for row in rows]

    def load_direct_permissions_for_subject(self, subject_id: SubjectId) -> list[PermissionRead]:
        permission_model = self._permission_model
        with self._session_factory() as session:
            rows = session.scalars(
                select(permission_model)
                .join(SubjectPermission, SubjectPermission.permission_id == permission_model.id)
                .where(SubjectPermission.subject_id == str(subject_id))
                .order_by(SubjectPermission.created_at.asc(), permission_model.id.asc())
            ).all()
            observe_authz_store_query("load_direct_permissions_for_subject")
            return [PermissionRead.model_validate(row) for row in rows]

    def attach_association(self, subject_id: SubjectId, target_id: int, kind: AtomKind) -> None:
        link_model, column = self._link(kind)
        with self._session_factory() as session:
            existing = session.scalar(
                select(link_model).where(link_model.subject_id == str(subject_id), column == target_id)
            )
            if existing is None:
                session.add(link_model(subject_id=str(subject_id), **{column.key: target_id}))
                session.commit()
            observe_authz_store_query("attach_association")
        logger.debug("store.attached", extra={"subject_id": str(subject_id), "target": f"{kind.value}:{target_id}"})

    def detach_association(self, subject_id: SubjectId, target_id: int | None, kind: AtomKind) -> int:
        link_model, column = self._link(kind)
        stmt = delete(link_model).where(link_model.subject_id == str(subject_id))
        if target_id is not None:
            stmt = stmt.where(column == target_id)

        with self._session_factory() as session:
            result = session.execute(stmt)
            session.commit()
            observe_authz_store_query("detach_association")
        removed = int(result.rowcount or 0)
        logger.debug(
            "store.detached",
            extra={"subject_id": str(subject_id), "target": f"{kind.value}:{target_id}", "removed": removed},
        )
        return removed

    def find_role(self, ref: Ref) -> RoleRead | None:
        return self._find(self._role_model, RoleRead, ref)

    def find_permission(self, ref: Ref) -> PermissionRead | None:
        return self._find(self._permission_model, PermissionRead, ref)

    def _find(self, model: type[Role] | type[Permission], schema: Any, ref: Ref) -> Any:
        ref = coerce_ref(ref)
        with self._session_factory() as session:
            if isinstance(ref, int):
                row = session.get(model, ref)
            else:
                row = session.scalar(select(model).where(model.slug == ref))
            observe_authz_store_query("find")
            return schema.model_validate(row) if row is not None else None

    @staticmethod
    def _link(kind: AtomKind) -> tuple[type[SubjectRole] | type[SubjectPermission], Any]:
        if kind == AtomKind.ROLE:
            return SubjectRole, SubjectRole.role_id
        return SubjectPermission, SubjectPermission.permission_id
