from __future__ import annotations

import logging

from sqlalchemy import and_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from roleguard.authz.models import Permission, Role, RolePermission
from roleguard.authz.schemas import (
    PermissionCreate,
    PermissionRead,
    RoleCreate,
    RolePermissionRead,
    RoleRead,
    RoleUpdate,
)
from roleguard.core.config import get_settings
from roleguard.security.errors import DuplicateError, NotFoundError
from roleguard.security.slugs import SlugNormalizer


logger = logging.getLogger("roleguard.admin")


class AuthorizationAdminService:
    """Role and permission catalogue maintenance.

    Slugs are normalized with ``normalizer``; without one, the separator comes
    from ``get_settings()`` at call time. Pass the core's normalizer when the
    core was built from explicit settings.
    """

    def __init__(self, normalizer: SlugNormalizer | None = None) -> None:
        self._normalizer = normalizer

    def normalize(self, value: str) -> str:
        normalizer = self._normalizer or SlugNormalizer(get_settings().separator)
        return normalizer(value)

    def create_role(self, session: Session, dto: RoleCreate) -> RoleRead:
        role = Role(
            name=dto.name.strip(),
            slug=self.normalize(dto.slug or dto.name),
            description=dto.description,
            level=dto.level,
        )
        slug = role.slug
        session.add(role)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            raise DuplicateError("role", slug)
        session.refresh(role)
        logger.info("admin.role_created", extra={"role_id": role.id})
        return RoleRead.model_validate(role)

    def list_roles(self, session: Session) -> list[RoleRead]:
        rows = session.scalars(select(Role).order_by(Role.level.desc(), Role.slug.asc())).all()
        return [RoleRead.model_validate(row) for row in rows]

    def update_role(self, session: Session, role_id: int, dto: RoleUpdate) -> RoleRead:
        role = session.scalar(select(Role).where(Role.id == role_id))
        if role is None:
            raise NotFoundError("role", role_id)

        if dto.name is not None:
            role.name = dto.name.strip()
        if dto.slug is not None:
            role.slug = self.normalize(dto.slug)
        if dto.level is not None:
            role.level = dto.level
        role.description = dto.description

        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            raise DuplicateError("role", str(dto.slug))
        session.refresh(role)
        return RoleRead.model_validate(role)

    def delete_role(self, session: Session, role_id: int) -> None:
        role = session.scalar(select(Role).where(Role.id == role_id))
        if role is None:
            raise NotFoundError("role", role_id)

        session.delete(role)
        session.commit()

    def create_permission(self, session: Session, dto: PermissionCreate) -> PermissionRead:
        permission = Permission(
            name=dto.name.strip(),
            slug=self.normalize(dto.slug or dto.name),
            description=dto.description,
            model=dto.model,
        )
        slug = permission.slug
        session.add(permission)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            raise DuplicateError("permission", slug)
        session.refresh(permission)
        logger.info("admin.permission_created", extra={"permission_id": permission.id})
        return PermissionRead.model_validate(permission)

    def list_permissions(self, session: Session) -> list[PermissionRead]:
        rows = session.scalars(select(Permission).order_by(Permission.slug.asc())).all()
        return [PermissionRead.model_validate(row) for row in rows]

    def delete_permission(self, session: Session, permission_id: int) -> None:
        permission = session.scalar(select(Permission).where(Permission.id == permission_id))
        if permission is None:
            raise NotFoundError("permission", permission_id)

        session.delete(permission)
        session.commit()

    def attach_permission_to_role(self, session: Session, role_id: int, permission_id: int) -> RolePermissionRead:
        role = session.scalar(select(Role).where(Role.id == role_id))
        if role is None:
            raise NotFoundError("role", role_id)

        permission = session.scalar(select(Permission).where(Permission.id == permission_id))
        if permission is None:
            raise NotFoundError("permission", permission_id)

        mapping = session.scalar(
            select(RolePermission).where(
                and_(RolePermission.role_id == role_id, RolePermission.permission_id == permission_id)
            )
        )
        if mapping is None:
            session.add(RolePermission(role_id=role_id, permission_id=permission_id))
            session.commit()

        return RolePermissionRead(
            role_id=role.id,
            role_slug=role.slug,
            permission_id=permission.id,
            permission_slug=permission.slug,
        )

    def detach_permission_from_role(self, session: Session, role_id: int, permission_id: int) -> None:
        mapping = session.scalar(
            select(RolePermission).where(
                and_(RolePermission.role_id == role_id, RolePermission.permission_id == permission_id)
            )
        )
        if mapping is None:
            raise NotFoundError("role-permission mapping", (role_id, permission_id))

        session.delete(mapping)
        session.commit()


authorization_admin_service = AuthorizationAdminService()
