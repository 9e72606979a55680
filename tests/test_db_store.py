from __future__ import annotations

from collections.abc import Generator
from dataclasses import dataclass

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from roleguard.authz.models import Permission, Role, SubjectPermission
from roleguard.authz.schemas import PermissionCreate, RoleCreate, RoleUpdate
from roleguard.authz.service import AuthorizationAdminService
from roleguard.authz.store import DbAuthorizationStore, resolve_model_classes
from roleguard.core.config import ModelSettings, RolesSettings, get_settings
from roleguard.core.database import Base
from roleguard.main import build_core
from roleguard.security.core import AuthorizationCore, entity_type_name
from roleguard.security.errors import ConfigurationError, DuplicateError, NotFoundError


@dataclass
class User:
    id: str


@dataclass
class Invoice:
    id: int
    user_id: str


@pytest.fixture()
def session_factory() -> Generator[sessionmaker[Session], None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    try:
        yield SessionLocal
    finally:
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def reset_settings() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def seeded(session_factory: sessionmaker[Session]) -> dict[str, int]:
    service = AuthorizationAdminService()
    with session_factory() as session:
        admin = service.create_role(session, RoleCreate(name="Admin", level=3))
        manager = service.create_role(session, RoleCreate(name="Account Manager", level=2))
        clerk = service.create_role(session, RoleCreate(name="Clerk", level=1))

        view = service.create_permission(session, PermissionCreate(name="View Invoices"))
        approve = service.create_permission(
            session, PermissionCreate(name="Approve Invoice", model=entity_type_name(Invoice))
        )
        purge = service.create_permission(session, PermissionCreate(name="Purge Ledger"))

        service.attach_permission_to_role(session, clerk.id, view.id)
        service.attach_permission_to_role(session, manager.id, approve.id)
        service.attach_permission_to_role(session, admin.id, purge.id)

    return {
        "admin": admin.id,
        "manager": manager.id,
        "clerk": clerk.id,
        "view": view.id,
        "approve": approve.id,
        "purge": purge.id,
    }


@pytest.fixture()
def core(session_factory: sessionmaker[Session], seeded: dict[str, int]) -> AuthorizationCore:
    return AuthorizationCore(DbAuthorizationStore(session_factory), RolesSettings())


def test_admin_service_normalizes_slugs(session_factory: sessionmaker[Session], seeded: dict[str, int]) -> None:
    service = AuthorizationAdminService()
    with session_factory() as session:
        slugs = [role.slug for role in service.list_roles(session)]
        assert slugs == ["admin", "account.manager", "clerk"]
        assert [permission.slug for permission in service.list_permissions(session)] == [
            "approve.invoice",
            "purge.ledger",
            "view.invoices",
        ]

        updated = service.update_role(session, seeded["clerk"], RoleUpdate(slug="Billing Clerk", level=1))
        assert updated.slug == "billing.clerk"

        with pytest.raises(DuplicateError):
            service.create_role(session, RoleCreate(name="admin"))
        with pytest.raises(NotFoundError):
            service.delete_role(session, 999)
        with pytest.raises(NotFoundError):
            service.detach_permission_from_role(session, seeded["admin"], seeded["view"])


def test_store_finds_by_slug_or_id(session_factory: sessionmaker[Session], seeded: dict[str, int]) -> None:
    store = DbAuthorizationStore(session_factory)

    assert store.find_role("account.manager").id == seeded["manager"]  # type: ignore[union-attr]
    assert store.find_role(seeded["admin"]).slug == "admin"  # type: ignore[union-attr]
    assert store.find_role(str(seeded["clerk"])).slug == "clerk"  # type: ignore[union-attr]
    assert store.find_role("ghost") is None
    assert store.find_role("Account Manager") is None
    assert store.find_role(999) is None
    assert store.find_permission("view.invoices").id == seeded["view"]  # type: ignore[union-attr]


def test_store_loads_permissions_below_level(session_factory: sessionmaker[Session], seeded: dict[str, int]) -> None:
    store = DbAuthorizationStore(session_factory)

    assert store.load_permissions_for_roles([]) == []
    only_manager = store.load_permissions_for_roles([seeded["manager"]])
    assert [permission.slug for permission in only_manager] == ["approve.invoice"]

    with_lower = store.load_permissions_for_roles([seeded["manager"]], below_level=2)
    assert [permission.slug for permission in with_lower] == ["view.invoices", "approve.invoice"]


def test_core_end_to_end_with_database(
    core: AuthorizationCore, session_factory: sessionmaker[Session], seeded: dict[str, int]
) -> None:
    user = User(id="u-1")

    assert core.attach_role(user, "account.manager") is True
    assert core.attach_role(user, "Account Manager") is True
    assert core.is_(user, "admin,account.manager") is True
    assert core.is_(user, "admin+account.manager") is False
    assert core.level(user) == 2

    assert core.can(user, "view.invoices") is True
    assert core.can(user, "purge.ledger") is False

    other_invoice = Invoice(id=1, user_id="u-2")
    assert core.allowed(user, "approve.invoice", other_invoice) is True
    assert core.allowed(user, "view.invoices", other_invoice) is False
    assert core.allowed(user, "purge.ledger", Invoice(id=2, user_id="u-1")) is True

    assert core.attach_permission(user, "purge.ledger") is True
    assert core.attach_permission(user, seeded["purge"]) is True
    assert core.can(user, "purge.ledger") is True
    with session_factory() as session:
        links = session.scalar(select(func.count()).select_from(SubjectPermission))
    assert links == 1

    assert core.detach_all_permissions(user) == 1
    assert core.can(user, "purge.ledger") is False
    assert core.detach_all_roles(user) == 1
    assert core.is_(user, "account.manager") is False
    assert core.level(user) == 0


def test_explicit_separator_flows_through_service_store_and_core(session_factory: sessionmaker[Session]) -> None:
    core = AuthorizationCore(DbAuthorizationStore(session_factory), RolesSettings(separator="-"))
    service = AuthorizationAdminService(core.normalizer)
    with session_factory() as session:
        role = service.create_role(session, RoleCreate(name="Admin Users", level=2))
        permission = service.create_permission(session, PermissionCreate(name="Purge Ledger"))
        service.attach_permission_to_role(session, role.id, permission.id)
    assert role.slug == "admin-users"

    user = User(id="u-7")
    assert core.attach_role(user, "Admin Users") is True
    assert core.is_(user, "admin-users") is True
    assert core.is_(user, "adminUsers") is True
    assert core.can(user, "purge.ledger") is True
    assert core.detach_role(user, "admin.users") == 1


def test_separator_from_environment_reaches_database_path(
    session_factory: sessionmaker[Session], monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("ROLES_SEPARATOR", "-")
    get_settings.cache_clear()

    with session_factory() as session:
        stored = AuthorizationAdminService().create_role(session, RoleCreate(name="Admin Users"))
    assert stored.slug == "admin-users"

    core = AuthorizationCore(DbAuthorizationStore(session_factory), get_settings())
    user = User(id="u-8")
    assert core.attach_role(user, "Admin Users") is True
    assert core.is_(user, "admin-users") is True


def test_orm_rows_are_accepted_as_references(
    core: AuthorizationCore, session_factory: sessionmaker[Session], seeded: dict[str, int]
) -> None:
    user = User(id="u-1")
    core.attach_role(user, "account.manager")

    with session_factory() as session:
        approve = session.get(Permission, seeded["approve"])
        manager = session.get(Role, seeded["manager"])
    assert approve is not None and manager is not None

    other_invoice = Invoice(id=1, user_id="u-2")
    assert core.is_allowed(user, approve, other_invoice) is True
    assert core.has_permission(user, approve) is True
    assert core.has_role(user, manager) is True
    assert core.has_permission(user, manager) is False
    assert core.has_role(user, approve) is False


def test_model_settings_must_point_at_compatible_models() -> None:
    role_model, permission_model = resolve_model_classes(ModelSettings())
    assert role_model.__name__ == "Role"
    assert permission_model.__name__ == "Permission"

    with pytest.raises(ConfigurationError):
        resolve_model_classes(ModelSettings(role="roleguard.authz.models.RolePermission"))
    with pytest.raises(ConfigurationError):
        resolve_model_classes(ModelSettings(permission="roleguard.authz.schemas.PermissionRead"))
    with pytest.raises(ConfigurationError):
        resolve_model_classes(ModelSettings(permission="roleguard.missing_module.Permission"))
    with pytest.raises(ConfigurationError):
        resolve_model_classes(ModelSettings(role="roleguard.authz.models.Missing"))
    with pytest.raises(ConfigurationError):
        resolve_model_classes(ModelSettings(role="Role"))


def test_build_core_fails_fast_on_bad_permission_model() -> None:
    settings = RolesSettings(models=ModelSettings(permission="builtins.dict"))

    with pytest.raises(ConfigurationError):
        build_core(settings)
