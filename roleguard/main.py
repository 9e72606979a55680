from __future__ import annotations

import logging

from roleguard.authz.store import AuthorizationStore, DbAuthorizationStore
from roleguard.core.config import RolesSettings, get_settings
from roleguard.core.database import get_session_factory
from roleguard.logging import configure_logging
from roleguard.otel import setup_otel
from roleguard.security.core import AuthorizationCore


logger = logging.getLogger("roleguard.lifecycle")


def build_core(
    settings: RolesSettings | None = None,
    store: AuthorizationStore | None = None,
    *,
    shortcuts: tuple[str, ...] = (),
) -> AuthorizationCore:
    """Compose an ``AuthorizationCore`` from settings; model misconfiguration fails here."""

    configure_logging()
    settings = settings or get_settings()
    setup_otel(settings.app_name, settings.otel_enabled)

    if store is None:
        store = DbAuthorizationStore(get_session_factory(settings), models=settings.models)

    core = AuthorizationCore(store, settings)
    core.register_shortcuts(*shortcuts)

    logger.info("authz.core_ready", extra={"pretend": core.pretend.enabled, "shortcuts": core.shortcuts.names()})
    return core
