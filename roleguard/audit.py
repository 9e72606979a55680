from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from roleguard.context import get_actor_id, get_correlation_id

audit_entries: list[dict[str, Any]] = []


def record(
    subject_id: str,
    entity_type: str,
    entity_id: str,
    action: str,
    before: dict[str, Any] | None,
    after: dict[str, Any] | None,
    correlation_id: str | None = None,
) -> dict[str, Any]:
    entry = {
        "id": str(uuid.uuid4()),
        "actor_user_id": get_actor_id(),
        "subject_id": subject_id,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "action": action,
        "before": before,
        "after": after,
        "correlation_id": correlation_id or get_correlation_id(),
        "occurred_at": datetime.now(timezone.utc).isoformat(),
    }
    audit_entries.append(entry)
    return entry


def record_association(
    subject_id: str,
    kind: str,
    action: str,
    target_id: int | None,
    slug: str | None,
    removed: int | None = None,
) -> dict[str, Any]:
    """Audit a subject role/permission link change; ``target_id=None`` means every link of ``kind``."""

    return record(
        subject_id=subject_id,
        entity_type=f"authz.subject_{kind}",
        entity_id=str(target_id) if target_id is not None else "*",
        action=action,
        before=None,
        after={f"{kind}_id": target_id, "slug": slug, "removed": removed},
    )


def entries_for_subject(subject_id: str, action: str | None = None) -> list[dict[str, Any]]:
    return [
        entry
        for entry in audit_entries
        if entry["subject_id"] == subject_id and (action is None or entry["action"] == action)
    ]
