from __future__ import annotations

from dataclasses import dataclass

import pytest

from roleguard.authz.store import InMemoryAuthorizationStore
from roleguard.core.config import RolesSettings
from roleguard.security.core import AuthorizationCore, entity_type_name
from roleguard.security.errors import MalformedRuleError, UnknownShortcutError
from roleguard.security.pretend import EntryPoint
from roleguard.security.shortcuts import ShortcutTable


@dataclass
class User:
    id: int


@dataclass
class Post:
    id: int
    user_id: int


def test_register_parses_entry_point_and_rule() -> None:
    table = ShortcutTable()

    assert table.register("is_admin").entry_point == EntryPoint.IS
    assert table.register("is_admin").rule == "admin"
    assert table.register("canEditPost").rule == "edit.post"
    assert table.register("can_edit_post").entry_point == EntryPoint.CAN
    allowed = table.register("allowed_delete_post")
    assert (allowed.entry_point, allowed.rule) == (EntryPoint.ALLOWED, "delete.post")
    assert table.register("is_staff", "admin,editor").rule == "admin,editor"

    assert "is_admin" in table
    assert table.names() == ["allowed_delete_post", "canEditPost", "can_edit_post", "is_admin", "is_staff"]


@pytest.mark.parametrize("name", ["delete_everything", "isolate", "can_", "is"])
def test_register_rejects_names_without_entry_point(name: str) -> None:
    with pytest.raises(MalformedRuleError):
        ShortcutTable().register(name)


def test_unknown_shortcut() -> None:
    table = ShortcutTable()

    with pytest.raises(UnknownShortcutError) as exc_info:
        table.get("is_ghost")
    assert isinstance(exc_info.value, KeyError)
    assert "is_ghost" in str(exc_info.value)


def test_bound_subject_dispatches_registered_shortcuts() -> None:
    store = InMemoryAuthorizationStore()
    editor = store.add_role("editor", level=2)
    store.grant(
        editor,
        store.add_permission("edit.post", model=entity_type_name(Post)),
        store.add_permission("publish.posts"),
    )
    core = AuthorizationCore(store, RolesSettings())
    core.register_shortcuts("is_editor", "is_admin", "can_publish_posts", "allowed_edit_post")

    user = User(id=1)
    core.attach_role(user, editor)
    bound = core.for_subject(user)

    assert bound.check("is_editor") is True
    assert bound.check("is_admin") is False
    assert bound.check("can_publish_posts") is True
    assert bound.check("allowed_edit_post", Post(id=1, user_id=99)) is True

    with pytest.raises(TypeError):
        bound.check("allowed_edit_post")
    with pytest.raises(UnknownShortcutError):
        bound.check("can_fly")
