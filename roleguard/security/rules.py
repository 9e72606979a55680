from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from roleguard.security.errors import MalformedRuleError
from roleguard.security.slugs import SlugNormalizer, coerce_ref


OR_SEPARATORS = (",", "|")
AND_SEPARATORS = ("+", "&")

_OR_SPLIT_RE = re.compile(r"[,|]")
_AND_SPLIT_RE = re.compile(r"[+&]")


class AtomKind(StrEnum):
    ROLE = "role"
    PERMISSION = "permission"


_KIND_PREFIXES: dict[str, AtomKind] = {
    "r": AtomKind.ROLE,
    "role": AtomKind.ROLE,
    "p": AtomKind.PERMISSION,
    "permission": AtomKind.PERMISSION,
}


@dataclass(frozen=True, slots=True)
class Atom:
    kind: AtomKind | None
    ref: int | str


AtomTest = Callable[[Atom], bool]


@dataclass(frozen=True, slots=True)
class Rule:
    """OR of AND-groups over atoms."""

    groups: tuple[tuple[Atom, ...], ...]

    def evaluate(self, test: AtomTest) -> bool:
        for group in self.groups:
            if all(test(atom) for atom in group):
                return True
        return False

    def atoms(self) -> list[Atom]:
        return [atom for group in self.groups for atom in group]

    def __str__(self) -> str:
        return ",".join("+".join(_render_atom(atom) for atom in group) for group in self.groups)


def _render_atom(atom: Atom) -> str:
    if atom.kind is None:
        return str(atom.ref)
    return f"{atom.kind.value[0]}:{atom.ref}"


class RuleParser:
    """Parses rule strings ("admin,editor+verified") and nested sequences into a Rule."""

    def __init__(self, normalizer: SlugNormalizer | None = None) -> None:
        self._normalizer = normalizer or SlugNormalizer()

    def parse(self, expr: Any, default_kind: AtomKind | None = None) -> Rule:
        if isinstance(expr, Rule):
            return expr
        if isinstance(expr, str):
            return self._parse_string(expr, default_kind)
        if isinstance(expr, (list, tuple)):
            return self._parse_sequence(expr, default_kind)
        return Rule(groups=((self._parse_atom(expr, default_kind, rule=expr),),))

    def _parse_string(self, expr: str, default_kind: AtomKind | None) -> Rule:
        if not expr.strip():
            raise MalformedRuleError(expr, "empty expression")
        groups = tuple(self._parse_group(chunk, default_kind, rule=expr) for chunk in _OR_SPLIT_RE.split(expr))
        return Rule(groups=groups)

    def _parse_sequence(self, expr: Sequence[Any], default_kind: AtomKind | None) -> Rule:
        if not expr:
            raise MalformedRuleError(expr, "empty expression")

        groups: list[tuple[Atom, ...]] = []
        for item in expr:
            if isinstance(item, str):
                if _OR_SPLIT_RE.search(item):
                    raise MalformedRuleError(expr, f"OR separator inside group {item!r}")
                groups.append(self._parse_group(item, default_kind, rule=expr))
            elif isinstance(item, (list, tuple)):
                if not item:
                    raise MalformedRuleError(expr, "empty group")
                atoms: list[Atom] = []
                for element in item:
                    if isinstance(element, str) and (_OR_SPLIT_RE.search(element) or _AND_SPLIT_RE.search(element)):
                        raise MalformedRuleError(expr, f"separator inside atom {element!r}")
                    atoms.append(self._parse_atom(element, default_kind, rule=expr))
                groups.append(tuple(atoms))
            else:
                groups.append((self._parse_atom(item, default_kind, rule=expr),))
        return Rule(groups=tuple(groups))

    def _parse_group(self, chunk: str, default_kind: AtomKind | None, *, rule: Any) -> tuple[Atom, ...]:
        if not chunk.strip():
            raise MalformedRuleError(rule, "empty group")
        return tuple(self._parse_atom(token, default_kind, rule=rule) for token in _AND_SPLIT_RE.split(chunk))

    def _parse_atom(self, token: Any, default_kind: AtomKind | None, *, rule: Any) -> Atom:
        if isinstance(token, bool):
            raise MalformedRuleError(rule, "boolean is not a role or permission reference")
        if isinstance(token, int):
            return Atom(kind=default_kind, ref=token)
        if isinstance(token, str):
            return self._parse_token(token, default_kind, rule=rule)

        ref = getattr(token, "id", None)
        if isinstance(ref, int) and hasattr(token, "slug"):
            return Atom(kind=record_kind(token) or default_kind, ref=ref)
        raise MalformedRuleError(rule, f"unsupported element of type {type(token).__name__}")

    def _parse_token(self, token: str, default_kind: AtomKind | None, *, rule: Any) -> Atom:
        text = token.strip()
        if not text:
            raise MalformedRuleError(rule, "empty atom")

        kind = default_kind
        if ":" in text:
            prefix, _, text = text.partition(":")
            prefix = prefix.strip().lower()
            if prefix not in _KIND_PREFIXES:
                raise MalformedRuleError(rule, f"unknown kind prefix '{prefix}:'")
            kind = _KIND_PREFIXES[prefix]
            text = text.strip()
            if not text:
                raise MalformedRuleError(rule, "empty atom")

        ref = coerce_ref(text)
        if isinstance(ref, str):
            ref = self._normalizer(ref)
            if not ref:
                raise MalformedRuleError(rule, f"atom {token!r} normalizes to an empty slug")
        return Atom(kind=kind, ref=ref)


def record_kind(record: Any) -> AtomKind | None:
    if hasattr(record, "level"):
        return AtomKind.ROLE
    if hasattr(record, "model"):
        return AtomKind.PERMISSION
    return None
