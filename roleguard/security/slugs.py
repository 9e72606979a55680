from __future__ import annotations

import re
from typing import overload

DEFAULT_SEPARATOR = "."

_CAMEL_BOUNDARY_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")
_DIGITS_RE = re.compile(r"^\d+$")


class SlugNormalizer:
    """Canonical slug form: "Admin Users" and "adminUsers" both become "admin.users"."""

    def __init__(self, separator: str = DEFAULT_SEPARATOR) -> None:
        if len(separator) != 1:
            raise ValueError("slug separator must be a single character")
        self.separator = separator
        self._split_re = re.compile(r"[\s_\-.%s]+" % re.escape(separator))

    @overload
    def __call__(self, value: int) -> int: ...

    @overload
    def __call__(self, value: str) -> str: ...

    def __call__(self, value: int | str) -> int | str:
        if isinstance(value, int):
            return value
        spaced = _CAMEL_BOUNDARY_RE.sub(self.separator, value.strip())
        collapsed = self._split_re.sub(self.separator, spaced)
        return collapsed.strip(self.separator).lower()

    def is_normalized(self, value: str) -> bool:
        return self(value) == value


def coerce_ref(value: int | str) -> int | str:
    """Digit-only strings refer to ids."""

    if isinstance(value, str) and _DIGITS_RE.match(value.strip()):
        return int(value.strip())
    return value
