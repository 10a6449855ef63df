"""Resolve instruction strings to the entity type they target."""

from __future__ import annotations

import re
from typing import Iterable


class TableRouter:
    """Finds entity type names inside instruction text.

    Names are matched case-insensitively as whole words, longest first, so a
    compound name such as ``admin_tasks`` wins over ``tasks``.
    """

    def __init__(self, names: Iterable[str]) -> None:
        self._names = sorted(set(names), key=lambda n: (-len(n), n))
        self._patterns = [
            (name, re.compile(rf"(?<![A-Za-z0-9_]){re.escape(name)}(?![A-Za-z0-9_])", re.IGNORECASE))
            for name in self._names
        ]

    @property
    def names(self) -> list[str]:
        return list(self._names)

    def resolve(self, text: str) -> str | None:
        """Return the entity type named in *text*, or None if there is none."""
        if not text:
            return None
        for name, pattern in self._patterns:
            if pattern.search(text):
                return name
        return None
