"""
Filename filtering for remote listings.
"""

from __future__ import annotations

import re


class FilenameFilter:
    """
    Case-sensitive glob over entry names where ``*`` is the only wildcard.

    Every other character, ``?`` and ``[`` included, matches itself.
    """

    def __init__(self, pattern: str):
        if not pattern:
            raise ValueError("Filename pattern must not be empty")
        self.pattern = pattern
        self._regex = re.compile(".*".join(re.escape(part) for part in pattern.split("*")), re.DOTALL)

    @classmethod
    def accept_all(cls) -> FilenameFilter:
        return cls("*")

    def matches(self, name: str) -> bool:
        return self._regex.fullmatch(name) is not None

    __call__ = matches

    def __repr__(self) -> str:
        return f"FilenameFilter({self.pattern!r})"
