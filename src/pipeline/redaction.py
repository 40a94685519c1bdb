# src/pipeline/redaction.py — v1
"""Mask known secret values in captured job output."""

from __future__ import annotations

import re
from collections.abc import Iterable

DEFAULT_MASK = "***"


class Redactor:
    """Replaces every occurrence of any known secret value with a mask.

    Output is captured line by line, so each line of a multi-line secret
    is also registered on its own. Longer values are matched first so a
    secret that contains another secret is masked as a whole.
    """

    def __init__(self, secrets: Iterable[str] = (), mask: str = DEFAULT_MASK) -> None:
        self._mask = mask
        values: set[str] = set()
        for secret in secrets:
            if not secret:
                continue
            values.add(secret)
            values.update(line for line in secret.splitlines() if line.strip())
        self._values = sorted(values, key=len, reverse=True)
        self._pattern = (
            re.compile("|".join(re.escape(v) for v in self._values))
            if self._values
            else None
        )

    @property
    def active(self) -> bool:
        return self._pattern is not None

    def redact(self, text: str) -> str:
        if self._pattern is None:
            return text
        return self._pattern.sub(self._mask, text)
