"""Naming templates for generated child nodes.

Supported codes:

- ``{{n}}``, ``{{nn}}``, ``{{nnn}}`` ...: 1-based sequence number, zero-padded
  to the number of ``n``s
- ``{{A}}`` / ``{{a}}``: upper/lower-case letter sequence (A..Z, AA, AB, ...)
- ``{{date}}``: today as YYYY-MM-DD; ``{{date:FORMAT}}`` with strftime codes
- ``{{name}}``: the name detected for the item, if any

Anything else is left untouched.
"""

from __future__ import annotations

import re
from datetime import datetime

_CODE_PATTERN = re.compile(r"\{\{\s*(n+|A|a|name|date(?::([^}]*))?)\s*\}\}")


def number_to_alpha(index: int) -> str:
    """0 → A, 25 → Z, 26 → AA (bijective base 26)."""
    if index < 0:
        raise ValueError("index must be >= 0")
    letters = ""
    value = index + 1
    while value > 0:
        value, remainder = divmod(value - 1, 26)
        letters = chr(ord("A") + remainder) + letters
    return letters


def process_naming_template(
    template: str,
    index: int,
    *,
    name: str | None = None,
    now: datetime | None = None,
) -> str:
    """Render ``template`` for the item at 0-based ``index``."""
    now = now or datetime.now()

    def _replace(match: re.Match) -> str:
        code = match.group(1)
        if code == "name":
            return name if name is not None else match.group(0)
        if set(code) == {"n"}:
            return str(index + 1).zfill(len(code))
        if code == "A":
            return number_to_alpha(index)
        if code == "a":
            return number_to_alpha(index).lower()
        date_format = match.group(2)
        return now.strftime(date_format) if date_format else now.strftime("%Y-%m-%d")

    return _CODE_PATTERN.sub(_replace, template)
