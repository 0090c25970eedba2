# template.py
from __future__ import annotations

import re
from typing import Dict, List, Mapping


def expand(placeholders: Mapping[str, str], s: str) -> str:
    """
    Replace every ``{key}`` in ``s`` with ``placeholders[key]``.

    Tokens whose key is not in the mapping are left untouched. All keys are
    replaced in a single pass, so a substituted value is never scanned again
    for placeholders.

    Args:
        placeholders: key -> value mapping
        s: Template string

    Returns:
        The expanded string
    """
    if not placeholders or "{" not in s:
        return s

    # longest token first so overlapping keys resolve deterministically
    keys = sorted(placeholders, key=len, reverse=True)
    pattern = re.compile("|".join(re.escape("{" + k + "}") for k in keys))
    return pattern.sub(lambda m: placeholders[m.group(0)[1:-1]], s)


def expand_arguments(command_line: str, placeholders: Mapping[str, str] | None) -> List[str]:
    """Split a command-line template on whitespace and expand each token."""
    values: Dict[str, str] = dict(placeholders or {})
    return [expand(values, arg) for arg in command_line.split()]
