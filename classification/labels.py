"""
Label scoping for repository targets.

A label is in scope when the target has no allow-list, or when the label
name and some allowed label contain one another (case-insensitive). The
two-way match accepts both prefixed and abbreviated conventions, e.g.
"type: documentation" matches an allowed "documentation".
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence


def is_label_in_scope(label_name: Optional[str], allowed: Sequence[str]) -> bool:
    """Return True if label_name passes the allow-list."""
    if not allowed:
        return True
    if not label_name:
        return False

    lowered = label_name.lower()
    for candidate in allowed:
        candidate = candidate.lower()
        if candidate in lowered or lowered in candidate:
            return True
    return False


def filter_labels(label_names: Iterable[str], allowed: Sequence[str]) -> List[str]:
    """Keep the in-scope labels, preserving order."""
    return [name for name in label_names if is_label_in_scope(name, allowed)]
