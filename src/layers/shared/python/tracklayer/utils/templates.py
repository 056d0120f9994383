"""Dotted-path lookup and ``{{path}}`` template interpolation."""

import re
from collections.abc import Mapping
from typing import Any

_PLACEHOLDER = re.compile(r"\{\{([^}]+)\}\}")


def lookup_path(data: Any, path: str) -> Any | None:
    """Get a nested value using dot notation.

    Mappings are indexed by key; other objects are read by attribute.

    Args:
        data: The object to search.
        path: Dot-separated path (e.g., "payload.form_id").

    Returns:
        The value at the path, or None if any segment is missing.
    """
    current = data
    for part in path.split("."):
        if isinstance(current, Mapping):
            if part not in current:
                return None
            current = current[part]
        elif current is not None and not part.startswith("_") and hasattr(current, part):
            current = getattr(current, part)
        else:
            return None
    return current


def interpolate(template: str, data: Any) -> str:
    """Render ``{{path}}`` placeholders against ``data``.

    Placeholders that resolve to nothing are left as written.
    """

    def replace_var(match: re.Match) -> str:
        value = lookup_path(data, match.group(1).strip())
        if value is None:
            return match.group(0)
        return str(value)

    return _PLACEHOLDER.sub(replace_var, template)
