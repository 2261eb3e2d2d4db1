"""
Sandboxed string interpolation for notification bodies.

Only ``{{dotted.path}}`` lookups are supported; nothing is evaluated.
"""

import re
from typing import Any, Mapping

_TOKEN = re.compile(r"\{\{([^}]+)\}\}")

_MISSING = object()


def get_nested_value(obj: Any, path: str, default: Any = None) -> Any:
    """
    Resolve a dotted path against nested mappings and sequences.

    ``budgets.0.category`` walks into the first element of a list.
    Returns *default* when any segment is missing.
    """
    current = obj
    for key in path.split("."):
        if current is None:
            return default
        if isinstance(current, Mapping):
            if key not in current:
                return default
            current = current[key]
        elif isinstance(current, (list, tuple)):
            if not key.isdigit() or int(key) >= len(current):
                return default
            current = current[int(key)]
        else:
            return default
    return current


def format_value(value: Any) -> str:
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return f"{value:.2f}".rstrip("0").rstrip(".")
    if hasattr(value, "value") and isinstance(getattr(value, "value"), str):
        # Enum members
        return value.value
    return str(value)


def interpolate(template: str, scope: Mapping[str, Any]) -> str:
    """Replace {{path}} tokens; unresolved tokens are left untouched."""

    def replace(match: "re.Match[str]") -> str:
        value = get_nested_value(scope, match.group(1).strip(), _MISSING)
        if value is _MISSING or value is None:
            return match.group(0)
        return format_value(value)

    return _TOKEN.sub(replace, template)
