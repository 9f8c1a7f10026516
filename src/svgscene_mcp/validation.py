"""
Input validation for svgscene MCP server tool parameters.

Provides reusable validators that produce clear error messages for all
parameters received from LLM callers.
"""

from __future__ import annotations

import math
import re
from typing import Any


# ---------------------------------------------------------------------------
# Validation result
# ---------------------------------------------------------------------------

class ValidationError(Exception):
    """Raised when input validation fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


# ---------------------------------------------------------------------------
# Primitive validators
# ---------------------------------------------------------------------------

def validate_non_empty_string(value: Any, field_name: str) -> str:
    """Ensure *value* is a non-empty string after stripping whitespace."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"'{field_name}' must be a non-empty string.")
    return value.strip()


def validate_number(
    value: Any,
    field_name: str,
    *,
    min_val: float | None = None,
) -> float:
    """Validate a finite numeric value with an optional lower bound."""
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        raise ValidationError(
            f"'{field_name}' must be a number, got {type(value).__name__}."
        )
    val = float(value)
    if not math.isfinite(val):
        raise ValidationError(f"'{field_name}' must be finite, got {val}.")
    if min_val is not None and val < min_val:
        raise ValidationError(
            f"'{field_name}' must be >= {min_val}, got {val}."
        )
    return val


def validate_dict(value: Any, field_name: str) -> dict:
    """Ensure *value* is a dict."""
    if not isinstance(value, dict):
        raise ValidationError(
            f"'{field_name}' must be a dict/object, got {type(value).__name__}."
        )
    return value


def validate_file_path(value: Any, field_name: str) -> str:
    """Validate that a file path is a non-empty string."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"'{field_name}' must be a non-empty file path string.")
    return value.strip()


# ---------------------------------------------------------------------------
# Composite / domain validators
# ---------------------------------------------------------------------------

_SCENE_ACTIONS = {"LOAD", "OPEN", "SAVE", "GET_SVG", "LIST", "INFO", "CLOSE"}
_MOVE_ACTIONS = {
    "UPDATE", "SET_POSITIONS", "RESET", "POLISH",
    "BEGIN_DRAG", "DRAG", "END_DRAG",
}
_LAYOUT_ACTIONS = {"EXPORT", "IMPORT", "SAVE", "LOAD", "KEY", "CLEAR", "CLEAR_ALL"}
_INSPECT_ACTIONS = {"NODES", "EDGES", "GROUPS", "POSITIONS", "NODE"}

_PREFIX_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


def validate_action(value: Any, tool_name: str, allowed: set[str]) -> str:
    """Validate the action parameter for a tool."""
    if not isinstance(value, str) or not value.strip():
        choices = ", ".join(sorted(a.lower() for a in allowed))
        raise ValidationError(
            f"'{tool_name}' requires an 'action' parameter. Valid actions: {choices}."
        )
    normalized = value.strip().upper()
    if normalized not in allowed:
        choices = ", ".join(sorted(a.lower() for a in allowed))
        raise ValidationError(
            f"Unknown {tool_name} action '{value}'. Valid actions: {choices}."
        )
    return value.strip().lower()


def validate_svg_content(value: Any, field_name: str = "svg_content") -> str:
    """Non-empty markup that at least looks like an SVG document."""
    text = validate_non_empty_string(value, field_name)
    if "<svg" not in text:
        raise ValidationError(f"'{field_name}' must contain an <svg> document.")
    return text


def validate_point(value: Any, field_name: str) -> tuple[float, float]:
    """Validate an ``{"x": .., "y": ..}`` mapping."""
    validate_dict(value, field_name)
    for axis in ("x", "y"):
        if axis not in value:
            raise ValidationError(f"'{field_name}' missing required key '{axis}'.")
    x = validate_number(value["x"], f"{field_name}.x")
    y = validate_number(value["y"], f"{field_name}.y")
    return x, y


def validate_positions(value: Any) -> dict[str, dict[str, float]]:
    """Validate a node id → {x, y} map."""
    validate_dict(value, "positions")
    cleaned: dict[str, dict[str, float]] = {}
    for node_id, pos in value.items():
        if not isinstance(node_id, str) or not node_id.strip():
            raise ValidationError("'positions' keys must be non-empty node id strings.")
        x, y = validate_point(pos, f"positions[{node_id!r}]")
        cleaned[node_id] = {"x": x, "y": y}
    return cleaned


def validate_prefix(value: Any) -> str:
    """Storage namespace prefix: letters, digits, '-', '_' or '.'."""
    prefix = validate_non_empty_string(value, "prefix")
    if not _PREFIX_RE.match(prefix):
        raise ValidationError(
            f"'prefix' may only contain letters, digits, '-', '_' and '.', got '{prefix}'."
        )
    return prefix


def validate_grid_size(value: Any) -> float:
    """Validate drag grid snapping size (0 disables snapping)."""
    return validate_number(value, "grid_size", min_val=0)
