"""
Layout persistence — export/import of node position maps.

A saved layout is a versioned JSON record::

    {"version": 1, "source": ..., "positions": {id: {"x": .., "y": ..}},
     "timestamp": <ms>, "diagramType": "flowchart"}

Records are keyed by a hash of the source document plus a namespace
prefix, and stored one file per key in a layout directory. Storage
failures are logged and reported to the caller, never raised.
"""

from __future__ import annotations

import hashlib
import json
import logging
import math
import time
from pathlib import Path
from typing import Any, Optional

from svgscene_mcp.models import DiagramFamily

logger = logging.getLogger(__name__)

SERIALIZATION_VERSION = 1
DEFAULT_PREFIX = "svgscene-layout"


def generate_storage_key(source: str, prefix: str = DEFAULT_PREFIX) -> str:
    """Stable storage key for *source* under namespace *prefix*."""
    digest = hashlib.sha1(source.encode("utf-8")).hexdigest()[:12]
    return f"{prefix or DEFAULT_PREFIX}-{digest}"


def serialize(
    positions: dict[str, dict[str, float]],
    source: str,
    family: Optional[DiagramFamily] = None,
) -> str:
    record: dict[str, Any] = {
        "version": SERIALIZATION_VERSION,
        "source": source,
        "positions": {nid: {"x": p["x"], "y": p["y"]} for nid, p in positions.items()},
        "timestamp": int(time.time() * 1000),
    }
    if family is not None:
        record["diagramType"] = family.value
    return json.dumps(record)


def _parse_record(data: str) -> Optional[dict[str, Any]]:
    try:
        record = json.loads(data)
    except (TypeError, ValueError) as exc:
        logger.warning("Failed to deserialize layout data: %s", exc)
        return None
    if not isinstance(record, dict):
        logger.warning("Layout data is not a JSON object")
        return None
    return record


def _clean_positions(raw: Any) -> Optional[dict[str, dict[str, float]]]:
    if not isinstance(raw, dict):
        return None
    positions: dict[str, dict[str, float]] = {}
    for nid, pos in raw.items():
        if not isinstance(pos, dict):
            return None
        x, y = pos.get("x"), pos.get("y")
        if isinstance(x, bool) or isinstance(y, bool):
            return None
        if not isinstance(x, (int, float)) or not isinstance(y, (int, float)):
            return None
        if not (math.isfinite(x) and math.isfinite(y)):
            return None
        positions[str(nid)] = {"x": float(x), "y": float(y)}
    return positions


def deserialize(data: str, current_source: Optional[str] = None) -> Optional[dict[str, dict[str, float]]]:
    """Position map from a serialized record, or None if the record is malformed.

    A version mismatch is logged and loaded anyway. The source is not
    required to match *current_source*, so small edits keep their layout.
    """
    record = _parse_record(data)
    if record is None:
        return None

    version = record.get("version")
    if version != SERIALIZATION_VERSION:
        logger.warning(
            "Layout version mismatch: expected %s, got %s", SERIALIZATION_VERSION, version
        )
    if current_source is not None and record.get("source") not in (None, current_source):
        logger.debug("Layout was saved for a different source document")

    positions = _clean_positions(record.get("positions"))
    if positions is None:
        logger.warning("Layout record has a malformed positions map")
    return positions


# ---------------------------------------------------------------------------
# File storage
# ---------------------------------------------------------------------------

def _key_path(directory: Path | str, key: str) -> Path:
    return Path(directory) / f"{key}.json"


def save_layout(
    directory: Path | str,
    positions: dict[str, dict[str, float]],
    source: str,
    prefix: str = DEFAULT_PREFIX,
    family: Optional[DiagramFamily] = None,
) -> Optional[Path]:
    """Write the layout for *source*; returns the file path, or None on failure."""
    path = _key_path(directory, generate_storage_key(source, prefix))
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(serialize(positions, source, family), encoding="utf-8")
    except OSError as exc:
        logger.warning("Failed to save layout to %s: %s", path, exc)
        return None
    return path


def load_layout(
    directory: Path | str,
    source: str,
    prefix: str = DEFAULT_PREFIX,
) -> Optional[dict[str, dict[str, float]]]:
    path = _key_path(directory, generate_storage_key(source, prefix))
    try:
        if not path.exists():
            return None
        data = path.read_text(encoding="utf-8")
    except OSError as exc:
        logger.warning("Failed to load layout from %s: %s", path, exc)
        return None
    return deserialize(data, source)


def clear_layout(directory: Path | str, source: str, prefix: str = DEFAULT_PREFIX) -> bool:
    path = _key_path(directory, generate_storage_key(source, prefix))
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("Failed to clear layout %s: %s", path, exc)
        return False
    return True


def has_saved_layout(directory: Path | str, source: str, prefix: str = DEFAULT_PREFIX) -> bool:
    try:
        return _key_path(directory, generate_storage_key(source, prefix)).is_file()
    except OSError:
        return False


def list_saved_layouts(directory: Path | str, prefix: str = DEFAULT_PREFIX) -> list[str]:
    """Storage keys under *prefix* found in *directory*, sorted."""
    root = Path(directory)
    try:
        if not root.is_dir():
            return []
        return sorted(p.stem for p in root.glob(f"{prefix}-*.json") if p.is_file())
    except OSError as exc:
        logger.warning("Failed to enumerate layouts in %s: %s", root, exc)
        return []


def clear_all_layouts(directory: Path | str, prefix: str = DEFAULT_PREFIX) -> int:
    """Remove every layout under *prefix*; returns how many were removed."""
    removed = 0
    for key in list_saved_layouts(directory, prefix):
        try:
            _key_path(directory, key).unlink()
            removed += 1
        except OSError as exc:
            logger.warning("Failed to clear layout key %s: %s", key, exc)
    return removed


def layout_metadata(directory: Path | str, source: str, prefix: str = DEFAULT_PREFIX) -> Optional[dict[str, Any]]:
    """Summary of a saved layout without applying it."""
    key = generate_storage_key(source, prefix)
    path = _key_path(directory, key)
    try:
        if not path.exists():
            return None
        record = _parse_record(path.read_text(encoding="utf-8"))
    except OSError as exc:
        logger.warning("Failed to read layout metadata from %s: %s", path, exc)
        return None
    if record is None:
        return None
    positions = record.get("positions")
    return {
        "key": key,
        "timestamp": record.get("timestamp"),
        "node_count": len(positions) if isinstance(positions, dict) else 0,
        "diagramType": DiagramFamily.parse(record.get("diagramType")).value,
    }
