"""
Geometry helpers for scene reconstruction and position tracking.

Pure functions, no state:
- Bounding-box union and point-in-box tests
- Closest-point projection onto a polyline (with arc-length fraction)
- Point at a fractional arc length along a polyline
- Orthogonal path simplification and segment orientation hints
"""

from __future__ import annotations

import math
from typing import Iterable, NamedTuple, Optional

from svgscene_mcp.models import BoundingBox, Point


# ---------------------------------------------------------------------------
# Bounding boxes
# ---------------------------------------------------------------------------

def point_in_box(p: Point, box: BoundingBox, pad: float = 0) -> bool:
    return box.contains_point(p.x, p.y, pad)


def union_boxes(boxes: Iterable[BoundingBox]) -> Optional[BoundingBox]:
    """Smallest box covering every box in *boxes* (None if empty or non-finite)."""
    min_x = min_y = math.inf
    max_x = max_y = -math.inf
    for b in boxes:
        min_x = min(min_x, b.x)
        min_y = min(min_y, b.y)
        max_x = max(max_x, b.right)
        max_y = max(max_y, b.bottom)
    if not all(math.isfinite(v) for v in (min_x, min_y, max_x, max_y)):
        return None
    return BoundingBox(min_x, min_y, max_x - min_x, max_y - min_y)


def bbox_from_points(points: list[Point]) -> BoundingBox:
    if not points:
        return BoundingBox(0, 0, 0, 0)
    xs = [p.x for p in points]
    ys = [p.y for p in points]
    return BoundingBox(min(xs), min(ys), max(xs) - min(xs), max(ys) - min(ys))


def is_degenerate(box: Optional[BoundingBox]) -> bool:
    """True for a missing box, non-finite origin, or non-positive size."""
    if box is None:
        return True
    if not all(math.isfinite(v) for v in (box.x, box.y, box.width, box.height)):
        return True
    return box.width <= 0 or box.height <= 0


def distance(a: Point, b: Point) -> float:
    return math.hypot(a.x - b.x, a.y - b.y)


# ---------------------------------------------------------------------------
# Polylines
# ---------------------------------------------------------------------------

class PolylineProjection(NamedTuple):
    closest: Point
    dist: float
    t: float  # fraction of total arc length, 0..1


def closest_point_on_polyline(p: Point, points: list[Point]) -> PolylineProjection:
    """Project *p* onto the polyline and report where (by arc length) it lands."""
    if not points:
        return PolylineProjection(Point(0, 0), math.inf, 0.0)
    if len(points) == 1:
        return PolylineProjection(points[0].copy(), distance(p, points[0]), 0.0)

    total_len = 0.0
    best_dist2 = math.inf
    best_along = 0.0
    best_point = points[0].copy()

    for a, b in zip(points, points[1:]):
        abx = b.x - a.x
        aby = b.y - a.y
        seg_len = math.hypot(abx, aby)
        if seg_len == 0:
            continue
        t_seg = ((p.x - a.x) * abx + (p.y - a.y) * aby) / (seg_len * seg_len)
        t_seg = max(0.0, min(1.0, t_seg))
        cp = Point(a.x + abx * t_seg, a.y + aby * t_seg)
        dist2 = (p.x - cp.x) ** 2 + (p.y - cp.y) ** 2
        if dist2 < best_dist2:
            best_dist2 = dist2
            best_along = total_len + seg_len * t_seg
            best_point = cp
        total_len += seg_len

    if not math.isfinite(best_dist2):
        # Every segment had zero length
        return PolylineProjection(points[0].copy(), distance(p, points[0]), 0.0)
    t = 0.0 if total_len == 0 else best_along / total_len
    return PolylineProjection(best_point, math.sqrt(best_dist2), t)


def point_on_polyline(points: list[Point], t: float) -> Point:
    """Point at fraction *t* (clamped to 0..1) of the polyline's arc length."""
    if not points:
        return Point(0, 0)
    if len(points) == 1:
        return points[0].copy()

    t = max(0.0, min(1.0, t))
    seg_lens = [distance(a, b) for a, b in zip(points, points[1:])]
    total = sum(seg_lens)
    if total == 0:
        return points[0].copy()

    target = total * t
    acc = 0.0
    for i, seg_len in enumerate(seg_lens):
        if acc + seg_len >= target:
            a, b = points[i], points[i + 1]
            local_t = 0.0 if seg_len == 0 else (target - acc) / seg_len
            return Point(a.x + (b.x - a.x) * local_t, a.y + (b.y - a.y) * local_t)
        acc += seg_len
    return points[-1].copy()


def segment_is_vertical(a: Point, b: Point, tolerance: float = 1.0) -> bool:
    """Orientation hint for segment a→b; diagonals fall back to the dominant axis."""
    dx = abs(b.x - a.x)
    dy = abs(b.y - a.y)
    if dx < tolerance:
        return True
    if dy < tolerance:
        return False
    return dy >= dx


def simplify_points(
    points: list[Point],
    dedupe_tolerance: float = 0.5,
    collinear_tolerance: float = 1.0,
) -> list[Point]:
    """Drop near-duplicate consecutive points, then axis-collinear interior points."""
    if len(points) < 2:
        return points

    deduped = [points[0]]
    for p in points[1:]:
        prev = deduped[-1]
        if abs(p.x - prev.x) < dedupe_tolerance and abs(p.y - prev.y) < dedupe_tolerance:
            continue
        deduped.append(p)
    # The final point is pinned to its node; keep it over a near-duplicate
    last = points[-1]
    if deduped[-1] is not last and len(deduped) > 1:
        deduped[-1] = last

    if len(deduped) < 3:
        return deduped

    result = [deduped[0]]
    for i in range(1, len(deduped) - 1):
        a = result[-1]
        b = deduped[i]
        c = deduped[i + 1]
        same_x = abs(a.x - b.x) < collinear_tolerance and abs(b.x - c.x) < collinear_tolerance
        same_y = abs(a.y - b.y) < collinear_tolerance and abs(b.y - c.y) < collinear_tolerance
        if same_x or same_y:
            continue
        result.append(b)
    result.append(deduped[-1])
    return result


def is_orthogonal(points: list[Point], tolerance: float = 1.0) -> bool:
    """True when every segment is axis-aligned within *tolerance*."""
    for a, b in zip(points, points[1:]):
        if abs(a.x - b.x) >= tolerance and abs(a.y - b.y) >= tolerance:
            return False
    return True


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

def fmt_number(value: float) -> str:
    """Compact SVG number: integers without a fraction, else up to 3 decimals."""
    if math.isclose(value, round(value), abs_tol=1e-9):
        return str(int(round(value)))
    text = f"{value:.3f}".rstrip("0").rstrip(".")
    return "0" if text == "-0" else text
