"""
Primitive access for flat renderer SVG documents.

Wraps an ``xml.etree.ElementTree`` tree and answers the questions the
reconstructor asks of individual primitives: tag, numeric attributes,
bounding box, anchor point, text content, and whether the element sits
inside a definitions/marker region.
"""

from __future__ import annotations

import math
import re
import xml.etree.ElementTree as ET
from typing import Iterator, Optional

from svgscene_mcp.geometry import bbox_from_points, fmt_number, union_boxes
from svgscene_mcp.models import BoundingBox, Point

SVG_NS = "http://www.w3.org/2000/svg"
ET.register_namespace("", SVG_NS)

_NUMBER_RE = re.compile(r"[-+]?(?:\d*\.\d+|\d+\.?)(?:[eE][-+]?\d+)?")
_PATH_TOKEN_RE = re.compile(r"[MmLlHhVvCcSsQqTtAaZz]|[-+]?(?:\d*\.\d+|\d+\.?)(?:[eE][-+]?\d+)?")
_PATH_ARG_COUNTS = {"M": 2, "L": 2, "H": 1, "V": 1, "C": 6, "S": 4, "Q": 4, "T": 2, "A": 7, "Z": 0}


class SceneParseError(ValueError):
    """Raised when the input document is not a parseable SVG."""


# ---------------------------------------------------------------------------
# Attribute helpers
# ---------------------------------------------------------------------------

def local_name(tag: str) -> str:
    if not isinstance(tag, str):
        return ""
    if tag.startswith("{"):
        return tag.split("}", 1)[1]
    return tag


def num(el: ET.Element, attr: str, default: float = 0.0) -> float:
    """Leading numeric value of *attr* ("12px" → 12.0), else *default*."""
    value = el.get(attr)
    if value is None:
        return default
    match = _NUMBER_RE.match(value.strip())
    if not match:
        return default
    return float(match.group(0))


def text_content(el: ET.Element) -> str:
    return "".join(el.itertext()).strip()


def has_class(el: ET.Element, name: str) -> bool:
    return name in (el.get("class") or "").split()


def parse_points(points_attr: Optional[str]) -> list[Point]:
    """Parse a ``points`` attribute ("x,y x,y" or "x y x y")."""
    if not points_attr:
        return []
    values = [float(v) for v in _NUMBER_RE.findall(points_attr)]
    return [Point(values[i], values[i + 1]) for i in range(0, len(values) - 1, 2)]


def format_points(points: list[Point]) -> str:
    return " ".join(f"{fmt_number(p.x)},{fmt_number(p.y)}" for p in points)


def parse_transform(transform: Optional[str]) -> tuple[float, float, float, float]:
    """Extract (tx, ty, sx, sy) from translate()/scale() functions."""
    tx, ty, sx, sy = 0.0, 0.0, 1.0, 1.0
    if not transform:
        return tx, ty, sx, sy
    for fn, arg_text in re.findall(r"([a-zA-Z]+)\s*\(([^)]*)\)", transform):
        values = [float(v) for v in _NUMBER_RE.findall(arg_text)]
        name = fn.lower()
        if name == "translate" and values:
            tx += values[0] * sx
            ty += (values[1] if len(values) > 1 else 0.0) * sy
        elif name == "scale" and values:
            sx *= values[0]
            sy *= values[1] if len(values) > 1 else values[0]
    return tx, ty, sx, sy


# ---------------------------------------------------------------------------
# Geometry of individual primitives
# ---------------------------------------------------------------------------

def line_points(el: ET.Element) -> list[Point]:
    return [Point(num(el, "x1"), num(el, "y1")), Point(num(el, "x2"), num(el, "y2"))]


def path_points(d: Optional[str]) -> list[Point]:
    """Absolute end and control points of a path's ``d`` data.

    Arcs contribute their end points only, so the resulting box is an
    approximation for arc-heavy paths.
    """
    if not d:
        return []
    tokens = _PATH_TOKEN_RE.findall(d)
    pts: list[Point] = []
    cur = Point(0, 0)
    start = Point(0, 0)
    cmd = ""
    i = 0
    while i < len(tokens):
        tok = tokens[i]
        if tok.isalpha():
            cmd = tok
            i += 1
            if cmd in "Zz":
                cur = start.copy()
                pts.append(cur.copy())
                continue
        elif not cmd:
            i += 1
            continue

        upper = cmd.upper()
        count = _PATH_ARG_COUNTS.get(upper, 0)
        if count == 0 or i + count > len(tokens) or any(t.isalpha() for t in tokens[i:i + count]):
            break
        args = [float(t) for t in tokens[i:i + count]]
        i += count
        rel = cmd.islower()
        ox, oy = (cur.x, cur.y) if rel else (0.0, 0.0)

        if upper == "H":
            cur = Point(args[0] + (cur.x if rel else 0.0), cur.y)
            pts.append(cur.copy())
        elif upper == "V":
            cur = Point(cur.x, args[0] + (cur.y if rel else 0.0))
            pts.append(cur.copy())
        elif upper == "A":
            cur = Point(args[5] + ox, args[6] + oy)
            pts.append(cur.copy())
        else:
            pairs = [Point(args[j] + ox, args[j + 1] + oy) for j in range(0, count, 2)]
            pts.extend(pairs)
            cur = pairs[-1].copy()
            if upper == "M":
                start = cur.copy()
                # Further coordinate pairs after a moveto are implicit linetos
                cmd = "l" if rel else "L"
    return pts


def element_bbox(el: ET.Element) -> BoundingBox:
    """Bounding box of a primitive in its own coordinate system."""
    tag = local_name(el.tag)

    if tag == "rect":
        return BoundingBox(num(el, "x"), num(el, "y"), num(el, "width"), num(el, "height"))
    if tag == "circle":
        r = num(el, "r")
        return BoundingBox(num(el, "cx") - r, num(el, "cy") - r, r * 2, r * 2)
    if tag == "ellipse":
        rx = num(el, "rx")
        ry = num(el, "ry")
        return BoundingBox(num(el, "cx") - rx, num(el, "cy") - ry, rx * 2, ry * 2)
    if tag == "line":
        return bbox_from_points(line_points(el))
    if tag in ("polygon", "polyline"):
        return bbox_from_points(parse_points(el.get("points")))
    if tag == "path":
        return bbox_from_points(path_points(el.get("d")))
    if tag == "text":
        anchor = text_anchor(el)
        if anchor is None:
            return BoundingBox(0, 0, 0, 0)
        return BoundingBox(anchor.x, anchor.y, 0, 0)
    if tag == "g":
        inner = union_boxes(
            element_bbox(child) for child in el if local_name(child.tag) != "title"
        )
        if inner is None:
            return BoundingBox(0, 0, 0, 0)
        tx, ty, sx, sy = parse_transform(el.get("transform"))
        return BoundingBox(tx + inner.x * sx, ty + inner.y * sy, inner.width * sx, inner.height * sy)
    return BoundingBox(0, 0, 0, 0)


def text_anchor(el: ET.Element) -> Optional[Point]:
    """The explicit ``x``/``y`` anchor of a text primitive, if both are finite."""
    x_attr = el.get("x")
    y_attr = el.get("y")
    if not x_attr or not y_attr:
        return None
    x = num(el, "x", math.nan)
    y = num(el, "y", math.nan)
    if not (math.isfinite(x) and math.isfinite(y)):
        return None
    return Point(x, y)


def anchor_point(el: ET.Element) -> Optional[Point]:
    """Representative point used for containment tests."""
    tag = local_name(el.tag)
    if tag == "text":
        return text_anchor(el)
    if tag == "line":
        a, b = line_points(el)
        return Point((a.x + b.x) / 2, (a.y + b.y) / 2)
    return element_bbox(el).center


# ---------------------------------------------------------------------------
# Document wrapper
# ---------------------------------------------------------------------------

class SvgDocument:
    """An SVG tree plus the lookups the reconstructor needs.

    Elements inside ``<defs>`` or ``<marker>`` are invisible to
    :meth:`iter`.
    """

    def __init__(self, root: ET.Element) -> None:
        if local_name(root.tag) != "svg":
            raise SceneParseError(f"expected an <svg> root element, got <{local_name(root.tag)}>")
        self.root = root
        self.parents: dict[ET.Element, ET.Element] = {
            child: parent for parent in root.iter() for child in parent
        }
        self._definitions: set[ET.Element] = set()
        for el in root.iter():
            if local_name(el.tag) in ("defs", "marker"):
                self._definitions.update(el.iter())

    @classmethod
    def from_string(cls, svg_text: str) -> SvgDocument:
        try:
            root = ET.fromstring(svg_text)
        except ET.ParseError as exc:
            raise SceneParseError(f"invalid SVG markup: {exc}") from exc
        return cls(root)

    def iter(self, *tags: str) -> Iterator[ET.Element]:
        """Visible elements with one of *tags* (local names), in document order."""
        wanted = set(tags)
        for el in self.root.iter():
            if el in self._definitions:
                continue
            if local_name(el.tag) in wanted:
                yield el

    def definitions(self, tag: str) -> Iterator[ET.Element]:
        for el in self._definitions:
            if local_name(el.tag) == tag:
                yield el

    def ancestors(self, el: ET.Element) -> Iterator[ET.Element]:
        parent = self.parents.get(el)
        while parent is not None:
            yield parent
            parent = self.parents.get(parent)

    def tostring(self) -> str:
        return ET.tostring(self.root, encoding="unicode")
