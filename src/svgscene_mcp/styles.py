"""
Primitive classification contract for renderer SVG output.

The renderer emits no ids or roles; every role is inferred from its
styling conventions (fill / stroke tokens, dash patterns, marker ids).
Those conventions live in one versioned token table here so the
clustering and tracking code never carries raw string checks.
"""

from __future__ import annotations

import math
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Optional

from svgscene_mcp.svgdoc import has_class, line_points, local_name, num


# ---------------------------------------------------------------------------
# Presentation attributes
# ---------------------------------------------------------------------------

def parse_style_declarations(raw: str) -> dict[str, str]:
    """Parse an inline CSS ``style`` attribute into a property map."""
    parts: dict[str, str] = {}
    for tok in raw.split(";"):
        if ":" not in tok:
            continue
        key, value = tok.split(":", 1)
        key = key.strip()
        if key:
            parts[key] = value.strip()
    return parts


def paint(el: ET.Element, prop: str) -> str:
    """Effective value of a presentation property (attribute, else inline style)."""
    value = el.get(prop)
    if value is not None:
        return value.strip()
    style = el.get("style")
    if style:
        return parse_style_declarations(style).get(prop, "")
    return ""


# ---------------------------------------------------------------------------
# Token contract
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ClassificationContract:
    """Token → role table agreed with the upstream renderer."""
    version: int = 1
    # Node chrome
    node_fill: str = "_node-fill"
    node_stroke: str = "_node-stroke"
    monospace_class: str = "mono"
    # Group chrome
    group_fill: str = "_group-fill"
    group_header_fill: str = "_group-hdr"
    group_label_fill: str = "_text-sec"
    # Edge labels
    label_stroke: str = "_inner-stroke"
    label_fill: str = "var(--bg)"
    # Connectors and endpoint glyphs
    line_stroke: str = "--_line"
    # Family markers
    sequence_marker_prefix: str = "seq-"
    class_marker_prefix: str = "cls-"
    key_badge_fill: str = "_key-badge"
    pseudostate_fill: str = "var(--_text)"
    visibility_glyphs: str = "+#-~"
    # Sequence diagrams
    lifeline_dash: str = "6 4"
    actor_icon_path: str = "M21 12C21"


DEFAULT_CONTRACT = ClassificationContract()


class PrimitiveClassifier:
    """Answers role questions about single primitives under one contract."""

    def __init__(
        self,
        contract: ClassificationContract = DEFAULT_CONTRACT,
        *,
        label_max_height: float = 40,
        lifeline_min_extent: float = 40,
    ) -> None:
        self.contract = contract
        self.label_max_height = label_max_height
        self.lifeline_min_extent = lifeline_min_extent

    # ----- chrome -----

    def is_group_container(self, el: ET.Element) -> bool:
        return local_name(el.tag) == "rect" and self.contract.group_fill in paint(el, "fill")

    def is_group_header(self, el: ET.Element) -> bool:
        return local_name(el.tag) == "rect" and self.contract.group_header_fill in paint(el, "fill")

    def is_group_chrome(self, el: ET.Element) -> bool:
        return self.is_group_container(el) or self.is_group_header(el)

    def is_group_label_text(self, el: ET.Element) -> bool:
        fill = paint(el, "fill")
        return not fill or self.contract.group_label_fill in fill

    def is_edge_label_background(self, el: ET.Element) -> bool:
        """Label boxes: inner-stroke rects, short, drawn on the background colour."""
        if local_name(el.tag) != "rect":
            return False
        if self.contract.label_stroke not in paint(el, "stroke"):
            return False
        # Tall inner-stroke rects are layout containers, not labels
        if num(el, "height") > self.label_max_height:
            return False
        fill = paint(el, "fill")
        return not fill or fill == self.contract.label_fill

    # ----- connectors -----

    def has_arrow_marker(self, el: ET.Element) -> bool:
        return el.get("marker-end") is not None or el.get("marker-start") is not None

    def is_connector_line(self, el: ET.Element) -> bool:
        return local_name(el.tag) == "line" and self.has_arrow_marker(el)

    def is_line_stroked(self, el: ET.Element) -> bool:
        return self.contract.line_stroke in paint(el, "stroke")

    # ----- sequence diagrams -----

    def is_lifeline(self, el: ET.Element) -> bool:
        if local_name(el.tag) != "line":
            return False
        if self.contract.lifeline_dash not in paint(el, "stroke-dasharray"):
            return False
        a, b = line_points(el)
        return abs(a.x - b.x) < 0.5 and b.y - a.y > self.lifeline_min_extent

    def is_activation_bar(self, el: ET.Element, max_width: float, min_height: float) -> bool:
        if local_name(el.tag) != "rect":
            return False
        width = num(el, "width")
        height = num(el, "height")
        if width <= 0 or height <= 0:
            return False
        if width >= max_width or height < min_height:
            return False
        return (
            self.contract.node_fill in paint(el, "fill")
            and self.contract.node_stroke in paint(el, "stroke")
        )

    def is_actor_icon(self, el: ET.Element) -> bool:
        for child in el.iter():
            if local_name(child.tag) == "path" and self.contract.actor_icon_path in (child.get("d") or ""):
                return True
        return False

    # ----- text -----

    def is_monospace(self, el: ET.Element) -> bool:
        return has_class(el, self.contract.monospace_class)

    def has_visibility_glyph(self, text: str) -> bool:
        stripped = text.lstrip()
        return bool(stripped) and stripped[0] in self.contract.visibility_glyphs

    # ----- family markers -----

    def is_key_badge(self, el: ET.Element) -> bool:
        return local_name(el.tag) == "rect" and self.contract.key_badge_fill in paint(el, "fill")

    def is_pseudostate(self, el: ET.Element) -> bool:
        if local_name(el.tag) != "circle":
            return False
        fill = paint(el, "fill")
        if fill == self.contract.pseudostate_fill:
            return True
        return fill == "none" and self.contract.pseudostate_fill in paint(el, "stroke")

    def decoration_size_ok(self, el: ET.Element, max_line_length: float, max_radius: float) -> Optional[bool]:
        """Whether a line/circle is small enough to be an endpoint glyph (None for other tags)."""
        tag = local_name(el.tag)
        if tag == "line":
            a, b = line_points(el)
            return math.hypot(b.x - a.x, b.y - a.y) <= max_line_length
        if tag == "circle":
            return num(el, "r") <= max_radius
        return None
