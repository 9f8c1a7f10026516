"""
Core scene-graph model classes for reconstructed diagrams.

Provides typed containers for the entities inferred from a flat renderer
SVG: draggable nodes, connector edges (with labels and endpoint
decorations) and container groups. Primitive SVG elements are referenced,
never copied, so the tracker can mutate them in place.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class DiagramFamily(Enum):
    """Diagram family detected from renderer styling conventions."""
    FLOWCHART = "flowchart"
    SEQUENCE = "sequence"
    STATE = "state"
    CLASS = "class"
    ER = "er"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> DiagramFamily:
        """Map a persisted family name back to the enum (UNKNOWN if unrecognized)."""
        for member in cls:
            if member.value == value:
                return member
        return cls.UNKNOWN


class NodeKind(Enum):
    RECT = "rect"
    ROUNDED = "rounded"
    STADIUM = "stadium"
    DIAMOND = "diamond"
    CIRCLE = "circle"
    DOUBLE_CIRCLE = "doublecircle"
    ELLIPSE = "ellipse"
    POLYGON = "polygon"
    ACTOR = "actor"
    UNKNOWN = "unknown"


class Endpoint(Enum):
    SOURCE = "source"
    TARGET = "target"


# ---------------------------------------------------------------------------
# Geometry value types
# ---------------------------------------------------------------------------

@dataclass
class Point:
    """A 2-D coordinate."""
    x: float
    y: float

    def __add__(self, other: Point) -> Point:
        return Point(self.x + other.x, self.y + other.y)

    def __sub__(self, other: Point) -> Point:
        return Point(self.x - other.x, self.y - other.y)

    def copy(self) -> Point:
        return Point(self.x, self.y)

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y}


@dataclass
class BoundingBox:
    """Axis-aligned bounding box (top-left origin)."""
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def cx(self) -> float:
        return self.x + self.width / 2

    @property
    def cy(self) -> float:
        return self.y + self.height / 2

    @property
    def center(self) -> Point:
        return Point(self.cx, self.cy)

    @property
    def area(self) -> float:
        return self.width * self.height

    def contains_point(self, px: float, py: float, margin: float = 0) -> bool:
        """Check if a point is inside this bounding box (with margin)."""
        return (
            self.x - margin <= px <= self.right + margin
            and self.y - margin <= py <= self.bottom + margin
        )

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass
class Padding:
    """Gap between a group's container edges and its members' bounding box."""
    left: float = 0
    top: float = 0
    right: float = 0
    bottom: float = 0


# ---------------------------------------------------------------------------
# Scene entities
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class Node:
    """A draggable visual unit built from one cluster of primitives."""
    id: str
    elements: list[ET.Element]
    x: float
    y: float
    width: float
    height: float
    kind: NodeKind = NodeKind.UNKNOWN
    label: Optional[str] = None
    original_x: float = 0
    original_y: float = 0

    @property
    def center(self) -> Point:
        return Point(self.x + self.width / 2, self.y + self.height / 2)

    @property
    def bounds(self) -> BoundingBox:
        return BoundingBox(self.x, self.y, self.width, self.height)

    @property
    def original_bounds(self) -> BoundingBox:
        return BoundingBox(self.original_x, self.original_y, self.width, self.height)

    def to_dict(self) -> dict:
        info: dict = {
            "id": self.id,
            "kind": self.kind.value,
            "position": {"x": self.x, "y": self.y},
            "size": {"width": self.width, "height": self.height},
            "original": {"x": self.original_x, "y": self.original_y},
            "elements": len(self.elements),
        }
        if self.label:
            info["label"] = self.label
        return info


@dataclass(eq=False)
class EdgeLabel:
    """Label attached to an edge at fractional arc length *t* plus an offset.

    *anchor* is the label's original anchor point; the tracker expresses
    every reposition as a translation from it.
    """
    t: float
    offset: Point
    anchor: Point
    text_element: Optional[ET.Element] = None
    background: Optional[ET.Element] = None

    @property
    def text(self) -> Optional[str]:
        if self.text_element is None:
            return None
        return "".join(self.text_element.itertext()).strip() or None


@dataclass(eq=False)
class Decoration:
    """Small glyph (e.g. relationship-arity marker) pinned to one edge endpoint."""
    element: ET.Element
    endpoint: Endpoint
    offset: Point
    anchor: Point


@dataclass(eq=False)
class Edge:
    """A connector between two nodes, backed by one polyline or line."""
    id: str
    element: ET.Element
    points: list[Point]
    source_id: Optional[str] = None
    target_id: Optional[str] = None
    source_offset: Optional[Point] = None
    target_offset: Optional[Point] = None
    label: Optional[EdgeLabel] = None
    decorations: list[Decoration] = field(default_factory=list)
    # Routing hints: orientation of the first/last segment of the original path
    first_segment_vertical: Optional[bool] = None
    last_segment_vertical: Optional[bool] = None

    @property
    def is_polyline(self) -> bool:
        tag = self.element.tag
        return tag.rsplit("}", 1)[-1] == "polyline"

    def to_dict(self) -> dict:
        info: dict = {
            "id": self.id,
            "kind": "polyline" if self.is_polyline else "line",
            "points": [p.to_dict() for p in self.points],
        }
        if self.source_id:
            info["source"] = self.source_id
        if self.target_id:
            info["target"] = self.target_id
        if self.label is not None:
            info["label"] = self.label.text
            info["label_t"] = round(self.label.t, 4)
        if self.decorations:
            info["decorations"] = [d.endpoint.value for d in self.decorations]
        return info


@dataclass(eq=False)
class Group:
    """A container box (with optional header band and label) and its members.

    Membership is fixed at reconstruction; only geometry is refit later.
    """
    id: str
    container: ET.Element
    original_box: BoundingBox
    member_ids: list[str] = field(default_factory=list)
    padding: Padding = field(default_factory=Padding)
    header: Optional[ET.Element] = None
    header_height: float = 0
    label_element: Optional[ET.Element] = None
    # Label position relative to the group origin in the original render
    label_offset: Optional[Point] = None

    @property
    def label(self) -> Optional[str]:
        if self.label_element is None:
            return None
        return "".join(self.label_element.itertext()).strip() or None

    def to_dict(self) -> dict:
        info: dict = {
            "id": self.id,
            "box": self.original_box.to_dict(),
            "members": list(self.member_ids),
            "header_height": self.header_height,
        }
        if self.label:
            info["label"] = self.label
        return info


@dataclass
class SceneGraph:
    """Everything one reconstruction pass produced for a single document."""
    nodes: list[Node] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)
    groups: list[Group] = field(default_factory=list)
    family: DiagramFamily = DiagramFamily.FLOWCHART

    def summary(self) -> dict:
        return {
            "family": self.family.value,
            "nodes": len(self.nodes),
            "edges": len(self.edges),
            "groups": len(self.groups),
        }
