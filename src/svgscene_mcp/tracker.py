"""
Position tracking for a reconstructed scene.

The tracker owns the live position of every node and keeps the rest of
the scene in step with it:

- node primitives get a pure ``translate(dx, dy)`` from their original
  position (the element's own base transform is preserved in front);
- edge endpoints follow ``node centre + cached offset`` and the connector
  coordinates are rewritten directly;
- labels ride the path at their arc-length fraction, decorations ride
  their endpoint, both expressed as translations from their original
  anchor;
- :meth:`PositionTracker.polish_layout` restores axis-aligned routing and
  refits group chrome once an interaction ends.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Optional

from svgscene_mcp.geometry import (
    fmt_number,
    is_degenerate,
    is_orthogonal,
    point_on_polyline,
    segment_is_vertical,
    simplify_points,
    union_boxes,
)
from svgscene_mcp.models import BoundingBox, Edge, Endpoint, Group, Node, Point, SceneGraph
from svgscene_mcp.svgdoc import format_points, local_name

logger = logging.getLogger(__name__)

_EPS = 1e-9


@dataclass
class TrackerConfig:
    """Tolerances for routing cleanup and group-label defaults."""
    orthogonal_tolerance: float = 1.0
    dedupe_tolerance: float = 0.5
    # Group label position when the original render had none
    default_label_offset_x: float = 12
    default_label_offset_y: float = 14


class PositionTracker:
    """Live positions plus the derived geometry of one scene graph."""

    def __init__(self, scene: SceneGraph, config: Optional[TrackerConfig] = None) -> None:
        self.config = config or TrackerConfig()
        self.scene = scene
        self.nodes: dict[str, Node] = {n.id: n for n in scene.nodes}
        self.original_positions: dict[str, Point] = {
            n.id: Point(n.original_x, n.original_y) for n in scene.nodes
        }
        self.edges: list[Edge] = scene.edges
        self.groups: list[Group] = scene.groups
        # transform attribute each element had before the tracker touched it
        self._base_transforms: dict[ET.Element, Optional[str]] = {}

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_node(self, node_id: str) -> Optional[Node]:
        return self.nodes.get(node_id)

    def get_all_nodes(self) -> list[Node]:
        return list(self.nodes.values())

    def get_all_edges(self) -> list[Edge]:
        return self.edges

    def get_node_position(self, node_id: str) -> Optional[Point]:
        node = self.nodes.get(node_id)
        if node is None:
            return None
        return Point(node.x, node.y)

    def get_all_positions(self) -> dict[str, dict[str, float]]:
        return {nid: {"x": n.x, "y": n.y} for nid, n in self.nodes.items()}

    def get_original_positions(self) -> dict[str, dict[str, float]]:
        return {nid: p.to_dict() for nid, p in self.original_positions.items()}

    def get_node_delta(self, node_id: str) -> Optional[Point]:
        node = self.nodes.get(node_id)
        if node is None:
            return None
        return Point(node.x - node.original_x, node.y - node.original_y)

    def get_connected_edges(self, node_id: str) -> list[Edge]:
        return [e for e in self.edges if node_id in (e.source_id, e.target_id)]

    # ------------------------------------------------------------------
    # Position mutation
    # ------------------------------------------------------------------

    def update_position(self, node_id: str, x: float, y: float) -> bool:
        """Set a node's live position; nothing is propagated until applied."""
        node = self.nodes.get(node_id)
        if node is None:
            return False
        node.x = x
        node.y = y
        return True

    def reset_node_position(self, node_id: str) -> bool:
        original = self.original_positions.get(node_id)
        if original is None:
            return False
        return self.update_position(node_id, original.x, original.y)

    def reset_all_positions(self) -> None:
        for node_id, original in self.original_positions.items():
            self.update_position(node_id, original.x, original.y)
        self.apply_position_updates()

    def set_positions(self, positions: dict[str, dict[str, float]]) -> int:
        """Bulk update from an id → {x, y} map; unknown ids are ignored.

        Returns the number of nodes actually moved.
        """
        applied = 0
        for node_id, pos in positions.items():
            if self.update_position(node_id, float(pos["x"]), float(pos["y"])):
                applied += 1
            else:
                logger.debug("Ignoring position for unknown node %s", node_id)
        self.apply_position_updates()
        return applied

    # ------------------------------------------------------------------
    # Transform application
    # ------------------------------------------------------------------

    def _apply_translate(self, el: ET.Element, dx: float, dy: float) -> None:
        if el not in self._base_transforms:
            self._base_transforms[el] = el.get("transform")
        base = self._base_transforms[el]

        if abs(dx) < _EPS and abs(dy) < _EPS:
            if base:
                el.set("transform", base)
            elif "transform" in el.attrib:
                del el.attrib["transform"]
            return

        translate = f"translate({fmt_number(dx)}, {fmt_number(dy)})"
        el.set("transform", f"{base} {translate}" if base else translate)

    def _apply_node_transform(self, node: Node) -> None:
        dx = node.x - node.original_x
        dy = node.y - node.original_y
        for el in node.elements:
            self._apply_translate(el, dx, dy)

    def apply_position_updates(self) -> None:
        """Push live positions into the document: node transforms, then edges."""
        for node in self.nodes.values():
            self._apply_node_transform(node)
        self.apply_edge_updates()

    def apply_edge_updates(self) -> None:
        for edge in self.edges:
            self._update_endpoints(edge)
            self.maintain_orthogonal_edge(edge)
            self._write_edge_element(edge)
            self._update_label(edge)
            self._update_decorations(edge)

    # ------------------------------------------------------------------
    # Edges
    # ------------------------------------------------------------------

    def _update_endpoints(self, edge: Edge) -> None:
        if len(edge.points) < 2:
            return
        if edge.source_id:
            node = self.nodes.get(edge.source_id)
            if node is not None:
                center = node.center
                if edge.source_offset is None:
                    edge.source_offset = edge.points[0] - center
                edge.points[0] = center + edge.source_offset
        if edge.target_id:
            node = self.nodes.get(edge.target_id)
            if node is not None:
                center = node.center
                if edge.target_offset is None:
                    edge.target_offset = edge.points[-1] - center
                edge.points[-1] = center + edge.target_offset

    def maintain_orthogonal_edge(self, edge: Edge) -> None:
        """Keep a polyline connector free of diagonal end segments.

        Two-point paths that turn diagonal get one bend inserted; longer
        paths have the points next to each end snapped onto that end's
        recorded axis. A three-point path whose ends share an axis hint
        is rerouted through two bends once its ends no longer line up.
        Straight message lines are left alone.
        """
        if not edge.is_polyline or len(edge.points) < 2:
            return
        tol = self.config.orthogonal_tolerance

        if len(edge.points) == 2:
            a, b = edge.points
            dx = abs(b.x - a.x)
            dy = abs(b.y - a.y)
            if dx >= tol and dy >= tol:
                vertical_first = edge.first_segment_vertical
                if vertical_first is None:
                    vertical_first = dy >= dx
                bend = Point(a.x, b.y) if vertical_first else Point(b.x, a.y)
                edge.points = [a, bend, b]
                edge.first_segment_vertical = vertical_first
                edge.last_segment_vertical = not vertical_first
            return

        start = edge.points[0]
        end = edge.points[-1]
        p1 = edge.points[1]
        hint = edge.first_segment_vertical
        if len(edge.points) == 3 and hint is not None and hint == edge.last_segment_vertical:
            # One interior point cannot sit on both end axes once they part
            if hint and abs(end.x - start.x) >= tol:
                edge.points = [start, Point(start.x, p1.y), Point(end.x, p1.y), end]
                return
            if not hint and abs(end.y - start.y) >= tol:
                edge.points = [start, Point(p1.x, start.y), Point(p1.x, end.y), end]
                return
        if edge.first_segment_vertical is True:
            p1.x = start.x
        elif edge.first_segment_vertical is False:
            p1.y = start.y

        pn = edge.points[-2]
        if edge.last_segment_vertical is True:
            pn.x = end.x
        elif edge.last_segment_vertical is False:
            pn.y = end.y

    def _recompute_hints(self, edge: Edge) -> None:
        if len(edge.points) < 2:
            return
        tol = self.config.orthogonal_tolerance
        edge.first_segment_vertical = segment_is_vertical(edge.points[0], edge.points[1], tol)
        edge.last_segment_vertical = segment_is_vertical(edge.points[-2], edge.points[-1], tol)

    @staticmethod
    def _write_edge_element(edge: Edge) -> None:
        el = edge.element
        tag = local_name(el.tag)
        if tag == "polyline":
            el.set("points", format_points(edge.points))
        elif tag == "line" and len(edge.points) >= 2:
            first, last = edge.points[0], edge.points[-1]
            el.set("x1", fmt_number(first.x))
            el.set("y1", fmt_number(first.y))
            el.set("x2", fmt_number(last.x))
            el.set("y2", fmt_number(last.y))

    def _update_label(self, edge: Edge) -> None:
        label = edge.label
        if label is None or (label.text_element is None and label.background is None):
            return
        desired = point_on_polyline(edge.points, label.t) + label.offset
        dx = desired.x - label.anchor.x
        dy = desired.y - label.anchor.y
        if label.background is not None:
            self._apply_translate(label.background, dx, dy)
        if label.text_element is not None:
            self._apply_translate(label.text_element, dx, dy)

    def _update_decorations(self, edge: Edge) -> None:
        if not edge.decorations or len(edge.points) < 2:
            return
        for deco in edge.decorations:
            ep = edge.points[0] if deco.endpoint == Endpoint.SOURCE else edge.points[-1]
            desired = ep + deco.offset
            self._apply_translate(deco.element, desired.x - deco.anchor.x, desired.y - deco.anchor.y)

    # ------------------------------------------------------------------
    # Polish
    # ------------------------------------------------------------------

    def polish_layout(self) -> None:
        """End-of-interaction cleanup: orthogonal routing and group refit."""
        self._polish_edges()
        self._polish_groups()

    def _polish_edges(self) -> None:
        for edge in self.edges:
            self._update_endpoints(edge)
            self.maintain_orthogonal_edge(edge)
            simplified = simplify_points(
                edge.points,
                dedupe_tolerance=self.config.dedupe_tolerance,
                collinear_tolerance=self.config.orthogonal_tolerance,
            )
            if len(simplified) < 2:
                logger.debug("Edge %s collapsed during simplification; keeping endpoints", edge.id)
                simplified = [edge.points[0], edge.points[-1]]
            edge.points = simplified
            if edge.is_polyline and not is_orthogonal(edge.points, self.config.orthogonal_tolerance):
                logger.debug("Edge %s still has a diagonal segment after polish", edge.id)
            self._recompute_hints(edge)
            self._write_edge_element(edge)
            self._update_label(edge)
            self._update_decorations(edge)

    def _polish_groups(self) -> None:
        for group in self.groups:
            members = [self.nodes[mid] for mid in group.member_ids if mid in self.nodes]
            if not members:
                continue
            member_box = union_boxes(n.bounds for n in members)
            if member_box is None:
                logger.debug("Group %s has no finite member box; left untouched", group.id)
                continue

            pad = group.padding
            new_x = member_box.x - pad.left
            new_y = member_box.y - pad.top
            new_w = member_box.right + pad.right - new_x
            new_h = member_box.bottom + pad.bottom - new_y
            if is_degenerate(BoundingBox(new_x, new_y, new_w, new_h)):
                logger.debug("Group %s refit is degenerate; left untouched", group.id)
                continue

            outer = group.container
            outer.set("x", fmt_number(new_x))
            outer.set("y", fmt_number(new_y))
            outer.set("width", fmt_number(new_w))
            outer.set("height", fmt_number(new_h))

            if group.header is not None:
                group.header.set("x", fmt_number(new_x))
                group.header.set("y", fmt_number(new_y))
                group.header.set("width", fmt_number(new_w))
                if group.header_height > 0:
                    group.header.set("height", fmt_number(group.header_height))

            if group.label_element is not None:
                offset = group.label_offset
                if offset is None:
                    offset = Point(
                        self.config.default_label_offset_x,
                        group.header_height / 2 if group.header_height > 0
                        else self.config.default_label_offset_y,
                    )
                group.label_element.set("x", fmt_number(new_x + offset.x))
                group.label_element.set("y", fmt_number(new_y + offset.y))
