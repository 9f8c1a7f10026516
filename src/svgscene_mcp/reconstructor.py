"""
Scene reconstruction — infer nodes, edges and groups from flat renderer SVG.

The renderer's output carries no ids or relationships, so everything is
derived from geometry (position, size, containment, proximity) and the
token conventions in :mod:`svgscene_mcp.styles`:

1. **Family detection** — marker ids, member-visibility text, key badges,
   pseudostates; first match wins, flowchart otherwise.
2. **Node clustering** — candidate shapes grouped by centre proximity,
   labelled, then expanded to every primitive anchored inside the box.
3. **Sequence attachment** — lifelines and activation bars join the
   participant whose lane they share.
4. **Edges** — polylines and marker-bearing lines, endpoints resolved to
   the nearest node and cached as offsets from its centre.
5. **Labels / decorations** — label boxes and free text pinned to the
   nearest edge by arc-length position; endpoint glyphs pinned to the
   nearest edge end.
6. **Groups** — container + header chrome, header label, members by
   original centre containment, fixed padding.

Every association search is a plain O(n²) nearest-neighbour scan; diagram
sizes are tens of elements, so no spatial index is kept.
"""

from __future__ import annotations

import hashlib
import logging
import math
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Iterable, Optional

from svgscene_mcp.geometry import (
    closest_point_on_polyline,
    distance,
    fmt_number,
    is_degenerate,
    point_in_box,
    segment_is_vertical,
    union_boxes,
)
from svgscene_mcp.models import (
    BoundingBox,
    Decoration,
    DiagramFamily,
    Edge,
    EdgeLabel,
    Endpoint,
    Group,
    Node,
    NodeKind,
    Padding,
    Point,
    SceneGraph,
)
from svgscene_mcp.styles import ClassificationContract, DEFAULT_CONTRACT, PrimitiveClassifier
from svgscene_mcp.svgdoc import (
    SvgDocument,
    anchor_point,
    element_bbox,
    line_points,
    local_name,
    num,
    parse_points,
    text_anchor,
    text_content,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass
class ReconstructionConfig:
    """Association thresholds, in SVG user units.

    The defaults are tuned to the upstream renderer's typical node sizes.
    """
    # Endpoint → node: distance to centre < max(w, h) / 2 + endpoint_slack
    endpoint_slack: float = 30
    # Label → edge and decoration → endpoint
    label_distance: float = 30
    decoration_distance: float = 35
    # Containment padding
    label_box_padding: float = 2
    node_box_padding: float = 1
    # Candidate filtering
    min_node_rect_size: float = 15
    badge_radius: float = 5
    label_background_max_height: float = 40
    # Captions rendered below icon-style nodes
    caption_max_gap: float = 40
    caption_x_tolerance: float = 4
    # Sequence diagrams
    lifeline_min_extent: float = 40
    lifeline_header_reach: float = 60
    lane_tolerance: float = 1.5
    activation_max_width: float = 15
    activation_min_height: float = 15
    # Endpoint glyphs
    decoration_max_line_length: float = 40
    decoration_max_radius: float = 8
    # Header band assumed when a group has no header rect
    header_fallback_height: float = 30
    contract: ClassificationContract = field(default_factory=lambda: DEFAULT_CONTRACT)


# ---------------------------------------------------------------------------
# Stable identifiers
# ---------------------------------------------------------------------------

def stable_hash(text: str) -> str:
    return hashlib.sha1(text.encode("utf-8")).hexdigest()[:10]


def node_id_for(box: BoundingBox, label: Optional[str]) -> str:
    return "node-" + stable_hash(f"{round(box.x)},{round(box.y)},{label or ''}")


def group_id_for(box: BoundingBox, label: Optional[str]) -> str:
    key = ",".join(fmt_number(v) for v in (box.x, box.y, box.width, box.height))
    return "group-" + stable_hash(f"{key},{label or ''}")


def edge_id_for(points: list[Point], source_id: Optional[str], target_id: Optional[str]) -> str:
    coords = " ".join(f"{round(p.x)},{round(p.y)}" for p in (points[0], points[-1]))
    return "edge-" + stable_hash(f"{coords}|{source_id or ''}|{target_id or ''}")


def _reserve_unique_id(candidate: str, used: set[str]) -> str:
    """Return *candidate*, suffixed ``-2``, ``-3``… if already taken."""
    unique = candidate
    n = 2
    while unique in used:
        unique = f"{candidate}-{n}"
        n += 1
    used.add(unique)
    return unique


# ---------------------------------------------------------------------------
# Reconstructor
# ---------------------------------------------------------------------------

class SceneReconstructor:
    """One-shot inference of a :class:`SceneGraph` from an :class:`SvgDocument`.

    The reconstructor keeps no state between calls; identical documents
    always yield identical identifiers.
    """

    def __init__(self, config: Optional[ReconstructionConfig] = None) -> None:
        self.config = config or ReconstructionConfig()
        self.classifier = PrimitiveClassifier(
            self.config.contract,
            label_max_height=self.config.label_background_max_height,
            lifeline_min_extent=self.config.lifeline_min_extent,
        )

    def reconstruct(self, doc: SvgDocument) -> SceneGraph:
        family = self.detect_family(doc)
        nodes = self._build_nodes(doc, family)
        if family == DiagramFamily.SEQUENCE:
            self._attach_sequence_lanes(doc, nodes)
        edges = self._build_edges(doc, nodes)
        self._attach_labels(doc, edges, nodes)
        self._attach_decorations(doc, edges, nodes)
        groups = self._build_groups(doc, nodes)
        logger.debug(
            "Reconstructed %s scene: %d nodes, %d edges, %d groups",
            family.value, len(nodes), len(edges), len(groups),
        )
        return SceneGraph(nodes=nodes, edges=edges, groups=groups, family=family)

    # ------------------------------------------------------------------
    # Family detection
    # ------------------------------------------------------------------

    def detect_family(self, doc: SvgDocument) -> DiagramFamily:
        contract = self.config.contract
        marker_ids = [m.get("id") or "" for m in doc.definitions("marker")]

        if any(mid.startswith(contract.sequence_marker_prefix) for mid in marker_ids):
            return DiagramFamily.SEQUENCE
        if any(mid.startswith(contract.class_marker_prefix) for mid in marker_ids):
            return DiagramFamily.CLASS
        for t in doc.iter("text"):
            if self.classifier.is_monospace(t) and self.classifier.has_visibility_glyph(text_content(t)):
                return DiagramFamily.CLASS
        if any(self.classifier.is_key_badge(r) for r in doc.iter("rect")):
            return DiagramFamily.ER
        if any(self.classifier.is_pseudostate(c) for c in doc.iter("circle")):
            return DiagramFamily.STATE
        return DiagramFamily.FLOWCHART

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    def _is_candidate_shape(self, el: ET.Element, family: DiagramFamily) -> bool:
        cfg = self.config
        tag = local_name(el.tag)

        if tag == "rect":
            if self.classifier.is_edge_label_background(el) or self.classifier.is_group_chrome(el):
                return False
            if num(el, "width") < cfg.min_node_rect_size or num(el, "height") < cfg.min_node_rect_size:
                return False
        elif tag == "circle":
            # Relationship-arity badges
            if num(el, "r") < cfg.badge_radius:
                return False
        elif tag == "g":
            return family == DiagramFamily.SEQUENCE and self.classifier.is_actor_icon(el)
        elif tag == "path":
            if self.classifier.contract.actor_icon_path in (el.get("d") or ""):
                return False
        return True

    def _candidate_shapes(self, doc: SvgDocument, family: DiagramFamily) -> list[ET.Element]:
        if family == DiagramFamily.SEQUENCE:
            tags = ("rect", "circle", "polygon", "ellipse", "g")
        else:
            tags = ("rect", "circle", "polygon", "ellipse", "path")
        shapes = [el for el in doc.iter(*tags) if self._is_candidate_shape(el, family)]
        # A shape nested in another candidate moves with it
        chosen = set(shapes)
        return [s for s in shapes if not any(a in chosen for a in doc.ancestors(s))]

    @staticmethod
    def cluster_by_proximity(shapes: list[ET.Element]) -> list[list[ET.Element]]:
        """Group shapes whose centres lie within half the larger extent of a seed shape."""
        boxes = {id(s): element_bbox(s) for s in shapes}
        used: set[int] = set()
        clusters: list[list[ET.Element]] = []

        for seed in shapes:
            if id(seed) in used:
                continue
            used.add(id(seed))
            seed_box = boxes[id(seed)]
            cluster = [seed]
            for other in shapes:
                if id(other) in used:
                    continue
                other_box = boxes[id(other)]
                limit = max(seed_box.width, seed_box.height, other_box.width, other_box.height) * 0.5
                if distance(seed_box.center, other_box.center) < limit:
                    cluster.append(other)
                    used.add(id(other))
            clusters.append(cluster)
        return clusters

    @staticmethod
    def detect_kind(primary: ET.Element, cluster: list[ET.Element]) -> NodeKind:
        tag = local_name(primary.tag)
        if tag == "circle":
            return NodeKind.DOUBLE_CIRCLE if len(cluster) > 1 else NodeKind.CIRCLE
        if tag == "ellipse":
            return NodeKind.ELLIPSE
        if tag == "polygon":
            return NodeKind.DIAMOND if len(parse_points(primary.get("points"))) == 4 else NodeKind.POLYGON
        if tag == "g":
            return NodeKind.ACTOR
        if tag == "rect":
            rx = num(primary, "rx")
            ry = num(primary, "ry")
            if rx > 0 and ry > 0:
                return NodeKind.STADIUM if rx >= ry else NodeKind.ROUNDED
            return NodeKind.RECT
        return NodeKind.UNKNOWN

    def _pick_label(self, box: BoundingBox, texts: list[ET.Element]) -> Optional[ET.Element]:
        cfg = self.config
        inside: list[tuple[Point, ET.Element]] = []
        for t in texts:
            pt = text_anchor(t)
            if pt is not None and point_in_box(pt, box, cfg.label_box_padding):
                inside.append((pt, t))

        if inside:
            # Class/ER headers are proportional text; member rows are monospace
            preferred = [(pt, t) for pt, t in inside if not self.classifier.is_monospace(t)] or inside
            return min(preferred, key=lambda item: item[0].y)[1]

        # Icon-style nodes carry their caption just below the shape
        best: Optional[ET.Element] = None
        best_gap = math.inf
        for t in texts:
            pt = text_anchor(t)
            if pt is None:
                continue
            if abs(pt.x - box.cx) > cfg.caption_x_tolerance:
                continue
            if pt.y < box.bottom - cfg.label_box_padding or pt.y > box.bottom + cfg.caption_max_gap:
                continue
            gap = pt.y - box.bottom
            if gap < best_gap:
                best, best_gap = t, gap
        return best

    def _expand_node(self, doc: SvgDocument, node: Node, claimed: set[ET.Element]) -> None:
        """Absorb every loose primitive anchored inside the node's box."""
        box = node.original_bounds
        owned = list(node.elements)
        owned_set = set(owned)

        for el in doc.iter("text", "line", "rect", "circle", "ellipse", "polygon", "path"):
            if el in owned_set or el in claimed:
                continue
            if any(a in owned_set for a in doc.ancestors(el)):
                continue
            if self.classifier.is_connector_line(el):
                continue
            if self.classifier.is_edge_label_background(el) or self.classifier.is_group_chrome(el):
                continue
            pt = anchor_point(el)
            if pt is not None and point_in_box(pt, box, self.config.node_box_padding):
                owned.append(el)
                owned_set.add(el)

        node.elements = owned

    def _build_nodes(self, doc: SvgDocument, family: DiagramFamily) -> list[Node]:
        texts = list(doc.iter("text"))
        used_ids: set[str] = set()
        claimed: set[ET.Element] = set()
        nodes: list[Node] = []

        for cluster in self.cluster_by_proximity(self._candidate_shapes(doc, family)):
            box = union_boxes(element_bbox(s) for s in cluster)
            if box is None:
                continue
            primary = max(cluster, key=lambda s: element_bbox(s).area)
            label_el = self._pick_label(box, texts)
            label = text_content(label_el) if label_el is not None else None
            label = label or None

            elements = list(cluster)
            if label_el is not None and label_el not in claimed:
                elements.append(label_el)

            node = Node(
                id=_reserve_unique_id(node_id_for(box, label), used_ids),
                elements=elements,
                x=box.x,
                y=box.y,
                width=box.width,
                height=box.height,
                kind=self.detect_kind(primary, cluster),
                label=label,
                original_x=box.x,
                original_y=box.y,
            )
            self._expand_node(doc, node, claimed)
            claimed.update(node.elements)
            nodes.append(node)
        return nodes

    def _attach_sequence_lanes(self, doc: SvgDocument, nodes: list[Node]) -> None:
        """Give each participant its lifeline and activation bars."""
        cfg = self.config
        lifelines = [l for l in doc.iter("line") if self.classifier.is_lifeline(l)]
        activations = [
            r for r in doc.iter("rect")
            if self.classifier.is_activation_bar(r, cfg.activation_max_width, cfg.activation_min_height)
        ]
        claimed = {el for n in nodes for el in n.elements}

        for node in nodes:
            lane_x = node.original_x + node.width / 2
            reach = node.original_y + node.height + cfg.lifeline_header_reach
            for line in lifelines:
                if line in claimed:
                    continue
                top = line_points(line)[0]
                if abs(top.x - lane_x) < cfg.lane_tolerance and top.y <= reach:
                    node.elements.append(line)
                    claimed.add(line)
            for rect in activations:
                if rect in claimed:
                    continue
                if abs(element_bbox(rect).cx - lane_x) < cfg.lane_tolerance:
                    node.elements.append(rect)
                    claimed.add(rect)

    # ------------------------------------------------------------------
    # Edges
    # ------------------------------------------------------------------

    def _resolve_endpoint(self, point: Point, nodes: list[Node]) -> Optional[Node]:
        best: Optional[Node] = None
        best_dist = math.inf
        for node in nodes:
            d = distance(point, node.center)
            if d < max(node.width, node.height) / 2 + self.config.endpoint_slack and d < best_dist:
                best, best_dist = node, d
        return best

    def _build_edges(self, doc: SvgDocument, nodes: list[Node]) -> list[Edge]:
        connectors: list[tuple[ET.Element, list[Point]]] = []
        for pl in doc.iter("polyline"):
            points = parse_points(pl.get("points"))
            if len(points) >= 2:
                connectors.append((pl, points))
        for line in doc.iter("line"):
            if self.classifier.is_connector_line(line):
                connectors.append((line, line_points(line)))

        used_ids: set[str] = set()
        edges: list[Edge] = []
        for element, points in connectors:
            source = self._resolve_endpoint(points[0], nodes)
            target = self._resolve_endpoint(points[-1], nodes)
            source_id = source.id if source else None
            target_id = target.id if target else None
            edge = Edge(
                id=_reserve_unique_id(edge_id_for(points, source_id, target_id), used_ids),
                element=element,
                points=points,
                source_id=source_id,
                target_id=target_id,
                source_offset=points[0] - source.center if source else None,
                target_offset=points[-1] - target.center if target else None,
                first_segment_vertical=segment_is_vertical(points[0], points[1]),
                last_segment_vertical=segment_is_vertical(points[-2], points[-1]),
            )
            if source is None or target is None:
                logger.debug("Edge %s has an unresolved endpoint", edge.id)
            edges.append(edge)
        return edges

    # ------------------------------------------------------------------
    # Labels and decorations
    # ------------------------------------------------------------------

    def _nearest_edge(self, p: Point, edges: Iterable[Edge]):
        best = None
        best_edge: Optional[Edge] = None
        for edge in edges:
            proj = closest_point_on_polyline(p, edge.points)
            if best is None or proj.dist < best.dist:
                best, best_edge = proj, edge
        if best is None or best.dist > self.config.label_distance:
            return None
        return best_edge, best

    def _attach_labels(self, doc: SvgDocument, edges: list[Edge], nodes: list[Node]) -> None:
        if not edges:
            return
        cfg = self.config
        texts = list(doc.iter("text"))
        node_boxes = [n.original_bounds for n in nodes]
        node_owned = {el for n in nodes for el in n.elements}
        used_texts: set[ET.Element] = set()
        used_rects: list[BoundingBox] = []

        # Boxed labels: background rect plus the text nearest its centre
        for rect in doc.iter("rect"):
            if not self.classifier.is_edge_label_background(rect):
                continue
            rect_box = element_bbox(rect)
            center = rect_box.center
            best_text: Optional[ET.Element] = None
            best_dist = math.inf
            for t in texts:
                pt = text_anchor(t)
                if pt is None or not point_in_box(pt, rect_box, cfg.label_box_padding):
                    continue
                d = distance(pt, center)
                if d < best_dist:
                    best_text, best_dist = t, d

            match = self._nearest_edge(center, edges)
            if match is None:
                logger.debug("Label box at (%s, %s) is not near any edge", fmt_number(center.x), fmt_number(center.y))
                continue
            edge, proj = match
            edge.label = EdgeLabel(
                t=proj.t,
                offset=center - proj.closest,
                anchor=center,
                text_element=best_text,
                background=rect,
            )
            used_rects.append(rect_box)
            if best_text is not None:
                used_texts.add(best_text)

        header_bands = [band for _, band in self._group_frames(doc)]

        # Free-floating text outside every node and group header
        for t in texts:
            if t in used_texts or t in node_owned:
                continue
            anchor = text_anchor(t)
            if anchor is None:
                continue
            if any(point_in_box(anchor, b, cfg.node_box_padding) for b in node_boxes):
                continue
            if any(point_in_box(anchor, b, cfg.label_box_padding) for b in used_rects):
                continue
            if any(point_in_box(anchor, b, cfg.node_box_padding) for b in header_bands):
                continue
            candidates = [
                e for e in edges
                if (e.source_id or e.target_id)
                and not (e.label is not None and e.label.text_element is not None)
            ]
            match = self._nearest_edge(anchor, candidates)
            if match is None:
                continue
            edge, proj = match
            edge.label = EdgeLabel(
                t=proj.t,
                offset=anchor - proj.closest,
                anchor=anchor,
                text_element=t,
                background=edge.label.background if edge.label else None,
            )
            used_texts.add(t)

    def _attach_decorations(self, doc: SvgDocument, edges: list[Edge], nodes: list[Node]) -> None:
        if not edges:
            return
        cfg = self.config
        owned = {el for n in nodes for el in n.elements}
        owned.update(e.element for e in edges)

        for el in doc.iter("line", "circle"):
            if el in owned:
                continue
            if local_name(el.tag) == "line" and (
                self.classifier.has_arrow_marker(el) or self.classifier.is_lifeline(el)
            ):
                continue
            if not self.classifier.decoration_size_ok(el, cfg.decoration_max_line_length, cfg.decoration_max_radius):
                continue
            if not self.classifier.is_line_stroked(el):
                continue
            anchor = anchor_point(el)
            if anchor is None:
                continue

            best: Optional[tuple[Edge, Endpoint, Point]] = None
            best_dist = math.inf
            for edge in edges:
                for endpoint, ep in ((Endpoint.SOURCE, edge.points[0]), (Endpoint.TARGET, edge.points[-1])):
                    d = distance(anchor, ep)
                    if d < best_dist:
                        best, best_dist = (edge, endpoint, ep), d
            if best is None or best_dist > cfg.decoration_distance:
                continue
            edge, endpoint, ep = best
            edge.decorations.append(
                Decoration(element=el, endpoint=endpoint, offset=anchor - ep, anchor=anchor)
            )

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    def _group_frames(self, doc: SvgDocument) -> list[tuple[ET.Element, BoundingBox]]:
        """(container, header band) pairs for every usable group container."""
        headers = [r for r in doc.iter("rect") if self.classifier.is_group_header(r)]
        frames: list[tuple[ET.Element, BoundingBox]] = []
        for outer in doc.iter("rect"):
            if not self.classifier.is_group_container(outer):
                continue
            box = element_bbox(outer)
            if is_degenerate(box):
                continue
            header = self._match_header(box, headers)
            band_height = num(header, "height") if header is not None else min(
                self.config.header_fallback_height, box.height
            )
            frames.append((outer, BoundingBox(box.x, box.y, box.width, band_height)))
        return frames

    @staticmethod
    def _match_header(box: BoundingBox, headers: list[ET.Element]) -> Optional[ET.Element]:
        for hr in headers:
            hb = element_bbox(hr)
            if abs(hb.x - box.x) < 0.01 and abs(hb.y - box.y) < 0.01 and abs(hb.width - box.width) < 0.01:
                return hr
        return None

    def _build_groups(self, doc: SvgDocument, nodes: list[Node]) -> list[Group]:
        headers = [r for r in doc.iter("rect") if self.classifier.is_group_header(r)]
        texts = list(doc.iter("text"))
        used_ids: set[str] = set()
        groups: list[Group] = []

        for outer, band in self._group_frames(doc):
            box = element_bbox(outer)
            header = self._match_header(box, headers)

            label_el: Optional[ET.Element] = None
            label_x = math.inf
            for t in texts:
                pt = text_anchor(t)
                if pt is None or not point_in_box(pt, band, 1):
                    continue
                if not self.classifier.is_group_label_text(t):
                    continue
                if pt.x < label_x:
                    label_el, label_x = t, pt.x

            members = [
                n for n in nodes
                if point_in_box(n.original_bounds.center, box, self.config.node_box_padding)
            ]
            padding = Padding()
            member_box = union_boxes(n.original_bounds for n in members)
            if member_box is not None:
                padding = Padding(
                    left=member_box.x - box.x,
                    top=member_box.y - box.y,
                    right=box.right - member_box.right,
                    bottom=box.bottom - member_box.bottom,
                )

            label_offset = None
            label_anchor = text_anchor(label_el) if label_el is not None else None
            if label_anchor is not None:
                label_offset = Point(label_anchor.x - box.x, label_anchor.y - box.y)

            label = text_content(label_el) if label_el is not None else None
            groups.append(Group(
                id=_reserve_unique_id(group_id_for(box, label or None), used_ids),
                container=outer,
                original_box=box,
                member_ids=[n.id for n in members],
                padding=padding,
                header=header,
                header_height=num(header, "height") if header is not None else 0,
                label_element=label_el,
                label_offset=label_offset,
            ))
        return groups


def reconstruct(svg_text: str, config: Optional[ReconstructionConfig] = None) -> tuple[SvgDocument, SceneGraph]:
    """Parse *svg_text* and reconstruct its scene graph in one call."""
    doc = SvgDocument.from_string(svg_text)
    return doc, SceneReconstructor(config).reconstruct(doc)
