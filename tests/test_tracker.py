"""Tests for live position tracking, edge re-anchoring and polish."""

import xml.etree.ElementTree as ET

import pytest

from svgscene_mcp.geometry import is_orthogonal
from svgscene_mcp.models import Edge, Padding, Point, SceneGraph
from svgscene_mcp.reconstructor import reconstruct
from svgscene_mcp.svgdoc import parse_points
from svgscene_mcp.tracker import PositionTracker


def _setup(svg: str):
    doc, graph = reconstruct(svg)
    return doc, graph, PositionTracker(graph)


def _node(graph, label: str):
    return next(n for n in graph.nodes if n.label == label)


def _edge_to(graph, node):
    return next(e for e in graph.edges if e.target_id == node.id)


# ===================================================================
# Node transforms
# ===================================================================

def test_update_unknown_node_returns_false(flowchart_svg: str) -> None:
    _, _, tracker = _setup(flowchart_svg)
    assert tracker.update_position("node-missing", 1, 2) is False


def test_update_does_not_propagate_until_applied(flowchart_svg: str) -> None:
    _, graph, tracker = _setup(flowchart_svg)
    action = _node(graph, "Action")
    assert tracker.update_position(action.id, 70, 260)
    assert all(el.get("transform") is None for el in action.elements)


def test_move_translates_node_elements(flowchart_svg: str) -> None:
    _, graph, tracker = _setup(flowchart_svg)
    action = _node(graph, "Action")
    tracker.update_position(action.id, action.x + 50, action.y)
    tracker.apply_position_updates()

    for el in action.elements:
        assert el.get("transform") == "translate(50, 0)"
    for other in graph.nodes:
        if other is action:
            continue
        assert all(el.get("transform") is None for el in other.elements)


def test_zero_delta_clears_transform(flowchart_svg: str) -> None:
    _, graph, tracker = _setup(flowchart_svg)
    action = _node(graph, "Action")
    tracker.update_position(action.id, action.x + 15, action.y - 5)
    tracker.apply_position_updates()
    tracker.reset_all_positions()
    assert all("transform" not in el.attrib for el in action.elements)


def test_base_transform_preserved() -> None:
    svg = """<svg xmlns="http://www.w3.org/2000/svg">
      <rect x="0" y="0" width="40" height="40" transform="scale(1)"/>
    </svg>"""
    _, graph, tracker = _setup(svg)
    node = graph.nodes[0]
    rect = node.elements[0]
    tracker.update_position(node.id, 10, 0)
    tracker.apply_position_updates()
    assert rect.get("transform") == "scale(1) translate(10, 0)"
    tracker.reset_all_positions()
    assert rect.get("transform") == "scale(1)"


# ===================================================================
# Edges
# ===================================================================

def test_moving_node_moves_edge_endpoint(flowchart_svg: str) -> None:
    _, graph, tracker = _setup(flowchart_svg)
    action = _node(graph, "Action")
    yes = _edge_to(graph, action)
    before = yes.points[-1].copy()

    tracker.update_position(action.id, action.x + 50, action.y)
    tracker.apply_position_updates()

    assert yes.points[-1].x == pytest.approx(before.x + 50)
    assert yes.points[-1].y == pytest.approx(before.y)
    assert yes.element.get("points") == "110,140 130,140 130,260"
    assert is_orthogonal(yes.points)


def test_label_follows_edge(flowchart_svg: str) -> None:
    _, graph, tracker = _setup(flowchart_svg)
    action = _node(graph, "Action")
    end = _node(graph, "End")
    yes = _edge_to(graph, action)
    no = _edge_to(graph, end)

    tracker.update_position(action.id, action.x + 50, action.y)
    tracker.apply_position_updates()

    # Only the target end moved, so the path stretches and the label slides along it
    assert yes.label.background.get("transform") == "translate(50, 4)"
    assert yes.label.text_element.get("transform") == "translate(50, 4)"
    assert no.label.background.get("transform") is None
    assert no.label.text_element.get("transform") is None


def test_label_translates_exactly_with_rigid_move(flowchart_svg: str) -> None:
    _, graph, tracker = _setup(flowchart_svg)
    decision = _node(graph, "Decision")
    action = _node(graph, "Action")
    yes = _edge_to(graph, action)

    for node in (decision, action):
        tracker.update_position(node.id, node.x + 50, node.y)
    tracker.apply_position_updates()

    assert yes.points == [Point(160, 140), Point(130, 140), Point(130, 260)]
    assert yes.label.background.get("transform") == "translate(50, 0)"
    assert yes.label.text_element.get("transform") == "translate(50, 0)"


STRAIGHT_SVG = """<svg xmlns="http://www.w3.org/2000/svg">
  <rect x="100" y="20" width="120" height="40" fill="var(--_node-fill)" stroke="var(--_node-stroke)"/>
  <text x="160" y="44" text-anchor="middle">A</text>
  <rect x="100" y="140" width="120" height="40" fill="var(--_node-fill)" stroke="var(--_node-stroke)"/>
  <text x="160" y="164" text-anchor="middle">B</text>
  <polyline points="160,60 160,100 160,140" fill="none" stroke="var(--_line)"/>
</svg>"""


def test_straight_three_point_edge_unmoved() -> None:
    _, graph, tracker = _setup(STRAIGHT_SVG)
    edge = graph.edges[0]
    tracker.apply_position_updates()
    assert edge.element.get("points") == "160,60 160,100 160,140"
    assert len(edge.points) == 3


def test_straight_three_point_edge_reroutes_when_ends_part() -> None:
    _, graph, tracker = _setup(STRAIGHT_SVG)
    b = _node(graph, "B")
    edge = _edge_to(graph, b)

    tracker.update_position(b.id, b.x + 50, b.y)
    tracker.apply_position_updates()
    expected = [Point(160, 60), Point(160, 100), Point(210, 100), Point(210, 140)]
    assert edge.points == expected
    assert is_orthogonal(edge.points)

    tracker.polish_layout()
    assert edge.points == expected
    assert is_orthogonal(edge.points)
    assert parse_points(edge.element.get("points")) == expected


def test_endpoints_track_center_plus_offset(flowchart_svg: str) -> None:
    _, graph, tracker = _setup(flowchart_svg)
    moves = [("Start", 30, 7), ("Decision", -20, 15), ("End", 60, -10)]
    for label, dx, dy in moves:
        node = _node(graph, label)
        tracker.update_position(node.id, node.x + dx, node.y + dy)
        tracker.apply_position_updates()

    for edge in graph.edges:
        src = tracker.get_node(edge.source_id)
        tgt = tracker.get_node(edge.target_id)
        assert edge.points[0].x == pytest.approx(src.center.x + edge.source_offset.x)
        assert edge.points[0].y == pytest.approx(src.center.y + edge.source_offset.y)
        assert edge.points[-1].x == pytest.approx(tgt.center.x + edge.target_offset.x)
        assert edge.points[-1].y == pytest.approx(tgt.center.y + edge.target_offset.y)


def test_apply_is_idempotent(flowchart_svg: str) -> None:
    doc, graph, tracker = _setup(flowchart_svg)
    start = _node(graph, "Start")
    tracker.update_position(start.id, start.x + 33, start.y + 12)
    tracker.apply_position_updates()
    first = doc.tostring()
    tracker.apply_position_updates()
    assert doc.tostring() == first


def test_two_point_edge_gets_one_bend(flowchart_svg: str) -> None:
    _, graph, tracker = _setup(flowchart_svg)
    start = _node(graph, "Start")
    decision = _node(graph, "Decision")
    edge = _edge_to(graph, decision)

    tracker.update_position(start.id, start.x + 30, start.y + 7)
    tracker.apply_position_updates()

    assert len(edge.points) == 3
    assert (edge.points[1].x, edge.points[1].y) == (190, 100)
    assert is_orthogonal(edge.points)


def test_maintain_orthogonal_without_hint() -> None:
    el = ET.Element("polyline")
    edge = Edge(id="e", element=el, points=[Point(0, 0), Point(10, 40)])
    tracker = PositionTracker(SceneGraph())
    tracker.maintain_orthogonal_edge(edge)
    assert [(p.x, p.y) for p in edge.points] == [(0, 0), (0, 40), (10, 40)]
    assert edge.first_segment_vertical is True
    assert edge.last_segment_vertical is False


def test_message_lines_are_not_bent(sequence_svg: str) -> None:
    _, graph, tracker = _setup(sequence_svg)
    server = _node(graph, "Server")
    msg = graph.edges[0]
    tracker.update_position(server.id, server.x + 30, server.y + 10)
    tracker.apply_position_updates()
    assert len(msg.points) == 2
    assert msg.element.get("x2") == "295"
    assert msg.element.get("y2") == "110"


# ===================================================================
# Sequence / ER attachments
# ===================================================================

def test_sequence_lane_elements_move(sequence_svg: str) -> None:
    _, graph, tracker = _setup(sequence_svg)
    server = _node(graph, "Server")
    tracker.update_position(server.id, server.x + 30, server.y)
    tracker.apply_position_updates()

    activation = next(el for el in server.elements if el.get("width") == "10")
    lifeline = next(el for el in server.elements if el.get("stroke-dasharray"))
    assert activation.get("transform").startswith("translate(30")
    assert lifeline.get("transform").startswith("translate(30")


def test_er_decorations_follow_endpoint(er_svg: str) -> None:
    _, graph, tracker = _setup(er_svg)
    order = _node(graph, "ORDER")
    edge = graph.edges[0]
    tracker.update_position(order.id, order.x + 40, order.y)
    tracker.apply_position_updates()

    for deco in edge.decorations:
        if deco.endpoint.value == "target":
            assert deco.element.get("transform").startswith("translate(40")
        else:
            assert deco.element.get("transform") is None


# ===================================================================
# Polish
# ===================================================================

def test_polish_leaves_no_diagonals(flowchart_svg: str) -> None:
    _, graph, tracker = _setup(flowchart_svg)
    for label, dx, dy in [("Start", 30, 7), ("Action", -12, 25), ("End", 45, 40)]:
        node = _node(graph, label)
        tracker.update_position(node.id, node.x + dx, node.y + dy)
        tracker.apply_position_updates()
    tracker.polish_layout()

    for edge in graph.edges:
        assert is_orthogonal(edge.points)
        assert parse_points(edge.element.get("points")) == edge.points


def test_polish_removes_collinear_points(flowchart_svg: str) -> None:
    _, graph, tracker = _setup(flowchart_svg)
    action = _node(graph, "Action")
    yes = _edge_to(graph, action)
    # Lines the target up under the source so the bend becomes redundant
    tracker.update_position(action.id, action.x + 30, action.y)
    tracker.apply_position_updates()
    tracker.polish_layout()
    assert len(yes.points) == 2
    assert yes.first_segment_vertical is True


def test_polish_refits_group(group_svg: str) -> None:
    _, graph, tracker = _setup(group_svg)
    node = graph.nodes[0]
    group = graph.groups[0]
    tracker.update_position(node.id, node.x + 40, node.y)
    tracker.apply_position_updates()
    tracker.polish_layout()

    assert group.container.get("x") == "80"
    assert group.container.get("width") == "200"
    assert group.header.get("x") == "80"
    assert group.header.get("height") == "28"
    assert group.label_element.get("x") == "92"
    assert "transform" not in group.container.attrib


def test_polish_skips_degenerate_group(group_svg: str) -> None:
    _, graph, tracker = _setup(group_svg)
    group = graph.groups[0]
    group.padding = Padding(left=0, top=0, right=-500, bottom=0)
    tracker.polish_layout()
    assert group.container.get("x") == "40"


def test_polish_skips_group_without_members(group_svg: str) -> None:
    _, graph, tracker = _setup(group_svg)
    group = graph.groups[0]
    group.member_ids = []
    tracker.polish_layout()
    assert group.container.get("width") == "200"


# ===================================================================
# Queries / bulk helpers
# ===================================================================

def test_set_positions_ignores_unknown(flowchart_svg: str) -> None:
    _, graph, tracker = _setup(flowchart_svg)
    start = _node(graph, "Start")
    applied = tracker.set_positions({
        start.id: {"x": 120, "y": 20},
        "node-gone": {"x": 0, "y": 0},
    })
    assert applied == 1
    assert tracker.get_node_position(start.id) == Point(120, 20)
    assert all(el.get("transform") == "translate(20, 0)" for el in start.elements)


def test_queries(flowchart_svg: str) -> None:
    _, graph, tracker = _setup(flowchart_svg)
    decision = _node(graph, "Decision")
    assert len(tracker.get_connected_edges(decision.id)) == 3
    assert len(tracker.get_all_nodes()) == 4
    assert tracker.get_all_edges() is graph.edges

    tracker.update_position(decision.id, 100, 90)
    assert tracker.get_node_delta(decision.id) == Point(-10, -10)
    assert tracker.get_original_positions()[decision.id] == {"x": 110, "y": 100}
    assert tracker.get_all_positions()[decision.id] == {"x": 100, "y": 90}

    assert tracker.reset_node_position(decision.id)
    assert tracker.get_node_delta(decision.id) == Point(0, 0)
    assert tracker.get_node_delta("node-gone") is None
    assert tracker.reset_node_position("node-gone") is False
