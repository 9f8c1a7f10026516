"""
svgscene MCP Server — interactive repositioning of rendered diagram SVG via
Model Context Protocol.

Loads the flat, id-less SVG a diagram renderer produces, reconstructs its
nodes / edges / groups, and lets an LLM agent move nodes while connectors,
labels and group boxes follow.

Tools:
  1. scene    — lifecycle: load, open, save, get_svg, list, info, close
  2. move     — positioning: update, set_positions, reset, polish,
                             begin_drag, drag, end_drag
  3. layout   — persistence: export, import, save, load, key, clear, clear_all
  4. inspect  — read-only: nodes, edges, groups, positions, node
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict
from pathlib import Path
from typing import Any, Optional

from mcp.server.fastmcp import FastMCP

from svgscene_mcp.scene import InteractiveScene
from svgscene_mcp.serializer import (
    DEFAULT_PREFIX,
    clear_all_layouts,
    clear_layout,
    generate_storage_key,
    has_saved_layout,
    layout_metadata,
    load_layout,
    save_layout,
)
from svgscene_mcp.styles import DEFAULT_CONTRACT
from svgscene_mcp.svgdoc import SceneParseError
from svgscene_mcp.validation import (
    ValidationError,
    validate_action,
    validate_file_path,
    validate_grid_size,
    validate_non_empty_string,
    validate_number,
    validate_positions,
    validate_prefix,
    validate_svg_content,
    _INSPECT_ACTIONS,
    _LAYOUT_ACTIONS,
    _MOVE_ACTIONS,
    _SCENE_ACTIONS,
)

# ---------------------------------------------------------------------------
# Logging: suppress routine FastMCP INFO messages that editors show
# as warnings (they go to stderr).
# ---------------------------------------------------------------------------
logging.getLogger("mcp.server").setLevel(logging.WARNING)
logger = logging.getLogger("svgscene-mcp")

# ---------------------------------------------------------------------------
# MCP Server
# ---------------------------------------------------------------------------
mcp = FastMCP(
    "svgscene-mcp",
    instructions=(
        "MCP server for repositioning nodes in rendered diagram SVG.\n\n"
        "=== ONLY 4 TOOLS — use the 'action' parameter to pick the operation ===\n\n"
        "1. scene(action, ...) — lifecycle: load, open, save, get_svg, list,\n"
        "   info, close.\n"
        "2. move(action, ...) — positioning: update, set_positions, reset,\n"
        "   polish, begin_drag, drag, end_drag.\n"
        "3. layout(action, ...) — persistence: export, import, save, load, key,\n"
        "   clear, clear_all.\n"
        "4. inspect(action, ...) — read-only: nodes, edges, groups, positions, node.\n\n"
        "=== RULES ===\n"
        "- Node ids are content-derived: the same SVG always yields the same ids.\n"
        "- Positions are node top-left corners in SVG user units.\n"
        "- Connectors, edge labels and endpoint glyphs follow moved nodes.\n"
        "- Call move(action='polish') once after a batch of moves to restore\n"
        "  right-angle routing and refit group boxes.\n"
    ),
)

# In-memory scene registry: name -> InteractiveScene
# Guarded by _scenes_lock for thread-safety.
_scenes: dict[str, InteractiveScene] = {}
_scenes_lock = threading.Lock()


def _get_scene(name: str) -> Optional[InteractiveScene]:
    with _scenes_lock:
        return _scenes.get(name)


# ===================================================================
# RESOURCES
# ===================================================================

@mcp.resource("svgscene://contract")
def classification_contract() -> str:
    """Return the renderer token → role table used for reconstruction."""
    entries = [f"  {k}: {v}" for k, v in asdict(DEFAULT_CONTRACT).items()]
    return "Primitive classification contract:\n" + "\n".join(entries)


# ===================================================================
# TOOL 1: scene
# ===================================================================

@mcp.tool()
def scene(
    action: str,
    name: str = "",
    svg_content: str = "",
    file_path: str = "",
    source: str = "",
) -> str:
    """Scene lifecycle management.

    Actions:
      load     — Reconstruct a scene from SVG markup. Params: name, svg_content, source.
      open     — Reconstruct a scene from an .svg file. Params: name, file_path, source.
      save     — Write the (repositioned) SVG to a file. Params: name, file_path.
      get_svg  — Return the current SVG markup. Params: name.
      list     — List all in-memory scenes. No params needed.
      info     — Summary of one scene. Params: name.
      close    — Drop a scene from memory. Params: name.

    Args:
        action: One of: load, open, save, get_svg, list, info, close.
        name: Scene name (key in memory).
        svg_content: SVG markup for load.
        file_path: Absolute path for open/save.
        source: Identity of the source document (e.g. the diagram text) used
                for layout persistence keys. Defaults to the SVG itself.

    Returns:
        Result string or JSON depending on action.
    """
    try:
        action = validate_action(action, "scene", _SCENE_ACTIONS)
    except ValidationError as exc:
        return f"Error: {exc.message}"

    if action in ("load", "open"):
        try:
            name = validate_non_empty_string(name, "name")
            if action == "load":
                svg_text = validate_svg_content(svg_content)
            else:
                path = Path(validate_file_path(file_path, "file_path"))
                if not path.exists():
                    return f"Error: file '{file_path}' not found."
                svg_text = validate_svg_content(path.read_text(encoding="utf-8"), "file content")
        except ValidationError as exc:
            return f"Error: {exc.message}"
        try:
            sc = InteractiveScene(svg_text, source)
        except SceneParseError as exc:
            return f"Error: {exc}"
        with _scenes_lock:
            _scenes[name] = sc
        summary = sc.graph.summary()
        logger.debug("Loaded scene %s: %s", name, summary)
        return (
            f"Scene '{name}' loaded ({summary['family']}): {summary['nodes']} nodes, "
            f"{summary['edges']} edges, {summary['groups']} groups."
        )

    elif action == "save":
        try:
            name = validate_non_empty_string(name, "name")
            validate_file_path(file_path, "file_path")
        except ValidationError as exc:
            return f"Error: {exc.message}"
        sc = _get_scene(name)
        if not sc:
            return f"Error: scene '{name}' not found."
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(sc.to_svg(), encoding="utf-8")
        return f"Scene saved to {path.resolve()}"

    elif action == "list":
        with _scenes_lock:
            items = list(_scenes.items())
        result = [{"name": n, **sc.graph.summary()} for n, sc in items]
        return json.dumps(result, indent=2)

    # Remaining actions address one existing scene
    try:
        name = validate_non_empty_string(name, "name")
    except ValidationError as exc:
        return f"Error: {exc.message}"
    sc = _get_scene(name)
    if not sc:
        return f"Error: scene '{name}' not found."

    if action == "get_svg":
        return sc.to_svg()

    elif action == "info":
        info = sc.info()
        info["name"] = name
        info["storage_key"] = sc.storage_key
        return json.dumps(info, indent=2)

    else:  # close
        with _scenes_lock:
            _scenes.pop(name, None)
        return f"Scene '{name}' closed."


# ===================================================================
# TOOL 2: move
# ===================================================================

@mcp.tool()
def move(
    action: str,
    scene_name: str = "",
    node_id: str = "",
    x: float = 0.0,
    y: float = 0.0,
    positions: Optional[dict[str, Any]] = None,
    grid_size: float = 0.0,
) -> str:
    """Node positioning.

    Actions:
      update        — Move one node's top-left corner to (x, y). Params: node_id, x, y.
      set_positions — Move many nodes at once; unknown ids are ignored.
                      Params: positions ({node_id: {"x": .., "y": ..}}).
      reset         — Return every node (or just node_id) to its rendered position.
      polish        — Restore right-angle routing and refit group boxes.
      begin_drag    — Grab a node at pointer (x, y). Params: node_id, x, y, grid_size.
      drag          — Move the grabbed node with the pointer. Params: x, y.
      end_drag      — Release the grabbed node (polishes once).

    Args:
        action: One of: update, set_positions, reset, polish, begin_drag, drag, end_drag.
        scene_name: Target scene.
        node_id: Node id (see inspect(action='nodes')).
        x: Node x (update) or pointer x (begin_drag, drag).
        y: Node y (update) or pointer y (begin_drag, drag).
        positions: Position map for set_positions.
        grid_size: Snap dragged positions to this grid (0 = off).

    Returns:
        Result string or JSON depending on action.
    """
    try:
        action = validate_action(action, "move", _MOVE_ACTIONS)
        scene_name = validate_non_empty_string(scene_name, "scene_name")
    except ValidationError as exc:
        return f"Error: {exc.message}"
    sc = _get_scene(scene_name)
    if not sc:
        return f"Error: scene '{scene_name}' not found."
    tracker = sc.tracker

    if action == "update":
        try:
            node_id = validate_non_empty_string(node_id, "node_id")
            x = validate_number(x, "x")
            y = validate_number(y, "y")
        except ValidationError as exc:
            return f"Error: {exc.message}"
        if not tracker.update_position(node_id, x, y):
            return f"Error: node '{node_id}' not found in scene '{scene_name}'."
        tracker.apply_position_updates()
        connected = len(tracker.get_connected_edges(node_id))
        return f"Node '{node_id}' moved to ({x:g}, {y:g}); {connected} connected edge(s) updated."

    elif action == "set_positions":
        try:
            cleaned = validate_positions(positions if positions is not None else {})
        except ValidationError as exc:
            return f"Error: {exc.message}"
        applied = tracker.set_positions(cleaned)
        ignored = len(cleaned) - applied
        return f"Applied {applied} position(s), ignored {ignored} unknown id(s)."

    elif action == "reset":
        if node_id:
            if not tracker.reset_node_position(node_id):
                return f"Error: node '{node_id}' not found in scene '{scene_name}'."
            tracker.apply_position_updates()
            pos = tracker.get_node_position(node_id)
            return f"Node '{node_id}' reset to ({pos.x:g}, {pos.y:g})."
        tracker.reset_all_positions()
        return f"All {len(tracker.nodes)} node(s) reset to their rendered positions."

    elif action == "polish":
        tracker.polish_layout()
        return f"Polished {len(tracker.edges)} edge(s) and {len(tracker.groups)} group(s)."

    elif action == "begin_drag":
        try:
            node_id = validate_non_empty_string(node_id, "node_id")
            x = validate_number(x, "x")
            y = validate_number(y, "y")
            grid = validate_grid_size(grid_size)
        except ValidationError as exc:
            return f"Error: {exc.message}"
        if sc.session.is_dragging:
            return f"Error: node '{sc.session.active_node_id}' is already being dragged."
        previous_grid = sc.session.options.grid_size
        sc.session.options.grid_size = grid
        if not sc.session.begin(node_id, x, y):
            sc.session.options.grid_size = previous_grid
            return f"Error: node '{node_id}' not found in scene '{scene_name}'."
        return f"Dragging '{node_id}'."

    elif action == "drag":
        try:
            x = validate_number(x, "x")
            y = validate_number(y, "y")
        except ValidationError as exc:
            return f"Error: {exc.message}"
        pos = sc.session.move(x, y)
        if pos is None:
            return "Error: no drag in progress. Use begin_drag first."
        return json.dumps({"node_id": sc.session.active_node_id, **pos.to_dict()})

    else:  # end_drag
        active = sc.session.active_node_id
        state = sc.session.end()
        if state is None:
            return "Error: no drag in progress."
        final = state.positions.get(active or "", {})
        return json.dumps({"node_id": active, "position": final})


# ===================================================================
# TOOL 3: layout
# ===================================================================

@mcp.tool()
def layout(
    action: str,
    scene_name: str = "",
    data: str = "",
    file_path: str = "",
    prefix: str = DEFAULT_PREFIX,
) -> str:
    """Layout persistence.

    Actions:
      export — Return the current positions as a versioned JSON record.
      import — Apply a record produced by export. Params: data.
      save   — Store the record in a layout directory. Params: file_path (directory), prefix.
      load   — Apply the stored record for this scene. Params: file_path (directory), prefix.
      key    — Storage key for this scene. Params: prefix.
      clear  — Delete the stored record for this scene. Params: file_path (directory), prefix.
      clear_all — Delete every stored record under prefix. Params: file_path (directory), prefix.

    Args:
        action: One of: export, import, save, load, key, clear, clear_all.
        scene_name: Target scene.
        data: JSON record for import.
        file_path: Layout directory for save, load and clear.
        prefix: Storage key namespace.

    Returns:
        Result string or JSON depending on action.
    """
    try:
        action = validate_action(action, "layout", _LAYOUT_ACTIONS)
        scene_name = validate_non_empty_string(scene_name, "scene_name")
        prefix = validate_prefix(prefix)
    except ValidationError as exc:
        return f"Error: {exc.message}"
    sc = _get_scene(scene_name)
    if not sc:
        return f"Error: scene '{scene_name}' not found."

    if action == "export":
        return sc.export_layout()

    elif action == "import":
        try:
            data = validate_non_empty_string(data, "data")
        except ValidationError as exc:
            return f"Error: {exc.message}"
        applied = sc.import_layout(data)
        if applied < 0:
            return "Error: layout data is malformed."
        return f"Imported layout: {applied} node(s) positioned."

    elif action == "key":
        return generate_storage_key(sc.source, prefix)

    try:
        directory = validate_file_path(file_path, "file_path")
    except ValidationError as exc:
        return f"Error: {exc.message}"

    if action == "save":
        path = save_layout(
            directory, sc.tracker.get_all_positions(), sc.source, prefix, sc.graph.family
        )
        if path is None:
            return f"Error: could not write layout to '{directory}'."
        return f"Layout saved to {path.resolve()}"

    elif action == "clear":
        if not clear_layout(directory, sc.source, prefix):
            return f"Error: could not clear layout in '{directory}'."
        return f"Cleared layout for scene '{scene_name}'."

    elif action == "clear_all":
        removed = clear_all_layouts(directory, prefix)
        return f"Cleared {removed} layout(s) with prefix '{prefix}'."

    else:  # load
        if not has_saved_layout(directory, sc.source, prefix):
            return f"No saved layout for scene '{scene_name}' in '{directory}'."
        positions = load_layout(directory, sc.source, prefix)
        if positions is None:
            return f"Error: stored layout for scene '{scene_name}' is malformed."
        applied = sc.tracker.set_positions(positions)
        meta = layout_metadata(directory, sc.source, prefix) or {}
        return json.dumps({"applied": applied, **meta}, indent=2)


# ===================================================================
# TOOL 4: inspect
# ===================================================================

@mcp.tool()
def inspect(
    action: str,
    scene_name: str = "",
    node_id: str = "",
) -> str:
    """Read-only inspection of a reconstructed scene.

    Actions:
      nodes     — All nodes with kind, label, position and size.
      edges     — All edges with endpoints, points and label.
      groups    — All groups with box and members.
      positions — Current and original node positions.
      node      — One node plus its connected edges. Params: node_id.

    Args:
        action: One of: nodes, edges, groups, positions, node.
        scene_name: Target scene.
        node_id: Node id for the node action.

    Returns:
        JSON string.
    """
    try:
        action = validate_action(action, "inspect", _INSPECT_ACTIONS)
        scene_name = validate_non_empty_string(scene_name, "scene_name")
    except ValidationError as exc:
        return f"Error: {exc.message}"
    sc = _get_scene(scene_name)
    if not sc:
        return f"Error: scene '{scene_name}' not found."
    tracker = sc.tracker

    if action == "nodes":
        return json.dumps([n.to_dict() for n in tracker.get_all_nodes()], indent=2)

    elif action == "edges":
        return json.dumps([e.to_dict() for e in tracker.get_all_edges()], indent=2)

    elif action == "groups":
        return json.dumps([g.to_dict() for g in tracker.groups], indent=2)

    elif action == "positions":
        return json.dumps({
            "current": tracker.get_all_positions(),
            "original": tracker.get_original_positions(),
        }, indent=2)

    else:  # node
        try:
            node_id = validate_non_empty_string(node_id, "node_id")
        except ValidationError as exc:
            return f"Error: {exc.message}"
        node = tracker.get_node(node_id)
        if node is None:
            return f"Error: node '{node_id}' not found in scene '{scene_name}'."
        info = node.to_dict()
        delta = tracker.get_node_delta(node_id)
        info["delta"] = delta.to_dict() if delta else None
        info["edges"] = [e.id for e in tracker.get_connected_edges(node_id)]
        return json.dumps(info, indent=2)


# ===================================================================
# Entry point
# ===================================================================

def main() -> None:
    """Run the MCP server."""
    mcp.run()


if __name__ == "__main__":
    main()
