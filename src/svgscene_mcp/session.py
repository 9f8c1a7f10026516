"""
Drag sessions — the single-writer gesture state machine.

A session is either idle or dragging exactly one node. Starting a second
drag while one is active is rejected, never silently clobbered.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from svgscene_mcp.models import Point
from svgscene_mcp.tracker import PositionTracker

logger = logging.getLogger(__name__)


class DragPhase(Enum):
    IDLE = "idle"
    DRAGGING = "dragging"


@dataclass
class DragState:
    """Snapshot handed to drag callbacks."""
    positions: dict[str, dict[str, float]]
    source: str
    active_node_id: Optional[str] = None


@dataclass
class DragOptions:
    grid_size: float = 0
    polish_on_drag_end: bool = True
    on_drag_start: Optional[Callable[[str], None]] = None
    on_drag_move: Optional[Callable[[DragState], None]] = None
    on_drag_end: Optional[Callable[[DragState], None]] = None


@dataclass
class DragSession:
    """Drives a :class:`PositionTracker` from pointer positions in SVG units."""
    tracker: PositionTracker
    source: str = ""
    options: DragOptions = field(default_factory=DragOptions)
    phase: DragPhase = DragPhase.IDLE
    active_node_id: Optional[str] = None
    # Pointer position relative to the node origin at grab time
    grab_offset: Point = field(default_factory=lambda: Point(0, 0))

    @property
    def is_dragging(self) -> bool:
        return self.phase == DragPhase.DRAGGING

    def state(self) -> DragState:
        return DragState(
            positions=self.tracker.get_all_positions(),
            source=self.source,
            active_node_id=self.active_node_id,
        )

    def begin(self, node_id: str, pointer_x: float, pointer_y: float) -> bool:
        """Grab *node_id* at the given pointer position.

        Returns False if a drag is already active or the node is unknown.
        """
        if self.is_dragging:
            logger.debug("Rejecting drag of %s: %s is already active", node_id, self.active_node_id)
            return False
        node = self.tracker.get_node(node_id)
        if node is None:
            return False

        self.phase = DragPhase.DRAGGING
        self.active_node_id = node_id
        self.grab_offset = Point(pointer_x - node.x, pointer_y - node.y)
        if self.options.on_drag_start:
            self.options.on_drag_start(node_id)
        return True

    def _snap(self, value: float) -> float:
        grid = self.options.grid_size
        if grid and grid > 0:
            return round(value / grid) * grid
        return value

    def move(self, pointer_x: float, pointer_y: float) -> Optional[Point]:
        """Follow the pointer; returns the node's new position, or None when idle."""
        if not self.is_dragging or self.active_node_id is None:
            return None
        new_x = self._snap(pointer_x - self.grab_offset.x)
        new_y = self._snap(pointer_y - self.grab_offset.y)
        self.tracker.update_position(self.active_node_id, new_x, new_y)
        self.tracker.apply_position_updates()
        if self.options.on_drag_move:
            self.options.on_drag_move(self.state())
        return Point(new_x, new_y)

    def end(self) -> Optional[DragState]:
        """Release the active node; polishes once unless disabled."""
        if not self.is_dragging:
            return None
        try:
            if self.options.polish_on_drag_end:
                self.tracker.polish_layout()
            final = self.state()
            if self.options.on_drag_end:
                self.options.on_drag_end(final)
        finally:
            self.phase = DragPhase.IDLE
            self.active_node_id = None
            self.grab_offset = Point(0, 0)
        return final
