"""
InteractiveScene — one rendered document and everything that moves it.
"""

from __future__ import annotations

import logging
from typing import Optional

from svgscene_mcp.models import SceneGraph
from svgscene_mcp.reconstructor import ReconstructionConfig, SceneReconstructor
from svgscene_mcp.serializer import deserialize, generate_storage_key, serialize
from svgscene_mcp.session import DragOptions, DragSession
from svgscene_mcp.svgdoc import SvgDocument
from svgscene_mcp.tracker import PositionTracker, TrackerConfig

logger = logging.getLogger(__name__)


class InteractiveScene:
    """A parsed SVG, its scene graph, a tracker and a drag session.

    *source* identifies the document for persistence (typically the
    diagram description it was rendered from); it defaults to the SVG
    text itself.
    """

    def __init__(
        self,
        svg_text: str,
        source: str = "",
        *,
        reconstruction: Optional[ReconstructionConfig] = None,
        tracking: Optional[TrackerConfig] = None,
        drag_options: Optional[DragOptions] = None,
    ) -> None:
        self.reconstruction_config = reconstruction or ReconstructionConfig()
        self.tracker_config = tracking or TrackerConfig()
        self.drag_options = drag_options or DragOptions()
        self._load(svg_text, source)

    def _load(self, svg_text: str, source: str) -> None:
        doc = SvgDocument.from_string(svg_text)
        self.document = doc
        self.source = source or svg_text
        self.graph: SceneGraph = SceneReconstructor(self.reconstruction_config).reconstruct(doc)
        self.tracker = PositionTracker(self.graph, self.tracker_config)
        self.session = DragSession(self.tracker, self.source, self.drag_options)

    def update(self, svg_text: str, source: str = "") -> None:
        """Replace the document; the old scene graph and positions are dropped."""
        if self.session.is_dragging:
            logger.warning("Replacing document during an active drag of %s", self.session.active_node_id)
        self._load(svg_text, source)

    # ----- persistence -----

    @property
    def storage_key(self) -> str:
        return generate_storage_key(self.source)

    def export_layout(self) -> str:
        return serialize(self.tracker.get_all_positions(), self.source, self.graph.family)

    def import_layout(self, data: str) -> int:
        """Apply a serialized layout; returns how many nodes it moved (-1 if malformed)."""
        positions = deserialize(data, self.source)
        if positions is None:
            return -1
        return self.tracker.set_positions(positions)

    def to_svg(self) -> str:
        return self.document.tostring()

    def info(self) -> dict:
        info = self.graph.summary()
        info["dragging"] = self.session.active_node_id
        info["moved"] = sum(
            1 for n in self.graph.nodes if n.x != n.original_x or n.y != n.original_y
        )
        return info
