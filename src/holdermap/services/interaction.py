from __future__ import annotations

import logging
import math
from typing import Dict, FrozenSet, Iterable, Optional, Set, Tuple

from holdermap.config import settings
from holdermap.core.models import Link
from holdermap.core.viewport import Point, ViewportTransform
from holdermap.layout.simulation import ForceSimulation


LOGGER = logging.getLogger(__name__)


class InteractionController:
    """
    Translates pointer and wheel events into pin / viewport / hover state.

    Pointer positions are screen coordinates; pins are stored in world
    coordinates through the current viewport transform.
    """

    def __init__(
        self,
        simulation: ForceSimulation,
        viewport: Optional[ViewportTransform] = None,
        zoom_range: Tuple[float, float] = (settings.ZOOM_MIN, settings.ZOOM_MAX),
    ) -> None:
        self.simulation = simulation
        self.viewport = viewport or ViewportTransform()
        self.zoom_range = zoom_range

        self.dragged_id: Optional[str] = None
        self._last_pointer: Optional[Point] = None

        self.hovered_id: Optional[str] = None
        self.neighbor_ids: FrozenSet[str] = frozenset()
        self.hovered_links: Tuple[Link, ...] = ()
        self._adjacency: Dict[str, Set[str]] = {}
        self._incident: Dict[str, list] = {}

    def set_links(self, links: Iterable[Link]) -> None:
        """
        Refresh the neighbour index after the visible set changes.
        """
        self._adjacency = {}
        self._incident = {}
        for link in links:
            self._adjacency.setdefault(link.source, set()).add(link.target)
            self._adjacency.setdefault(link.target, set()).add(link.source)
            self._incident.setdefault(link.source, []).append(link)
            if link.target != link.source:
                self._incident.setdefault(link.target, []).append(link)
        if self.hovered_id is not None:
            self.hover(self.hovered_id if self.simulation.has_node(self.hovered_id) else None)

    # -------------------------
    # Drag / pan
    # -------------------------

    def drag_start(self, node_id: Optional[str], pointer: Point) -> None:
        if node_id is None:
            self.dragged_id = None
            self._last_pointer = pointer
            return
        wx, wy = self.viewport.invert(pointer)
        self.simulation.pin(node_id, wx, wy)
        self.dragged_id = node_id
        self._last_pointer = pointer
        self.simulation.set_alpha_target(self.simulation.params.alpha_restart)
        self.simulation.reheat()

    def drag_move(self, pointer: Point) -> None:
        if self.dragged_id is not None:
            wx, wy = self.viewport.invert(pointer)
            self.simulation.pin(self.dragged_id, wx, wy)
            self._last_pointer = pointer
            return

        if self._last_pointer is not None:
            dx = pointer[0] - self._last_pointer[0]
            dy = pointer[1] - self._last_pointer[1]
            self.viewport = self.viewport.translated(dx, dy)
        self._last_pointer = pointer

    def drag_end(self) -> None:
        node_id = self.dragged_id
        self.dragged_id = None
        self._last_pointer = None
        self.simulation.set_alpha_target(0.0)
        if node_id is not None and self.simulation.has_node(node_id):
            self.simulation.unpin(node_id)

    # -------------------------
    # Zoom
    # -------------------------

    def wheel(self, delta: float, pointer: Point) -> None:
        lo, hi = self.zoom_range
        if not math.isfinite(delta):
            raise ValueError(f"wheel delta must be finite, got {delta}")
        # one step spans at most the whole zoom range
        span = math.log2(hi / lo)
        exponent = min(span, max(-span, -delta * settings.WHEEL_ZOOM_RATE))
        factor = 2 ** exponent
        self.viewport = self.viewport.zoomed_at(factor, pointer, min_scale=lo, max_scale=hi)

    # -------------------------
    # Hover
    # -------------------------

    def hover(self, node_id: Optional[str]) -> None:
        if node_id is None or not self.simulation.has_node(node_id):
            self.hovered_id = None
            self.neighbor_ids = frozenset()
            self.hovered_links = ()
            return
        self.hovered_id = node_id
        self.neighbor_ids = frozenset(self._adjacency.get(node_id, set()) - {node_id})
        self.hovered_links = tuple(self._incident.get(node_id, ()))
