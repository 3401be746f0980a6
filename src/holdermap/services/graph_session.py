from __future__ import annotations

import logging
import random
from contextlib import contextmanager
from dataclasses import replace
from typing import Any, FrozenSet, Iterable, Iterator, List, Mapping, Optional, Tuple

from holdermap.core.dto import Account, Transfer
from holdermap.core.errors import DanglingReferenceError, HoldermapError
from holdermap.core.models import (
    FilterOptions,
    Graph,
    Node,
    PositionedLink,
    PositionedNode,
    ReduceOptions,
    VisibleGraph,
)
from holdermap.core.viewport import Point, ViewportTransform
from holdermap.io.record_parser import RawTable, parse, parse_visualization_payload
from holdermap.layout.simulation import ForceSimulation, LayoutParams
from holdermap.ports.frame_scheduler_port import FrameSchedulerPort
from holdermap.services.graph_builder import GraphBuilder
from holdermap.services.interaction import InteractionController
from holdermap.services.reducer import DataReducer
from holdermap.services.visibility_filter import filter_graph, wallet_list


LOGGER = logging.getLogger(__name__)

_UNSET: Any = object()


class GraphSession:
    """
    One dashboard view: retained graph, visible subgraph, layout and pointer state.

    - ``load*``: parse -> build -> reduce, reseed the layout (errors propagate)
    - ``set_filter`` / ``toggle_wallet``: recompute the visible subgraph only
    - pointer methods: forwarded to the interaction controller; failures are
      recorded in ``last_error`` instead of tearing the session down
    - ``get_*``: read side for a renderer
    """

    def __init__(
        self,
        reduce_options: Optional[ReduceOptions] = None,
        filter_options: Optional[FilterOptions] = None,
        layout_params: Optional[LayoutParams] = None,
        rng: Optional[random.Random] = None,
        scheduler: Optional[FrameSchedulerPort] = None,
        builder: Optional[GraphBuilder] = None,
        reducer: Optional[DataReducer] = None,
    ) -> None:
        self.reduce_options = reduce_options or ReduceOptions()
        self.filter_options = filter_options or FilterOptions()
        self.builder = builder or GraphBuilder()
        self.reducer = reducer or DataReducer()
        self.scheduler = scheduler

        self.simulation = ForceSimulation(layout_params, rng)
        self.controller = InteractionController(self.simulation)

        self._accounts: List[Account] = []
        self._transfers: List[Transfer] = []
        self.graph: Optional[Graph] = None
        self.visible = VisibleGraph()

        self.last_error: Optional[str] = None
        self.rebuild_required = False

    # -------------------------
    # Loading
    # -------------------------

    def load(self, raw_holders: RawTable, raw_transfers: RawTable) -> Graph:
        accounts, transfers = parse(raw_holders, raw_transfers)
        return self.load_records(accounts, transfers)

    def load_payload(self, payload: Mapping[str, Any]) -> Graph:
        accounts, transfers = parse_visualization_payload(payload)
        return self.load_records(accounts, transfers)

    def load_records(self, accounts: Iterable[Account], transfers: Iterable[Transfer]) -> Graph:
        self._accounts = list(accounts)
        self._transfers = list(transfers)
        return self.rebuild()

    def rebuild(self, reduce_options: Optional[ReduceOptions] = None) -> Graph:
        """
        Re-run build + reduce from the retained records. Options are only
        committed once the new graph has been produced.
        """
        options = reduce_options or self.reduce_options
        graph = self.builder.build(self._accounts, self._transfers)
        graph = self.reducer.reduce(graph, options)
        visible = filter_graph(graph, self.filter_options)

        self.simulation.reset()
        self.controller.drag_end()
        self.controller.hover(None)
        self.reduce_options = options
        self.graph = graph
        self.rebuild_required = False
        self.last_error = None

        LOGGER.info(
            "Loaded graph: %d nodes, %d links, supply %s, treasury %s",
            len(graph.nodes), len(graph.links), graph.total_supply, graph.treasury_id or "-",
        )
        self._show(visible)
        return graph

    def set_reduce_options(self, options: ReduceOptions) -> None:
        if self.graph is None:
            # nothing loaded yet: still reject a bad budget up front
            self.reducer.reduce(Graph(), options)
            self.reduce_options = options
            return
        self.rebuild(options)

    # -------------------------
    # Filtering
    # -------------------------

    def set_filter(
        self,
        months_back: Optional[int] = _UNSET,
        hidden_ids: Optional[Iterable[str]] = None,
        hide_isolated: Optional[bool] = None,
    ) -> None:
        changes = {}
        if months_back is not _UNSET:
            changes["months_back"] = months_back
        if hidden_ids is not None:
            changes["hidden_ids"] = frozenset(hidden_ids)
        if hide_isolated is not None:
            changes["hide_isolated"] = hide_isolated
        with self._guard("set_filter"):
            options = replace(self.filter_options, **changes)
            # a rejected filter leaves the previous options and view in place
            visible = filter_graph(self.graph or Graph(), options)
            self.filter_options = options
            if self.graph is not None:
                self._show(visible)

    def toggle_wallet(self, node_id: str) -> bool:
        """
        Flip a wallet's hidden flag; returns True when it is visible afterwards.
        """
        hidden = set(self.filter_options.hidden_ids)
        if node_id in hidden:
            hidden.discard(node_id)
        else:
            hidden.add(node_id)
        self.set_filter(hidden_ids=hidden)
        return node_id not in self.filter_options.hidden_ids

    def _show(self, visible: VisibleGraph) -> None:
        self.visible = visible

        dragged = self.controller.dragged_id
        if dragged is not None and dragged not in visible.node_ids():
            self.controller.drag_end()

        try:
            self.simulation.set_graph(visible.nodes, visible.links)
        except DanglingReferenceError as exc:
            self._halt(exc)
            return
        self.controller.set_links(visible.links)
        if self.scheduler is not None:
            self.simulation.start(self.scheduler)
        if visible.is_empty:
            LOGGER.info("Nothing to show for the current filter")

    # -------------------------
    # Layout control
    # -------------------------

    def settle(self, max_ticks: Optional[int] = None) -> int:
        return self.simulation.run(max_ticks)

    def close(self) -> None:
        self.simulation.stop()

    def on_frame(self, listener):
        return self.simulation.on_tick(listener)

    # -------------------------
    # Pointer events
    # -------------------------

    def drag_start(self, node_id: Optional[str], pointer: Point) -> None:
        with self._guard("drag_start"):
            self.controller.drag_start(node_id, pointer)

    def drag_move(self, pointer: Point) -> None:
        with self._guard("drag_move"):
            self.controller.drag_move(pointer)

    def drag_end(self) -> None:
        with self._guard("drag_end"):
            self.controller.drag_end()

    def wheel(self, delta: float, pointer: Point) -> None:
        with self._guard("wheel"):
            self.controller.wheel(delta, pointer)

    def hover(self, node_id: Optional[str]) -> None:
        with self._guard("hover"):
            self.controller.hover(node_id)

    @contextmanager
    def _guard(self, action: str) -> Iterator[None]:
        try:
            yield
        except DanglingReferenceError as exc:
            self._halt(exc)
        except (HoldermapError, ValueError) as exc:
            LOGGER.warning("%s failed: %s", action, exc)
            self.last_error = f"{action}: {exc}"
        else:
            if not self.rebuild_required:
                self.last_error = None

    def _halt(self, exc: DanglingReferenceError) -> None:
        LOGGER.error("Layout halted, graph rebuild required: %s", exc)
        self.simulation.stop()
        self.last_error = str(exc)
        self.rebuild_required = True

    # -------------------------
    # Render-facing reads
    # -------------------------

    @property
    def is_empty(self) -> bool:
        return self.visible.is_empty

    def get_visible_nodes(self, viewport_size: Optional[Tuple[float, float]] = None) -> List[PositionedNode]:
        positions = self.simulation.positions()
        bounds = self.controller.viewport.bounds(*viewport_size) if viewport_size else None
        out: List[PositionedNode] = []
        for node in self.visible.nodes:
            pos = positions.get(node.id)
            if pos is None:
                continue
            if bounds is not None and not bounds.contains(pos.x, pos.y, margin=node.radius):
                continue
            out.append(PositionedNode(node=node, x=pos.x, y=pos.y))
        return out

    def get_visible_links(self) -> List[PositionedLink]:
        positions = self.simulation.positions()
        out: List[PositionedLink] = []
        for link in self.visible.links:
            s = positions.get(link.source)
            t = positions.get(link.target)
            if s is None or t is None:
                continue
            out.append(PositionedLink(link=link, source_x=s.x, source_y=s.y, target_x=t.x, target_y=t.y))
        return out

    def get_hovered_node(self) -> Optional[Node]:
        hovered = self.controller.hovered_id
        if hovered is None or self.graph is None:
            return None
        return self.graph.nodes.get(hovered)

    def get_selected_neighbors(self) -> FrozenSet[str]:
        return self.controller.neighbor_ids

    def get_viewport_transform(self) -> ViewportTransform:
        return self.controller.viewport

    def wallets(self, search: str = "") -> List[Node]:
        if self.graph is None:
            return []
        return wallet_list(self.graph, search)
