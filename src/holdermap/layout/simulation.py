from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from holdermap.config import settings
from holdermap.core.errors import DanglingReferenceError, UnknownNodeError
from holdermap.core.models import Link, Node, Position
from holdermap.layout.forces import (
    PositionRecord,
    apply_center,
    apply_charge,
    apply_collide,
    apply_links,
)
from holdermap.ports.frame_scheduler_port import FrameSchedulerPort


LOGGER = logging.getLogger(__name__)


class SimulationState(str, Enum):
    IDLE = "idle"
    SEEDING = "seeding"
    RUNNING = "running"
    SETTLED = "settled"
    REHEATED = "reheated"


@dataclass(frozen=True)
class LayoutParams:
    alpha_start: float = settings.ALPHA_START
    alpha_min: float = settings.ALPHA_MIN
    alpha_decay_factor: float = settings.ALPHA_DECAY_FACTOR
    alpha_restart: float = settings.ALPHA_RESTART
    velocity_decay: float = settings.VELOCITY_DECAY

    charge_strength: float = settings.CHARGE_STRENGTH
    charge_distance_max: float = settings.CHARGE_DISTANCE_MAX
    charge_distance_min: float = settings.CHARGE_DISTANCE_MIN
    link_distance: float = settings.LINK_DISTANCE
    link_strength: float = settings.LINK_STRENGTH
    center_strength: float = settings.CENTER_STRENGTH
    collide_strength: float = settings.COLLIDE_STRENGTH
    collide_padding: float = settings.COLLIDE_PADDING

    seed_radius: float = settings.SEED_RADIUS
    seed_spacing: float = settings.SEED_SPACING


TickListener = Callable[["ForceSimulation"], None]


class ForceSimulation:
    """
    Iterative force layout over the visible nodes.

    Sole owner of position state: records live in an arena keyed by node id
    and outlive filter changes, so a wallet that is hidden and shown again
    comes back where it was. Everyone else reads ``Position`` snapshots.

    Ticking is either pulled (``tick`` / ``run``) or pushed by a frame
    scheduler (``start`` / ``stop``); both share the same state machine.
    """

    def __init__(self, params: Optional[LayoutParams] = None, rng: Optional[random.Random] = None) -> None:
        self.params = params or LayoutParams()
        self._rng = rng or random.Random()

        self._arena: Dict[str, PositionRecord] = {}
        self._ids: List[str] = []
        self._index: Dict[str, int] = {}
        self._radii: List[float] = []
        self._links: List[Tuple[int, int]] = []
        self._degree: List[int] = []

        self.alpha = 0.0
        self.alpha_target = 0.0
        self.state = SimulationState.IDLE
        self.ticks = 0

        self._scheduler: Optional[FrameSchedulerPort] = None
        self._frame: Optional[int] = None
        self._listeners: List[TickListener] = []

    # -------------------------
    # Graph membership
    # -------------------------

    def set_graph(self, nodes: Sequence[Node], links: Sequence[Link]) -> None:
        index = {n.id: i for i, n in enumerate(nodes)}
        pairs: List[Tuple[int, int]] = []
        degree = [0] * len(nodes)
        for link in links:
            for end in (link.source, link.target):
                if end not in index:
                    raise DanglingReferenceError(
                        f"link {link.source} -> {link.target} references missing node {end}"
                    )
            s, t = index[link.source], index[link.target]
            pairs.append((s, t))
            degree[s] += 1
            degree[t] += 1

        was_idle = self.state == SimulationState.IDLE
        self._ids = [n.id for n in nodes]
        self._index = index
        self._radii = [n.radius for n in nodes]
        self._links = pairs
        self._degree = degree

        if not nodes:
            self.alpha = 0.0
            self.state = SimulationState.IDLE
            self._cancel_frame()
            return

        self._seed()
        if was_idle:
            self.state = SimulationState.SEEDING
            self.alpha = self.params.alpha_start
            self._schedule()
        else:
            self.reheat()

    def reset(self) -> None:
        """
        Forget every position (dataset change).
        """
        self._cancel_frame()
        self._arena.clear()
        self._ids = []
        self._index = {}
        self._radii = []
        self._links = []
        self._degree = []
        self.alpha = 0.0
        self.alpha_target = 0.0
        self.ticks = 0
        self.state = SimulationState.IDLE

    def seed_extent(self) -> float:
        return max(self.params.seed_radius, self.params.seed_spacing * math.sqrt(len(self._ids)))

    def _seed(self) -> None:
        inherited = 0
        extent = self.seed_extent()
        for node_id in self._ids:
            if node_id in self._arena:
                inherited += 1
                continue
            r = extent * math.sqrt(self._rng.random())
            theta = 2 * math.pi * self._rng.random()
            self._arena[node_id] = PositionRecord(x=r * math.cos(theta), y=r * math.sin(theta))
        LOGGER.debug("Seeded %d nodes (%d inherited)", len(self._ids), inherited)

    # -------------------------
    # Stepping
    # -------------------------

    def tick(self) -> bool:
        if self.state in (SimulationState.IDLE, SimulationState.SETTLED):
            return False
        self.state = SimulationState.RUNNING

        p = self.params
        self.alpha += (self.alpha_target - self.alpha) * (1 - p.alpha_decay_factor)
        recs = [self._arena[i] for i in self._ids]

        apply_links(recs, self._links, self._degree, self.alpha, p.link_distance, p.link_strength, self._rng)
        apply_charge(recs, self.alpha, p.charge_strength, p.charge_distance_max, p.charge_distance_min, self._rng)
        apply_collide(recs, self._radii, p.collide_strength, p.collide_padding, self._rng)
        apply_center(recs, p.center_strength)

        keep = 1 - p.velocity_decay
        for r in recs:
            if r.fx is not None and r.fy is not None:
                r.x, r.y = r.fx, r.fy
                r.vx = r.vy = 0.0
                continue
            r.vx *= keep
            r.vy *= keep
            r.x += r.vx
            r.y += r.vy

        self.ticks += 1
        if self.alpha < p.alpha_min:
            self.state = SimulationState.SETTLED
            LOGGER.debug("Layout settled after %d ticks", self.ticks)

        for listener in list(self._listeners):
            listener(self)
        return True

    def run(self, max_ticks: Optional[int] = None) -> int:
        """
        Tick synchronously until settled (static layout). Returns ticks run.
        """
        if max_ticks is None:
            max_ticks = self._ticks_to_settle()
        ran = 0
        while ran < max_ticks and self.tick():
            ran += 1
        return ran

    def _ticks_to_settle(self) -> int:
        p = self.params
        if self.alpha <= 0 or self.alpha_target >= p.alpha_min:
            return 10_000
        return int(math.ceil(math.log(p.alpha_min / self.alpha) / math.log(p.alpha_decay_factor))) + 1

    def reheat(self, alpha: Optional[float] = None) -> None:
        if self.state == SimulationState.IDLE:
            return
        self.alpha = self.params.alpha_restart if alpha is None else alpha
        self.state = SimulationState.REHEATED
        self._schedule()

    def set_alpha_target(self, target: float) -> None:
        self.alpha_target = target

    # -------------------------
    # Frame scheduling
    # -------------------------

    def start(self, scheduler: FrameSchedulerPort) -> None:
        if self._scheduler is not scheduler:
            self._cancel_frame()
        self._scheduler = scheduler
        self._schedule()

    def stop(self) -> None:
        self._cancel_frame()
        self._scheduler = None

    @property
    def is_scheduled(self) -> bool:
        return self._frame is not None

    def _schedule(self) -> None:
        if self._scheduler is None or self._frame is not None:
            return
        if self.state in (SimulationState.IDLE, SimulationState.SETTLED):
            return
        self._frame = self._scheduler.request_frame(self._on_frame)

    def _cancel_frame(self) -> None:
        if self._frame is not None and self._scheduler is not None:
            self._scheduler.cancel_frame(self._frame)
        self._frame = None

    def _on_frame(self) -> None:
        self._frame = None
        self.tick()
        self._schedule()

    def on_tick(self, listener: TickListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # -------------------------
    # Pins
    # -------------------------

    def pin(self, node_id: str, x: float, y: float) -> None:
        rec = self._active_record(node_id)
        rec.fx, rec.fy = x, y
        rec.x, rec.y = x, y
        rec.vx = rec.vy = 0.0

    def unpin(self, node_id: str) -> None:
        rec = self._active_record(node_id)
        rec.fx = rec.fy = None

    def _active_record(self, node_id: str) -> PositionRecord:
        if node_id not in self._index:
            raise UnknownNodeError(f"node {node_id} is not in the layout")
        return self._arena[node_id]

    # -------------------------
    # Read access
    # -------------------------

    @property
    def node_ids(self) -> Tuple[str, ...]:
        return tuple(self._ids)

    def has_node(self, node_id: str) -> bool:
        return node_id in self._index

    def position(self, node_id: str) -> Position:
        rec = self._active_record(node_id)
        return Position(x=rec.x, y=rec.y, fx=rec.fx, fy=rec.fy)

    def positions(self) -> Dict[str, Position]:
        out: Dict[str, Position] = {}
        for node_id in self._ids:
            rec = self._arena[node_id]
            out[node_id] = Position(x=rec.x, y=rec.y, fx=rec.fx, fy=rec.fy)
        return out
