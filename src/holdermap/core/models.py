from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, FrozenSet, List, Optional, Tuple

from holdermap.config import settings



# Configuration models

@dataclass(frozen=True)
class ReduceOptions:
    """
    Budget for the data reducer.
    """

    max_nodes: int = settings.MAX_NODES
    min_balance_fraction: float = settings.MIN_BALANCE_FRACTION
    bucket_width_pct: float = settings.BUCKET_WIDTH_PCT


@dataclass(frozen=True)
class FilterOptions:
    """
    Time window + hidden wallets for the visible subgraph.
    """

    months_back: Optional[int] = settings.DEFAULT_MONTHS_BACK    # None = all time
    hidden_ids: FrozenSet[str] = frozenset()
    hide_isolated: bool = False

    # pinned "now" for reproducible windows (tests, replays)
    now: Optional[datetime] = None



# Graph models

@dataclass(frozen=True)
class Node:

    id: str
    value: Decimal
    percentage: float
    radius: float
    color: str
    is_treasury: bool = False
    is_aggregate: bool = False
    constituent_count: int = 1


@dataclass(frozen=True)
class Link:

    source: str
    target: str

    value: Decimal
    count: int
    timestamps: Tuple[datetime, ...]    # sorted ascending
    color: str

    @property
    def timestamp(self) -> Optional[datetime]:
        return self.timestamps[-1] if self.timestamps else None

    @property
    def key(self) -> Tuple[str, str]:
        return (self.source, self.target)


@dataclass
class Graph:

    nodes: Dict[str, Node] = field(default_factory=dict)
    links: List[Link] = field(default_factory=list)
    total_supply: Decimal = Decimal("0")
    treasury_id: Optional[str] = None
    max_balance: Decimal = Decimal("0")


@dataclass(frozen=True)
class VisibleGraph:

    nodes: Tuple[Node, ...] = ()
    links: Tuple[Link, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.nodes

    def node_ids(self) -> FrozenSet[str]:
        return frozenset(n.id for n in self.nodes)



# Render-facing snapshots

@dataclass(frozen=True)
class Position:
    x: float
    y: float
    fx: Optional[float] = None
    fy: Optional[float] = None

    @property
    def is_pinned(self) -> bool:
        return self.fx is not None and self.fy is not None


@dataclass(frozen=True)
class PositionedNode:
    node: Node
    x: float
    y: float


@dataclass(frozen=True)
class PositionedLink:
    link: Link
    source_x: float
    source_y: float
    target_x: float
    target_y: float
