from __future__ import annotations

import logging
import math
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from holdermap.config import settings
from holdermap.core.models import Graph, Link, Node, ReduceOptions
from holdermap.services.graph_builder import RadiusRange, SqrtScale, link_color, share_pct


LOGGER = logging.getLogger(__name__)


class DataReducer:
    """
    Bounds graph size for layout by folding low-share wallets into aggregate nodes.

    - Significant wallets (treasury, or share above ``min_balance_fraction``) survive as-is
    - The rest are bucketed by share of supply (``bucket_width_pct`` wide buckets)
    - If that still exceeds ``max_nodes``, the largest ``max_nodes - 1`` wallets
      survive and everything else becomes a single "Others" node
    - Total value is conserved
    """

    def __init__(self, radius_range: RadiusRange = (settings.NODE_RADIUS_MIN, settings.NODE_RADIUS_MAX)) -> None:
        self.radius_range = radius_range

    def reduce(self, graph: Graph, options: ReduceOptions) -> Graph:
        if options.max_nodes < 2:
            raise ValueError("max_nodes must be >= 2 (treasury + one aggregate)")
        if options.bucket_width_pct <= 0:
            raise ValueError("bucket_width_pct must be > 0")
        if len(graph.nodes) <= options.max_nodes:
            return graph

        # treasury first, then by value desc; id breaks ties so output is stable
        ordered = sorted(
            graph.nodes.values(),
            key=lambda n: (not n.is_treasury, -n.value, n.id),
        )

        kept: List[Node] = []
        rest: List[Node] = []
        for n in ordered:
            if n.is_treasury or self._fraction(n.value, graph.total_supply) > options.min_balance_fraction:
                kept.append(n)
            else:
                rest.append(n)

        buckets: Dict[Optional[int], List[Node]] = {}
        for n in rest:
            buckets.setdefault(self._bucket_key(n.percentage, options.bucket_width_pct), []).append(n)

        if len(kept) + len(buckets) > options.max_nodes:
            room = options.max_nodes - 1
            rest = kept[room:] + rest
            kept = kept[:room]
            buckets = {None: rest}

        scale = SqrtScale(graph.max_balance, self.radius_range)
        taken = set(graph.nodes)
        nodes: Dict[str, Node] = {n.id: n for n in kept}
        alias: Dict[str, str] = {n.id: n.id for n in kept}
        aggregate_ids = set()

        for key in sorted(buckets, key=lambda k: -1 if k is None else k):
            members = buckets[key]
            agg_id = self._unique_id(self._bucket_label(key, options.bucket_width_pct), taken)
            taken.add(agg_id)
            value = sum((m.value for m in members), Decimal("0"))
            nodes[agg_id] = Node(
                id=agg_id,
                value=value,
                percentage=share_pct(value, graph.total_supply),
                radius=scale(value),
                color=settings.COLOR_AGGREGATE,
                is_treasury=False,
                is_aggregate=True,
                constituent_count=sum(m.constituent_count for m in members),
            )
            aggregate_ids.add(agg_id)
            for m in members:
                alias[m.id] = agg_id

        links = self._merge_links(graph.links, alias, aggregate_ids, graph.treasury_id)

        LOGGER.info(
            "Reduced graph from %d to %d nodes (%d aggregates), %d to %d links",
            len(graph.nodes), len(nodes), len(aggregate_ids), len(graph.links), len(links),
        )
        return Graph(
            nodes=nodes,
            links=links,
            total_supply=graph.total_supply,
            treasury_id=graph.treasury_id,
            max_balance=graph.max_balance,
        )

    # -------------------------
    # Helpers
    # -------------------------

    @staticmethod
    def _merge_links(links: List[Link], alias: Dict[str, str], aggregate_ids: set, treasury_id: Optional[str]) -> List[Link]:
        merged: Dict[Tuple[str, str], Tuple[Decimal, int, list]] = {}
        for link in links:
            s = alias.get(link.source)
            t = alias.get(link.target)
            if s is None or t is None:
                continue
            # both ends folded into the same bucket
            if s == t and s in aggregate_ids:
                continue
            value, count, stamps = merged.get((s, t), (Decimal("0"), 0, []))
            stamps.extend(link.timestamps)
            merged[(s, t)] = (value + link.value, count + link.count, stamps)

        return [
            Link(
                source=s,
                target=t,
                value=value,
                count=count,
                timestamps=tuple(sorted(stamps)),
                color=link_color(s, t, treasury_id),
            )
            for (s, t), (value, count, stamps) in merged.items()
        ]

    @staticmethod
    def _fraction(value: Decimal, total_supply: Decimal) -> float:
        if total_supply <= 0:
            return 0.0
        return float(value / total_supply)

    @staticmethod
    def _bucket_key(pct: float, width: float) -> int:
        # epsilon keeps 0.05 / 0.01 from landing in bucket 4
        return int(math.floor(pct / width + 1e-9))

    @staticmethod
    def _bucket_label(key: Optional[int], width: float) -> str:
        if key is None:
            return settings.AGGREGATE_ID_PREFIX
        lo = round(key * width, 6)
        hi = round((key + 1) * width, 6)
        return f"{settings.AGGREGATE_ID_PREFIX} {lo:g}-{hi:g}%"

    @staticmethod
    def _unique_id(candidate: str, taken: set) -> str:
        out = candidate
        n = 2
        while out in taken:
            out = f"{candidate} #{n}"
            n += 1
        return out


def reduce(graph: Graph, options: ReduceOptions, radius_range: Optional[RadiusRange] = None) -> Graph:
    reducer = DataReducer(radius_range) if radius_range else DataReducer()
    return reducer.reduce(graph, options)
