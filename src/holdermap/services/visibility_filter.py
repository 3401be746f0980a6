from __future__ import annotations

import calendar
from bisect import bisect_left
from datetime import datetime, timezone
from typing import AbstractSet, List, Optional, Tuple

from holdermap.core.models import FilterOptions, Graph, Link, Node, VisibleGraph


def subtract_months(instant: datetime, months: int) -> datetime:
    """
    Calendar-month subtraction; the day is clamped to the target month's end
    (31 Mar - 1 month = 28/29 Feb).
    """
    total = instant.year * 12 + (instant.month - 1) - int(months)
    year, month0 = divmod(total, 12)
    month = month0 + 1
    day = min(instant.day, calendar.monthrange(year, month)[1])
    return instant.replace(year=year, month=month, day=day)


def time_window(months_back: Optional[int], now: Optional[datetime] = None) -> Optional[Tuple[datetime, datetime]]:
    if months_back is None:
        return None
    if months_back < 0:
        raise ValueError("months_back must be >= 0")
    end = now or datetime.now(timezone.utc)
    if end.tzinfo is None:
        # transfer timestamps are UTC-aware; a naive "now" is read as UTC
        end = end.replace(tzinfo=timezone.utc)
    return subtract_months(end, months_back), end


def link_in_window(link: Link, window: Optional[Tuple[datetime, datetime]]) -> bool:
    """
    True when any constituent transfer falls inside ``[start, end]``.
    """
    if window is None:
        return True
    start, end = window
    i = bisect_left(link.timestamps, start)
    return i < len(link.timestamps) and link.timestamps[i] <= end


def filter_graph(graph: Graph, options: FilterOptions) -> VisibleGraph:
    """
    Recompute the visible subgraph in one pass over nodes and links.

    Nodes keep their identity; only membership changes. With
    ``hide_isolated`` a node also needs at least one visible link.
    """
    hidden: AbstractSet[str] = options.hidden_ids
    window = time_window(options.months_back, options.now)

    links: List[Link] = []
    touched = set()
    for link in graph.links:
        if link.source in hidden or link.target in hidden:
            continue
        if not link_in_window(link, window):
            continue
        links.append(link)
        touched.add(link.source)
        touched.add(link.target)

    nodes: List[Node] = []
    for node in graph.nodes.values():
        if node.id in hidden:
            continue
        if options.hide_isolated and node.id not in touched:
            continue
        nodes.append(node)

    return VisibleGraph(nodes=tuple(nodes), links=tuple(links))


def wallet_list(graph: Graph, search: str = "") -> List[Node]:
    """
    Wallets by value desc, narrowed by a case-insensitive id substring.
    """
    needle = search.strip().lower()
    wallets = sorted(graph.nodes.values(), key=lambda n: (-n.value, n.id))
    if not needle:
        return wallets
    return [n for n in wallets if needle in n.id.lower()]
