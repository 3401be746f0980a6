from __future__ import annotations

import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from holdermap.config import settings
from holdermap.core.dto import Account, Transfer
from holdermap.core.models import Graph, Link, Node


LOGGER = logging.getLogger(__name__)

RadiusRange = Tuple[float, float]


class SqrtScale:
    """
    Square-root scale from ``[0, domain_max]`` onto ``range``, clamped.

    Area grows with value, so a wallet holding 4x as much draws 2x as wide.
    """

    def __init__(self, domain_max: Decimal, range_: RadiusRange) -> None:
        self._lo, self._hi = range_
        self._root_max = float(domain_max) ** 0.5 if domain_max > 0 else 0.0

    def __call__(self, value: Decimal) -> float:
        if self._root_max <= 0 or value <= 0:
            return self._lo
        t = min(1.0, (float(value) ** 0.5) / self._root_max)
        return self._lo + t * (self._hi - self._lo)


def share_pct(value: Decimal, total_supply: Decimal) -> float:
    if total_supply <= 0:
        return 0.0
    return float(value / total_supply * 100)


def color_for_share(pct: float, is_treasury: bool = False) -> str:
    if is_treasury:
        return settings.COLOR_TREASURY
    if pct > settings.HIGH_SHARE_PCT:
        return settings.COLOR_HIGH
    if pct > settings.MEDIUM_SHARE_PCT:
        return settings.COLOR_MEDIUM
    return settings.COLOR_LOW


def link_color(source: str, target: str, treasury_id: Optional[str]) -> str:
    if treasury_id is not None and treasury_id in (source, target):
        return settings.COLOR_TREASURY
    return settings.COLOR_LINK


class GraphBuilder:
    """
    Derives the node-link graph from parsed accounts and transfers.

    - Nodes: one per account with a strictly positive balance
    - Links: one per ordered (sender, receiver) pair, parallel transfers merged
    - Supply: sum of every balance, zero-balance accounts included
    """

    def __init__(self, radius_range: RadiusRange = (settings.NODE_RADIUS_MIN, settings.NODE_RADIUS_MAX)) -> None:
        self.radius_range = radius_range

    def build(self, accounts: Iterable[Account], transfers: Iterable[Transfer]) -> Graph:
        balances, treasury_id = self._merge_accounts(accounts)

        total_supply = sum(balances.values(), Decimal("0"))
        positive = {a: b for a, b in balances.items() if b > 0}
        max_balance = max(positive.values(), default=Decimal("0"))
        if treasury_id is not None and treasury_id not in positive:
            LOGGER.info("Treasury %s holds no balance; no treasury node", treasury_id)
            treasury_id = None

        scale = SqrtScale(max_balance, self.radius_range)
        nodes: Dict[str, Node] = {}
        for account_id, balance in positive.items():
            pct = share_pct(balance, total_supply)
            is_treasury = account_id == treasury_id
            nodes[account_id] = Node(
                id=account_id,
                value=balance,
                percentage=pct,
                radius=scale(balance),
                color=color_for_share(pct, is_treasury),
                is_treasury=is_treasury,
            )

        links = self._build_links(nodes, transfers, treasury_id)

        LOGGER.debug("Built %d nodes and %d links (supply %s)", len(nodes), len(links), total_supply)
        return Graph(
            nodes=nodes,
            links=links,
            total_supply=total_supply,
            treasury_id=treasury_id,
            max_balance=max_balance,
        )

    # -------------------------
    # Helpers
    # -------------------------

    @staticmethod
    def _merge_accounts(accounts: Iterable[Account]) -> Tuple[Dict[str, Decimal], Optional[str]]:
        balances: Dict[str, Decimal] = {}
        treasury_id: Optional[str] = None
        for a in accounts:
            if not a.account_id:
                continue
            if a.account_id in balances:
                LOGGER.warning("Duplicate holder row for %s; summing balances", a.account_id)
            balances[a.account_id] = balances.get(a.account_id, Decimal("0")) + a.balance
            if a.is_treasury and treasury_id is None:
                treasury_id = a.account_id
        return balances, treasury_id

    @staticmethod
    def _build_links(nodes: Dict[str, Node], transfers: Iterable[Transfer], treasury_id: Optional[str]) -> List[Link]:
        totals: Dict[Tuple[str, str], Decimal] = {}
        stamps: Dict[Tuple[str, str], list] = {}
        dropped = 0
        for tx in transfers:
            if tx.sender not in nodes or tx.receiver not in nodes:
                dropped += 1
                continue
            k = (tx.sender, tx.receiver)
            totals[k] = totals.get(k, Decimal("0")) + tx.amount
            stamps.setdefault(k, []).append(tx.timestamp)

        if dropped:
            LOGGER.debug("Dropped %d transfers touching accounts without a node", dropped)

        return [
            Link(
                source=s,
                target=t,
                value=totals[(s, t)],
                count=len(stamps[(s, t)]),
                timestamps=tuple(sorted(stamps[(s, t)])),
                color=link_color(s, t, treasury_id),
            )
            for (s, t) in totals
        ]


def build(accounts: Iterable[Account], transfers: Iterable[Transfer], radius_range: Optional[RadiusRange] = None) -> Graph:
    builder = GraphBuilder(radius_range) if radius_range else GraphBuilder()
    return builder.build(accounts, transfers)
