from __future__ import annotations

from decimal import Decimal
from typing import Union


Number = Union[int, float, Decimal]


def format_elapsed(seconds: float) -> str:
    total = int(max(0, seconds))
    return f"{total // 60}:{total % 60:02d}"


def format_number(num: Number) -> str:
    if isinstance(num, Decimal) and num == num.to_integral_value():
        return f"{int(num):,}"
    if isinstance(num, int):
        return f"{num:,}"
    return f"{num:,.2f}"


def format_percentage(value: float) -> str:
    return f"{value:.2f}%"


def short_id(account_id: str, keep: int = 14) -> str:
    return account_id if len(account_id) <= keep else f"{account_id[:keep - 4]}..."
