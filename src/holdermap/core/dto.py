from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional


@dataclass(frozen=True)
class Account:
    account_id: str
    balance: Decimal            # token units, never negative
    is_treasury: bool = False


@dataclass(frozen=True)
class Transfer:
    timestamp: datetime         # timezone-aware, UTC
    sender: str
    receiver: str
    amount: Decimal
    tx_id: Optional[str] = None


@dataclass(frozen=True)
class AnalysisProgress:
    holders_processed: int = 0
    holders_total: int = 0
    holders_with_transactions: int = 0
    holders_pct: float = 0.0
    batch_current: int = 0
    batch_total: int = 0
    batch_pct: float = 0.0
    transactions_unique: int = 0
    transactions_total: int = 0
    elapsed_sec: float = 0.0


@dataclass(frozen=True)
class AnalysisStatus:
    token_id: str
    status: str                 # in_progress | completed | failed
    progress: Optional[AnalysisProgress] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class AnalysisResult:
    """
    Raw backend payload for one token, still unparsed.
    """

    token_id: str
    payload: Any = field(default=None)
