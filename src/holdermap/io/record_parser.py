"""Turns raw holder/transfer records into typed accounts and transfers.

Two input shapes are accepted for each table:

* delimited text with a header row (``account,balance`` and
  ``timestamp,txId,sender,amount,receiver``); columns are located by header
  name, so their order does not matter;
* an iterable of mappings (``{"account", "balance", "isTreasury"}`` and
  ``{"timestamp", "sender", "receiver", "amount"}``).

Parsing is lenient about numbers (anything unusable becomes zero) and strict
about structure (a missing column raises ``MalformedInputError``).
"""
from __future__ import annotations

import csv
import io
import math
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from holdermap.core.dto import Account, Transfer
from holdermap.core.errors import MalformedInputError


RawTable = Union[str, Iterable[Mapping[str, Any]]]

# canonical field -> accepted header / key spellings (lowercase)
_HOLDER_FIELDS: Dict[str, Tuple[str, ...]] = {
    "account": ("account", "id", "account_id", "accountid"),
    "balance": ("balance",),
}
_HOLDER_OPTIONAL: Dict[str, Tuple[str, ...]] = {
    "is_treasury": ("istreasury", "is_treasury", "treasury"),
}
_TRANSFER_FIELDS: Dict[str, Tuple[str, ...]] = {
    "timestamp": ("timestamp", "consensus_timestamp", "time"),
    "sender": ("sender", "source", "from"),
    "receiver": ("receiver", "target", "to"),
    "amount": ("amount", "value"),
}
_TRANSFER_OPTIONAL: Dict[str, Tuple[str, ...]] = {
    "tx_id": ("txid", "tx_id", "transaction_id"),
}

_TRUE_STRINGS = {"1", "true", "yes", "y", "t"}


def parse(raw_holders: RawTable, raw_transfers: RawTable) -> Tuple[List[Account], List[Transfer]]:
    return parse_holders(raw_holders), parse_transfers(raw_transfers)


def parse_visualization_payload(payload: Mapping[str, Any]) -> Tuple[List[Account], List[Transfer]]:
    """
    Unpack a backend ``/visualize`` result. The backend has shipped both
    ``{holders, transactions}`` (text tables) and ``{nodes, links}`` (records).
    """
    if not isinstance(payload, Mapping):
        raise MalformedInputError(f"visualization payload must be an object, got {type(payload).__name__}")
    if "holders" in payload and "transactions" in payload:
        return parse(payload["holders"], payload["transactions"])
    if "nodes" in payload and "links" in payload:
        return parse(payload["nodes"], payload["links"])
    raise MalformedInputError("visualization payload is missing 'holders'/'transactions' (or 'nodes'/'links')")


def parse_holders(raw: RawTable) -> List[Account]:
    accounts: List[Account] = []
    treasury: Optional[str] = None
    for row_no, row in _rows(raw, _HOLDER_FIELDS, _HOLDER_OPTIONAL, table="holders"):
        account_id = str(row["account"] or "").strip()
        is_treasury = _to_bool(row.get("is_treasury"))
        if is_treasury:
            if treasury is not None and treasury != account_id:
                raise MalformedInputError(
                    f"holders row {row_no}: more than one treasury account ({treasury}, {account_id})"
                )
            treasury = account_id
        accounts.append(
            Account(
                account_id=account_id,
                balance=_to_amount(row["balance"]),
                is_treasury=is_treasury,
            )
        )
    return accounts


def parse_transfers(raw: RawTable) -> List[Transfer]:
    transfers: List[Transfer] = []
    for row_no, row in _rows(raw, _TRANSFER_FIELDS, _TRANSFER_OPTIONAL, table="transfers"):
        try:
            ts = parse_timestamp(row["timestamp"])
        except ValueError as exc:
            raise MalformedInputError(f"transfers row {row_no}: bad 'timestamp': {exc}") from exc
        tx_id = row.get("tx_id")
        transfers.append(
            Transfer(
                timestamp=ts,
                sender=str(row["sender"] or "").strip(),
                receiver=str(row["receiver"] or "").strip(),
                amount=_to_amount(row["amount"]),
                tx_id=str(tx_id).strip() if tx_id not in (None, "") else None,
            )
        )
    return transfers


def parse_timestamp(raw: Any) -> datetime:
    """
    ISO-8601 (``Z`` or offset; naive means UTC) or epoch seconds, including
    ``seconds.nanos`` consensus timestamps.
    """
    if isinstance(raw, datetime):
        return raw if raw.tzinfo else raw.replace(tzinfo=timezone.utc)
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return _from_epoch(str(raw))

    text = str(raw or "").strip()
    if not text:
        raise ValueError("empty timestamp")

    if _looks_numeric(text):
        return _from_epoch(text)

    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


# -------------------------
# Helpers
# -------------------------

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _from_epoch(text: str) -> datetime:
    # Decimal keeps seconds.nanos exact; sub-microsecond digits are floored
    value = Decimal(text)
    if not value.is_finite():
        raise ValueError(f"epoch timestamp must be finite: {text}")
    whole = math.floor(value)
    micros = math.floor((value - whole) * 1_000_000)
    try:
        return _EPOCH + timedelta(seconds=whole, microseconds=micros)
    except OverflowError:
        raise ValueError(f"epoch timestamp out of range: {text}") from None


def _rows(
    raw: RawTable,
    required: Mapping[str, Sequence[str]],
    optional: Mapping[str, Sequence[str]],
    table: str,
) -> Iterable[Tuple[int, Dict[str, Any]]]:
    if raw is None:
        raise MalformedInputError(f"{table}: no input")
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8")
    if isinstance(raw, str):
        return _text_rows(raw, required, optional, table)
    return _record_rows(raw, required, optional, table)


def _text_rows(text, required, optional, table):
    reader = csv.reader(io.StringIO(text))
    header: Optional[List[str]] = None
    columns: Dict[str, int] = {}
    out = []
    for line_no, cells in enumerate(reader, start=1):
        if not cells or all(not c.strip() for c in cells):
            continue
        if header is None:
            header = [c.strip().lower() for c in cells]
            columns = _locate(header, required, optional, table)
            continue
        row = {
            name: (cells[idx].strip() if idx < len(cells) else "")
            for name, idx in columns.items()
        }
        out.append((line_no, row))
    if header is None:
        # blank table: nothing to check columns against, nothing to parse
        return []
    return out


def _record_rows(records, required, optional, table):
    out = []
    for row_no, rec in enumerate(records, start=1):
        if not isinstance(rec, Mapping):
            raise MalformedInputError(f"{table} row {row_no}: expected a mapping, got {type(rec).__name__}")
        if not rec or all(_is_blank(v) for v in rec.values()):
            continue
        lowered = {str(k).strip().lower(): v for k, v in rec.items()}
        row: Dict[str, Any] = {}
        for name, aliases in required.items():
            key = next((a for a in aliases if a in lowered), None)
            if key is None:
                raise MalformedInputError(f"{table} row {row_no}: missing required field '{name}'")
            row[name] = lowered[key]
        for name, aliases in optional.items():
            key = next((a for a in aliases if a in lowered), None)
            row[name] = lowered[key] if key is not None else None
        out.append((row_no, row))
    return out


def _locate(header, required, optional, table) -> Dict[str, int]:
    columns: Dict[str, int] = {}
    for name, aliases in required.items():
        idx = next((header.index(a) for a in aliases if a in header), None)
        if idx is None:
            raise MalformedInputError(f"{table}: missing required column '{name}' (header: {','.join(header)})")
        columns[name] = idx
    for name, aliases in optional.items():
        idx = next((header.index(a) for a in aliases if a in header), None)
        if idx is not None:
            columns[name] = idx
    return columns


def _to_amount(val: Any) -> Decimal:
    if val is None or isinstance(val, bool):
        return Decimal("0")
    try:
        d = Decimal(str(val).strip())
    except (InvalidOperation, ValueError):
        return Decimal("0")
    if not d.is_finite() or d < 0:
        return Decimal("0")
    return d


def _to_bool(val: Any) -> bool:
    if isinstance(val, bool):
        return val
    if val is None:
        return False
    return str(val).strip().lower() in _TRUE_STRINGS


def _is_blank(val: Any) -> bool:
    return val is None or (isinstance(val, str) and not val.strip())


def _looks_numeric(text: str) -> bool:
    try:
        return math.isfinite(float(text))
    except ValueError:
        return False
