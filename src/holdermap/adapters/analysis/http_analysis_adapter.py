from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

import requests

from holdermap.adapters.analysis.rate_limiter import SimpleRateLimiter, backoff_sleep
from holdermap.config import settings
from holdermap.core.dto import AnalysisProgress, AnalysisResult, AnalysisStatus
from holdermap.core.errors import DataSourceError, RateLimitError
from holdermap.ports.analysis_port import STATUS_IN_PROGRESS, AnalysisPort


LOGGER = logging.getLogger(__name__)


class HttpAnalysisAdapter(AnalysisPort):

    def __init__(
        self,
        base_url: str = settings.API_URL,
        requests_per_sec: float = settings.API_REQUESTS_PER_SEC,
        timeout_sec: int = settings.API_TIMEOUT_SEC,
        max_retries: int = settings.API_MAX_RETRIES,
        session: Optional[requests.Session] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_sec
        self._max_retries = max_retries
        self._session = session or requests.Session()
        self._session.headers.update({"Content-Type": "application/json"})
        if sleep is None:
            self._rl = SimpleRateLimiter(requests_per_sec)
            self._backoff = backoff_sleep
        else:
            self._rl = SimpleRateLimiter(requests_per_sec, sleep=sleep)
            self._backoff = lambda attempt: backoff_sleep(attempt, sleep=sleep)

    # ---------- internal ----------

    def _call(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self._base_url}/{path.lstrip('/')}"
        last_err: Optional[Exception] = None

        for attempt in range(self._max_retries):
            try:
                self._rl.wait()
                resp = self._session.request(method, url, json=body, timeout=self._timeout)
            except requests.RequestException as e:
                LOGGER.warning("%s %s failed (attempt %d): %s", method, path, attempt + 1, e)
                last_err = e
                self._backoff(attempt)
                continue

            if resp.status_code == 429:
                last_err = RateLimitError(f"{method} {path}: rate limited")
                self._backoff(attempt)
                continue
            if resp.status_code >= 500:
                last_err = DataSourceError(f"{method} {path}: HTTP {resp.status_code}")
                self._backoff(attempt)
                continue
            if resp.status_code >= 400:
                # client errors will not improve on retry
                raise DataSourceError(self._error_message(resp) or f"{method} {path}: HTTP {resp.status_code}")

            try:
                return resp.json()
            except ValueError as e:
                raise DataSourceError(f"{method} {path}: response is not JSON") from e

        raise DataSourceError(f"Analysis backend failed after retries: {last_err}")

    @staticmethod
    def _error_message(resp: requests.Response) -> Optional[str]:
        try:
            data = resp.json()
        except ValueError:
            return None
        if isinstance(data, dict) and data.get("error"):
            return str(data["error"])
        return None

    @staticmethod
    def _token_path(token_id: str) -> str:
        return quote(token_id.strip(), safe="")

    # ---------- port methods ----------

    def submit(self, token_id: str) -> AnalysisStatus:
        data = self._call("POST", "analyze", {"tokenId": token_id})
        return parse_status(token_id, data)

    def get_status(self, token_id: str) -> AnalysisStatus:
        data = self._call("GET", f"analyze/{self._token_path(token_id)}/status")
        return parse_status(token_id, data)

    def fetch_result(self, token_id: str) -> AnalysisResult:
        data = self._call("GET", f"visualize/{self._token_path(token_id)}")
        if not isinstance(data, dict):
            raise DataSourceError(f"Invalid visualize response for {token_id}")
        return AnalysisResult(token_id=token_id, payload=data)

    def list_ongoing(self) -> List[AnalysisStatus]:
        data = self._call("GET", "analyze/ongoing")
        items = data if isinstance(data, list) else []
        out: List[AnalysisStatus] = []
        for item in items:
            if not isinstance(item, dict):
                continue
            token_id = str(item.get("tokenId") or item.get("token_id") or "")
            if token_id:
                out.append(parse_status(token_id, item))
        return out


# -------------------------
# Payload decoding
# -------------------------

def parse_status(token_id: str, data: Any) -> AnalysisStatus:
    if not isinstance(data, dict):
        return AnalysisStatus(token_id=token_id, status=STATUS_IN_PROGRESS)
    raw_progress = data.get("progress")
    status = str(data.get("status") or STATUS_IN_PROGRESS).lower()
    if status == "started":
        # POST /analyze answers "started" for a freshly queued job
        status = STATUS_IN_PROGRESS
    return AnalysisStatus(
        token_id=token_id,
        status=status,
        progress=parse_progress(raw_progress) if isinstance(raw_progress, dict) else None,
        error=str(data["error"]) if data.get("error") else None,
    )


def parse_progress(raw: Dict[str, Any]) -> AnalysisProgress:
    holders = raw.get("holders") or {}
    batches = raw.get("batches") or {}
    txs = raw.get("transactions") or {}
    return AnalysisProgress(
        holders_processed=_int(holders.get("processed")),
        holders_total=_int(holders.get("total")),
        holders_with_transactions=_int(holders.get("withTransactions")),
        holders_pct=_float(holders.get("progress")),
        batch_current=_int(batches.get("current")),
        batch_total=_int(batches.get("total")),
        batch_pct=_float(batches.get("progress")),
        transactions_unique=_int(txs.get("unique")),
        transactions_total=_int(txs.get("total")),
        elapsed_sec=_float(raw.get("elapsedTime")),
    )


def _int(val: Any) -> int:
    try:
        return int(val)
    except (TypeError, ValueError):
        return 0


def _float(val: Any) -> float:
    # progress percentages arrive as strings like "42.50"
    try:
        return float(str(val).rstrip("%"))
    except (TypeError, ValueError):
        return 0.0
