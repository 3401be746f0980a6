from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Optional

from holdermap.config import settings
from holdermap.core.dto import AnalysisResult, AnalysisStatus
from holdermap.core.errors import AnalysisFailedError, AnalysisTimeoutError, DataSourceError
from holdermap.ports.analysis_port import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_IN_PROGRESS,
    AnalysisPort,
)


LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[str, Dict], None]


class AnalysisService:
    """
    Drives one backend analysis job: submit, poll status until it finishes,
    then fetch the raw holders/transfers payload.

    Polling is a plain sleep loop; ``sleep`` and ``clock`` are injectable.
    """

    def __init__(
        self,
        backend: AnalysisPort,
        poll_interval_sec: float = settings.STATUS_POLL_INTERVAL_SEC,
        timeout_sec: float = settings.ANALYSIS_TIMEOUT_SEC,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.backend = backend
        self.poll_interval_sec = poll_interval_sec
        self.timeout_sec = timeout_sec
        self._sleep = sleep
        self._clock = clock

    def analyze(self, token_id: str, on_progress: Optional[ProgressCallback] = None) -> AnalysisResult:
        token_id = self._clean(token_id)
        emit = on_progress or (lambda event, data: None)

        emit("start", {"token_id": token_id})
        status = self.backend.submit(token_id)
        status = self.wait(token_id, status, emit)

        result = self.backend.fetch_result(token_id)
        emit("done", {"token_id": token_id})
        return result

    def visualize(self, token_id: str, on_progress: Optional[ProgressCallback] = None) -> AnalysisResult:
        """
        Fetch the result of an analysis that already ran; no new job is submitted.
        """
        token_id = self._clean(token_id)
        emit = on_progress or (lambda event, data: None)

        emit("start", {"token_id": token_id})
        result = self.backend.fetch_result(token_id)
        emit("done", {"token_id": token_id})
        return result

    @staticmethod
    def _clean(token_id: str) -> str:
        token_id = token_id.strip()
        if not token_id:
            raise ValueError("token_id is required")
        return token_id

    def wait(self, token_id: str, status: AnalysisStatus, emit: ProgressCallback) -> AnalysisStatus:
        deadline = self._clock() + self.timeout_sec
        polls = 0
        while status.status == STATUS_IN_PROGRESS:
            emit("progress", {"token_id": token_id, "progress": status.progress, "polls": polls})
            if self._clock() >= deadline:
                raise AnalysisTimeoutError(f"Analysis of {token_id} did not finish within {self.timeout_sec:.0f}s")
            self._sleep(self.poll_interval_sec)
            status = self.backend.get_status(token_id)
            polls += 1

        if status.status == STATUS_FAILED:
            raise AnalysisFailedError(status.error or f"Analysis of {token_id} failed")
        if status.status != STATUS_COMPLETED:
            raise DataSourceError(f"Unexpected analysis status for {token_id}: {status.status}")

        LOGGER.info("Analysis of %s completed after %d poll(s)", token_id, polls)
        return status

    def ongoing(self):
        return self.backend.list_ongoing()
