from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List

from holdermap.core.dto import AnalysisResult, AnalysisStatus


STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"


class AnalysisPort(ABC):
    """
    Abstract Class for the backend that scans a token's holders and transfers.
    """

    # --- job lifecycle ---

    @abstractmethod
    def submit(self, token_id: str) -> AnalysisStatus:
        raise NotImplementedError

    @abstractmethod
    def get_status(self, token_id: str) -> AnalysisStatus:
        raise NotImplementedError

    # --- results ---

    @abstractmethod
    def fetch_result(self, token_id: str) -> AnalysisResult:
        raise NotImplementedError

    # --- other users' jobs ---

    @abstractmethod
    def list_ongoing(self) -> List[AnalysisStatus]:
        raise NotImplementedError
