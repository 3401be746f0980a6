from holdermap.core.dto import AnalysisResult, AnalysisStatus
from holdermap.core.errors import DataSourceError
from holdermap.ports.analysis_port import STATUS_COMPLETED, AnalysisPort
from typing import Any, Dict, List, Optional

class StaticAnalysisAdapter(AnalysisPort):
    """
    In-memory backend. ``statuses`` scripts what successive status polls
    return per token; the last entry repeats.
    """
    def __init__(self,
                 results: Optional[Dict[str, Any]] = None,
                 statuses: Optional[Dict[str, List[AnalysisStatus]]] = None,
                 ongoing: Optional[List[AnalysisStatus]] = None,
                 ):
        self._results = results or {}
        self._statuses = {k: list(v) for k, v in (statuses or {}).items()}
        self._ongoing = ongoing or []
        self.submitted: List[str] = []
        self.polls: Dict[str, int] = {}

    def submit(self, token_id):
        self.submitted.append(token_id)
        return self._next_status(token_id)

    def get_status(self, token_id):
        self.polls[token_id] = self.polls.get(token_id, 0) + 1
        return self._next_status(token_id)

    def fetch_result(self, token_id):
        if token_id not in self._results:
            raise DataSourceError(f"No analysis result for {token_id}")
        return AnalysisResult(token_id=token_id, payload=self._results[token_id])

    def list_ongoing(self):
        return list(self._ongoing)

    def _next_status(self, token_id):
        script = self._statuses.get(token_id)
        if not script:
            return AnalysisStatus(token_id=token_id, status=STATUS_COMPLETED)
        if len(script) > 1:
            return script.pop(0)
        return script[0]
