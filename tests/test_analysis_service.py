import unittest

from holdermap.adapters.analysis.static_analysis_adapter import StaticAnalysisAdapter
from holdermap.core.dto import AnalysisProgress, AnalysisStatus
from holdermap.core.errors import AnalysisFailedError, AnalysisTimeoutError, DataSourceError
from holdermap.ports.analysis_port import STATUS_COMPLETED, STATUS_FAILED, STATUS_IN_PROGRESS
from holdermap.services.analysis_service import AnalysisService


PAYLOAD = {"holders": "account,balance\nA,1\n", "transactions": "timestamp,sender,receiver,amount\n"}


def _progress(done):
    return AnalysisProgress(
        holders_processed=done,
        holders_total=10,
        holders_with_transactions=done,
        holders_pct=done * 10.0,
        batch_current=1,
        batch_total=1,
        batch_pct=100.0,
        transactions_unique=done,
        transactions_total=done,
        elapsed_sec=float(done),
    )


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class AnalysisServiceTests(unittest.TestCase):
    def _service(self, backend, timeout_sec=60.0):
        self.clock = FakeClock()
        return AnalysisService(
            backend,
            poll_interval_sec=2.0,
            timeout_sec=timeout_sec,
            sleep=self.clock.sleep,
            clock=self.clock,
        )

    def test_polls_until_completed_and_fetches_payload(self) -> None:
        backend = StaticAnalysisAdapter(
            results={"0.0.1": PAYLOAD},
            statuses={"0.0.1": [
                AnalysisStatus("0.0.1", STATUS_IN_PROGRESS, _progress(1)),
                AnalysisStatus("0.0.1", STATUS_IN_PROGRESS, _progress(5)),
                AnalysisStatus("0.0.1", STATUS_COMPLETED),
            ]},
        )
        events = []
        service = self._service(backend)

        result = service.analyze(" 0.0.1 ", lambda event, data: events.append((event, data)))

        self.assertEqual(result.payload, PAYLOAD)
        self.assertEqual(backend.submitted, ["0.0.1"])
        self.assertEqual(backend.polls["0.0.1"], 2)
        self.assertEqual(self.clock.sleeps, [2.0, 2.0])
        self.assertEqual([e for e, _ in events], ["start", "progress", "progress", "done"])
        self.assertEqual(events[2][1]["progress"].holders_processed, 5)

    def test_already_completed_skips_polling(self) -> None:
        backend = StaticAnalysisAdapter(results={"0.0.2": PAYLOAD})
        service = self._service(backend)

        service.analyze("0.0.2")

        self.assertEqual(backend.polls, {})
        self.assertEqual(self.clock.sleeps, [])

    def test_failed_job_raises_with_backend_message(self) -> None:
        backend = StaticAnalysisAdapter(statuses={"0.0.3": [
            AnalysisStatus("0.0.3", STATUS_IN_PROGRESS),
            AnalysisStatus("0.0.3", STATUS_FAILED, error="mirror node unavailable"),
        ]})

        with self.assertRaises(AnalysisFailedError) as ctx:
            self._service(backend).analyze("0.0.3")
        self.assertIn("mirror node unavailable", str(ctx.exception))

    def test_stuck_job_times_out(self) -> None:
        backend = StaticAnalysisAdapter(statuses={"0.0.4": [AnalysisStatus("0.0.4", STATUS_IN_PROGRESS)]})

        with self.assertRaises(AnalysisTimeoutError):
            self._service(backend, timeout_sec=10.0).analyze("0.0.4")
        self.assertEqual(backend.polls["0.0.4"], 5)

    def test_unknown_status_is_a_data_source_error(self) -> None:
        backend = StaticAnalysisAdapter(statuses={"0.0.5": [AnalysisStatus("0.0.5", "queued")]})

        with self.assertRaises(DataSourceError):
            self._service(backend).analyze("0.0.5")

    def test_missing_result_is_a_data_source_error(self) -> None:
        with self.assertRaises(DataSourceError):
            self._service(StaticAnalysisAdapter()).analyze("0.0.6")

    def test_empty_token_rejected(self) -> None:
        with self.assertRaises(ValueError):
            self._service(StaticAnalysisAdapter()).analyze("   ")

    def test_ongoing_lists_backend_jobs(self) -> None:
        jobs = [AnalysisStatus("0.0.7", STATUS_IN_PROGRESS, _progress(3))]
        service = self._service(StaticAnalysisAdapter(ongoing=jobs))

        self.assertEqual(service.ongoing(), jobs)

    def test_visualize_fetches_without_submitting(self) -> None:
        backend = StaticAnalysisAdapter(results={"0.0.8": PAYLOAD})
        events = []

        result = self._service(backend).visualize(" 0.0.8 ", lambda event, data: events.append(event))

        self.assertEqual(result.payload, PAYLOAD)
        self.assertEqual(backend.submitted, [])
        self.assertEqual(backend.polls, {})
        self.assertEqual(events, ["start", "done"])

    def test_visualize_without_result_is_a_data_source_error(self) -> None:
        backend = StaticAnalysisAdapter()

        with self.assertRaises(DataSourceError):
            self._service(backend).visualize("0.0.9")
        self.assertEqual(backend.submitted, [])


if __name__ == "__main__":
    unittest.main()
