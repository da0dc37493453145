import json
import logging
import unittest

from lamusic_importer.observability import (
    JsonLogFormatter,
    bind_request_id,
    metrics_snapshot,
    observe_ai_call,
    observe_import,
    prometheus_metrics_text,
    reset_metrics_for_tests,
    set_log_request_id,
)


def _record(msg: str = "worker_log", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="lamusic_importer",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class ObservabilityPrometheusTest(unittest.TestCase):
    def setUp(self) -> None:
        reset_metrics_for_tests()

    def tearDown(self) -> None:
        reset_metrics_for_tests()

    def test_ai_and_import_counters(self) -> None:
        observe_ai_call(True, 120.0, tokens_used=30)
        observe_ai_call(False, 80.0)
        observe_import("committed", 3)
        observe_import("rejected_invalid")

        snapshot = metrics_snapshot()
        self.assertEqual(snapshot["ai_calls"]["ok"], 1)
        self.assertEqual(snapshot["ai_calls"]["failed"], 1)
        self.assertEqual(snapshot["ai_calls"]["avg_latency_ms"], 100.0)
        self.assertEqual(snapshot["ai_calls"]["tokens_estimated_total"], 30)
        self.assertEqual(snapshot["imports"]["by_result"], {"committed": 1, "rejected_invalid": 1})
        self.assertEqual(snapshot["imports"]["products_total"], 3)

        text = prometheus_metrics_text()
        self.assertIn('ai_calls_total{outcome="failed"} 1', text)
        self.assertIn('ai_call_duration_ms_bucket{le="100"} 1', text)
        self.assertIn("ai_call_duration_ms_count 2", text)
        self.assertIn('nfe_imports_total{result="rejected_invalid"} 1', text)

    def test_log_formatter_includes_request_id_outside_request_context(self) -> None:
        set_log_request_id("worker-req-123")
        parsed = json.loads(JsonLogFormatter().format(_record()))
        self.assertEqual(parsed.get("request_id"), "worker-req-123")
        self.assertEqual(parsed.get("message"), "worker_log")

    def test_log_formatter_keeps_extra_fields(self) -> None:
        with bind_request_id("req-extra"):
            parsed = json.loads(JsonLogFormatter().format(_record("nfe_import_state", state="validating")))
        self.assertEqual(parsed["state"], "validating")
        self.assertEqual(parsed["request_id"], "req-extra")


if __name__ == "__main__":
    unittest.main()
