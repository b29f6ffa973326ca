"""Structured logging helpers."""

import pytest
from structlog.testing import capture_logs

from assetflow_shared.infra.observability import LogPerformance, get_logger, log_error, log_performance


def test_log_performance_flags_slow_operations():
    with capture_logs() as logs:
        logger = get_logger("test")
        log_performance(logger, "stage", 1500.0, stage="sass")
        log_performance(logger, "stage", 3.14159, stage="concat")

    assert logs[0]["event"] == "slow_operation"
    assert logs[0]["log_level"] == "warning"
    assert logs[0]["slow"] is True
    assert logs[1]["event"] == "operation_complete"
    assert logs[1]["duration_ms"] == 3.14


def test_log_error_extracts_exception():
    with capture_logs() as logs:
        log_error(get_logger("test"), "pipeline_failed", error=ValueError("bad input"), pipeline="styles")

    assert logs == [
        {
            "event": "pipeline_failed",
            "log_level": "error",
            "error_type": "ValueError",
            "error_message": "bad input",
            "pipeline": "styles",
        }
    ]


class TestLogPerformance:
    def test_success(self):
        with capture_logs() as logs:
            with LogPerformance(get_logger("test"), "stage", stage="write"):
                pass

        assert logs[0]["operation"] == "stage"
        assert logs[0]["stage"] == "write"
        assert "duration_ms" in logs[0]

    def test_failure_is_logged_and_reraised(self):
        with capture_logs() as logs:
            with pytest.raises(RuntimeError):
                with LogPerformance(get_logger("test"), "stage", stage="sass"):
                    raise RuntimeError("compile failed")

        assert logs[0]["event"] == "stage_failed"
        assert logs[0]["error_message"] == "compile failed"
