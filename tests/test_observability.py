"""
Tests for structured logging, metrics and health checks.
"""

import json
import logging

import pytest

from organ_matching.observability import (
    ContextLogger,
    MetricsCollector,
    StructuredFormatter,
    TextFormatter,
    caller_identity_var,
    check_health,
    get_logger,
    request_id_var,
)


def make_record(logger_name="organ_matching.test", **fields) -> logging.LogRecord:
    record = logging.LogRecord(logger_name, logging.INFO, __file__, 1, "Match proposed", None, None)
    for key, value in fields.items():
        setattr(record, key, value)
    return record


class TestContextLogger:

    def test_keyword_fields_become_extra(self):
        logger = get_logger("organ_matching.test")
        msg, kwargs = logger.process("hello", {"score": 230, "exc_info": False})

        assert msg == "hello"
        assert kwargs["extra"] == {"score": 230}
        assert kwargs["exc_info"] is False

    def test_is_adapter(self):
        assert isinstance(get_logger(__name__), ContextLogger)

    def test_fields_reach_handlers(self, caplog):
        logger = get_logger("organ_matching.test")
        with caplog.at_level(logging.INFO, logger="organ_matching.test"):
            logger.info("Donor registered", donor="abc", organ_type="kidney")

        record = caplog.records[-1]
        assert record.donor == "abc"
        assert record.organ_type == "kidney"


class TestFormatters:

    def test_json_output(self):
        line = StructuredFormatter().format(make_record(score=230, match_id="m-1"))
        data = json.loads(line)

        assert data["message"] == "Match proposed"
        assert data["level"] == "INFO"
        assert data["score"] == 230
        assert data["match_id"] == "m-1"
        assert "pathname" not in data

    def test_json_includes_request_context(self):
        token_req = request_id_var.set("req-1")
        token_caller = caller_identity_var.set("caller-1")
        try:
            data = json.loads(StructuredFormatter().format(make_record()))
        finally:
            request_id_var.reset(token_req)
            caller_identity_var.reset(token_caller)

        assert data["request_id"] == "req-1"
        assert data["caller_identity"] == "caller-1"

    def test_unserializable_fields_stringified(self):
        data = json.loads(StructuredFormatter().format(make_record(blob=object())))
        assert isinstance(data["blob"], str)

    def test_text_output(self):
        line = TextFormatter().format(make_record())
        assert "INFO" in line
        assert "organ_matching.test: Match proposed" in line


class TestMetrics:

    def test_counters(self):
        metrics = MetricsCollector()
        metrics.record_operation(1.5, success=True)
        metrics.record_operation(2.5, success=False)
        metrics.record_search(4, matched=True)
        metrics.record_search(2, matched=False)
        metrics.record_confirmation()
        metrics.record_recipient(created=True)
        metrics.record_recipient(created=False)

        summary = metrics.get_summary()
        assert summary["operations_total"] == 2
        assert summary["operations_failed"] == 1
        assert summary["candidates_scanned"] == 6
        assert summary["proposals_created"] == 1
        assert summary["searches_without_match"] == 1
        assert summary["matches_confirmed"] == 1
        assert summary["recipients_created"] == 1
        assert summary["recipients_updated"] == 1

    def test_percentiles_empty(self):
        assert MetricsCollector().get_summary()["operation_latency_p50_ms"] is None

    def test_latency_samples_bounded(self):
        metrics = MetricsCollector()
        for i in range(1500):
            metrics.record_operation(float(i), success=True)
        assert len(metrics.operation_latencies_ms) == 1000

    def test_reset(self):
        metrics = MetricsCollector()
        metrics.record_confirmation()
        metrics.reset()
        assert metrics.matches_confirmed == 0

    def test_service_records_operations(self, program):
        from organ_matching.observability import get_metrics

        # initialize + set_medical_authority
        assert get_metrics().operations_total == 2


class TestHealth:

    def test_liveness_only(self):
        status = check_health()
        assert status.healthy
        assert status.checks == {"liveness": {"status": "healthy"}}

    def test_uninitialized_program_is_healthy(self, service, store):
        status = check_health(service=service, store=store)

        assert status.healthy
        assert status.checks["program"]["initialized"] is False

    def test_broken_store_is_unhealthy(self, service):
        class BrokenStore:
            def ping(self):
                raise ConnectionError("db down")

        status = check_health(store=BrokenStore())
        assert not status.healthy
        assert status.checks["record_store"]["error"] == "db down"
