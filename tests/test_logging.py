"""
Tests for log formatters and correlation context.
"""
import json
import logging

import pytest

from solarsign.utils.logging import (
    CloudLoggingFormatter,
    DevelopmentFormatter,
    clear_context,
    request_id_var,
    set_context,
)


def _record(message="Signed contract", level=logging.INFO):
    return logging.LogRecord("solarsign.test", level, __file__, 10, message, None, None)


@pytest.fixture(autouse=True)
def clean_context():
    clear_context()
    yield
    clear_context()


class TestCloudLoggingFormatter:

    def test_correlation_ids(self):
        request_id_var.set("req-1234567890")
        set_context(opportunity_id="OPP-1", signature_id="SIG_1_abc")

        entry = json.loads(CloudLoggingFormatter().format(_record()))

        assert entry["severity"] == "INFO"
        assert entry["message"] == "Signed contract"
        assert entry["request_id"] == "req-1234567890"
        assert entry["logging.googleapis.com/trace"] == "req-1234567890"
        assert entry["opportunity_id"] == "OPP-1"
        assert entry["signature_id"] == "SIG_1_abc"
        assert entry["timestamp"].endswith("Z")

    def test_without_context(self):
        entry = json.loads(CloudLoggingFormatter().format(_record()))
        assert "request_id" not in entry
        assert "logging.googleapis.com/trace" not in entry


class TestDevelopmentFormatter:

    def test_prefix(self):
        request_id_var.set("abcdef1234567890")
        set_context(opportunity_id="OPP-1", signature_id="SIG_1724926530123_0123")

        line = DevelopmentFormatter().format(_record(level=logging.WARNING))

        assert line == "[WARNING] [abcdef12] [opp:OPP-1] [sig:SIG_17249265] Signed contract"

    def test_no_request(self):
        assert DevelopmentFormatter().format(_record()) == "[INFO] [-] Signed contract"
