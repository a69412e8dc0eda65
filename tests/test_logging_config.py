"""Tests for log redaction and per-logger levels."""
import logging

from gateway_publisher.logging_config import LoggerLevelFilter, SecretRedactor


def _record(name: str, level: int) -> logging.LogRecord:
    return logging.LogRecord(name, level, __file__, 1, "msg", None, None)


class TestSecretRedactor:

    def test_masks_credentials_at_any_depth(self):
        redactor = SecretRedactor(["password", "secret_key", "access_key"])

        event = redactor(None, "info", {
            "event": "calling console",
            "connection_config": {"address": "http://console", "secretKey": "s", "password": "p"},
            "headers": [{"access_key": "ak", "x": 1}],
        })

        assert event["event"] == "calling console"
        assert event["connection_config"] == {
            "address": "http://console",
            "secretKey": "[REDACTED]",
            "password": "[REDACTED]",
        }
        assert event["headers"] == [{"access_key": "[REDACTED]", "x": 1}]

    def test_no_patterns(self):
        event = {"event": "x", "password": "p"}

        assert SecretRedactor([])(None, "info", event) == event


class TestLoggerLevelFilter:

    def test_most_specific_prefix_wins(self):
        level_filter = LoggerLevelFilter(
            {"gateway_publisher": "WARNING", "gateway_publisher.adapters": "DEBUG"},
            default_level="INFO",
        )

        assert level_filter.filter(_record("gateway_publisher.adapters.higress.client", logging.DEBUG))
        assert not level_filter.filter(_record("gateway_publisher.services.publish_service", logging.INFO))
        assert level_filter.filter(_record("uvicorn", logging.INFO))
        assert not level_filter.filter(_record("uvicorn", logging.DEBUG))
