import structlog
from uuid import uuid4

from product_research.utils.logger import LogContext, get_logger, redact, redact_sensitive


def test_redact_bearer_header():
    message = redact("Request failed with Authorization: Bearer tvly-abc123")
    assert "tvly-abc123" not in message
    assert "Authorization: Bearer [REDACTED]" in message


def test_redact_long_api_key():
    key = "sk-ant-api03-" + "Q" * 40
    message = redact(f"bad key {key} rejected")
    assert key not in message
    assert "[REDACTED]" in message


def test_redact_url_with_query_string():
    message = redact("GET https://api.example.com/latest?api_key=abc failed")
    assert "api_key=abc" not in message
    assert "[URL_REDACTED]" in message


def test_redact_keeps_report_ids():
    report_id = uuid4().hex
    assert redact(f"Report not found: {report_id}") == f"Report not found: {report_id}"


def test_redact_truncates_long_messages():
    message = redact("word " * 300)
    assert message.endswith("... [TRUNCATED]")
    assert len(message) == 1000 + len("... [TRUNCATED]")


def test_redact_non_string():
    assert redact(42) == "42"


def test_redact_sensitive_processor():
    event = {
        "event": "call failed",
        "error": "Authorization: Bearer secret-token",
        "timestamp": "2026-01-01T00:00:00Z",
        "attempt": 2,
    }
    result = redact_sensitive(None, "error", event)
    assert "secret-token" not in result["error"]
    assert result["timestamp"] == "2026-01-01T00:00:00Z"
    assert result["attempt"] == 2


def test_log_context_binds_and_unbinds():
    with LogContext(report_id="abc"):
        assert structlog.contextvars.get_contextvars()["report_id"] == "abc"
    assert "report_id" not in structlog.contextvars.get_contextvars()


def test_get_logger_returns_logger():
    logger = get_logger("test")
    assert hasattr(logger, "info")


def test_redact_sensitive_processor_handles_nested_values():
    key = "sk-ant-api03-" + "Q" * 40
    event = {
        "event": "Schema validation failed",
        "errors": [f"price: rejected {key}", "currency: field required"],
        "currencies": ("EUR", "GBP"),
        "detail": {"url": "https://api.example.com/latest?api_key=abc", "attempt": 3},
    }

    result = redact_sensitive(None, "warning", event)

    assert result["errors"] == ["price: rejected [REDACTED]", "currency: field required"]
    assert result["currencies"] == ("EUR", "GBP")
    assert result["detail"] == {"url": "[URL_REDACTED]", "attempt": 3}
