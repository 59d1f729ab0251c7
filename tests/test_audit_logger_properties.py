"""
Property-based tests for Audit Logger module.

Covers dual-format output, level filtering, signing in audit mode and masking
of registrar and channel credentials.
"""

import json
from io import StringIO

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from domain_watcher.audit_logger import AuditLogger
from domain_watcher.enums import LogLevel


def log_level_strategy() -> st.SearchStrategy[LogLevel]:
    return st.sampled_from(list(LogLevel))


def component_name_strategy() -> st.SearchStrategy[str]:
    return st.sampled_from([
        "CheckOrchestrator", "RDAPClient", "NotificationDispatcher", "Scheduler", "AutoRegistration",
    ])


def message_strategy() -> st.SearchStrategy[str]:
    return st.text(alphabet="abcdefghijklmnopqrstuvwxyz ", min_size=1, max_size=40).filter(str.strip)


def sensitive_key_strategy() -> st.SearchStrategy[str]:
    return st.sampled_from([
        "api_key", "api_secret", "apiKey", "password", "smtpPass", "botToken",
        "Authorization", "hmac_secret", "credentials",
    ])


class TestDualFormat:
    @given(
        level=log_level_strategy(),
        component=component_name_strategy(),
        message=message_strategy(),
    )
    @settings(max_examples=50)
    def test_both_format_writes_json_and_text(self, level: LogLevel, component: str, message: str) -> None:
        output = StringIO()
        logger = AuditLogger(output_format="both", output_stream=output)

        logger.log(level, component, message, {"domain": "example.com"})

        json_line, text_line = output.getvalue().strip().split("\n")
        parsed = json.loads(json_line)
        assert parsed["level"] == level.value
        assert parsed["component"] == component
        assert parsed["data"] == {"domain": "example.com"}
        assert level.value.upper() in text_line
        assert f"[{component}]" in text_line

    def test_invalid_format_rejected(self) -> None:
        with pytest.raises(ValueError):
            AuditLogger(output_format="xml")


class TestLevelFiltering:
    @given(level=log_level_strategy())
    def test_entries_below_minimum_dropped(self, level: LogLevel) -> None:
        output = StringIO()
        logger = AuditLogger(output_stream=output, min_level=LogLevel.WARN)

        entry = logger.log(level, "Scheduler", "tick")

        if level in (LogLevel.WARN, LogLevel.ERROR):
            assert entry is not None
            assert len(logger.entries) == 1
        else:
            assert entry is None
            assert output.getvalue() == ""

    def test_from_level_name_defaults_to_info(self) -> None:
        logger = AuditLogger.from_level_name("verbose", output_stream=StringIO())
        assert logger.log(LogLevel.DEBUG, "X", "hidden") is None
        assert logger.log(LogLevel.INFO, "X", "shown") is not None


class TestAuditSigning:
    @given(message=message_strategy())
    @settings(max_examples=30)
    def test_signed_entries_verify(self, message: str) -> None:
        logger = AuditLogger(output_format="json", output_stream=StringIO())
        logger.enable_audit_mode("signing-key")

        entry = logger.log(LogLevel.INFO, "AutoRegistration", message, {"domain": "example.com"})

        assert entry.signature
        assert logger.verify_signature(entry)

        entry.data["domain"] = "evil.com"
        assert not logger.verify_signature(entry)

    def test_no_signature_without_audit_mode(self) -> None:
        logger = AuditLogger(output_stream=StringIO())
        entry = logger.log(LogLevel.INFO, "X", "plain")
        assert entry.signature is None
        assert not logger.verify_signature(entry)


class TestSensitiveDataMasking:
    @given(
        key=sensitive_key_strategy(),
        value=st.text(alphabet="QWXYZ", min_size=5, max_size=20),
    )
    @settings(max_examples=50)
    def test_sensitive_values_masked(self, key: str, value: str) -> None:
        output = StringIO()
        logger = AuditLogger(output_format="json", output_stream=output)

        entry = logger.log(LogLevel.INFO, "NotificationDispatcher", "sending", {
            key: value,
            "config": {key: value, "chatId": "42"},
        })

        assert entry.data[key] == AuditLogger.MASK_VALUE
        assert entry.data["config"][key] == AuditLogger.MASK_VALUE
        assert entry.data["config"]["chatId"] == "42"
        assert value not in output.getvalue()


class TestErrorContext:
    def test_log_error_records_type_and_message(self) -> None:
        logger = AuditLogger(output_stream=StringIO())

        entry = logger.log_error("Scheduler", "Sweep failed", RuntimeError("disk full"), {"due": 3})

        assert entry.level is LogLevel.ERROR
        assert entry.data == {"due": 3, "error_message": "disk full", "error_type": "RuntimeError"}


class TestUrlCredentialRedaction:
    @pytest.mark.parametrize("text, secret", [
        ("POST https://api.telegram.org/bot123456:AAF-xyz_9/sendMessage failed", "AAF-xyz_9"),
        ("GET https://api.dynadot.com/api3.json?key=dyn-secret&command=search", "dyn-secret"),
        ("https://api.namecheap.com/xml.response?ApiUser=u&ApiKey=nc-secret", "nc-secret"),
    ])
    def test_credentials_in_urls_are_masked(self, text: str, secret: str) -> None:
        output = StringIO()
        logger = AuditLogger(output_format="both", output_stream=output)

        logger.log_error("AutoRegistration", f"Request failed: {text}", RuntimeError(text), {"url": text})

        assert secret not in output.getvalue()
        assert "***MASKED***" in output.getvalue()

    def test_plain_text_untouched(self) -> None:
        logger = AuditLogger(output_stream=StringIO())
        entry = logger.log(LogLevel.INFO, "RDAPClient", "GET https://rdap.example/domain/key.com", {"domain": "key.com"})
        assert entry.message == "GET https://rdap.example/domain/key.com"
        assert entry.data == {"domain": "key.com"}
