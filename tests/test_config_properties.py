"""
Property-based tests for configuration handling.

Covers the JSON config file round trip used by the CLI and parsing of the
string settings table into MonitorSettings.
"""

import json
import tempfile
from pathlib import Path

from hypothesis import given, settings
from hypothesis import strategies as st

from domain_watcher.cli import create_default_config, load_config_from_file, save_config_to_file
from domain_watcher.config import (
    DEFAULT_SETTINGS,
    LoggingConfig,
    MonitorSettings,
    PersistenceConfig,
    RateLimitConfig,
    SchedulerConfig,
    SmtpConfig,
    SystemConfig,
)


@st.composite
def system_config_strategy(draw) -> SystemConfig:
    """Generate valid SystemConfig objects."""
    return SystemConfig(
        persistence=PersistenceConfig(
            state_file_path=Path(f"/tmp/{draw(st.text(alphabet='abcdef', min_size=1, max_size=8))}.json"),
            hmac_secret=draw(st.text(min_size=1, max_size=32)),
        ),
        rate_limits=RateLimitConfig(
            max_concurrent=draw(st.integers(min_value=1, max_value=50)),
            min_interval_seconds=draw(st.floats(min_value=0.0, max_value=10.0)),
        ),
        logging=LoggingConfig(
            level=draw(st.sampled_from(["debug", "info", "warn", "error"])),
            audit_mode=draw(st.booleans()),
            audit_signing_key=draw(st.one_of(st.none(), st.text(min_size=1, max_size=16))),
            output_format=draw(st.sampled_from(["json", "text", "both"])),
        ),
        scheduler=SchedulerConfig(interval_seconds=draw(st.floats(min_value=1.0, max_value=3600.0))),
        smtp=SmtpConfig(
            timeout_seconds=draw(st.floats(min_value=1.0, max_value=120.0)),
            helo_name=draw(st.sampled_from(["domainwatcher", "watcher.example"])),
        ),
        bootstrap_url=draw(st.sampled_from([
            "https://data.iana.org/rdap/dns.json", "https://mirror.example/dns.json",
        ])),
    )


class TestConfigurationRoundTrip:
    @given(config=system_config_strategy())
    @settings(max_examples=50)
    def test_round_trip_preserves_data(self, config: SystemConfig) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.json"
            assert save_config_to_file(config, path)

            loaded = load_config_from_file(path)

        assert loaded == config

    @given(config=system_config_strategy())
    @settings(max_examples=20)
    def test_serialization_is_valid_json(self, config: SystemConfig) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "nested" / "config.json"
            save_config_to_file(config, path)
            data = json.loads(path.read_text(encoding="utf-8"))

        assert data["rate_limits"]["max_concurrent"] == config.rate_limits.max_concurrent
        assert data["persistence"]["state_file_path"] == str(config.persistence.state_file_path)

    def test_missing_file_yields_none(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            assert load_config_from_file(Path(tmpdir) / "absent.json") is None

    def test_empty_file_uses_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.json"
            path.write_text("{}", encoding="utf-8")
            loaded = load_config_from_file(path)

        default = create_default_config()
        assert loaded.rate_limits == default.rate_limits
        assert loaded.scheduler.interval_seconds == 60.0
        assert loaded.smtp.timeout_seconds == 30.0


class TestMonitorSettings:
    def test_defaults_match_seeded_settings(self) -> None:
        assert MonitorSettings.from_mapping(DEFAULT_SETTINGS) == MonitorSettings()

    @given(
        threshold=st.integers(min_value=0, max_value=365),
        timeout_ms=st.integers(min_value=1, max_value=60000),
    )
    def test_numeric_values_parsed(self, threshold: int, timeout_ms: int) -> None:
        parsed = MonitorSettings.from_mapping({
            "expiring_threshold_days": str(threshold),
            "rdap_timeout_ms": str(timeout_ms),
        })
        assert parsed.expiring_threshold_days == threshold
        assert parsed.rdap_timeout_ms == timeout_ms

    @given(value=st.sampled_from(["TRUE", "yes", "1", "", "false"]))
    def test_auto_register_only_on_literal_true(self, value: str) -> None:
        assert MonitorSettings.from_mapping({"auto_register_enabled": value}).auto_register_enabled is False
        assert MonitorSettings.from_mapping({"auto_register_enabled": "true"}).auto_register_enabled is True

    def test_garbage_falls_back_to_defaults(self) -> None:
        parsed = MonitorSettings.from_mapping({
            "rdap_timeout_ms": "soon",
            "max_concurrent_checks": "0",
            "low_balance_threshold": "lots",
        })
        assert parsed.rdap_timeout_ms == 10000
        assert parsed.max_concurrent_checks == 1
        assert parsed.low_balance_threshold == 10.0
