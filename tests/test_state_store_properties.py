"""
Property-based tests for State Store module.

Covers HMAC protection, persistence across reloads and the repository
semantics the engine relies on (due selection, cascading deletes, immutable
fields).
"""

import json
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from domain_watcher.config import DEFAULT_SETTINGS
from domain_watcher.enums import DomainStatus, EventType
from domain_watcher.exceptions import PersistenceError, TamperingError
from domain_watcher.models import HistoryEntry, NotificationChannelConfig, RegistrarConfig
from domain_watcher.state_store import StateStore

SECRET = "test-hmac-secret"

label_strategy = st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789", min_size=1, max_size=12)


def new_store(tmpdir: str, secret: str = SECRET) -> StateStore:
    store = StateStore(Path(tmpdir) / "state.json", secret)
    store.load()
    return store


class TestHmacProtection:
    @given(
        labels=st.lists(label_strategy, min_size=1, max_size=5, unique=True),
        secret=st.text(min_size=1, max_size=32),
    )
    @settings(max_examples=25, deadline=None)
    def test_reload_preserves_domains(self, labels: list[str], secret: str) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = new_store(tmpdir, secret)
            for i, label in enumerate(labels):
                store.add_domain(f"{label}.com", "com", priority=i, tags={"watch", label})

            reloaded = new_store(tmpdir, secret)

            assert [d.domain for d in reloaded.list_domains()] == [
                d.domain for d in store.list_domains()
            ]
            for domain in reloaded.list_domains():
                assert "watch" in domain.tags
                assert domain.current_status is DomainStatus.UNKNOWN

    def test_modified_file_is_rejected(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = new_store(tmpdir)
            store.add_domain("example.com", "com")

            path = Path(tmpdir) / "state.json"
            data = json.loads(path.read_text(encoding="utf-8"))
            data["domains"][0]["auto_register"] = True
            path.write_text(json.dumps(data), encoding="utf-8")

            with pytest.raises(TamperingError):
                new_store(tmpdir)

    def test_wrong_secret_is_rejected(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            new_store(tmpdir).add_domain("example.com", "com")
            with pytest.raises(TamperingError):
                new_store(tmpdir, "another-secret")

    def test_garbage_file_is_persistence_error(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            (Path(tmpdir) / "state.json").write_text("{not json", encoding="utf-8")
            with pytest.raises(PersistenceError):
                new_store(tmpdir)

    def test_no_temp_files_left_behind(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = new_store(tmpdir)
            store.add_domain("example.com", "com")
            store.set_setting("expiring_threshold_days", "14")
            assert [p.name for p in Path(tmpdir).iterdir()] == ["state.json"]


class TestDomains:
    def test_fresh_store_seeds_default_settings(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            assert new_store(tmpdir).get_settings() == DEFAULT_SETTINGS

    def test_duplicate_domain_rejected(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = new_store(tmpdir)
            store.add_domain("example.com", "com")
            with pytest.raises(PersistenceError) as exc_info:
                store.add_domain("example.com", "com")
            assert exc_info.value.code == "duplicate"

    def test_immutable_and_unknown_fields_rejected(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = new_store(tmpdir)
            domain = store.add_domain("example.com", "com")
            for fields in ({"domain": "other.com"}, {"id": "x"}, {"colour": "red"}):
                with pytest.raises(PersistenceError) as exc_info:
                    store.update_domain(domain.id, **fields)
                assert exc_info.value.code == "invalid_field"

    def test_update_missing_domain(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            with pytest.raises(PersistenceError) as exc_info:
                new_store(tmpdir).update_domain("missing", priority=1)
            assert exc_info.value.code == "not_found"

    def test_returned_objects_are_copies(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = new_store(tmpdir)
            domain = store.add_domain("example.com", "com")
            domain.tags.add("mutated")
            assert store.get_domain(domain.id).tags == set()

    @given(offsets=st.lists(st.integers(min_value=-120, max_value=120), min_size=1, max_size=6))
    @settings(max_examples=20, deadline=None)
    def test_due_selection(self, offsets: list[int]) -> None:
        now = datetime(2025, 1, 1, tzinfo=timezone.utc)
        with tempfile.TemporaryDirectory() as tmpdir:
            store = new_store(tmpdir)
            expected = set()
            for i, offset in enumerate(offsets):
                domain = store.add_domain(f"d{i}.com", "com")
                store.update_domain(domain.id, next_check_at=now + timedelta(minutes=offset))
                if offset <= 0:
                    expected.add(domain.domain)
            never_checked = store.add_domain("fresh.com", "com")
            expected.add(never_checked.domain)

            assert {d.domain for d in store.list_due_domains(now)} == expected

    def test_delete_cascades_history(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = new_store(tmpdir)
            doomed = store.add_domain("doomed.com", "com")
            kept = store.add_domain("kept.com", "com")
            for domain in (doomed, kept):
                store.insert_history(HistoryEntry(
                    domain_id=domain.id,
                    from_status=DomainStatus.UNKNOWN,
                    to_status=DomainStatus.REGISTERED,
                    event_type=EventType.STATUS_CHANGE,
                ))

            assert store.delete_domain(doomed.id) is True
            assert store.delete_domain(doomed.id) is False
            assert [h.domain_id for h in store.list_history()] == [kept.id]


class TestHistoryAndConfigs:
    def test_mark_notified_persists(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = new_store(tmpdir)
            domain = store.add_domain("example.com", "com")
            entry_id = store.insert_history(HistoryEntry(
                domain_id=domain.id,
                from_status=DomainStatus.PENDING_DELETE,
                to_status=DomainStatus.AVAILABLE,
                event_type=EventType.STATUS_CHANGE,
                details={"expiry_date": None, "registrar": None, "error": None},
            ))
            store.mark_history_notified(entry_id)

            entry = new_store(tmpdir).list_history(domain.id)[0]
            assert entry.notified is True
            assert entry.to_status is DomainStatus.AVAILABLE

    def test_registrar_balance_update(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = new_store(tmpdir)
            store.upsert_registrar_config(RegistrarConfig(
                adapter_name="dynadot", display_name="Dynadot", api_key="a:b:c",
            ))
            stamp = datetime(2025, 1, 1, tzinfo=timezone.utc)
            store.update_registrar_balance("dynadot", 42.5, stamp)

            config = new_store(tmpdir).get_registrar_config("dynadot")
            assert config.balance == 42.5
            assert config.balance_updated_at == stamp

            with pytest.raises(PersistenceError):
                store.update_registrar_balance("gandi", 1.0, stamp)

    def test_channels_round_trip_notify_on_as_set(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = new_store(tmpdir)
            store.upsert_channel(NotificationChannelConfig(
                type="webhook", name="hook", config={"url": "https://hook.example"},
                notify_on={"available", "registered"},
            ))
            store.upsert_channel(NotificationChannelConfig(type="ntfy", name="off", enabled=False))

            reloaded = new_store(tmpdir)
            enabled = reloaded.list_enabled_channels()
            assert len(reloaded.list_channels()) == 2
            assert [c.name for c in enabled] == ["hook"]
            assert enabled[0].notify_on == {"available", "registered"}
