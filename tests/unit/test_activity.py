"""Tests for logogen.records.activity: persistence logging.

Tests cover:
- Header and body sanitisation.
- The master switch and per-category toggles.
- Session counters.
- Store failures never propagating to callers.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from logogen.records import JsonFileStore, open_record_store
from logogen.records.activity import ActivityLog, sanitize_body, sanitize_headers
from logogen.records.models import (
    API_REQUESTS,
    SESSIONS,
    SYSTEM_EVENTS,
    TRANSACTIONS,
    ApiRequestEntry,
    ClientInfo,
    TransactionRecord,
)


class BrokenStore(JsonFileStore):
    """Connects fine but fails every write."""

    def create(self, model, data):
        raise OSError("disk full")


class UnreachableStore(JsonFileStore):
    def connect(self) -> None:
        raise OSError("permission denied")


def make_activity(config_factory, store_class=JsonFileStore, **overrides) -> ActivityLog:
    config = config_factory(enable_database_logging=True, **overrides)
    store = store_class(config.database.data_dir)
    activity = ActivityLog(store, config.database, environment="test", version="9.9.9")
    activity.start()
    return activity


def transaction(success: bool = True) -> TransactionRecord:
    return TransactionRecord(
        timestamp="2024-01-01T00:00:00+00:00",
        original_prompt="blue circle",
        image_type="icon",
        success=success,
        status="completed" if success else "failed",
        total_ms=12.5,
        api_model="img-model",
        api_base_url="https://api.example.test/v1",
    )


def request_entry(**overrides) -> ApiRequestEntry:
    values = {
        "timestamp": "2024-01-01T00:00:00+00:00",
        "method": "POST",
        "path": "/api/generate",
        "status_code": 200,
        "duration_ms": 5.0,
        "request_headers": {"Authorization": "Bearer secret", "User-Agent": "pytest"},
        "request_body": {"prompt": "x", "password": "hunter2"},
    }
    values.update(overrides)
    return ApiRequestEntry(**values)


class TestSanitisation:
    def test_sensitive_headers_removed_case_insensitively(self):
        headers = {
            "Authorization": "Bearer x",
            "cookie": "a=b",
            "X-API-Key": "k",
            "Content-Type": "application/json",
        }
        assert sanitize_headers(headers) == {"Content-Type": "application/json"}

    def test_empty_headers(self):
        assert sanitize_headers(None) == {}

    def test_nested_secret_fields_removed(self):
        body = {
            "prompt": "x",
            "apiKey": "k",
            "nested": {"token": "t", "keep": 1},
            "items": [{"secret": "s", "value": 2}],
        }
        assert sanitize_body(body) == {
            "prompt": "x",
            "nested": {"keep": 1},
            "items": [{"value": 2}],
        }

    def test_non_dict_bodies_pass_through(self):
        assert sanitize_body("text") == "text"
        assert sanitize_body(None) is None


class TestDisabled:
    """With the master switch off nothing is written."""

    def test_disabled_without_store(self, logging_config):
        activity = ActivityLog(None, logging_config.database)
        activity.start()
        assert activity.enabled is False
        assert activity.record_event("x", "y", "info", "z") is None
        assert activity.record_transaction(transaction()) is None

    def test_master_switch_off(self, test_config):
        activity = ActivityLog(open_record_store(test_config.database), test_config.database)
        activity.start()
        assert activity.enabled is False
        assert activity.stats() == {"enabled": False, "message": "Database logging is disabled"}
        assert activity.health()["status"] == "disabled"
        assert activity.recent_transactions() == []


class TestEnabled:
    def test_start_records_init_event(self, config_factory):
        activity = make_activity(config_factory)
        events = activity.recent_events()
        assert [e["event_type"] for e in events] == ["database_init"]
        assert events[0]["environment"] == "test"
        assert events[0]["version"] == "9.9.9"

    def test_health_when_connected(self, config_factory):
        activity = make_activity(config_factory)
        assert activity.health() == {"status": "healthy", "type": "json"}

    def test_transaction_written(self, config_factory):
        activity = make_activity(config_factory)
        record = activity.record_transaction(transaction())
        assert record["id"]
        assert activity.recent_transactions()[0]["original_prompt"] == "blue circle"

    def test_api_request_is_sanitised(self, config_factory):
        activity = make_activity(config_factory)
        record = activity.record_api_request(request_entry())
        assert "Authorization" not in record["request_headers"]
        assert record["request_headers"]["User-Agent"] == "pytest"
        assert record["request_body"] == {"prompt": "x"}

    def test_unknown_event_level_becomes_info(self, config_factory):
        activity = make_activity(config_factory)
        record = activity.record_event("custom", "Tests", "shouting", "hello")
        assert record["level"] == "info"

    def test_events_filtered_by_level(self, config_factory):
        activity = make_activity(config_factory)
        activity.record_event("boom", "Tests", "error", "it broke")
        errors = activity.recent_events(level="error")
        assert [e["event_type"] for e in errors] == ["boom"]

    def test_category_toggle(self, config_factory):
        activity = make_activity(config_factory, log_system_events=False, log_api_requests=False)
        assert activity.enabled is True
        assert activity.record_event("x", "y", "info", "z") is None
        assert activity.record_api_request(request_entry()) is None
        assert activity.record_transaction(transaction()) is not None

    def test_stats_summarise_transactions(self, config_factory):
        activity = make_activity(config_factory)
        activity.record_transaction(transaction(success=True))
        activity.record_transaction(transaction(success=False))

        stats = activity.stats()
        assert stats["enabled"] is True
        assert stats["transactions"] == {
            "total": 2,
            "successful": 1,
            "failed": 1,
            "by_image_type": {"icon": 2},
        }
        assert stats["models"][TRANSACTIONS]["record_count"] == 2

    def test_stop_disconnects(self, config_factory):
        activity = make_activity(config_factory)
        activity.stop()
        assert activity.enabled is False


class TestSessions:
    """Per-(ip, user agent) counters."""

    def test_counters_accumulate(self, config_factory, temp_dir: Path):
        activity = make_activity(config_factory)
        client = ClientInfo(client_ip="10.0.0.1", user_agent="pytest")

        first = activity.touch_session(client, success=True)
        second = activity.touch_session(client, success=True)
        third = activity.touch_session(client, success=False)

        assert first == second == third
        store = JsonFileStore(temp_dir / "database")
        store.connect()
        [session] = store.find(SESSIONS)
        assert session["total_requests"] == 3
        assert session["successful_generations"] == 2
        assert session["failed_generations"] == 1

    def test_distinct_clients_get_distinct_sessions(self, config_factory):
        activity = make_activity(config_factory)
        a = activity.touch_session(ClientInfo(client_ip="10.0.0.1", user_agent="x"), success=True)
        b = activity.touch_session(ClientInfo(client_ip="10.0.0.2", user_agent="x"), success=True)
        assert a != b

    def test_existing_session_found_after_restart(self, config_factory):
        client = ClientInfo(client_ip="10.0.0.1", user_agent="pytest")
        first = make_activity(config_factory).touch_session(client, success=True)
        second = make_activity(config_factory).touch_session(client, success=True)
        assert first == second

    def test_tracked_clients_are_bounded(self, config_factory):
        """Old client mappings are forgotten but their sessions are still found."""
        config = config_factory(enable_database_logging=True)
        activity = ActivityLog(
            JsonFileStore(config.database.data_dir), config.database, max_tracked_sessions=2
        )
        activity.start()
        clients = [ClientInfo(client_ip="10.0.0.1", user_agent=f"agent-{n}") for n in range(5)]

        ids = [activity.touch_session(client, success=True) for client in clients]

        assert activity.tracked_sessions == 2
        assert len(set(ids)) == 5
        assert activity.touch_session(clients[0], success=True) == ids[0]
        assert activity.tracked_sessions == 2

    def test_no_session_when_transactions_off(self, config_factory):
        activity = make_activity(config_factory, log_transactions=False)
        assert activity.touch_session(ClientInfo(), success=True) is None


class TestFailuresAreSwallowed:
    """A failing store must never raise into the caller."""

    def test_write_failure_returns_none(self, config_factory):
        activity = make_activity(config_factory, store_class=BrokenStore)
        assert activity.record_event("x", "y", "info", "z") is None
        assert activity.record_transaction(transaction()) is None
        assert activity.touch_session(ClientInfo(), success=True) is None

    def test_connect_failure_disables_logging(self, config_factory):
        activity = make_activity(config_factory, store_class=UnreachableStore)
        assert activity.enabled is False
        assert activity.health()["status"] == "error"


@pytest.mark.parametrize("backend", ["json", "mock", "JSON", "mystery"])
def test_open_record_store_backends(config_factory, backend):
    config = config_factory(enable_database_logging=True, database_type=backend)
    assert isinstance(open_record_store(config.database), JsonFileStore)


def test_collection_names():
    assert {TRANSACTIONS, API_REQUESTS, SYSTEM_EVENTS, SESSIONS} == {
        "ImageGenerationTransaction",
        "ApiRequestLog",
        "SystemEventLog",
        "UserSession",
    }
