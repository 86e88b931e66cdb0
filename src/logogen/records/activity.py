"""Persistence logging on top of a :class:`~logogen.records.base.RecordStore`.

:class:`ActivityLog` is the only writer of persisted records.  It knows
which record goes to which collection, applies the per-category switches
from :class:`~logogen.core.config.DatabaseConfig`, strips secrets from
request data, and keeps per-caller session counters.

Every write method is fire-and-forget from the caller's point of view: a
failing store is logged to the operator console and the method returns
``None``.  Nothing here may change an HTTP response.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any

from logogen.core.config import DatabaseConfig
from logogen.records.base import Record, RecordStore
from logogen.records.models import (
    API_REQUESTS,
    SESSIONS,
    SYSTEM_EVENTS,
    TRANSACTIONS,
    ApiRequestEntry,
    ClientInfo,
    SessionAggregate,
    SystemEvent,
    TransactionRecord,
)

logger = logging.getLogger(__name__)

SENSITIVE_HEADERS = frozenset({"authorization", "cookie", "set-cookie", "x-api-key", "proxy-authorization"})
SENSITIVE_FIELDS = frozenset(
    {"password", "apikey", "api_key", "token", "access_token", "refresh_token", "secret"}
)

EVENT_LEVELS = ("debug", "info", "warning", "error")

# Remembered (client_ip, user_agent) pairs; oldest are forgotten first.
MAX_TRACKED_SESSIONS = 1000


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def sanitize_headers(headers: dict[str, str] | None) -> dict[str, str]:
    """Drop credential-bearing headers (case-insensitive)."""
    if not headers:
        return {}
    return {key: value for key, value in headers.items() if key.lower() not in SENSITIVE_HEADERS}


def sanitize_body(body: Any) -> Any:
    """Recursively drop secret-looking keys from a JSON-like payload."""
    if isinstance(body, dict):
        return {
            key: sanitize_body(value)
            for key, value in body.items()
            if str(key).lower() not in SENSITIVE_FIELDS
        }
    if isinstance(body, list):
        return [sanitize_body(item) for item in body]
    return body


class ActivityLog:
    """Transaction, API request, system event and session logging.

    Args:
        store: Backend to write to, or ``None`` when logging is disabled.
        config: Master switch and per-category toggles.
        environment: Deployment environment name recorded on events.
        version: Application version recorded on events.
        max_tracked_sessions: How many client-to-session mappings are kept
            in memory.  Forgotten clients are found again by querying the
            store.
    """

    def __init__(
        self,
        store: RecordStore | None,
        config: DatabaseConfig,
        *,
        environment: str = "development",
        version: str = "0.0.0",
        max_tracked_sessions: int = MAX_TRACKED_SESSIONS,
    ) -> None:
        self._store = store
        self._config = config
        self._environment = environment
        self._version = version
        self._max_tracked_sessions = max_tracked_sessions
        # (client_ip, user_agent) -> session record id
        self._sessions: OrderedDict[tuple[str | None, str | None], str] = OrderedDict()

    # -- Lifecycle ----------------------------------------------------------

    @property
    def enabled(self) -> bool:
        return self._config.enabled and self._store is not None and self._store.connected

    @property
    def logs_transactions(self) -> bool:
        return self.enabled and self._config.log_transactions

    @property
    def logs_api_requests(self) -> bool:
        return self.enabled and self._config.log_api_requests

    @property
    def logs_system_events(self) -> bool:
        return self.enabled and self._config.log_system_events

    def start(self) -> None:
        """Connect the store.  A failure disables logging but is not fatal."""
        if not self._config.enabled or self._store is None:
            logger.info("Database logging is disabled")
            return
        try:
            self._store.connect()
        except Exception:
            logger.exception("Record store initialisation failed, continuing without logging")
            return
        self.record_event(
            "database_init",
            "ActivityLog",
            "info",
            "Record store initialised",
            {"type": self._store.name, "data_dir": str(self._config.data_dir)},
        )

    def stop(self) -> None:
        if not self.enabled:
            return
        self.record_event("database_shutdown", "ActivityLog", "info", "Record store shutting down")
        try:
            self._store.close()
        except Exception:
            logger.exception("Record store shutdown failed")
        self._sessions.clear()

    # -- Writers ------------------------------------------------------------

    def record_transaction(self, record: TransactionRecord) -> Record | None:
        if not self.logs_transactions:
            return None
        return self._safe_create(TRANSACTIONS, record.model_dump())

    def record_api_request(self, entry: ApiRequestEntry) -> Record | None:
        if not self.logs_api_requests:
            return None
        data = entry.model_dump()
        data["request_headers"] = sanitize_headers(data.get("request_headers"))
        data["request_body"] = sanitize_body(data.get("request_body"))
        data["response_body"] = sanitize_body(data.get("response_body"))
        return self._safe_create(API_REQUESTS, data)

    def record_event(
        self,
        event_type: str,
        component: str,
        level: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> Record | None:
        if not self.logs_system_events:
            return None
        event = SystemEvent(
            timestamp=_now(),
            event_type=event_type,
            component=component,
            level=level if level in EVENT_LEVELS else "info",
            message=message,
            details=details or {},
            environment=self._environment,
            version=self._version,
        )
        return self._safe_create(SYSTEM_EVENTS, event.model_dump())

    def touch_session(self, client: ClientInfo, *, success: bool) -> str | None:
        """Bump the session counters for *client*, creating the session first.

        Returns:
            The session id, or ``None`` when transaction logging is off or
            the store failed.
        """
        if not self.logs_transactions:
            return None
        key = (client.client_ip, client.user_agent)
        try:
            session_id = self._sessions.get(key)
            session = self._store.get(SESSIONS, session_id) if session_id else None
            if session is None:
                matches = self._store.find(
                    SESSIONS,
                    {"client_ip": client.client_ip, "user_agent": client.user_agent},
                    limit=1,
                )
                session = matches[0] if matches else None
            if session is None:
                now = _now()
                aggregate = SessionAggregate(
                    client_ip=client.client_ip,
                    user_agent=client.user_agent,
                    first_seen=now,
                    last_activity=now,
                )
                session = self._store.create(SESSIONS, aggregate.model_dump())

            changes = {
                "last_activity": _now(),
                "total_requests": session.get("total_requests", 0) + 1,
            }
            if success:
                changes["successful_generations"] = session.get("successful_generations", 0) + 1
            else:
                changes["failed_generations"] = session.get("failed_generations", 0) + 1
            self._store.update(SESSIONS, session["id"], changes)
        except Exception:
            logger.exception("Failed to update session counters")
            return None

        self._remember_session(key, session["id"])
        return session["id"]

    @property
    def tracked_sessions(self) -> int:
        return len(self._sessions)

    def _remember_session(self, key: tuple[str | None, str | None], session_id: str) -> None:
        if key in self._sessions:
            self._sessions[key] = session_id
            return
        while self._sessions and len(self._sessions) >= self._max_tracked_sessions:
            self._sessions.popitem(last=False)
        self._sessions[key] = session_id

    # -- Readers ------------------------------------------------------------

    def recent_transactions(self, limit: int = 50) -> list[Record]:
        if not self.enabled:
            return []
        try:
            return self._store.find(TRANSACTIONS, sort_by="created_at", descending=True, limit=limit)
        except Exception:
            logger.exception("Failed to query transactions")
            return []

    def recent_events(self, limit: int = 50, level: str | None = None) -> list[Record]:
        if not self.enabled:
            return []
        filters = {"level": level} if level else None
        try:
            return self._store.find(
                SYSTEM_EVENTS, filters, sort_by="created_at", descending=True, limit=limit
            )
        except Exception:
            logger.exception("Failed to query system events")
            return []

    def stats(self) -> dict[str, Any]:
        if not self.enabled:
            return {"enabled": False, "message": "Database logging is disabled"}
        try:
            stats = self._store.stats()
            transactions = self._store.find(TRANSACTIONS)
        except Exception:
            logger.exception("Failed to collect record store stats")
            return {"enabled": True, "error": "Failed to retrieve stats"}

        successful = sum(1 for t in transactions if t.get("success"))
        by_type: dict[str, int] = {}
        for t in transactions:
            kind = t.get("image_type", "unknown")
            by_type[kind] = by_type.get(kind, 0) + 1
        return {
            "enabled": True,
            **stats,
            "transactions": {
                "total": len(transactions),
                "successful": successful,
                "failed": len(transactions) - successful,
                "by_image_type": by_type,
            },
        }

    def health(self) -> dict[str, Any]:
        if not self._config.enabled:
            return {"status": "disabled", "message": "Database logging is disabled"}
        if not self.enabled:
            return {"status": "error", "message": "Record store not initialised"}
        return {"status": "healthy", "type": self._store.name}

    # -- Internals ----------------------------------------------------------

    def _safe_create(self, model: str, data: Record) -> Record | None:
        try:
            return self._store.create(model, data)
        except Exception:
            logger.exception("Failed to write %s record", model)
            return None
