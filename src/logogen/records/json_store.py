"""JSON-file record store.

Layout on disk::

    <data_dir>/
        ImageGenerationTransaction/
            3f2b...e1.json
        ApiRequestLog/
        SystemEventLog/
        UserSession/

One file per record, named by its id.  ``find`` scans the whole collection
directory, so lookups are O(n) in the number of records; that is fine for
local, best-effort logging.

A bounded in-memory cache keyed by ``"<model>:<id>"`` sits in front of
reads.  Eviction is FIFO: when the cache is full the oldest *inserted* key
is dropped, and reads do not refresh a key's position.

There is no file locking.  Two concurrent writers to the same id race and
the last write wins.
"""

from __future__ import annotations

import json
import logging
import re
import uuid
from collections import OrderedDict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from logogen.records.base import Record, RecordStore, StoreNotConnectedError
from logogen.records.models import MODEL_NAMES

logger = logging.getLogger(__name__)

_SAFE_NAME = re.compile(r"^[A-Za-z0-9_-]+$")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _check_name(kind: str, value: str) -> str:
    if not _SAFE_NAME.match(value):
        raise ValueError(f"Invalid {kind}: {value!r}")
    return value


def _matches(record: Record, filters: Record) -> bool:
    return all(record.get(key) == value for key, value in filters.items())


class JsonFileStore(RecordStore):
    """Record store backed by one JSON file per record.

    Args:
        data_dir: Root directory; one subdirectory per model.
        enable_cache: Keep recently written/read records in memory.
        max_cache_size: Cache capacity in records.
        models: Collections to create on :meth:`connect`.  Other model names
            are still accepted and created on first write.
    """

    name = "json"

    def __init__(
        self,
        data_dir: Path,
        *,
        enable_cache: bool = True,
        max_cache_size: int = 1000,
        models: tuple[str, ...] = MODEL_NAMES,
    ) -> None:
        self._data_dir = Path(data_dir)
        self._cache_enabled = enable_cache
        self._max_cache_size = max_cache_size
        self._cache: OrderedDict[str, Record] = OrderedDict()
        self._models = models
        self._connected = False

    # -- Lifecycle ----------------------------------------------------------

    def connect(self) -> None:
        for model in self._models:
            (self._data_dir / _check_name("model", model)).mkdir(parents=True, exist_ok=True)
        self._connected = True
        logger.info("JSON record store ready at %s", self._data_dir)

    def close(self) -> None:
        self._cache.clear()
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    # -- CRUD ---------------------------------------------------------------

    def create(self, model: str, data: Record) -> Record:
        self._require_connection()
        record_id = str(data.get("id") or uuid.uuid4())
        timestamp = _now()
        record = {**data, "id": record_id, "created_at": timestamp, "updated_at": timestamp}

        self._write(model, record_id, record)
        self._remember(model, record_id, record)
        logger.debug("Created %s record %s", model, record_id)
        return dict(record)

    def get(self, model: str, record_id: str) -> Record | None:
        self._require_connection()
        key = self._cache_key(model, record_id)
        if self._cache_enabled and key in self._cache:
            return dict(self._cache[key])

        path = self._record_path(model, record_id)
        try:
            with open(path, encoding="utf-8") as handle:
                record = json.load(handle)
        except FileNotFoundError:
            return None

        self._remember(model, record_id, record)
        return dict(record)

    def update(self, model: str, record_id: str, changes: Record) -> Record:
        existing = self.get(model, record_id)
        if existing is None:
            raise KeyError(f"{model} record with id {record_id} not found")

        updated = {**existing, **changes, "id": record_id, "updated_at": _now()}
        self._write(model, record_id, updated)
        self._remember(model, record_id, updated)
        logger.debug("Updated %s record %s", model, record_id)
        return dict(updated)

    def delete(self, model: str, record_id: str) -> bool:
        self._require_connection()
        path = self._record_path(model, record_id)
        self._cache.pop(self._cache_key(model, record_id), None)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.debug("Deleted %s record %s", model, record_id)
        return True

    def find(
        self,
        model: str,
        filters: Record | None = None,
        *,
        sort_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Record]:
        self._require_connection()
        model_dir = self._data_dir / _check_name("model", model)
        if not model_dir.is_dir():
            return []

        filters = filters or {}
        records: list[Record] = []
        for path in model_dir.glob("*.json"):
            try:
                with open(path, encoding="utf-8") as handle:
                    record = json.load(handle)
            except FileNotFoundError:
                # Deleted between listing and reading.
                continue
            except ValueError:
                logger.warning("Skipping unreadable record file %s", path)
                continue
            if isinstance(record, dict) and _matches(record, filters):
                records.append(record)

        if sort_by:
            # Records missing the sort key go first in ascending order.
            records.sort(
                key=lambda r: (r.get(sort_by) is not None, r.get(sort_by)),
                reverse=descending,
            )

        offset = max(offset, 0)
        if limit is not None:
            return records[offset : offset + limit]
        return records[offset:]

    def stats(self) -> dict[str, Any]:
        self._require_connection()
        models: dict[str, dict[str, Any]] = {}
        total = 0
        for model_dir in sorted(self._data_dir.iterdir()):
            if not model_dir.is_dir():
                continue
            count = sum(1 for _ in model_dir.glob("*.json"))
            models[model_dir.name] = {
                "record_count": count,
                "last_modified": datetime.fromtimestamp(
                    model_dir.stat().st_mtime, tz=timezone.utc
                ).isoformat(),
            }
            total += count
        return {
            "type": self.name,
            "models": models,
            "total_records": total,
            "cache_size": len(self._cache),
            "data_directory": str(self._data_dir),
        }

    # -- Internals ----------------------------------------------------------

    def _require_connection(self) -> None:
        if not self._connected:
            raise StoreNotConnectedError("Record store not connected. Call connect() first.")

    @staticmethod
    def _cache_key(model: str, record_id: str) -> str:
        return f"{model}:{record_id}"

    def _record_path(self, model: str, record_id: str) -> Path:
        return (
            self._data_dir
            / _check_name("model", model)
            / f"{_check_name('record id', record_id)}.json"
        )

    def _write(self, model: str, record_id: str, record: Record) -> None:
        path = self._record_path(model, record_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as handle:
            json.dump(record, handle, indent=2, default=str)

    def _remember(self, model: str, record_id: str, record: Record) -> None:
        if not self._cache_enabled:
            return
        key = self._cache_key(model, record_id)
        if key in self._cache:
            self._cache[key] = record
            return
        while len(self._cache) >= self._max_cache_size:
            self._cache.popitem(last=False)
        self._cache[key] = record
