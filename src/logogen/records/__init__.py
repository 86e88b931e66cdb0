"""Optional persistence logging.

Modules
-------
base
    :class:`RecordStore`, the capability interface every backend implements.
json_store
    :class:`JsonFileStore`, the default one-file-per-record backend.
models
    Record shapes and collection names.
activity
    :class:`ActivityLog`, the single writer used by the rest of the service.

Backends are selected by ``DATABASE_TYPE`` through :func:`open_record_store`.
"""

from __future__ import annotations

import logging

from logogen.core.config import DatabaseConfig
from logogen.records.activity import ActivityLog
from logogen.records.base import RecordStore
from logogen.records.json_store import JsonFileStore

logger = logging.getLogger(__name__)

DEFAULT_BACKEND = "json"

# ``mock`` is the name older deployments use for the JSON store.
STORE_BACKENDS: dict[str, type[JsonFileStore]] = {
    "json": JsonFileStore,
    "mock": JsonFileStore,
}


def open_record_store(config: DatabaseConfig) -> RecordStore | None:
    """Instantiate (but do not connect) the configured backend.

    Returns ``None`` when persistence logging is switched off.  Unknown
    backend names fall back to the JSON store with a warning.
    """
    if not config.enabled:
        return None

    backend = STORE_BACKENDS.get(config.type.lower())
    if backend is None:
        logger.warning(
            "Unknown DATABASE_TYPE %r, falling back to %r", config.type, DEFAULT_BACKEND
        )
        backend = STORE_BACKENDS[DEFAULT_BACKEND]

    return backend(
        config.data_dir,
        enable_cache=config.enable_cache,
        max_cache_size=config.max_cache_size,
    )


__all__ = [
    "ActivityLog",
    "JsonFileStore",
    "RecordStore",
    "open_record_store",
]
