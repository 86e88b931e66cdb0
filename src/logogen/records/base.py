"""Abstract record store interface.

Every backend implements the same small document-store capability set:
create, get, update, delete and find over named collections of JSON-like
dictionaries.  The service only talks to :class:`RecordStore`, so a real
database can replace the JSON-file default without touching the callers.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

Record = dict[str, Any]


class StoreNotConnectedError(RuntimeError):
    """A store method was called before :meth:`RecordStore.connect`."""


class RecordStore(ABC):
    """Capability interface for record persistence backends."""

    #: Short identifier used in configuration (``DATABASE_TYPE``).
    name: str = "base"

    @abstractmethod
    def connect(self) -> None:
        """Prepare the backend (create directories, open connections)."""

    @abstractmethod
    def close(self) -> None:
        """Release resources.  The store must be reconnected before reuse."""

    @property
    @abstractmethod
    def connected(self) -> bool: ...

    @abstractmethod
    def create(self, model: str, data: Record) -> Record:
        """Persist a new record and return it with ``id`` and timestamps."""

    @abstractmethod
    def get(self, model: str, record_id: str) -> Record | None:
        """Return the record, or ``None`` if it does not exist."""

    @abstractmethod
    def update(self, model: str, record_id: str, changes: Record) -> Record:
        """Merge *changes* into an existing record.

        Raises:
            KeyError: If the record does not exist.
        """

    @abstractmethod
    def delete(self, model: str, record_id: str) -> bool:
        """Delete a record.  Returns ``False`` if it did not exist."""

    @abstractmethod
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
        """Return records whose fields equal every value in *filters*."""

    @abstractmethod
    def stats(self) -> dict[str, Any]:
        """Backend-specific record counts and diagnostics."""
