"""Record store protocol."""

from __future__ import annotations

from typing import List, Protocol, Sequence, runtime_checkable

from cloudrecords.core.models import AccountStatus, DatabaseScope, ModifyRequest, Query, Record


@runtime_checkable
class RecordStore(Protocol):
    """Interface every remote record store offers the gated client.

    Implementations (in-memory, CloudKit Web Services, ...) must satisfy this
    protocol so the client can swap stores without changing call sites.
    Failures are raised as exceptions; server-reported ones as ``StoreError``.
    """

    async def check_account_availability(self) -> AccountStatus:
        """Resolve the current account status. Never cached."""
        ...

    async def query(self, query: Query, scope: DatabaseScope) -> List[Record]:
        """Return every record matching *query*, possibly none."""
        ...

    async def save(self, record: Record, scope: DatabaseScope) -> Record:
        """Persist *record* and return it with server-assigned fields applied."""
        ...

    async def save_many(self, records: Sequence[Record], scope: DatabaseScope) -> List[Record]:
        """Persist *records*, returning one saved record per input, in order."""
        ...

    async def modify(self, request: ModifyRequest, scope: DatabaseScope) -> List[Record]:
        """Upsert and delete in one request; only saved records are returned."""
        ...

    async def close(self) -> None:
        """Release connections held by the store."""
        ...
