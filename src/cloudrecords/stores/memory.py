"""In-memory record store for development and tests.

Records can optionally be persisted as JSON, one file per database scope, so
that a local store survives between CLI invocations.
"""

import asyncio
import hashlib
import itertools
import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from cloudrecords.api.codec import encode_field, record_from_payload, record_to_document
from cloudrecords.api.error_handling import StoreError
from cloudrecords.core.models import (
    AccountStatus,
    Comparator,
    DatabaseScope,
    ModifyRequest,
    Query,
    QueryFilter,
    Record,
    RecordID,
    SavePolicy,
)

logger = logging.getLogger(__name__)

_MISSING = object()


def _matches_filter(record: Record, query_filter: QueryFilter) -> bool:
    actual = record.fields.get(query_filter.field_name, _MISSING)
    expected = query_filter.value
    comparator = query_filter.comparator

    if actual is _MISSING or actual is None:
        if comparator == Comparator.NOT_EQUALS:
            return expected is not None
        return comparator == Comparator.NOT_IN

    try:
        if comparator == Comparator.EQUALS:
            return actual == expected
        elif comparator == Comparator.NOT_EQUALS:
            return actual != expected
        elif comparator == Comparator.LESS_THAN:
            return actual < expected
        elif comparator == Comparator.LESS_THAN_OR_EQUALS:
            return actual <= expected
        elif comparator == Comparator.GREATER_THAN:
            return actual > expected
        elif comparator == Comparator.GREATER_THAN_OR_EQUALS:
            return actual >= expected
        elif comparator == Comparator.IN:
            return actual in expected
        elif comparator == Comparator.NOT_IN:
            return actual not in expected
        elif comparator == Comparator.BEGINS_WITH:
            return isinstance(actual, str) and actual.startswith(expected)
        elif comparator == Comparator.LIST_CONTAINS:
            return isinstance(actual, (list, tuple)) and expected in actual
    except TypeError:
        # Values of different types never compare, the same as on the server
        return False
    return False


def _sort_key(value: Any) -> Tuple[str, Any]:
    # Values only compare within their own type; numbers form one group
    if isinstance(value, (bool, int, float)):
        return ("number", value)
    if isinstance(value, RecordID):
        return (RecordID.__name__, str(value))
    return (type(value).__name__, value)


def _sort_records(records: List[Record], query: Query) -> List[Record]:
    # Stable sort by each descriptor from last to first; missing values go last
    for sort in reversed(query.sort):
        present = [r for r in records if r.fields.get(sort.field_name) is not None]
        missing = [r for r in records if r.fields.get(sort.field_name) is None]
        try:
            present.sort(key=lambda r: _sort_key(r.fields[sort.field_name]), reverse=not sort.ascending)
        except TypeError:
            # Same type name but still incomparable, e.g. naive and aware datetimes
            present.sort(key=lambda r: repr(_sort_key(r.fields[sort.field_name])), reverse=not sort.ascending)
        records = present + missing
    return records


class InMemoryRecordStore:
    """Record store kept in process memory.

    Follows CloudKit's conflict rules: a record without a change tag is a
    create and must not exist yet; a record with a change tag must carry the
    tag currently stored, unless a modify uses a policy that skips the check.
    """

    def __init__(
        self,
        account_status: AccountStatus = AccountStatus.AVAILABLE,
        data_dir: Optional[Union[str, Path]] = None,
        latency: float = 0.0,
        container_id: str = "local",
        logger_obj: Optional[logging.Logger] = None,
    ):
        self.account_status = account_status
        self.latency = latency
        self.container_id = container_id
        self.data_dir = Path(data_dir) if data_dir is not None else None
        self.logger = logger_obj or logger
        self._tag_counter = itertools.count(1)
        self._databases: Dict[DatabaseScope, Dict[RecordID, Record]] = {scope: {} for scope in DatabaseScope}

        if self.data_dir is not None:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            for scope in DatabaseScope:
                self._load(scope)
            self.logger.info(f"Local record store data directory: {self.data_dir}")

    async def _simulate_io(self) -> None:
        # Always yield so concurrent callers interleave like real I/O
        await asyncio.sleep(self.latency)

    async def check_account_availability(self) -> AccountStatus:
        await self._simulate_io()
        return self.account_status

    async def query(self, query: Query, scope: DatabaseScope) -> List[Record]:
        await self._simulate_io()
        matching = [
            record
            for record_id, record in self._databases[scope].items()
            if record.record_type == query.record_type
            and record_id.zone_name == query.zone_name
            and all(_matches_filter(record, f) for f in query.filters)
        ]
        matching = _sort_records(matching, query)
        if query.results_limit is not None:
            matching = matching[: query.results_limit]
        return [record.copy() for record in matching]

    async def save(self, record: Record, scope: DatabaseScope) -> Record:
        saved = await self.save_many([record], scope)
        return saved[0]

    async def save_many(self, records: Sequence[Record], scope: DatabaseScope) -> List[Record]:
        await self._simulate_io()
        database = self._databases[scope]
        self._check_unique(records)
        planned = []
        for record in records:
            current = self._check_unchanged(database, record)
            planned.append((record, self._check_fields(record, dict(record.fields)), current))
        return self._apply(scope, planned)

    async def modify(self, request: ModifyRequest, scope: DatabaseScope) -> List[Record]:
        await self._simulate_io()
        database = self._databases[scope]

        # Validate every operation before touching anything
        self._check_unique(request.records_to_save)
        planned = []
        for record in request.records_to_save:
            if request.save_policy == SavePolicy.IF_SERVER_RECORD_UNCHANGED:
                current = self._check_unchanged(database, record)
            else:
                current = database.get(record.record_id)
            if request.save_policy == SavePolicy.CHANGED_KEYS and current is not None:
                fields = {**current.fields, **record.fields}
            else:
                fields = dict(record.fields)
            planned.append((record, self._check_fields(record, fields), current))

        return self._apply(scope, planned, request.record_ids_to_delete)

    async def close(self) -> None:
        """Nothing to release; persisted scopes are written on every change."""

    def records(self, scope: DatabaseScope) -> List[Record]:
        """Snapshot of every record stored in *scope*, in insertion order."""
        return [record.copy() for record in self._databases[scope].values()]

    def _apply(
        self,
        scope: DatabaseScope,
        planned: List[Tuple[Record, Dict[str, Any], Optional[Record]]],
        record_ids_to_delete: Sequence[RecordID] = (),
    ) -> List[Record]:
        """Write validated operations, restoring the previous state if persisting fails."""
        database = self._databases[scope]
        previous = dict(database)

        saved = [self._write(database, record, fields, current) for record, fields, current in planned]
        for record_id in record_ids_to_delete:
            if database.pop(record_id, None) is None:
                self.logger.debug(f"Delete of missing record {record_id} ignored")

        try:
            self._persist(scope)
        except Exception:
            self._databases[scope] = previous
            raise
        return [record.copy() for record in saved]

    @staticmethod
    def _check_unique(records: Sequence[Record]) -> None:
        seen = set()
        for record in records:
            if record.record_id in seen:
                raise StoreError(
                    "BAD_REQUEST", "record appears more than once in the request", record_name=record.record_name, status=400
                )
            seen.add(record.record_id)

    @staticmethod
    def _check_fields(record: Record, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Reject field values the record codec cannot represent."""
        for name, value in fields.items():
            if value is None:
                continue
            try:
                encode_field(value)
            except TypeError as e:
                raise StoreError(
                    "BAD_REQUEST", f"field '{name}': {e}", record_name=record.record_name, status=400
                ) from e
        return fields

    def _check_unchanged(self, database: Dict[RecordID, Record], record: Record) -> Optional[Record]:
        current = database.get(record.record_id)
        if record.change_tag is None:
            if current is not None:
                raise StoreError("CONFLICT", "record already exists", record_name=record.record_name, status=409)
        elif current is None:
            raise StoreError("NOT_FOUND", "record to update does not exist", record_name=record.record_name, status=404)
        elif current.change_tag != record.change_tag:
            raise StoreError(
                "CONFLICT", "record was changed on the server", record_name=record.record_name, status=409
            )
        return current

    def _write(
        self, database: Dict[RecordID, Record], record: Record, fields: Dict[str, Any], current: Optional[Record]
    ) -> Record:
        now = datetime.now(timezone.utc)
        stored = Record(
            record_type=record.record_type,
            record_id=record.record_id,
            fields={name: value for name, value in fields.items() if value is not None},
            change_tag=self._generate_change_tag(record.record_name),
            created_at=current.created_at if current is not None else now,
            modified_at=now,
        )
        database[record.record_id] = stored.copy()
        return stored

    def _generate_change_tag(self, record_name: str) -> str:
        """Generate a change tag."""
        data = f"{time.time_ns()}:{next(self._tag_counter)}:{self.container_id}:{record_name}".encode()
        return hashlib.sha256(data).hexdigest()[:16]

    def _scope_file(self, scope: DatabaseScope) -> Path:
        return self.data_dir / f"{scope.value}.json"

    def _load(self, scope: DatabaseScope) -> None:
        path = self._scope_file(scope)
        if not path.exists():
            return
        with open(path, "r", encoding="utf-8") as f:
            documents = json.load(f).get("records", [])
        database = self._databases[scope]
        for document in documents:
            record = record_from_payload(document)
            database[record.record_id] = record
        self.logger.debug(f"Loaded {len(documents)} records for {scope.value} scope from {path}")

    def _persist(self, scope: DatabaseScope) -> None:
        if self.data_dir is None:
            return
        path = self._scope_file(scope)
        documents = [record_to_document(record) for record in self._databases[scope].values()]
        tmp_path = path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump({"records": documents}, f, ensure_ascii=False, indent=2)
        tmp_path.replace(path)
