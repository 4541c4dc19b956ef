"""Account-gated async client over a record store."""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Iterable, List, Optional, Sequence, Union

from cloudrecords.api.error_handling import (
    AccountUnavailableError,
    RecordClientError,
    StatusResolutionError,
    StoreOperationError,
)

from .models import AccountStatus, DatabaseScope, ModifyRequest, Query, Record, RecordID, SavePolicy
from .notifier import FAILURE, SUCCESS, LoggingNotifier, Notifier, OperationEvent

AccountCheck = Callable[[], Awaitable[AccountStatus]]


class GatedRecordClient:
    """Gates every record operation behind a fresh account-availability check.

    Each operation resolves the account status once, proceeds only when it is
    ``AVAILABLE``, then delegates to the store. Every path ends in a result or
    an exception:

    - ``AccountUnavailableError`` when the status is anything else,
    - ``StatusResolutionError`` when the status check raises,
    - ``StoreOperationError`` when the delegated store call raises.

    The store is never called unless the gate passed. One ``OperationEvent``
    per operation goes to the notifier.
    """

    def __init__(
        self,
        store,
        scope: DatabaseScope = DatabaseScope.PUBLIC,
        notifier: Optional[Notifier] = None,
        account_check: Optional[AccountCheck] = None,
        logger_obj: Optional[logging.Logger] = None,
    ):
        self._store = store
        self._scope = DatabaseScope(scope)
        self.logger = logger_obj or logging.getLogger(__name__)
        self._notifier = notifier or LoggingNotifier(self.logger)
        self._account_check = account_check or store.check_account_availability

    @property
    def scope(self) -> DatabaseScope:
        return self._scope

    @property
    def store(self):
        return self._store

    async def account_status(self) -> AccountStatus:
        """Resolve the account status without gating anything on it."""
        try:
            return AccountStatus(await self._account_check())
        except Exception as e:
            raise StatusResolutionError(e) from e

    async def fetch_records(self, query: Query) -> List[Record]:
        """Return the records matching *query*, in the order the store returns them."""

        async def fetch() -> List[Record]:
            return list(await self._store.query(query, self._scope))

        return await self._run("fetch_records", fetch, record_names=())

    async def save_record(self, record: Record) -> Record:
        return await self._run(
            "save_record",
            lambda: self._store.save(record, self._scope),
            record_names=(record.record_name,),
        )

    async def save_records(self, records: Sequence[Record]) -> List[Record]:
        """Save *records* concurrently; all succeed or the first error is raised.

        Results come back in input order. Saves still in flight when one fails
        are not cancelled, their outcomes are discarded.
        """
        records = list(records)

        async def save_all() -> List[Record]:
            if not records:
                return []
            return list(await asyncio.gather(*(self._store.save(record, self._scope) for record in records)))

        return await self._run("save_records", save_all, record_names=tuple(r.record_name for r in records))

    async def update_record(self, record: Record) -> Record:
        """Overwrite every field of *record* on the server, ignoring its change tag."""

        async def update() -> Record:
            request = ModifyRequest(records_to_save=[record], save_policy=SavePolicy.ALL_KEYS)
            saved = await self._store.modify(request, self._scope)
            if not saved:
                raise ValueError(f"modify returned no record for {record.record_name}")
            return saved[0]

        return await self._run("update_record", update, record_names=(record.record_name,))

    async def update_records(
        self,
        records: Optional[Sequence[Record]] = None,
        records_to_delete: Optional[Iterable[Union[Record, RecordID]]] = None,
    ) -> List[Record]:
        """Overwrite *records* and delete *records_to_delete* in one modify request.

        Deletions may be given as records or record IDs and contribute nothing
        to the result. With nothing to save or delete the store is not called.
        """
        request = ModifyRequest(
            records_to_save=list(records or []),
            record_ids_to_delete=[
                item.record_id if isinstance(item, Record) else item for item in (records_to_delete or [])
            ],
            save_policy=SavePolicy.ALL_KEYS,
        )

        async def update() -> List[Record]:
            if request.is_empty:
                return []
            return list(await self._store.modify(request, self._scope))

        names = tuple(r.record_name for r in request.records_to_save) + tuple(
            record_id.record_name for record_id in request.record_ids_to_delete
        )
        return await self._run("update_records", update, record_names=names)

    async def _require_available(self, operation: str) -> None:
        try:
            status = AccountStatus(await self._account_check())
        except Exception as e:
            raise StatusResolutionError(e, operation) from e
        if status != AccountStatus.AVAILABLE:
            raise AccountUnavailableError(status, operation)

    async def _run(self, operation: str, delegate: Callable[[], Awaitable], record_names=()):
        started = time.monotonic()
        try:
            await self._require_available(operation)
        except RecordClientError as e:
            self.logger.warning(f"{operation} not attempted: {e}")
            self._emit(operation, FAILURE, started, record_names, error=e)
            raise

        try:
            result = await delegate()
        except Exception as e:
            error = StoreOperationError(operation, e)
            self.logger.error(f"{error} (records: {', '.join(record_names) or '-'})")
            self._emit(operation, FAILURE, started, record_names, error=error)
            raise error from e

        count = len(result) if isinstance(result, list) else None
        if operation == "fetch_records":
            record_names = tuple(r.record_name for r in result)
        elif isinstance(result, Record):
            record_names = (result.record_name,)
        self._emit(operation, SUCCESS, started, record_names, count=count)
        return result

    def _emit(self, operation, outcome, started, record_names, count=None, error=None) -> None:
        event = OperationEvent(
            operation=operation,
            scope=self._scope,
            outcome=outcome,
            record_names=tuple(record_names),
            count=count,
            error=str(error) if error is not None else None,
            error_category=error.category.value if isinstance(error, StoreOperationError) else None,
            elapsed=time.monotonic() - started,
        )
        try:
            self._notifier.notify(event)
        except Exception:
            self.logger.exception(f"Notifier failed while reporting {operation}")
