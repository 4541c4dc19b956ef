"""Record store backed by CloudKit Web Services."""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from tqdm import tqdm

from cloudrecords.api.cloudkit_client import CloudKitWebClient
from cloudrecords.api.codec import query_to_payload, record_from_payload, record_to_payload, zone_payload
from cloudrecords.api.error_handling import StoreError
from cloudrecords.core.models import (
    DEFAULT_ZONE,
    AccountStatus,
    DatabaseScope,
    ModifyRequest,
    Query,
    Record,
    SavePolicy,
)

# How a caller-facing account status is read off a failed users/caller request
ACCOUNT_STATUS_BY_SERVER_CODE = {
    "AUTHENTICATION_REQUIRED": AccountStatus.NO_ACCOUNT,
    "AUTHENTICATION_FAILED": AccountStatus.NO_ACCOUNT,
    "ACCESS_DENIED": AccountStatus.RESTRICTED,
    "THROTTLED": AccountStatus.TEMPORARILY_UNAVAILABLE,
    "TRY_AGAIN_LATER": AccountStatus.TEMPORARILY_UNAVAILABLE,
    "INTERNAL_ERROR": AccountStatus.TEMPORARILY_UNAVAILABLE,
    "SERVICE_UNAVAILABLE": AccountStatus.TEMPORARILY_UNAVAILABLE,
}

OPERATION_TYPE_BY_POLICY = {
    SavePolicy.IF_SERVER_RECORD_UNCHANGED: "update",
    SavePolicy.CHANGED_KEYS: "forceUpdate",
    SavePolicy.ALL_KEYS: "forceReplace",
}


def _save_operation(record: Record, operation_type: Optional[str] = None) -> Dict[str, Any]:
    if operation_type is None:
        operation_type = "update" if record.change_tag else "create"
    return {"operationType": operation_type, "record": record_to_payload(record)}


def _group_by_zone(items: Sequence[Tuple[str, Dict[str, Any]]]) -> Dict[str, List[Dict[str, Any]]]:
    """Group (zone, operation) pairs by zone, keeping first-seen zone order."""
    grouped: Dict[str, List[Dict[str, Any]]] = {}
    for zone_name, operation in items:
        grouped.setdefault(zone_name, []).append(operation)
    return grouped


class CloudKitWebStore:
    """Record store talking to a CloudKit container over HTTPS.

    A modify request can only target one zone, so operations spanning zones
    are sent as one request per zone, in the order the zones first appear.
    """

    def __init__(
        self,
        client: CloudKitWebClient,
        account_scope: DatabaseScope = DatabaseScope.PUBLIC,
        show_progress: bool = False,
        logger_obj: Optional[logging.Logger] = None,
    ):
        self.client = client
        self.account_scope = account_scope
        self.show_progress = show_progress
        self.logger = logger_obj or logging.getLogger(__name__)

    async def __aenter__(self) -> "CloudKitWebStore":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self.client.close()

    async def check_account_availability(self) -> AccountStatus:
        try:
            await self.client.fetch_caller(self.account_scope)
        except StoreError as e:
            status = ACCOUNT_STATUS_BY_SERVER_CODE.get(e.server_error_code, AccountStatus.COULD_NOT_DETERMINE)
            self.logger.info(f"Account status for {self.client.container} is {status.value} ({e.server_error_code})")
            return status
        return AccountStatus.AVAILABLE

    async def query(self, query: Query, scope: DatabaseScope) -> List[Record]:
        """Run a query, following continuation markers until exhausted or the limit is reached."""
        records: List[Record] = []
        continuation_marker = None
        page_size = self.client.config.QUERY_PAGE_SIZE

        with tqdm(
            desc=f"Querying {query.record_type}", unit=" records", leave=False, disable=not self.show_progress
        ) as pbar:
            while True:
                body: Dict[str, Any] = {"zoneID": zone_payload(query.zone_name), "query": query_to_payload(query)}
                if query.results_limit is not None:
                    body["resultsLimit"] = min(page_size, query.results_limit - len(records))
                else:
                    body["resultsLimit"] = page_size
                if continuation_marker:
                    body["continuationMarker"] = continuation_marker

                data = await self.client.query_records(scope, body)

                page = data.get("records", [])
                for item in page:
                    if item.get("serverErrorCode"):
                        raise StoreError.from_payload(item)
                    records.append(record_from_payload(item, query.zone_name))
                pbar.update(len(page))

                continuation_marker = data.get("continuationMarker")
                if not continuation_marker or not page:
                    break
                if query.results_limit is not None and len(records) >= query.results_limit:
                    break

        self.logger.debug(f"Fetched {len(records):,} {query.record_type} records from {scope.value} database")
        return records

    async def save(self, record: Record, scope: DatabaseScope) -> Record:
        saved = await self._modify_zone(scope, record.record_id.zone_name, [_save_operation(record)], atomic=False)
        if not saved:
            raise StoreError("UNKNOWN_ERROR", "save returned no record", record_name=record.record_name)
        return saved[0]

    async def save_many(self, records: Sequence[Record], scope: DatabaseScope) -> List[Record]:
        grouped = _group_by_zone([(r.record_id.zone_name, _save_operation(r)) for r in records])
        saved: Dict[Tuple[str, str], Record] = {}
        for zone_name, operations in grouped.items():
            for record in await self._modify_zone(scope, zone_name, operations, atomic=False):
                saved[(zone_name, record.record_name)] = record
        return self._in_request_order(records, saved)

    async def modify(self, request: ModifyRequest, scope: DatabaseScope) -> List[Record]:
        operation_type = OPERATION_TYPE_BY_POLICY[request.save_policy]
        items = [(r.record_id.zone_name, _save_operation(r, operation_type)) for r in request.records_to_save]
        items += [
            (record_id.zone_name, {"operationType": "forceDelete", "record": {"recordName": record_id.record_name}})
            for record_id in request.record_ids_to_delete
        ]

        saved: Dict[Tuple[str, str], Record] = {}
        for zone_name, operations in _group_by_zone(items).items():
            # Atomic commits are only supported outside the default zone
            atomic = request.atomic and zone_name != DEFAULT_ZONE
            for record in await self._modify_zone(scope, zone_name, operations, atomic=atomic):
                saved[(zone_name, record.record_name)] = record
        return self._in_request_order(request.records_to_save, saved)

    async def _modify_zone(
        self, scope: DatabaseScope, zone_name: str, operations: List[Dict[str, Any]], atomic: bool
    ) -> List[Record]:
        body: Dict[str, Any] = {"operations": operations, "zoneID": zone_payload(zone_name)}
        if atomic:
            body["atomic"] = True

        data = await self.client.modify_records(scope, body)

        saved = []
        for item in data.get("records", []):
            if item.get("serverErrorCode"):
                raise StoreError.from_payload(item)
            if item.get("deleted"):
                continue
            saved.append(record_from_payload(item, zone_name))
        return saved

    @staticmethod
    def _in_request_order(records: Sequence[Record], saved: Dict[Tuple[str, str], Record]) -> List[Record]:
        ordered = []
        for record in records:
            key = (record.record_id.zone_name, record.record_name)
            if key not in saved:
                raise StoreError("UNKNOWN_ERROR", "server response is missing a saved record", record_name=record.record_name)
            ordered.append(saved[key])
        return ordered
