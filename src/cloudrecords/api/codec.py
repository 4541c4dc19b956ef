"""Conversion between record models and CloudKit Web Services JSON."""

import base64
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from cloudrecords.core.models import DEFAULT_ZONE, Query, Record, RecordID


def datetime_to_millis(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def millis_to_datetime(value: Optional[float]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def _scalar_type(value: Any) -> str:
    # bool before int: bool is an int subclass
    if isinstance(value, bool) or isinstance(value, int):
        return "INT64"
    elif isinstance(value, float):
        return "DOUBLE"
    elif isinstance(value, str):
        return "STRING"
    elif isinstance(value, datetime):
        return "TIMESTAMP"
    elif isinstance(value, (bytes, bytearray)):
        return "BYTES"
    elif isinstance(value, RecordID):
        return "REFERENCE"
    raise TypeError(f"Unsupported field value type: {type(value).__name__}")


def _encode_scalar(value: Any, field_type: str) -> Any:
    if field_type == "INT64":
        return int(value)
    elif field_type == "TIMESTAMP":
        return datetime_to_millis(value)
    elif field_type == "BYTES":
        return base64.b64encode(bytes(value)).decode("ascii")
    elif field_type == "REFERENCE":
        reference = {"recordName": value.record_name, "action": "NONE"}
        if value.zone_name != DEFAULT_ZONE:
            reference["zoneID"] = {"zoneName": value.zone_name}
        return reference
    return value


def _decode_scalar(value: Any, field_type: str) -> Any:
    if field_type == "TIMESTAMP":
        return millis_to_datetime(value)
    elif field_type in ("BYTES", "ASSETID") and isinstance(value, str):
        return base64.b64decode(value)
    elif field_type == "REFERENCE" and isinstance(value, dict):
        zone_name = (value.get("zoneID") or {}).get("zoneName", DEFAULT_ZONE)
        return RecordID(value["recordName"], zone_name)
    return value


def encode_field(value: Any) -> Dict[str, Any]:
    """Encode a Python value as a CloudKit field object."""
    if isinstance(value, (list, tuple)):
        if not value:
            return {"value": [], "type": "STRING_LIST"}
        field_type = _scalar_type(value[0])
        if any(_scalar_type(item) != field_type for item in value):
            raise TypeError("List fields must hold values of a single type")
        return {"value": [_encode_scalar(item, field_type) for item in value], "type": f"{field_type}_LIST"}

    field_type = _scalar_type(value)
    return {"value": _encode_scalar(value, field_type), "type": field_type}


def decode_field(payload: Dict[str, Any]) -> Any:
    """Decode a CloudKit field object; unknown types keep their raw value."""
    value = payload.get("value")
    field_type = payload.get("type") or ""
    if field_type.endswith("_LIST") and isinstance(value, list):
        item_type = field_type[: -len("_LIST")]
        return [_decode_scalar(item, item_type) for item in value]
    return _decode_scalar(value, field_type)


def zone_payload(zone_name: str) -> Dict[str, str]:
    return {"zoneName": zone_name}


def record_to_payload(record: Record) -> Dict[str, Any]:
    """Encode a record for a modify operation."""
    payload = {
        "recordName": record.record_name,
        "recordType": record.record_type,
        "fields": {name: encode_field(value) for name, value in record.fields.items() if value is not None},
    }
    if record.change_tag:
        payload["recordChangeTag"] = record.change_tag
    return payload


def record_from_payload(payload: Dict[str, Any], zone_name: Optional[str] = None) -> Record:
    """Decode a record object returned by the server."""
    zone = zone_name or (payload.get("zoneID") or {}).get("zoneName") or DEFAULT_ZONE
    return Record(
        record_type=payload["recordType"],
        record_id=RecordID(payload["recordName"], zone),
        fields={name: decode_field(value) for name, value in (payload.get("fields") or {}).items()},
        change_tag=payload.get("recordChangeTag"),
        created_at=millis_to_datetime((payload.get("created") or {}).get("timestamp")),
        modified_at=millis_to_datetime((payload.get("modified") or {}).get("timestamp")),
    )


def record_to_document(record: Record) -> Dict[str, Any]:
    """Encode a record with its server-owned fields, for local persistence."""
    document = record_to_payload(record)
    document["zoneID"] = zone_payload(record.record_id.zone_name)
    if record.created_at is not None:
        document["created"] = {"timestamp": datetime_to_millis(record.created_at)}
    if record.modified_at is not None:
        document["modified"] = {"timestamp": datetime_to_millis(record.modified_at)}
    return document


def query_to_payload(query: Query) -> Dict[str, Any]:
    """Encode the ``query`` object of a records/query request."""
    payload: Dict[str, Any] = {"recordType": query.record_type}
    if query.filters:
        filters: List[Dict[str, Any]] = []
        for query_filter in query.filters:
            value = query_filter.value
            if query_filter.comparator.value in ("IN", "NOT_IN") and not isinstance(value, (list, tuple)):
                raise ValueError(f"{query_filter.comparator.value} filters need a list value")
            filters.append(
                {
                    "comparator": query_filter.comparator.value,
                    "fieldName": query_filter.field_name,
                    "fieldValue": encode_field(value),
                }
            )
        payload["filterBy"] = filters
    if query.sort:
        payload["sortBy"] = [{"fieldName": sort.field_name, "ascending": sort.ascending} for sort in query.sort]
    return payload
