"""Typed contracts shared by the client and the record stores."""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

DEFAULT_ZONE = "_defaultZone"


class AccountStatus(str, Enum):
    """Availability of the signed-in cloud identity."""

    AVAILABLE = "available"
    NO_ACCOUNT = "no_account"
    RESTRICTED = "restricted"
    COULD_NOT_DETERMINE = "could_not_determine"
    TEMPORARILY_UNAVAILABLE = "temporarily_unavailable"


class DatabaseScope(str, Enum):
    """Logical partition of the remote store a client targets."""

    PUBLIC = "public"
    PRIVATE = "private"
    SHARED = "shared"

    @classmethod
    def parse(cls, value: str) -> "DatabaseScope":
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(f"Unknown database scope '{value}'") from None


class SavePolicy(str, Enum):
    """How a save reconciles with the record already on the server."""

    IF_SERVER_RECORD_UNCHANGED = "if_server_record_unchanged"
    CHANGED_KEYS = "changed_keys"
    ALL_KEYS = "all_keys"


class Comparator(str, Enum):
    """Query filter comparators, named as CloudKit names them."""

    EQUALS = "EQUALS"
    NOT_EQUALS = "NOT_EQUALS"
    LESS_THAN = "LESS_THAN"
    LESS_THAN_OR_EQUALS = "LESS_THAN_OR_EQUALS"
    GREATER_THAN = "GREATER_THAN"
    GREATER_THAN_OR_EQUALS = "GREATER_THAN_OR_EQUALS"
    IN = "IN"
    NOT_IN = "NOT_IN"
    BEGINS_WITH = "BEGINS_WITH"
    LIST_CONTAINS = "LIST_CONTAINS"


@dataclass(frozen=True)
class RecordID:
    """Identifier of a record within a zone."""

    record_name: str
    zone_name: str = DEFAULT_ZONE

    @classmethod
    def new(cls, zone_name: str = DEFAULT_ZONE) -> "RecordID":
        return cls(str(uuid.uuid4()).upper(), zone_name)

    def __str__(self) -> str:
        if self.zone_name == DEFAULT_ZONE:
            return self.record_name
        return f"{self.zone_name}/{self.record_name}"


@dataclass
class Record:
    """A key-value entity persisted in the remote store.

    ``change_tag``, ``created_at`` and ``modified_at`` belong to the server;
    callers leave them alone and read them off the records a store returns.
    """

    record_type: str
    record_id: RecordID = field(default_factory=RecordID.new)
    fields: Dict[str, Any] = field(default_factory=dict)
    change_tag: Optional[str] = None
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None

    @property
    def record_name(self) -> str:
        return self.record_id.record_name

    def __getitem__(self, key: str) -> Any:
        return self.fields[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self.fields[key] = value

    def __delitem__(self, key: str) -> None:
        del self.fields[key]

    def __contains__(self, key: object) -> bool:
        return key in self.fields

    def get(self, key: str, default: Any = None) -> Any:
        return self.fields.get(key, default)

    def copy(self) -> "Record":
        """Return a copy that shares no mutable state with this record."""
        return copy.deepcopy(self)


@dataclass(frozen=True)
class QueryFilter:
    """A single field predicate; filters within a query are AND-ed."""

    field_name: str
    comparator: Comparator
    value: Any


@dataclass(frozen=True)
class QuerySort:
    field_name: str
    ascending: bool = True


@dataclass
class Query:
    """Record type plus predicate, built by the caller and consumed once."""

    record_type: str
    filters: List[QueryFilter] = field(default_factory=list)
    sort: List[QuerySort] = field(default_factory=list)
    zone_name: str = DEFAULT_ZONE
    results_limit: Optional[int] = None

    def __post_init__(self):
        if self.results_limit is not None and self.results_limit < 1:
            raise ValueError("results_limit must be at least 1")

    def where(self, field_name: str, comparator: Comparator, value: Any) -> "Query":
        """Add a filter and return the query, for chaining."""
        self.filters.append(QueryFilter(field_name, Comparator(comparator), value))
        return self

    def order_by(self, field_name: str, ascending: bool = True) -> "Query":
        self.sort.append(QuerySort(field_name, ascending))
        return self


@dataclass
class ModifyRequest:
    """Records to upsert and record identifiers to delete, sent as one request."""

    records_to_save: List[Record] = field(default_factory=list)
    record_ids_to_delete: List[RecordID] = field(default_factory=list)
    save_policy: SavePolicy = SavePolicy.ALL_KEYS
    atomic: bool = True

    @property
    def is_empty(self) -> bool:
        return not self.records_to_save and not self.record_ids_to_delete
