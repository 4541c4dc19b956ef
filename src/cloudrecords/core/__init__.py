"""Core application logic: models, the gated client and dependency injection."""

from .models import (
    DEFAULT_ZONE,
    AccountStatus,
    Comparator,
    DatabaseScope,
    ModifyRequest,
    Query,
    QueryFilter,
    QuerySort,
    Record,
    RecordID,
    SavePolicy,
)
from .notifier import LoggingNotifier, Notifier, OperationEvent
from .client import GatedRecordClient

__all__ = [
    "DEFAULT_ZONE",
    "AccountStatus",
    "Comparator",
    "DatabaseScope",
    "ModifyRequest",
    "Query",
    "QueryFilter",
    "QuerySort",
    "Record",
    "RecordID",
    "SavePolicy",
    "LoggingNotifier",
    "Notifier",
    "OperationEvent",
    "GatedRecordClient",
]
