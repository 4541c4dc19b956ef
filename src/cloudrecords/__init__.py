"""Account-gated async client for remote record stores such as CloudKit."""

from .core.models import (
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
from .core.client import GatedRecordClient
from .core.notifier import LoggingNotifier, Notifier, OperationEvent
from .api.error_handling import (
    AccountUnavailableError,
    ErrorCategory,
    RecordClientError,
    StatusResolutionError,
    StoreError,
    StoreOperationError,
)
from .stores import CloudKitWebStore, InMemoryRecordStore, RecordStore

__version__ = "0.1.0"

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
    "GatedRecordClient",
    "LoggingNotifier",
    "Notifier",
    "OperationEvent",
    "AccountUnavailableError",
    "ErrorCategory",
    "RecordClientError",
    "StatusResolutionError",
    "StoreError",
    "StoreOperationError",
    "RecordStore",
    "InMemoryRecordStore",
    "CloudKitWebStore",
]
