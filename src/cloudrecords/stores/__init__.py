"""Record store implementations."""

from .base import RecordStore
from .cloudkit import CloudKitWebStore
from .memory import InMemoryRecordStore

__all__ = ["RecordStore", "InMemoryRecordStore", "CloudKitWebStore"]
