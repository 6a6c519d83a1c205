from autosend.models.base import Base
from autosend.models.batch import (
    AutoSendBatch,
    AutoSendBatchItem,
    BatchStatus,
    ItemStatus,
    TriggerKind,
)
from autosend.models.fuel_entry import FuelEntry
from autosend.models.recipient import Recipient
from autosend.models.sequence import SequenceCounter
from autosend.models.settings import AutoSendSettings
from autosend.models.user import Session, User, UserRole

__all__ = [
    "Base",
    "User",
    "UserRole",
    "Session",
    "Recipient",
    "AutoSendSettings",
    "FuelEntry",
    "SequenceCounter",
    "AutoSendBatch",
    "AutoSendBatchItem",
    "BatchStatus",
    "ItemStatus",
    "TriggerKind",
]
