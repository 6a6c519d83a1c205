"""Auto-send batches and their per-recipient items.

A batch covers one date range; each item is one recipient's package. Batch
status is never stored: it is folded from the item rows whenever it is read,
so a reader never sees a summary that disagrees with the items.
"""

from __future__ import annotations

import enum
import uuid
from collections.abc import Iterable, Mapping
from datetime import date, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from autosend.models.base import Base, TimestampMixin


class ItemStatus(str, enum.Enum):
    """Per-recipient delivery state. SENT and FAILED are terminal."""

    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class BatchStatus(str, enum.Enum):
    """Batch state derived from its items."""

    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    PARTIAL = "partial"
    FAILED = "failed"


class TriggerKind(str, enum.Enum):
    """How a batch was started."""

    MANUAL = "manual"
    SCHEDULED = "scheduled"


def derive_batch_status(statuses: Iterable[ItemStatus] | Mapping[ItemStatus, int]) -> BatchStatus:
    """Fold item statuses (or status counts) into the batch status."""
    if isinstance(statuses, Mapping):
        counts = {status: count for status, count in statuses.items() if count}
    else:
        counts = {}
        for status in statuses:
            counts[status] = counts.get(status, 0) + 1

    if counts.get(ItemStatus.PENDING) or not counts:
        return BatchStatus.IN_PROGRESS
    if not counts.get(ItemStatus.FAILED):
        return BatchStatus.COMPLETE
    if not counts.get(ItemStatus.SENT):
        return BatchStatus.FAILED
    return BatchStatus.PARTIAL


def artifact_filename(batch_sequence: int, item_sequence: int) -> str:
    """File name of an item's PDF package, in emails and downloads."""
    return f"AutoSend_{batch_sequence}_{item_sequence}.pdf"


class AutoSendBatch(Base, TimestampMixin):
    """One planned send of a date range to a set of recipients."""

    __tablename__ = "auto_send_batches"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    sequence: Mapped[int] = mapped_column(Integer, unique=True, index=True)
    date_from: Mapped[date] = mapped_column(Date, index=True)
    date_to: Mapped[date] = mapped_column(Date, index=True)
    trigger: Mapped[TriggerKind] = mapped_column(
        Enum(
            TriggerKind,
            values_callable=lambda e: [x.value for x in e],
            native_enum=False,
            length=16,
        ),
        default=TriggerKind.MANUAL,
    )
    initiated_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, default=None)

    items: Mapped[list[AutoSendBatchItem]] = relationship(
        back_populates="batch",
        cascade="all, delete-orphan",
        order_by="AutoSendBatchItem.sequence",
        lazy="selectin",
    )

    @property
    def status(self) -> BatchStatus:
        return derive_batch_status(item.status for item in self.items)

    def __repr__(self) -> str:
        return f"<AutoSendBatch #{self.sequence} {self.date_from}..{self.date_to}>"


class AutoSendBatchItem(Base, TimestampMixin):
    """One recipient's package within a batch."""

    __tablename__ = "auto_send_batch_items"
    __table_args__ = (UniqueConstraint("batch_id", "sequence", name="uq_batch_item_sequence"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    batch_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("auto_send_batches.id", ondelete="CASCADE"), index=True
    )
    # No FK: recipients may be deleted while their history is kept
    recipient_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True)
    recipient_email: Mapped[str] = mapped_column(String(255), index=True)
    sequence: Mapped[int] = mapped_column(Integer)
    entry_ids: Mapped[list[str]] = mapped_column(JSON, default=list)
    include_certificates: Mapped[bool] = mapped_column(Boolean, default=True)
    status: Mapped[ItemStatus] = mapped_column(
        Enum(
            ItemStatus,
            values_callable=lambda e: [x.value for x in e],
            native_enum=False,
            length=16,
        ),
        default=ItemStatus.PENDING,
        index=True,
    )
    error: Mapped[str | None] = mapped_column(Text, default=None)
    sent_at: Mapped[datetime | None] = mapped_column(default=None)

    batch: Mapped[AutoSendBatch] = relationship(back_populates="items", lazy="selectin")

    @property
    def filename(self) -> str:
        return artifact_filename(self.batch.sequence, self.sequence)

    def __repr__(self) -> str:
        return f"<AutoSendBatchItem {self.recipient_email} {self.status.value}>"
