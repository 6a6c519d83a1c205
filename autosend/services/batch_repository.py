"""Persistence for batches, batch items and durable counters.

Functions take an open AsyncSession and never commit; the caller owns the
transaction boundary. Item outcome writes are conditional single-row
updates touching only status columns, so concurrent writers of sibling
items (or of other columns) are never clobbered and a terminal item never
changes again.
"""

import uuid
from collections.abc import Sequence
from datetime import date, datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from autosend.core.database import upsert_dialect
from autosend.core.datetime_utils import DateWindow, utc_now
from autosend.core.errors import NotFoundError
from autosend.models.batch import AutoSendBatch, AutoSendBatchItem, ItemStatus, TriggerKind
from autosend.models.recipient import Recipient
from autosend.models.sequence import SequenceCounter


async def insert_ignoring_conflicts(
    db: AsyncSession,
    model: type,
    rows: list[dict[str, Any]],
    index_elements: list[str],
    returning: Any = None,
) -> Any:
    """INSERT rows, silently skipping those that hit a unique constraint."""
    dialect = upsert_dialect(db)
    stmt = dialect.insert(model).values(rows).on_conflict_do_nothing(index_elements=index_elements)
    if returning is not None:
        stmt = stmt.returning(returning)
    return await db.execute(stmt)


async def allocate_sequence(db: AsyncSession, name: str, start: int = 1) -> int:
    """
    Take the next value of a named durable counter.

    The increment is one UPDATE ... RETURNING statement, so concurrent
    callers can never observe the same value. The row stays locked until the
    caller's transaction ends; rolling back returns the value to the pool.
    """
    stmt = (
        update(SequenceCounter)
        .where(SequenceCounter.name == name)
        .values(value=SequenceCounter.value + 1)
        .returning(SequenceCounter.value)
        .execution_options(synchronize_session=False)
    )
    value = (await db.execute(stmt)).scalar_one_or_none()
    if value is None:
        await insert_ignoring_conflicts(
            db, SequenceCounter, [{"name": name, "value": start - 1}], ["name"]
        )
        value = (await db.execute(stmt)).scalar_one()
    return int(value)


async def get_batch(db: AsyncSession, batch_id: uuid.UUID) -> AutoSendBatch:
    """Load a batch with its items."""
    result = await db.execute(select(AutoSendBatch).where(AutoSendBatch.id == batch_id))
    batch = result.scalar_one_or_none()
    if batch is None:
        raise NotFoundError("Batch not found")
    return batch


async def get_item(db: AsyncSession, item_id: uuid.UUID) -> AutoSendBatchItem:
    """Load a batch item with its batch."""
    result = await db.execute(select(AutoSendBatchItem).where(AutoSendBatchItem.id == item_id))
    item = result.scalar_one_or_none()
    if item is None:
        raise NotFoundError("Batch item not found")
    return item


async def list_pending_items(db: AsyncSession, batch_id: uuid.UUID) -> list[AutoSendBatchItem]:
    result = await db.execute(
        select(AutoSendBatchItem)
        .where(
            AutoSendBatchItem.batch_id == batch_id,
            AutoSendBatchItem.status == ItemStatus.PENDING,
        )
        .order_by(AutoSendBatchItem.sequence)
    )
    return list(result.scalars().all())


async def count_item_statuses(db: AsyncSession, batch_id: uuid.UUID) -> dict[ItemStatus, int]:
    """Count a batch's items per status, straight from the item rows."""
    result = await db.execute(
        select(AutoSendBatchItem.status, func.count(AutoSendBatchItem.id))
        .where(AutoSendBatchItem.batch_id == batch_id)
        .group_by(AutoSendBatchItem.status)
    )
    counts = {status: 0 for status in ItemStatus}
    for status, count in result.all():
        counts[ItemStatus(status)] = count
    return counts


async def mark_item_sent(db: AsyncSession, item_id: uuid.UUID, sent_at: datetime) -> bool:
    """PENDING -> SENT. Returns False if the item was already terminal."""
    result = await db.execute(
        update(AutoSendBatchItem)
        .where(
            AutoSendBatchItem.id == item_id,
            AutoSendBatchItem.status == ItemStatus.PENDING,
        )
        .values(status=ItemStatus.SENT, sent_at=sent_at, error=None)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def mark_item_failed(db: AsyncSession, item_id: uuid.UUID, error: str) -> bool:
    """PENDING -> FAILED. Returns False if the item was already terminal."""
    result = await db.execute(
        update(AutoSendBatchItem)
        .where(
            AutoSendBatchItem.id == item_id,
            AutoSendBatchItem.status == ItemStatus.PENDING,
        )
        .values(status=ItemStatus.FAILED, error=error)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def find_overlapping_pending_batch(
    db: AsyncSession,
    date_from: date,
    date_to: date,
    recipient_ids: Sequence[uuid.UUID],
) -> int | None:
    """Sequence of an unfinished batch overlapping the range for any of the recipients."""
    result = await db.execute(
        select(AutoSendBatch.sequence)
        .join(AutoSendBatchItem, AutoSendBatchItem.batch_id == AutoSendBatch.id)
        .where(
            AutoSendBatch.date_from <= date_to,
            AutoSendBatch.date_to >= date_from,
            AutoSendBatchItem.status == ItemStatus.PENDING,
            AutoSendBatchItem.recipient_id.in_(list(recipient_ids)),
        )
        .order_by(AutoSendBatch.sequence)
        .limit(1)
    )
    return result.scalar_one_or_none()


def build_batch(
    *,
    sequence: int,
    window: DateWindow,
    trigger: TriggerKind,
    initiated_by: uuid.UUID | None,
    recipients: Sequence[Recipient],
    entry_ids: Sequence[uuid.UUID],
    include_certificates: bool,
) -> AutoSendBatch:
    """Build a batch with one PENDING item per recipient, all sharing the entry list."""
    ordered_ids = [str(entry_id) for entry_id in entry_ids]
    # Batch and items share one creation time
    created_at = utc_now()
    batch = AutoSendBatch(
        id=uuid.uuid4(),
        sequence=sequence,
        date_from=window.date_from,
        date_to=window.date_to,
        trigger=trigger,
        initiated_by=initiated_by,
        created_at=created_at,
    )
    batch.items = [
        AutoSendBatchItem(
            id=uuid.uuid4(),
            recipient_id=recipient.id,
            recipient_email=recipient.email,
            sequence=index,
            entry_ids=list(ordered_ids),
            include_certificates=include_certificates,
            status=ItemStatus.PENDING,
            created_at=created_at,
        )
        for index, recipient in enumerate(recipients, start=1)
    ]
    return batch
