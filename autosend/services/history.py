"""Read-side views of past batches, and package downloads."""

import math
import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from autosend.core.logging import get_logger
from autosend.models.batch import AutoSendBatch, AutoSendBatchItem
from autosend.models.fuel_entry import FuelEntry
from autosend.services.artifacts import ArtifactStore
from autosend.services.batch_repository import get_item
from autosend.services.composer import DocumentComposer
from autosend.services.fuel_entries import parse_entry_ids

logger = get_logger(__name__)


@dataclass
class Page:
    items: list[Any]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


async def registration_numbers(
    db: AsyncSession, entry_id_lists: Iterable[list[str]]
) -> dict[str, int]:
    """Map stored entry ids to registration numbers for display."""
    ids = {entry_id for ids in entry_id_lists for entry_id in parse_entry_ids(ids)}
    if not ids:
        return {}
    result = await db.execute(
        select(FuelEntry.id, FuelEntry.registration_number).where(FuelEntry.id.in_(ids))
    )
    return {str(entry_id): number for entry_id, number in result.all()}


def entry_numbers(item: AutoSendBatchItem, numbers: dict[str, int]) -> list[int]:
    """Registration numbers of an item's entries in package order; deleted entries drop out."""
    return [numbers[str(i)] for i in parse_entry_ids(item.entry_ids) if str(i) in numbers]


async def list_item_history(
    db: AsyncSession,
    *,
    page: int = 1,
    limit: int = 10,
    recipient: str | None = None,
    batch_id: uuid.UUID | None = None,
) -> tuple[Page, dict[str, int]]:
    """Newest items first, optionally filtered by recipient email or batch."""
    filters = []
    if recipient:
        filters.append(AutoSendBatchItem.recipient_email == recipient.strip().lower())
    if batch_id:
        filters.append(AutoSendBatchItem.batch_id == batch_id)

    total = (
        await db.execute(select(func.count(AutoSendBatchItem.id)).where(*filters))
    ).scalar_one()
    result = await db.execute(
        select(AutoSendBatchItem)
        .where(*filters)
        .order_by(AutoSendBatchItem.created_at.desc(), AutoSendBatchItem.sequence)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    items = list(result.scalars().all())
    numbers = await registration_numbers(db, (item.entry_ids for item in items))
    return Page(items=items, total=total, page=page, limit=limit), numbers


async def list_batch_history(
    db: AsyncSession,
    *,
    page: int = 1,
    limit: int = 10,
    recipient: str | None = None,
) -> tuple[Page, dict[str, int]]:
    """Newest batches first with their items; status is folded from the items."""
    filters = []
    if recipient:
        filters.append(
            AutoSendBatch.items.any(AutoSendBatchItem.recipient_email == recipient.strip().lower())
        )

    total = (await db.execute(select(func.count(AutoSendBatch.id)).where(*filters))).scalar_one()
    result = await db.execute(
        select(AutoSendBatch)
        .where(*filters)
        .order_by(AutoSendBatch.sequence.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    batches = list(result.scalars().all())
    numbers = await registration_numbers(
        db, (item.entry_ids for batch in batches for item in batch.items)
    )
    return Page(items=batches, total=total, page=page, limit=limit), numbers


async def load_item_package(
    db: AsyncSession,
    item_id: uuid.UUID,
    composer: DocumentComposer,
    artifacts: ArtifactStore,
) -> tuple[str, bytes]:
    """
    Return the file name and PDF bytes of an item's package.

    The stored artifact is served when present, so repeated downloads are
    byte-identical. Packages that were never stored (an item that failed
    before composing, or a cleared artifact directory) are composed and
    stored. If the executor stores the item's package first, its bytes win
    and are returned instead.

    Raises:
        NotFoundError: If the item does not exist.
        ComposeError: If the package cannot be composed.
    """
    item = await get_item(db, item_id)
    data = await artifacts.load(item.id)
    if data is None:
        logger.bind(item_id=str(item.id)).info("auto_send_artifact_recomposed")
        composed = await composer.compose(item.entry_ids, item.include_certificates)
        data = await artifacts.save(item.id, composed)
    return item.filename, data
