"""Read access to fuel entries, plus registration-number allocation."""

import uuid
from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from autosend.core.datetime_utils import DateWindow
from autosend.core.logging import get_logger
from autosend.models.fuel_entry import FuelEntry
from autosend.models.sequence import REGISTRATION_SEQUENCE
from autosend.services.batch_repository import allocate_sequence

logger = get_logger(__name__)

FIRST_REGISTRATION_NUMBER = 12345


async def register_fuel_entry(
    db: AsyncSession,
    *,
    entry_date: datetime,
    product_name: str,
    quantity: float,
    warehouse_code: str,
    warehouse_name: str,
    certificate_path: str | None = None,
) -> FuelEntry:
    """Insert a fuel entry with the next registration number."""
    number = await allocate_sequence(db, REGISTRATION_SEQUENCE, start=FIRST_REGISTRATION_NUMBER)
    entry = FuelEntry(
        registration_number=number,
        entry_date=entry_date,
        product_name=product_name,
        quantity=quantity,
        warehouse_code=warehouse_code,
        warehouse_name=warehouse_name,
        certificate_path=certificate_path,
    )
    db.add(entry)
    await db.flush()
    return entry


async def select_entry_ids_in_window(db: AsyncSession, window: DateWindow) -> list[uuid.UUID]:
    """Ids of active entries in the window, oldest first, ties by registration number."""
    result = await db.execute(
        select(FuelEntry.id)
        .where(
            FuelEntry.is_active == True,  # noqa: E712
            FuelEntry.entry_date >= window.start,
            FuelEntry.entry_date < window.end,
        )
        .order_by(FuelEntry.entry_date, FuelEntry.registration_number)
    )
    return list(result.scalars().all())


def parse_entry_ids(entry_ids: Sequence[str | uuid.UUID]) -> list[uuid.UUID]:
    """Stored id strings as UUIDs; malformed values are dropped like missing entries."""
    parsed: list[uuid.UUID] = []
    for raw in entry_ids:
        try:
            parsed.append(raw if isinstance(raw, uuid.UUID) else uuid.UUID(str(raw)))
        except ValueError:
            logger.bind(value=str(raw)).warning("invalid_entry_id_skipped")
    return parsed


async def load_entries_in_order(
    db: AsyncSession, entry_ids: Sequence[str | uuid.UUID]
) -> list[FuelEntry]:
    """Entries for ``entry_ids`` in exactly that order; unknown ids are skipped."""
    ids = parse_entry_ids(entry_ids)
    if not ids:
        return []

    result = await db.execute(select(FuelEntry).where(FuelEntry.id.in_(set(ids))))
    by_id = {entry.id: entry for entry in result.scalars().all()}

    missing = [str(entry_id) for entry_id in ids if entry_id not in by_id]
    if missing:
        logger.bind(missing=missing).warning("entries_missing_from_compose_set")

    return [by_id[entry_id] for entry_id in ids if entry_id in by_id]
