"""Batch planning: turn a date range and a recipient set into a persisted batch.

Planning is all-or-nothing. Either the batch and every one of its items are
committed together, or nothing is written and the result says why.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from autosend.config import AutoSendConfig
from autosend.core.datetime_utils import DateWindow, format_date_label, resolve_date_range
from autosend.core.errors import StorageError
from autosend.core.logging import get_logger
from autosend.models.batch import TriggerKind
from autosend.models.recipient import Recipient
from autosend.models.sequence import BATCH_SEQUENCE
from autosend.services.batch_repository import (
    allocate_sequence,
    build_batch,
    find_overlapping_pending_batch,
)
from autosend.services.fuel_entries import select_entry_ids_in_window
from autosend.services.recipients import load_active_recipients
from autosend.services.settings_service import get_or_create_settings, selected_recipient_uuids

logger = get_logger(__name__)

NO_RECIPIENTS_MESSAGE = "No active recipients configured for auto-send."


@dataclass
class PlanResult:
    """Outcome of one planning call."""

    success: bool
    date_from: date
    date_to: date
    message: str | None = None
    batch_id: uuid.UUID | None = None
    sequence: int | None = None
    items: int = 0
    entries: int = 0
    recipient_emails: list[str] = field(default_factory=list)


class BatchPlanner:
    """Selects entries and recipients and persists a batch of PENDING items."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: AutoSendConfig,
    ) -> None:
        self.session_factory = session_factory
        self.config = config

    async def _resolve_recipients(
        self, db: AsyncSession, recipient_ids: list[uuid.UUID] | None
    ) -> list[Recipient]:
        if recipient_ids:
            ids = list(dict.fromkeys(recipient_ids))
        else:
            settings = await get_or_create_settings(db)
            ids = selected_recipient_uuids(settings)
        return await load_active_recipients(db, ids)

    async def plan(
        self,
        date_from: date | None = None,
        date_to: date | None = None,
        recipient_ids: list[uuid.UUID] | None = None,
        include_certificates: bool = True,
        initiated_by: uuid.UUID | None = None,
        trigger: TriggerKind = TriggerKind.MANUAL,
    ) -> PlanResult:
        """
        Plan a batch for the date range.

        Missing dates default to yesterday in the business timezone; a single
        date covers that one day.

        Raises:
            ValidationError: If ``date_from`` is after ``date_to``.
            StorageError: If the database cannot be read or written.
        """
        window = resolve_date_range(date_from, date_to, self.config.timezone)
        log = logger.bind(
            date_from=window.date_from.isoformat(),
            date_to=window.date_to.isoformat(),
            trigger=trigger.value,
        )

        try:
            async with self.session_factory() as db:
                result = await self._plan_in_session(
                    db, window, recipient_ids, include_certificates, initiated_by, trigger
                )
        except SQLAlchemyError as e:
            log.bind(error=str(e)).error("auto_send_plan_storage_failed")
            raise StorageError(f"Could not persist auto-send batch: {e}") from e

        if result.success:
            log.bind(
                batch_id=str(result.batch_id),
                sequence=result.sequence,
                items=result.items,
                entries=result.entries,
            ).info("auto_send_batch_planned")
        else:
            log.bind(reason=result.message).info("auto_send_plan_rejected")
        return result

    async def _plan_in_session(
        self,
        db: AsyncSession,
        window: DateWindow,
        recipient_ids: list[uuid.UUID] | None,
        include_certificates: bool,
        initiated_by: uuid.UUID | None,
        trigger: TriggerKind,
    ) -> PlanResult:
        recipients = await self._resolve_recipients(db, recipient_ids)
        if not recipients:
            await db.rollback()
            return PlanResult(
                success=False,
                date_from=window.date_from,
                date_to=window.date_to,
                message=NO_RECIPIENTS_MESSAGE,
            )

        entry_ids = await select_entry_ids_in_window(db, window)
        if not entry_ids:
            await db.rollback()
            return PlanResult(
                success=False,
                date_from=window.date_from,
                date_to=window.date_to,
                message=(
                    f"No fuel entries found between {format_date_label(window.date_from)} "
                    f"and {format_date_label(window.date_to)}."
                ),
            )

        # Holding the counter row serialises planners, so the overlap check
        # below cannot race another planner's insert
        sequence = await allocate_sequence(db, BATCH_SEQUENCE)

        if self.config.overlap_policy == "reject":
            in_flight = await find_overlapping_pending_batch(
                db, window.date_from, window.date_to, [r.id for r in recipients]
            )
            if in_flight is not None:
                await db.rollback()
                return PlanResult(
                    success=False,
                    date_from=window.date_from,
                    date_to=window.date_to,
                    message=(
                        f"Batch #{in_flight} is still sending an overlapping period "
                        "to the same recipients."
                    ),
                )

        batch = build_batch(
            sequence=sequence,
            window=window,
            trigger=trigger,
            initiated_by=initiated_by,
            recipients=recipients,
            entry_ids=entry_ids,
            include_certificates=include_certificates,
        )
        db.add(batch)
        await db.commit()

        return PlanResult(
            success=True,
            date_from=window.date_from,
            date_to=window.date_to,
            batch_id=batch.id,
            sequence=sequence,
            items=len(recipients),
            entries=len(entry_ids),
            recipient_emails=[recipient.email for recipient in recipients],
        )
