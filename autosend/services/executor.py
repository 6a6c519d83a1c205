"""Batch execution: compose and dispatch every PENDING item of a batch.

Each item succeeds or fails on its own. A compose or dispatch failure marks
that item FAILED and the rest carry on; only a failure to record an outcome
aborts the call, and even then sibling items finish first. Items whose
outcome was never written stay PENDING, so executing the batch again picks
up exactly where the last run stopped. A package already stored for an item
(for example by an earlier download) is emailed as is, so the stored
artifact always matches what the recipient received.
"""

import asyncio
import uuid
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from autosend.config import AutoSendConfig
from autosend.core.datetime_utils import format_date_label, utc_now
from autosend.core.errors import AutoSendError, ComposeError, StorageError, ValidationError
from autosend.core.logging import get_logger
from autosend.models.batch import (
    AutoSendBatch,
    AutoSendBatchItem,
    BatchStatus,
    ItemStatus,
    artifact_filename,
    derive_batch_status,
)
from autosend.services.artifacts import ArtifactStore
from autosend.services.batch_repository import (
    count_item_statuses,
    get_batch,
    list_pending_items,
    mark_item_failed,
    mark_item_sent,
)
from autosend.services.composer import DocumentComposer
from autosend.services.mailer import Attachment, DispatchClient, render_email_body

logger = get_logger(__name__)

MAX_ERROR_LENGTH = 2000


@dataclass
class ExecutionSummary:
    """Item counts of a batch after an execution pass."""

    batch_id: uuid.UUID
    sequence: int
    sent: int
    failed: int
    pending: int
    status: BatchStatus


def _error_message(exc: BaseException) -> str:
    if isinstance(exc, AutoSendError):
        message = exc.message
    else:
        message = str(exc) or type(exc).__name__
    return (message or "Sending failed")[:MAX_ERROR_LENGTH]


class BatchExecutor:
    """Runs a batch's PENDING items through compose and dispatch with bounded concurrency."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        composer: DocumentComposer,
        dispatcher: DispatchClient,
        artifacts: ArtifactStore,
        config: AutoSendConfig,
    ) -> None:
        self.session_factory = session_factory
        self.composer = composer
        self.dispatcher = dispatcher
        self.artifacts = artifacts
        self.config = config
        self._active: set[uuid.UUID] = set()

    def is_running(self, batch_id: uuid.UUID) -> bool:
        return batch_id in self._active

    async def execute(
        self, batch_id: uuid.UUID, actor_id: uuid.UUID | None = None
    ) -> ExecutionSummary:
        """
        Send every PENDING item of the batch and report the resulting counts.

        Raises:
            NotFoundError: If the batch does not exist.
            ValidationError: If the batch is already executing in this process.
            StorageError: If an item outcome could not be recorded.
        """
        if batch_id in self._active:
            raise ValidationError("Batch is already being sent")

        self._active.add(batch_id)
        try:
            return await self._execute(batch_id, actor_id)
        finally:
            self._active.discard(batch_id)

    async def _execute(
        self, batch_id: uuid.UUID, actor_id: uuid.UUID | None
    ) -> ExecutionSummary:
        try:
            async with self.session_factory() as db:
                batch = await get_batch(db, batch_id)
                items = await list_pending_items(db, batch_id)
        except SQLAlchemyError as e:
            raise StorageError(f"Could not load batch: {e}") from e

        log = logger.bind(
            batch_id=str(batch_id),
            sequence=batch.sequence,
            actor_id=str(actor_id) if actor_id else None,
        )
        log.bind(pending=len(items)).info("auto_send_batch_started")

        semaphore = asyncio.Semaphore(max(1, self.config.max_concurrency))
        results = await asyncio.gather(
            *(self._run_item(batch, item, semaphore) for item in items),
            return_exceptions=True,
        )

        storage_errors = [r for r in results if isinstance(r, StorageError)]
        unexpected = [
            r for r in results if isinstance(r, BaseException) and not isinstance(r, StorageError)
        ]
        for exc in unexpected:
            log.bind(error=str(exc)).opt(exception=exc).error("auto_send_item_crashed")
        if storage_errors:
            log.bind(errors=len(storage_errors)).error("auto_send_batch_storage_failed")
            raise storage_errors[0]

        summary = await self.summarize(batch)
        log.bind(
            sent=summary.sent,
            failed=summary.failed,
            pending=summary.pending,
            status=summary.status.value,
        ).info("auto_send_batch_finished")
        return summary

    async def summarize(self, batch: AutoSendBatch) -> ExecutionSummary:
        """Recount the batch's items from their rows."""
        try:
            async with self.session_factory() as db:
                counts = await count_item_statuses(db, batch.id)
        except SQLAlchemyError as e:
            raise StorageError(f"Could not count batch items: {e}") from e

        return ExecutionSummary(
            batch_id=batch.id,
            sequence=batch.sequence,
            sent=counts[ItemStatus.SENT],
            failed=counts[ItemStatus.FAILED],
            pending=counts[ItemStatus.PENDING],
            status=derive_batch_status(counts),
        )

    def _subject(self, batch: AutoSendBatch, item: AutoSendBatchItem) -> str:
        return self.config.subject_template.format(
            date_from=format_date_label(batch.date_from),
            date_to=format_date_label(batch.date_to),
            batch_sequence=batch.sequence,
            item_sequence=item.sequence,
        )

    async def _deliver(self, batch: AutoSendBatch, item: AutoSendBatchItem) -> None:
        entries = await self.composer.load_entries(item.entry_ids)
        artifact = await self.artifacts.load(item.id)
        if artifact is None:
            composed = await self.composer.compose_entries(entries, item.include_certificates)
            artifact = await self.artifacts.save(item.id, composed)
        elif not entries:
            raise ComposeError("None of the package's fuel entries exist anymore")

        html = render_email_body(
            entries,
            date_from_label=format_date_label(batch.date_from),
            date_to_label=format_date_label(batch.date_to),
            batch_sequence=batch.sequence,
            item_sequence=item.sequence,
            timezone=self.config.timezone,
            header_cid=self.dispatcher.header_cid,
        )
        await self.dispatcher.send(
            item.recipient_email,
            self._subject(batch, item),
            html,
            Attachment(filename=artifact_filename(batch.sequence, item.sequence), content=artifact),
        )

    async def _run_item(
        self,
        batch: AutoSendBatch,
        item: AutoSendBatchItem,
        semaphore: asyncio.Semaphore,
    ) -> ItemStatus:
        log = logger.bind(
            batch_id=str(batch.id),
            item_id=str(item.id),
            recipient=item.recipient_email,
        )
        async with semaphore:
            try:
                await self._deliver(batch, item)
            except Exception as e:
                error = _error_message(e)
                log.bind(error=error).warning("auto_send_item_failed")
                await self._record(item.id, error=error)
                return ItemStatus.FAILED

            await self._record(item.id)
            log.info("auto_send_item_sent")
            return ItemStatus.SENT

    async def _record(self, item_id: uuid.UUID, error: str | None = None) -> None:
        """Write one item's outcome in its own transaction."""
        try:
            async with self.session_factory() as db:
                if error is None:
                    changed = await mark_item_sent(db, item_id, utc_now())
                else:
                    changed = await mark_item_failed(db, item_id, error)
                await db.commit()
        except SQLAlchemyError as e:
            logger.bind(item_id=str(item_id), error=str(e)).error("auto_send_item_write_failed")
            raise StorageError(f"Could not record item outcome: {e}") from e

        if not changed:
            logger.bind(item_id=str(item_id)).warning("auto_send_item_already_final")
