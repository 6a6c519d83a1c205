"""Manual, scheduled and resume triggers over the planner and executor.

Manual runs answer as soon as the batch is planned and send in the
background. Scheduled runs are gated on the settings switch and wait for
sending to finish so the caller can report the outcome.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from autosend.config import AutoSendConfig, get_config, get_settings
from autosend.core.errors import StorageError, ValidationError
from autosend.core.logging import get_logger
from autosend.core.tasks import BackgroundWorker
from autosend.models.batch import TriggerKind
from autosend.services.artifacts import ArtifactStore
from autosend.services.batch_repository import get_batch
from autosend.services.composer import DocumentComposer
from autosend.services.executor import BatchExecutor, ExecutionSummary
from autosend.services.mailer import get_dispatch_client
from autosend.services.planner import BatchPlanner, PlanResult
from autosend.services.renderer import get_record_renderer
from autosend.services.settings_service import get_or_create_settings

logger = get_logger(__name__)

PAUSED_REASON = "Auto-send is paused"


@dataclass
class ManualRun:
    """Parameters of an operator-initiated run."""

    date_from: date | None = None
    date_to: date | None = None
    recipient_ids: list[uuid.UUID] = field(default_factory=list)
    include_certificates: bool = True


@dataclass
class ScheduledRunResult:
    skipped: bool
    reason: str | None = None
    plan: PlanResult | None = None
    execution: ExecutionSummary | None = None


class AutoSendRunner:
    """Entry point shared by the API, the scheduler and the CLI."""

    def __init__(
        self,
        planner: BatchPlanner,
        executor: BatchExecutor,
        worker: BackgroundWorker,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        self.planner = planner
        self.executor = executor
        self.worker = worker
        self.session_factory = session_factory

    def _send_in_background(self, batch_id: uuid.UUID, actor_id: uuid.UUID | None) -> None:
        self.worker.submit(
            self.executor.execute(batch_id, actor_id),
            name=f"auto-send:{batch_id}",
        )

    async def trigger_manual(
        self, run: ManualRun, actor_id: uuid.UUID | None = None
    ) -> PlanResult:
        """Plan now, send in the background; returns before any email goes out."""
        result = await self.planner.plan(
            date_from=run.date_from,
            date_to=run.date_to,
            recipient_ids=run.recipient_ids or None,
            include_certificates=run.include_certificates,
            initiated_by=actor_id,
            trigger=TriggerKind.MANUAL,
        )
        if result.success and result.batch_id is not None:
            self._send_in_background(result.batch_id, actor_id)
        return result

    async def trigger_scheduled(
        self,
        date_from: date | None = None,
        date_to: date | None = None,
        include_certificates: bool = True,
    ) -> ScheduledRunResult:
        """Plan with the configured recipients and wait for sending to finish."""
        try:
            async with self.session_factory() as db:
                settings = await get_or_create_settings(db)
                is_enabled = settings.is_enabled
                await db.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Could not read auto-send settings: {e}") from e

        if not is_enabled:
            logger.info("auto_send_scheduled_skipped")
            return ScheduledRunResult(skipped=True, reason=PAUSED_REASON)

        plan = await self.planner.plan(
            date_from=date_from,
            date_to=date_to,
            include_certificates=include_certificates,
            trigger=TriggerKind.SCHEDULED,
        )
        if not plan.success or plan.batch_id is None:
            return ScheduledRunResult(skipped=False, plan=plan)

        execution = await self.executor.execute(plan.batch_id)
        return ScheduledRunResult(skipped=False, plan=plan, execution=execution)

    async def resume(self, batch_id: uuid.UUID, actor_id: uuid.UUID | None = None) -> int:
        """
        Send the remaining PENDING items of an existing batch in the background.

        Returns the batch sequence.

        Raises:
            NotFoundError: If the batch does not exist.
            ValidationError: If the batch is already being sent.
        """
        try:
            async with self.session_factory() as db:
                batch = await get_batch(db, batch_id)
        except SQLAlchemyError as e:
            raise StorageError(f"Could not load batch: {e}") from e

        if self.executor.is_running(batch_id):
            raise ValidationError("Batch is already being sent")

        logger.bind(batch_id=str(batch_id), sequence=batch.sequence).info("auto_send_batch_resumed")
        self._send_in_background(batch_id, actor_id)
        return batch.sequence


def build_runner(
    session_factory: async_sessionmaker[AsyncSession],
    worker: BackgroundWorker | None = None,
    config: AutoSendConfig | None = None,
) -> AutoSendRunner:
    """Wire the production renderer, SMTP client and artifact store."""
    settings = get_settings()
    config = config or get_config().auto_send

    composer = DocumentComposer(session_factory, get_record_renderer(), settings.certificate_dir)
    executor = BatchExecutor(
        session_factory,
        composer,
        get_dispatch_client(),
        ArtifactStore(Path(settings.artifact_dir)),
        config,
    )
    return AutoSendRunner(
        planner=BatchPlanner(session_factory, config),
        executor=executor,
        worker=worker or BackgroundWorker(),
        session_factory=session_factory,
    )
