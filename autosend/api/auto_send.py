"""Auto-send admin endpoints: manual runs, history, downloads, settings and recipients."""

import uuid

from fastapi import APIRouter, Query, Response, status

from autosend.core.errors import ValidationError
from autosend.core.logging import get_logger
from autosend.core.scheduler import get_job_schedules
from autosend.dependencies import AdminUser, Config, DBSession, Runner
from autosend.models.batch import AutoSendBatch, AutoSendBatchItem
from autosend.schemas.auto_send import (
    BatchHistory,
    BatchHistoryPage,
    BatchSummary,
    CountResponse,
    DeletedResponse,
    ItemHistory,
    ItemHistoryPage,
    ManualRunRequest,
    Pagination,
    RecipientCreate,
    RecipientResponse,
    RecipientUpdate,
    ResumeResponse,
    RunResponse,
    SettingsResponse,
    SettingsUpdate,
)
from autosend.services import recipients as recipient_service
from autosend.services.history import (
    Page,
    entry_numbers,
    list_batch_history,
    list_item_history,
    load_item_package,
)
from autosend.services.planner import PlanResult
from autosend.services.settings_service import get_or_create_settings, update_settings
from autosend.services.triggers import ManualRun

logger = get_logger(__name__)

router = APIRouter()


def run_response(plan: PlanResult) -> RunResponse:
    """Planning failures become a 400 with the planner's message."""
    if not plan.success or plan.batch_id is None or plan.sequence is None:
        raise ValidationError(plan.message or "Auto-send could not be planned")
    return RunResponse(
        batch_id=plan.batch_id,
        sequence=plan.sequence,
        items=plan.items,
        entries=plan.entries,
        date_from=plan.date_from,
        date_to=plan.date_to,
    )


def _pagination(page: Page) -> Pagination:
    return Pagination(
        total=page.total,
        page=page.page,
        limit=page.limit,
        total_pages=page.total_pages,
    )


def _batch_summary(batch: AutoSendBatch) -> BatchSummary:
    return BatchSummary(
        id=batch.id,
        sequence=batch.sequence,
        date_from=batch.date_from,
        date_to=batch.date_to,
        trigger=batch.trigger,
    )


def _item_history(
    item: AutoSendBatchItem, numbers: dict[str, int], with_batch: bool = True
) -> ItemHistory:
    return ItemHistory(
        id=item.id,
        sequence=item.sequence,
        status=item.status,
        recipient_email=item.recipient_email,
        sent_at=item.sent_at,
        error=item.error,
        entries_count=len(item.entry_ids),
        entry_numbers=entry_numbers(item, numbers),
        include_certificates=item.include_certificates,
        filename=item.filename,
        batch=_batch_summary(item.batch) if with_batch else None,
    )


@router.post("/run", response_model=RunResponse)
async def run_auto_send(
    request: ManualRunRequest,
    user: AdminUser,
    runner: Runner,
    config: Config,
) -> RunResponse:
    """
    Plan a batch and start sending it in the background.

    The response arrives once the batch is persisted; delivery outcomes show
    up in the history as items finish.
    """
    include_certificates = request.include_certificates
    if include_certificates is None:
        include_certificates = config.auto_send.include_certificates_default

    plan = await runner.trigger_manual(
        ManualRun(
            date_from=request.date_from,
            date_to=request.date_to,
            recipient_ids=request.recipient_ids,
            include_certificates=include_certificates,
        ),
        actor_id=user.id,
    )
    logger.bind(user_id=str(user.id), success=plan.success).info("auto_send_manual_run")
    return run_response(plan)


@router.post(
    "/batches/{batch_id}/resume",
    response_model=ResumeResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def resume_batch(batch_id: uuid.UUID, user: AdminUser, runner: Runner) -> ResumeResponse:
    """Send the items of an interrupted batch that are still PENDING."""
    sequence = await runner.resume(batch_id, actor_id=user.id)
    return ResumeResponse(batch_id=batch_id, sequence=sequence)


@router.get("/history", response_model=ItemHistoryPage)
async def item_history(
    user: AdminUser,
    db: DBSession,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    recipient: str | None = Query(default=None),
    batch_id: uuid.UUID | None = Query(default=None),
) -> ItemHistoryPage:
    result, numbers = await list_item_history(
        db, page=page, limit=limit, recipient=recipient, batch_id=batch_id
    )
    return ItemHistoryPage(
        items=[_item_history(item, numbers) for item in result.items],
        pagination=_pagination(result),
    )


@router.get("/history/batches", response_model=BatchHistoryPage)
async def batch_history(
    user: AdminUser,
    db: DBSession,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    recipient: str | None = Query(default=None),
) -> BatchHistoryPage:
    """Batches with their items; status is computed from the items on every read."""
    result, numbers = await list_batch_history(db, page=page, limit=limit, recipient=recipient)
    batches = [
        BatchHistory(
            **_batch_summary(batch).model_dump(),
            status=batch.status,
            initiated_by=batch.initiated_by,
            created_at=batch.created_at,
            total_entries=len(batch.items[0].entry_ids) if batch.items else 0,
            recipients_count=len(batch.items),
            items=[_item_history(item, numbers, with_batch=False) for item in batch.items],
        )
        for batch in result.items
    ]
    return BatchHistoryPage(items=batches, pagination=_pagination(result))


@router.get("/history/{item_id}/download")
async def download_item(
    item_id: uuid.UUID,
    user: AdminUser,
    db: DBSession,
    runner: Runner,
) -> Response:
    """The item's PDF package, identical on every download."""
    filename, data = await load_item_package(
        db, item_id, runner.executor.composer, runner.executor.artifacts
    )
    return Response(
        content=data,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/settings", response_model=SettingsResponse)
async def get_auto_send_settings(user: AdminUser, db: DBSession) -> SettingsResponse:
    settings = await get_or_create_settings(db)
    return SettingsResponse.model_validate(settings)


@router.patch("/settings", response_model=SettingsResponse)
async def patch_auto_send_settings(
    request: SettingsUpdate,
    user: AdminUser,
    db: DBSession,
) -> SettingsResponse:
    """Partial update; omitted fields keep their stored values."""
    settings = await update_settings(
        db,
        is_enabled=request.is_enabled,
        selected_recipient_ids=request.selected_recipient_ids,
        updated_by=user.id,
    )
    return SettingsResponse.model_validate(settings)


@router.get("/recipients", response_model=list[RecipientResponse])
async def list_recipients(user: AdminUser, db: DBSession) -> list[RecipientResponse]:
    recipients = await recipient_service.list_recipients(db)
    return [RecipientResponse.model_validate(r) for r in recipients]


@router.post("/recipients", response_model=CountResponse, status_code=status.HTTP_201_CREATED)
async def create_recipients(
    request: RecipientCreate,
    user: AdminUser,
    db: DBSession,
) -> CountResponse:
    """Add one or more addresses; existing addresses are skipped and not counted."""
    count = await recipient_service.create_recipients(
        db, request.email, name=request.name, created_by=user.id
    )
    return CountResponse(count=count)


@router.patch("/recipients/{recipient_id}", response_model=RecipientResponse)
async def update_recipient(
    recipient_id: uuid.UUID,
    request: RecipientUpdate,
    user: AdminUser,
    db: DBSession,
) -> RecipientResponse:
    clear_name = "name" in request.model_fields_set and request.name is None
    recipient = await recipient_service.update_recipient(
        db,
        recipient_id,
        is_active=request.is_active,
        name=request.name,
        clear_name=clear_name,
    )
    return RecipientResponse.model_validate(recipient)


@router.delete("/recipients/{recipient_id}", response_model=DeletedResponse)
async def delete_recipient(
    recipient_id: uuid.UUID,
    user: AdminUser,
    db: DBSession,
) -> DeletedResponse:
    deleted_id = await recipient_service.delete_recipient(db, recipient_id)
    return DeletedResponse(id=deleted_id)


@router.get("/schedule")
async def list_schedule(user: AdminUser) -> dict:
    """Registered scheduler entries with their next fire time."""
    return {"schedules": await get_job_schedules()}
