import uuid
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field

from autosend.models.batch import BatchStatus, ItemStatus, TriggerKind


class ManualRunRequest(BaseModel):
    """Body of POST /api/auto-send/run. Omitted dates mean yesterday."""

    date_from: date | None = None
    date_to: date | None = None
    recipient_ids: list[uuid.UUID] = Field(default_factory=list)
    include_certificates: bool | None = None


class CronRunRequest(BaseModel):
    """Optional body of the scheduled trigger, for back-filling a range."""

    date_from: date | None = None
    date_to: date | None = None
    include_certificates: bool | None = None


class RunResponse(BaseModel):
    """A planned batch. Sending continues after this response for manual runs."""

    success: bool = True
    batch_id: uuid.UUID
    sequence: int
    items: int
    entries: int
    date_from: date
    date_to: date


class ExecutionResponse(BaseModel):
    batch_id: uuid.UUID
    sequence: int
    sent: int
    failed: int
    pending: int
    status: BatchStatus


class CronRunResponse(BaseModel):
    """Outcome of the scheduled trigger; sending has finished when it is returned."""

    success: bool = True
    skipped: bool = False
    reason: str | None = None
    plan: RunResponse | None = None
    execution: ExecutionResponse | None = None


class ResumeResponse(BaseModel):
    success: bool = True
    batch_id: uuid.UUID
    sequence: int


class SettingsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    is_enabled: bool
    selected_recipient_ids: list[str]
    updated_by: uuid.UUID | None = None
    updated_at: datetime | None = None


class SettingsUpdate(BaseModel):
    """Partial update; at least one field must be present."""

    is_enabled: bool | None = None
    selected_recipient_ids: list[uuid.UUID] | None = None


class RecipientCreate(BaseModel):
    """``email`` may hold several addresses separated by ``;`` or ``,``."""

    email: str
    name: str | None = None


class RecipientUpdate(BaseModel):
    is_active: bool | None = None
    name: str | None = None


class RecipientResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str
    name: str | None = None
    is_active: bool
    created_at: datetime


class CountResponse(BaseModel):
    success: bool = True
    count: int


class DeletedResponse(BaseModel):
    success: bool = True
    id: uuid.UUID


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int


class BatchSummary(BaseModel):
    id: uuid.UUID
    sequence: int
    date_from: date
    date_to: date
    trigger: TriggerKind


class ItemHistory(BaseModel):
    id: uuid.UUID
    sequence: int
    status: ItemStatus
    recipient_email: str
    sent_at: datetime | None = None
    error: str | None = None
    entries_count: int
    entry_numbers: list[int] = Field(default_factory=list)
    include_certificates: bool
    filename: str
    batch: BatchSummary | None = None


class ItemHistoryPage(BaseModel):
    items: list[ItemHistory]
    pagination: Pagination


class BatchHistory(BatchSummary):
    status: BatchStatus
    initiated_by: uuid.UUID | None = None
    created_at: datetime
    total_entries: int
    recipients_count: int
    items: list[ItemHistory]


class BatchHistoryPage(BaseModel):
    items: list[BatchHistory]
    pagination: Pagination
