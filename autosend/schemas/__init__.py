from autosend.schemas.auto_send import (
    BatchHistory,
    BatchHistoryPage,
    BatchSummary,
    CountResponse,
    CronRunRequest,
    CronRunResponse,
    DeletedResponse,
    ExecutionResponse,
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

__all__ = [
    "BatchHistory",
    "BatchHistoryPage",
    "BatchSummary",
    "CountResponse",
    "CronRunRequest",
    "CronRunResponse",
    "DeletedResponse",
    "ExecutionResponse",
    "ItemHistory",
    "ItemHistoryPage",
    "ManualRunRequest",
    "Pagination",
    "RecipientCreate",
    "RecipientResponse",
    "RecipientUpdate",
    "ResumeResponse",
    "RunResponse",
    "SettingsResponse",
    "SettingsUpdate",
]
