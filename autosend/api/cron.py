"""Scheduled trigger for external cron callers."""

from fastapi import APIRouter, Depends, Header

from autosend.api.auto_send import run_response
from autosend.core.logging import get_logger
from autosend.core.security import verify_cron_token
from autosend.dependencies import AppSettings, Config, Runner
from autosend.schemas.auto_send import CronRunRequest, CronRunResponse, ExecutionResponse

logger = get_logger(__name__)


async def require_cron_secret(
    settings: AppSettings,
    authorization: str | None = Header(default=None),
) -> None:
    """Bearer CRON_SECRET check, resolved before the body is looked at."""
    verify_cron_token(authorization, settings.cron_secret)


router = APIRouter(dependencies=[Depends(require_cron_secret)])


@router.post("/auto-send", response_model=CronRunResponse)
async def cron_auto_send(
    config: Config,
    runner: Runner,
    request: CronRunRequest | None = None,
) -> CronRunResponse:
    """
    Run the daily auto-send and wait for it to finish.

    When auto-send is paused the call succeeds without planning anything.
    """
    request = request or CronRunRequest()
    include_certificates = request.include_certificates
    if include_certificates is None:
        include_certificates = config.auto_send.include_certificates_default

    result = await runner.trigger_scheduled(
        date_from=request.date_from,
        date_to=request.date_to,
        include_certificates=include_certificates,
    )
    if result.skipped:
        return CronRunResponse(skipped=True, reason=result.reason)

    plan = run_response(result.plan)
    execution = result.execution
    logger.bind(
        batch_id=str(plan.batch_id),
        sent=execution.sent if execution else 0,
        failed=execution.failed if execution else 0,
    ).info("auto_send_cron_completed")

    return CronRunResponse(
        plan=plan,
        execution=ExecutionResponse(
            batch_id=execution.batch_id,
            sequence=execution.sequence,
            sent=execution.sent,
            failed=execution.failed,
            pending=execution.pending,
            status=execution.status,
        )
        if execution
        else None,
    )
