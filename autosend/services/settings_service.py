"""Singleton auto-send settings.

The row is created lazily on first read. Updates are partial UPDATEs of the
provided columns only; concurrent admins get last-write-wins per column.
"""

import uuid
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from autosend.core.errors import ValidationError
from autosend.core.logging import get_logger
from autosend.models.settings import SETTINGS_ID, AutoSendSettings
from autosend.services.batch_repository import insert_ignoring_conflicts

logger = get_logger(__name__)


async def get_or_create_settings(db: AsyncSession) -> AutoSendSettings:
    """Return the settings row, creating it with defaults if absent."""
    stmt = select(AutoSendSettings).where(AutoSendSettings.id == SETTINGS_ID)
    settings = (await db.execute(stmt)).scalar_one_or_none()
    if settings is not None:
        return settings

    # Two first readers may race here; the loser's insert is a no-op
    await insert_ignoring_conflicts(
        db,
        AutoSendSettings,
        [{"id": SETTINGS_ID, "is_enabled": True, "selected_recipient_ids": []}],
        ["id"],
    )
    await db.flush()
    logger.info("auto_send_settings_created")
    return (await db.execute(stmt)).scalar_one()


async def update_settings(
    db: AsyncSession,
    *,
    is_enabled: bool | None = None,
    selected_recipient_ids: list[uuid.UUID] | None = None,
    updated_by: uuid.UUID | None = None,
) -> AutoSendSettings:
    """
    Apply a partial settings update.

    Raises:
        ValidationError: If neither field is provided.
    """
    if is_enabled is None and selected_recipient_ids is None:
        raise ValidationError("Invalid payload: provide is_enabled or selected_recipient_ids")

    await get_or_create_settings(db)

    values: dict[str, Any] = {"updated_by": updated_by}
    if is_enabled is not None:
        values["is_enabled"] = is_enabled
    if selected_recipient_ids is not None:
        # Keep first occurrence order, drop repeats
        values["selected_recipient_ids"] = list(
            dict.fromkeys(str(recipient_id) for recipient_id in selected_recipient_ids)
        )

    await db.execute(
        update(AutoSendSettings)
        .where(AutoSendSettings.id == SETTINGS_ID)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    await db.flush()

    logger.bind(
        updated_by=str(updated_by) if updated_by else None,
        fields=sorted(k for k in values if k != "updated_by"),
    ).info("auto_send_settings_updated")

    result = await db.execute(
        select(AutoSendSettings)
        .where(AutoSendSettings.id == SETTINGS_ID)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


def selected_recipient_uuids(settings: AutoSendSettings) -> list[uuid.UUID]:
    """Settings recipient ids as UUIDs, skipping malformed values."""
    ids: list[uuid.UUID] = []
    for raw in settings.selected_recipient_ids or []:
        try:
            ids.append(uuid.UUID(str(raw)))
        except ValueError:
            logger.bind(value=raw).warning("invalid_selected_recipient_id")
    return ids
