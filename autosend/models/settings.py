"""Singleton auto-send settings row."""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from autosend.models.base import Base

SETTINGS_ID = "default"


class AutoSendSettings(Base):
    """Whether scheduled runs proceed and which recipients they target."""

    __tablename__ = "auto_send_settings"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=SETTINGS_ID)
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    selected_recipient_ids: Mapped[list[str]] = mapped_column(JSON, default=list)
    updated_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, default=None)
    updated_at: Mapped[datetime] = mapped_column(default=func.now(), onupdate=func.now())

    def __repr__(self) -> str:
        return f"<AutoSendSettings enabled={self.is_enabled}>"
