import uuid

from sqlalchemy import Boolean, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from autosend.models.base import Base, TimestampMixin


class Recipient(Base, TimestampMixin):
    """An address that auto-send packages can be delivered to."""

    __tablename__ = "auto_send_recipients"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)  # stored lower-cased
    name: Mapped[str | None] = mapped_column(String(255), default=None)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, default=None)

    def __repr__(self) -> str:
        return f"<Recipient {self.email}>"
