import uuid
from datetime import datetime

from sqlalchemy import Boolean, Float, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from autosend.models.base import Base, TimestampMixin


class FuelEntry(Base, TimestampMixin):
    """A registered fuel delivery; one rendered statement per entry."""

    __tablename__ = "fuel_entries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    registration_number: Mapped[int] = mapped_column(Integer, unique=True, index=True)
    entry_date: Mapped[datetime] = mapped_column(index=True)  # naive UTC
    product_name: Mapped[str] = mapped_column(String(255))
    quantity: Mapped[float] = mapped_column(Float)  # litres
    warehouse_code: Mapped[str] = mapped_column(String(50))
    warehouse_name: Mapped[str] = mapped_column(String(255))
    certificate_path: Mapped[str | None] = mapped_column(String(512), default=None)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    def __repr__(self) -> str:
        return f"<FuelEntry #{self.registration_number}>"
