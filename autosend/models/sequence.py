from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from autosend.models.base import Base

BATCH_SEQUENCE = "auto_send_batch"
REGISTRATION_SEQUENCE = "fuel_entry_registration"


class SequenceCounter(Base):
    """Named durable counter; incremented with a single atomic UPDATE."""

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[int] = mapped_column(BigInteger, default=0)

    def __repr__(self) -> str:
        return f"<SequenceCounter {self.name}={self.value}>"
