"""Auto-send recipient management.

Addresses arrive as free text ("a@x.ba; b@y.ba, c@z.ba"), are lower-cased
and de-duplicated, and are inserted with skip-duplicate semantics: an
address that already exists is not an error, it is simply not counted.
"""

import re
import uuid

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from autosend.core.datetime_utils import utc_now
from autosend.core.errors import NotFoundError, ValidationError
from autosend.core.logging import get_logger
from autosend.models.recipient import Recipient
from autosend.services.batch_repository import insert_ignoring_conflicts

logger = get_logger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
SEPARATORS = re.compile(r"[;,]")


def parse_emails(raw: str) -> list[str]:
    """Split on ``;`` or ``,``, normalise to lower case, drop blanks and repeats."""
    emails = (part.strip().lower() for part in SEPARATORS.split(raw or ""))
    return list(dict.fromkeys(email for email in emails if email))


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email))


async def list_recipients(db: AsyncSession) -> list[Recipient]:
    result = await db.execute(select(Recipient).order_by(Recipient.created_at.desc()))
    return list(result.scalars().all())


async def create_recipients(
    db: AsyncSession,
    raw_email: str,
    name: str | None = None,
    created_by: uuid.UUID | None = None,
) -> int:
    """
    Add every address in ``raw_email``; returns how many rows were inserted.

    Raises:
        ValidationError: If no address is given or any address is malformed.
    """
    emails = parse_emails(raw_email)
    if not emails:
        raise ValidationError("Email address is required")

    invalid = [email for email in emails if not is_valid_email(email)]
    if invalid:
        raise ValidationError(f"Invalid email address: {', '.join(invalid)}")

    clean_name = name.strip() if name and name.strip() else None
    now = utc_now()
    rows = [
        {
            "id": uuid.uuid4(),
            "email": email,
            "name": clean_name,
            "is_active": True,
            "created_by": created_by,
            "created_at": now,
        }
        for email in emails
    ]
    result = await insert_ignoring_conflicts(
        db, Recipient, rows, ["email"], returning=Recipient.id
    )
    inserted = len(result.all())
    await db.flush()

    logger.bind(requested=len(emails), inserted=inserted).info("auto_send_recipients_created")
    return inserted


async def get_recipient(db: AsyncSession, recipient_id: uuid.UUID) -> Recipient:
    recipient = await db.get(Recipient, recipient_id)
    if recipient is None:
        raise NotFoundError("Recipient not found")
    return recipient


async def update_recipient(
    db: AsyncSession,
    recipient_id: uuid.UUID,
    *,
    is_active: bool | None = None,
    name: str | None = None,
    clear_name: bool = False,
) -> Recipient:
    """Toggle a recipient or rename it; ``clear_name`` removes the name."""
    recipient = await get_recipient(db, recipient_id)
    if is_active is not None:
        recipient.is_active = is_active
    if clear_name:
        recipient.name = None
    elif name is not None:
        recipient.name = name.strip() or None
    await db.flush()
    return recipient


async def delete_recipient(db: AsyncSession, recipient_id: uuid.UUID) -> uuid.UUID:
    result = await db.execute(delete(Recipient).where(Recipient.id == recipient_id))
    if result.rowcount == 0:
        raise NotFoundError("Recipient not found")
    logger.bind(recipient_id=str(recipient_id)).info("auto_send_recipient_deleted")
    return recipient_id


async def load_active_recipients(
    db: AsyncSession, recipient_ids: list[uuid.UUID]
) -> list[Recipient]:
    """Active recipients among ``recipient_ids``, ordered by email."""
    if not recipient_ids:
        return []
    result = await db.execute(
        select(Recipient)
        .where(Recipient.id.in_(recipient_ids), Recipient.is_active == True)  # noqa: E712
        .order_by(Recipient.email)
    )
    return list(result.scalars().all())
