"""SMTP delivery of composed packages."""

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from email.message import EmailMessage
from pathlib import Path
from typing import Protocol

import aiosmtplib
from jinja2 import Environment, FileSystemLoader

from autosend.config import DispatchConfig, Settings, get_config, get_settings
from autosend.core.datetime_utils import format_date_label, to_local
from autosend.core.errors import DispatchError
from autosend.core.logging import get_logger
from autosend.core.retry import RetryConfig, retry_with_backoff
from autosend.models.fuel_entry import FuelEntry

logger = get_logger(__name__)

template_dir = Path(__file__).parent.parent / "emails" / "templates"
jinja_env = Environment(loader=FileSystemLoader(template_dir), autoescape=True)

HEADER_CID = "report-header@autosend.local"


def is_transient_smtp_error(exc: Exception) -> bool:
    """False for rejections a retry cannot fix: 5xx replies and unsupported features."""
    if isinstance(exc, aiosmtplib.SMTPRecipientsRefused):
        return any(refused.code < 500 for refused in exc.recipients)
    if isinstance(exc, aiosmtplib.SMTPResponseException):
        return exc.code < 500
    return not isinstance(exc, aiosmtplib.SMTPNotSupported)


@dataclass(frozen=True)
class Attachment:
    filename: str
    content: bytes
    content_type: str = "application/pdf"


class DispatchClient(Protocol):
    """Delivers one email with one attachment."""

    @property
    def header_cid(self) -> str | None:
        """Content-ID the HTML body may use for an inline header image."""
        ...

    async def send(self, to: str, subject: str, html: str, attachment: Attachment) -> None:
        """Deliver or raise DispatchError."""
        ...


def render_email_body(
    entries: Sequence[FuelEntry],
    *,
    date_from_label: str,
    date_to_label: str,
    batch_sequence: int,
    item_sequence: int,
    timezone: str,
    header_cid: str | None = None,
) -> str:
    """Render the HTML body listing the package's entries in package order."""
    rows = [
        {
            "registration_number": entry.registration_number,
            "entry_date": format_date_label(to_local(entry.entry_date, timezone).date()),
            "warehouse": f"{entry.warehouse_code} - {entry.warehouse_name}",
            "product_name": entry.product_name,
            "quantity": entry.quantity,
        }
        for entry in entries
    ]
    template = jinja_env.get_template("fuel_entries.html")
    return template.render(
        rows=rows,
        total_quantity=sum(entry.quantity for entry in entries),
        date_from_label=date_from_label,
        date_to_label=date_to_label,
        batch_sequence=batch_sequence,
        item_sequence=item_sequence,
        header_cid=header_cid,
    )


class SmtpDispatchClient:
    """Sends packages through an SMTP relay with aiosmtplib, retrying transient failures."""

    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        user: str = "",
        password: str = "",
        secure: bool | None = None,
        header_image_path: Path | str | None = None,
        dispatch: DispatchConfig | None = None,
    ) -> None:
        self.host = host
        self.port = port
        self.sender = sender
        self.user = user
        self.password = password
        # Implicit TLS on 465, STARTTLS negotiated by aiosmtplib elsewhere
        self.use_tls = secure if secure is not None else port == 465
        self.header_image_path = Path(header_image_path) if header_image_path else None
        self.dispatch = dispatch or DispatchConfig({})

    @classmethod
    def from_settings(cls, settings: Settings, dispatch: DispatchConfig) -> "SmtpDispatchClient":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            sender=settings.smtp_from,
            user=settings.smtp_user,
            password=settings.smtp_password,
            secure=settings.smtp_secure,
            header_image_path=settings.header_image_path,
            dispatch=dispatch,
        )

    @property
    def header_cid(self) -> str | None:
        """Content-ID for the inline header image, or None when there is no image."""
        if self.header_image_path is None or not self.header_image_path.is_file():
            return None
        return HEADER_CID

    def build_message(
        self, to: str, subject: str, html: str, attachment: Attachment
    ) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content("This message contains an HTML report and a PDF attachment.")
        msg.add_alternative(html, subtype="html")

        if self.header_cid is not None:
            html_part = msg.get_payload()[1]
            html_part.add_related(
                self.header_image_path.read_bytes(),
                maintype="image",
                subtype="png",
                cid=f"<{self.header_cid}>",
            )

        maintype, subtype = attachment.content_type.split("/", 1)
        msg.add_attachment(
            attachment.content,
            maintype=maintype,
            subtype=subtype,
            filename=attachment.filename,
        )
        return msg

    async def _deliver(self, msg: EmailMessage) -> None:
        await aiosmtplib.send(
            msg,
            hostname=self.host,
            port=self.port,
            username=self.user or None,
            password=self.password or None,
            use_tls=self.use_tls,
            timeout=self.dispatch.timeout_seconds,
        )

    async def send(self, to: str, subject: str, html: str, attachment: Attachment) -> None:
        """
        Deliver one email, retrying transient SMTP and network failures.

        Raises:
            DispatchError: If SMTP is not configured or delivery keeps failing.
        """
        if not self.host or not self.port or not self.sender:
            raise DispatchError("Missing SMTP configuration")

        msg = await asyncio.to_thread(self.build_message, to, subject, html, attachment)
        config = RetryConfig(
            max_attempts=self.dispatch.max_attempts,
            backoff_base=self.dispatch.backoff_base,
            backoff_max=self.dispatch.backoff_max,
            retryable_exceptions=(aiosmtplib.SMTPException, OSError, TimeoutError),
            retry_if=is_transient_smtp_error,
        )

        try:
            await retry_with_backoff(lambda: self._deliver(msg), config, f"smtp:{to}")
        except (aiosmtplib.SMTPException, OSError, TimeoutError) as e:
            raise DispatchError(f"Email to {to} failed: {e}") from e

        logger.bind(to=to, attachment=attachment.filename, size=len(attachment.content)).info(
            "auto_send_email_sent"
        )


def get_dispatch_client() -> SmtpDispatchClient:
    """Build the SMTP client from settings and config.yml."""
    return SmtpDispatchClient.from_settings(get_settings(), get_config().auto_send.dispatch)
