"""Per-entry PDF rendering.

Rendering one fuel entry into its statement PDF is owned by the web
application's export endpoint; the engine only fetches the result.
"""

from typing import Protocol

import httpx

from autosend.config import get_config, get_settings
from autosend.core.errors import ComposeError
from autosend.core.logging import get_logger
from autosend.models.fuel_entry import FuelEntry

logger = get_logger(__name__)

PDF_MAGIC = b"%PDF"


class RecordRenderer(Protocol):
    """Produces the single-entry PDF for a fuel entry."""

    async def render(self, entry: FuelEntry) -> bytes:
        """Return PDF bytes or raise ComposeError."""
        ...


class HttpRecordRenderer:
    """Fetches entry PDFs from the export endpoint over HTTP."""

    def __init__(
        self,
        url_template: str,
        token: str = "",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url_template = url_template
        self.token = token
        self.timeout = timeout
        self.transport = transport

    def _url_for(self, entry: FuelEntry) -> str:
        return self.url_template.format(
            entry_id=entry.id,
            registration_number=entry.registration_number,
        )

    async def render(self, entry: FuelEntry) -> bytes:
        if not self.url_template:
            raise ComposeError("Record renderer URL is not configured")

        headers = {"Accept": "application/pdf"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        url = self._url_for(entry)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(url, headers=headers)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.bind(url=url, error=str(e)).error("record_render_failed")
            raise ComposeError(
                f"Rendering entry {entry.registration_number} failed: {e}"
            ) from e

        if not response.content.startswith(PDF_MAGIC):
            raise ComposeError(
                f"Renderer returned a non-PDF body for entry {entry.registration_number}"
            )

        return response.content


def get_record_renderer() -> HttpRecordRenderer:
    """Build the renderer from settings and config.yml."""
    settings = get_settings()
    config = get_config()
    return HttpRecordRenderer(
        url_template=settings.renderer_url,
        token=settings.renderer_token,
        timeout=config.auto_send.renderer_timeout,
    )
