"""Merge per-entry PDFs into one package per batch item.

Page order is the contract: pages appear entry by entry in exactly the order
of ``entry_ids``, each entry's certificate (when requested and available)
directly after the entry's own pages.
"""

import asyncio
import io
import uuid
from collections.abc import Sequence
from pathlib import Path

from pypdf import PdfReader, PdfWriter
from pypdf.errors import PdfReadError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from autosend.core.errors import ComposeError, StorageError
from autosend.core.logging import get_logger
from autosend.models.fuel_entry import FuelEntry
from autosend.services.fuel_entries import load_entries_in_order
from autosend.services.renderer import RecordRenderer

logger = get_logger(__name__)


def merge_pdfs(documents: Sequence[bytes]) -> bytes:
    """Concatenate PDF documents page by page, in the given order."""
    writer = PdfWriter()
    try:
        for document in documents:
            reader = PdfReader(io.BytesIO(document))
            for page in reader.pages:
                writer.add_page(page)
    except (PdfReadError, ValueError, KeyError) as e:
        raise ComposeError(f"Could not merge PDF documents: {e}") from e

    output = io.BytesIO()
    writer.write(output)
    return output.getvalue()


class DocumentComposer:
    """Builds the merged PDF for an ordered list of fuel entry ids."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        renderer: RecordRenderer,
        certificate_dir: Path | str,
    ) -> None:
        self.session_factory = session_factory
        self.renderer = renderer
        self.certificate_dir = Path(certificate_dir)

    async def load_entries(self, entry_ids: Sequence[str | uuid.UUID]) -> list[FuelEntry]:
        """Entries in ``entry_ids`` order; ids that no longer exist are dropped."""
        try:
            async with self.session_factory() as db:
                return await load_entries_in_order(db, entry_ids)
        except SQLAlchemyError as e:
            raise StorageError(f"Could not load fuel entries: {e}") from e

    def _certificate_for(self, entry: FuelEntry) -> bytes | None:
        if not entry.certificate_path:
            return None

        if not entry.certificate_path.lower().endswith(".pdf"):
            logger.bind(
                entry=entry.registration_number, path=entry.certificate_path
            ).warning("certificate_not_pdf")
            return None

        path = (self.certificate_dir / entry.certificate_path.lstrip("/")).resolve()
        if not path.is_relative_to(self.certificate_dir.resolve()) or not path.is_file():
            logger.bind(
                entry=entry.registration_number, path=entry.certificate_path
            ).warning("certificate_missing")
            return None

        return path.read_bytes()

    async def compose_entries(
        self, entries: Sequence[FuelEntry], include_certificates: bool
    ) -> bytes:
        """Render and merge already-loaded entries."""
        if not entries:
            raise ComposeError("None of the package's fuel entries exist anymore")

        documents: list[bytes] = []
        for entry in entries:
            documents.append(await self.renderer.render(entry))
            if include_certificates:
                certificate = await asyncio.to_thread(self._certificate_for, entry)
                if certificate is not None:
                    documents.append(certificate)

        return await asyncio.to_thread(merge_pdfs, documents)

    async def compose(
        self, entry_ids: Sequence[str | uuid.UUID], include_certificates: bool
    ) -> bytes:
        """
        Build one PDF containing every resolvable entry of ``entry_ids``.

        Raises:
            ComposeError: If rendering or merging fails, or nothing resolves.
            StorageError: If the entries cannot be loaded.
        """
        entries = await self.load_entries(entry_ids)
        artifact = await self.compose_entries(entries, include_certificates)
        logger.bind(
            requested=len(entry_ids),
            composed=len(entries),
            size=len(artifact),
        ).debug("package_composed")
        return artifact
