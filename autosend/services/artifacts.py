"""Local store of composed packages, one file per batch item.

The executor stores the exact bytes it emails; downloads re-serve them, so a
package downloaded later is byte-identical to the one that was sent. An
artifact is written once: the first stored package for an item wins and
every later writer gets those bytes back.
"""

import asyncio
import os
import tempfile
import uuid
from pathlib import Path

from autosend.core.logging import get_logger

logger = get_logger(__name__)


class ArtifactStore:
    """Filesystem-backed, write-once artifact storage keyed by batch item id."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def path_for(self, item_id: uuid.UUID) -> Path:
        return self.root / f"{item_id}.pdf"

    def _write_once(self, item_id: uuid.UUID, data: bytes) -> tuple[bytes, bool]:
        self.root.mkdir(parents=True, exist_ok=True)
        target = self.path_for(item_id)
        fd, tmp_name = tempfile.mkstemp(dir=self.root, suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as tmp:
                tmp.write(data)
            # link() never replaces an existing name
            os.link(tmp_name, target)
            created = True
        except FileExistsError:
            created = False
        finally:
            Path(tmp_name).unlink(missing_ok=True)

        if created:
            return data, True
        return target.read_bytes(), False

    def _read(self, item_id: uuid.UUID) -> bytes | None:
        path = self.path_for(item_id)
        if not path.is_file():
            return None
        return path.read_bytes()

    async def save(self, item_id: uuid.UUID, data: bytes) -> bytes:
        """
        Store ``data`` unless the item already has an artifact.

        Returns:
            The bytes now stored for the item: ``data`` when this call
            created the artifact, otherwise the earlier artifact.
        """
        stored, created = await asyncio.to_thread(self._write_once, item_id, data)
        log = logger.bind(item_id=str(item_id), size=len(stored))
        if created:
            log.debug("artifact_saved")
        else:
            log.info("artifact_already_stored")
        return stored

    async def load(self, item_id: uuid.UUID) -> bytes | None:
        return await asyncio.to_thread(self._read, item_id)
