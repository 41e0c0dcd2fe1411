from pathlib import Path
from typing import Optional
import re
import uuid

from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool
import structlog

from ..core.config import settings

logger = structlog.get_logger()

SAFE_NAME = re.compile(r"[^A-Za-z0-9._-]+")


class FileStorage:
    """Stores uploaded documents and hands back a reference to them."""

    def __init__(self, root: Optional[str] = None, base_url: Optional[str] = None):
        self.root = Path(root or settings.UPLOAD_DIR)
        self.base_url = (base_url or settings.UPLOAD_BASE_URL).rstrip("/")

    async def upload(self, file: UploadFile, folder: str) -> str:
        """
        Store a file under ``folder``.

        Args:
            file: The uploaded file
            folder: Destination folder, relative to the storage root

        Returns:
            str: Public reference of the stored file
        """
        filename = SAFE_NAME.sub("_", Path(file.filename or "upload").name)
        stored_name = f"{uuid.uuid4().hex}-{filename}"
        folder = folder.strip("/")
        destination = self.root / folder / stored_name

        content = await file.read()
        await run_in_threadpool(self._write, destination, content)

        logger.info("File stored", folder=folder, stored_name=stored_name, size=len(content))
        return f"{self.base_url}/{folder}/{stored_name}"

    @staticmethod
    def _write(destination: Path, content: bytes):
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(content)


def get_file_storage() -> FileStorage:
    """File storage dependency for FastAPI."""
    return FileStorage()
