import logging
import os
import re
import uuid
from typing import Iterable, List, Optional

from .config import settings
from .errors import FileValidationError
from .models import Document
from .utils import UploadCandidate, validate_files

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def safe_filename(filename: str) -> str:
    name = os.path.basename(filename or "") or "file"
    return _UNSAFE_CHARS.sub("_", name)


class LocalFileStorage:
    """Stores uploads under UPLOAD_DIR; files are served back from /uploads."""

    def __init__(self, root: Optional[str] = None, url_prefix: str = "/uploads"):
        self.root = root or settings.UPLOAD_DIR
        self.url_prefix = url_prefix.rstrip("/")
        os.makedirs(self.root, exist_ok=True)

    def save(self, folder: str, filename: str, content: bytes) -> Document:
        stored_name = f"{uuid.uuid4().hex[:8]}_{safe_filename(filename)}"
        folder = "/".join(safe_filename(part) for part in folder.strip("/").split("/") if part)
        directory = os.path.join(self.root, *folder.split("/")) if folder else self.root
        os.makedirs(directory, exist_ok=True)

        path = os.path.join(directory, stored_name)
        with open(path, "wb") as f:
            f.write(content)
        logger.info(f"Stored upload {filename} at {path} ({len(content)} bytes)")

        url = f"{self.url_prefix}/{folder}/{stored_name}" if folder else f"{self.url_prefix}/{stored_name}"
        return Document(name=filename, url=url)

    def save_all(self, folder: str, files: Iterable[UploadCandidate],
                 allowed_types: Optional[List[str]] = None) -> List[Document]:
        """Validate the whole batch first, then write every file."""
        files = list(files)
        validation = validate_files(files, allowed_types)
        if not validation.is_valid:
            raise FileValidationError(validation.message)
        return [self.save(folder, f.filename, f.content) for f in files]

    def path_for(self, url: str) -> str:
        relative = url[len(self.url_prefix):].lstrip("/") if url.startswith(self.url_prefix) else url.lstrip("/")
        return os.path.join(self.root, *relative.split("/"))

    def delete_all(self, documents: Iterable[Document]):
        """Remove stored uploads, e.g. when the write that referenced them failed."""
        for document in documents:
            path = self.path_for(document.url)
            try:
                os.remove(path)
                logger.info(f"Removed upload {document.name} at {path}")
            except FileNotFoundError:
                logger.warning(f"Upload {document.name} already missing at {path}")
