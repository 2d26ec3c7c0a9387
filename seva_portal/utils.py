# seva_portal/utils.py
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from .config import settings
from .models import FileValidationResult

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@dataclass
class UploadCandidate:
    """An uploaded file read into memory, as checked by validate_files."""
    filename: str
    content_type: str
    size: int
    content: bytes = b""


def now_iso() -> str:
    """UTC timestamp in the same shape as JavaScript's toISOString()."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def short_id(doc_id: str) -> str:
    """Last six characters, upper-cased, used in messages shown to users."""
    return (doc_id or "")[-6:].upper()


def is_valid_mobile(mobile: str) -> bool:
    return bool(mobile) and mobile.isdigit() and len(mobile) == 10


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email or ""))


def _allowed_mime_types(allowed_types: Optional[Sequence[str]]) -> List[str]:
    if not allowed_types:
        return list(settings.ALLOWED_UPLOAD_TYPES)
    mime_types = []
    for ext in allowed_types:
        ext = ext.lower()
        if ext in ("jpg", "jpeg"):
            mime_types.extend(["image/jpeg", "image/jpg"])
        elif ext == "pdf":
            mime_types.append("application/pdf")
        else:
            mime_types.append(f"image/{ext}")
    return mime_types


def validate_files(files: Iterable[Any], allowed_types: Optional[Sequence[str]] = None) -> FileValidationResult:
    """
    Check declared type and size of each file, stopping at the first bad one.
    :param files: objects exposing filename, content_type and size
    :param allowed_types: optional narrower list such as ['pdf', 'png', 'jpg']
    """
    valid_types = _allowed_mime_types(allowed_types)
    friendly = ", ".join(allowed_types if allowed_types else ["PNG", "JPG", "PDF"]).upper()

    for file in files:
        content_type = (getattr(file, "content_type", None) or "").lower()
        if content_type not in valid_types:
            return FileValidationResult(
                is_valid=False,
                message=f"Invalid file type: {file.filename}. Only {friendly} are allowed."
            )
        if (getattr(file, "size", None) or 0) > settings.MAX_UPLOAD_SIZE:
            return FileValidationResult(
                is_valid=False,
                message=f"File is too large: {file.filename}. Maximum size is 1MB."
            )
    return FileValidationResult(is_valid=True)


def paginate(items: List[Any], page: int = 1, page_size: int = 20) -> Tuple[List[Any], int]:
    """Slice a list for one page; returns (page_items, total)."""
    total = len(items)
    page = max(page, 1)
    page_size = max(page_size, 1)
    start = (page - 1) * page_size
    return items[start:start + page_size], total


def normalize_whatsapp_number(to: str, country_code: Optional[str] = None) -> str:
    """E.164 with the whatsapp: prefix, e.g. '9800000000' -> 'whatsapp:+919800000000'."""
    to = (to or "").strip()
    if to.startswith("whatsapp:"):
        return to
    if not to.startswith("+"):
        digits = re.sub(r"\D", "", to)
        if len(digits) == 10:
            digits = f"{country_code or settings.WHATSAPP_DEFAULT_COUNTRY_CODE}{digits}"
        to = f"+{digits}"
    return f"whatsapp:{to}"
