"""
File Upload Guardrails

Checks applied to certificate attachments before anything reaches the blob
store: PDF only (extension, declared MIME type and magic bytes must agree) and
a configurable size ceiling.
"""

import os
import re
from typing import Optional, Set


ALLOWED_CERTIFICATE_EXTENSIONS: Set[str] = {".pdf"}
ALLOWED_CERTIFICATE_MIMETYPES: Set[str] = {"application/pdf"}
PDF_MAGIC = b"%PDF"

# Characters that are safe in stored object names
SAFE_FILENAME_PATTERN = re.compile(r"[^a-zA-Z0-9._-]")


class FileRejectedError(Exception):
    """Raised when an uploaded file fails a guardrail check."""

    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def get_file_extension(filename: str) -> str:
    """Extract lowercase file extension from filename."""
    if not filename or "." not in filename:
        return ""
    return "." + filename.rsplit(".", 1)[-1].lower()


def sanitize_filename(filename: Optional[str]) -> str:
    """
    Sanitize a filename to prevent path traversal and injection attacks.

    - Removes path components (directory traversal)
    - Replaces unsafe characters
    - Limits length
    - Preserves extension
    """
    if not filename:
        return "unnamed"

    # Browsers on Windows may send the full client path
    filename = os.path.basename(filename.replace("\\", "/"))
    filename = filename.replace("\x00", "").replace("\n", "").replace("\r", "")

    name, ext = os.path.splitext(filename)
    name = SAFE_FILENAME_PATTERN.sub("_", name).strip("_.")
    if not name:
        name = "file"
    name = name[:200]

    ext = SAFE_FILENAME_PATTERN.sub("", ext.lower())
    if ext and not ext.startswith("."):
        ext = "." + ext

    return name + ext


def is_pdf_file(filename: Optional[str], content_type: Optional[str], data: bytes) -> bool:
    """
    Check if an uploaded file is a PDF.

    Checks extension, MIME type and the leading magic bytes.
    """
    if get_file_extension(filename or "") not in ALLOWED_CERTIFICATE_EXTENSIONS:
        return False
    if (content_type or "").split(";")[0].strip().lower() not in ALLOWED_CERTIFICATE_MIMETYPES:
        return False
    return data[:1024].lstrip().startswith(PDF_MAGIC)


def validate_certificate_upload(
    filename: Optional[str],
    content_type: Optional[str],
    data: bytes,
    max_bytes: int,
) -> None:
    """
    Validate a certificate attachment.

    Raises FileRejectedError for empty, oversized or non-PDF files.
    """
    if not data:
        raise FileRejectedError("Uploaded file is empty")

    if len(data) > max_bytes:
        raise FileRejectedError(
            f"File too large ({len(data)} bytes). Maximum is {max_bytes // (1024 * 1024)} MB.",
            status_code=413,
        )

    if not is_pdf_file(filename, content_type, data):
        raise FileRejectedError(
            "Invalid file type. Only PDF certificates (application/pdf) are allowed.",
            status_code=415,
        )
