"""Upload handler: size-check and decode a user-selected image."""

from __future__ import annotations

import base64
import io
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi.concurrency import run_in_threadpool
from PIL import Image, UnidentifiedImageError

from ecoguard.shared.errors import DecodeError, FileTooLarge


MAX_UPLOAD_BYTES = 2 * 1024 * 1024
GENERIC_MIME_TYPES = {"", "application/octet-stream", "binary/octet-stream"}

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadedImage:
    payload: bytes
    preview_data_url: str
    mime_type: str
    size_bytes: int
    filename: str = ""

    def __repr__(self) -> str:
        return (
            f"UploadedImage(filename={self.filename!r}, mime_type={self.mime_type!r}, "
            f"size_bytes={self.size_bytes})"
        )

    def base64_payload(self) -> str:
        return base64.b64encode(self.payload).decode("ascii")


def check_size(size_bytes: int) -> None:
    if size_bytes > MAX_UPLOAD_BYTES:
        raise FileTooLarge()


def _detect_mime_type(payload: bytes) -> str:
    try:
        img = Image.open(io.BytesIO(payload))
        # verify() walks the file without decoding pixels; catches truncated data.
        img.verify()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError) as exc:
        raise DecodeError() from exc

    mime = Image.MIME.get(str(img.format or "").upper())
    if not mime:
        raise DecodeError()
    return mime


def load_image_bytes(payload: bytes, mime_type: Optional[str] = None, filename: str = "") -> UploadedImage:
    """Validate raw upload bytes and build the in-memory image + data-URI preview."""

    check_size(len(payload))
    if not payload:
        raise DecodeError()

    declared = str(mime_type or "").split(";")[0].strip().lower()
    if declared not in GENERIC_MIME_TYPES and not declared.startswith("image/"):
        raise DecodeError("Unsupported file type. Please upload an image.")

    detected = _detect_mime_type(payload)
    mime = declared if declared.startswith("image/") else detected

    b64 = base64.b64encode(payload).decode("ascii")
    return UploadedImage(
        payload=payload,
        preview_data_url=f"data:{mime};base64,{b64}",
        mime_type=mime,
        size_bytes=len(payload),
        filename=filename,
    )


async def validate_and_load(upload) -> UploadedImage:
    """Read an uploaded file (FastAPI `UploadFile` or anything with the same
    `filename` / `content_type` / async `read()` surface) into an UploadedImage.

    Raises FileTooLarge before decoding anything when the file is over 2 MiB,
    and DecodeError when the bytes are not an image Pillow can identify.
    """

    filename = str(getattr(upload, "filename", "") or "")
    content_type = getattr(upload, "content_type", None)
    try:
        # One byte past the cap is enough to know it is too large.
        payload = await upload.read(MAX_UPLOAD_BYTES + 1)
    except Exception as exc:  # noqa: BLE001 - client stream failures
        raise DecodeError() from exc

    if len(payload) > MAX_UPLOAD_BYTES:
        LOGGER.warning("Rejected upload %r: larger than %d bytes", filename, MAX_UPLOAD_BYTES)
        raise FileTooLarge()

    try:
        return await run_in_threadpool(load_image_bytes, payload, content_type, filename)
    except DecodeError:
        LOGGER.warning("Rejected upload %r: not a readable image (%s)", filename, content_type)
        raise
