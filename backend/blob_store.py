# blob_store.py — Local disk storage for card attachments, served under /uploads
import os
import uuid
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool

from exceptions import ValidationError

logger = logging.getLogger("taskboard.blobs")

STORAGE_ROOT = os.getenv("ATTACHMENT_STORAGE_ROOT", "./uploads")
MAX_ATTACHMENT_BYTES = int(os.getenv("MAX_ATTACHMENT_BYTES", str(10 * 1024 * 1024)))
URL_PREFIX = "/uploads"


@dataclass
class StoredBlob:
    name: str
    url: str
    mime_type: Optional[str]
    size: int


def _file_error(msg: str) -> ValidationError:
    return ValidationError(msg, errors=[{"loc": ["body", "file"], "msg": msg, "type": "value_error"}])


def _write(directory: str, name: str, data: bytes):
    os.makedirs(directory, exist_ok=True)
    with open(os.path.join(directory, name), "wb") as f:
        f.write(data)


async def save_attachment(upload: UploadFile) -> StoredBlob:
    """Write the upload as attachments/attachment-<uuid><ext> under the storage root"""
    data = await upload.read(MAX_ATTACHMENT_BYTES + 1)
    if not data:
        raise _file_error("No file uploaded")
    if len(data) > MAX_ATTACHMENT_BYTES:
        raise _file_error(f"File exceeds the {MAX_ATTACHMENT_BYTES} byte limit")

    ext = os.path.splitext(upload.filename or "")[1]
    stored_name = f"attachment-{uuid.uuid4()}{ext}"
    await run_in_threadpool(_write, os.path.join(STORAGE_ROOT, "attachments"), stored_name, data)

    logger.info(f"Stored attachment {stored_name} ({len(data)} bytes)")
    return StoredBlob(
        name=upload.filename or stored_name,
        url=f"{URL_PREFIX}/attachments/{stored_name}",
        mime_type=upload.content_type,
        size=len(data),
    )
