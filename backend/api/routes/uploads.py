# backend/api/routes/uploads.py

import logging
import os
import time
import uuid

from fastapi import APIRouter, File, HTTPException, UploadFile

from core.config import settings
from models.models import UploadResponse

logger = logging.getLogger(__name__)

router = APIRouter()

ALLOWED_EXTENSIONS = {"jpeg", "jpg", "png", "gif", "webp", "mp4", "webm", "avi", "mp3", "wav", "ogg", "m4a"}
ALLOWED_MIME_PREFIXES = ("image/", "video/", "audio/")
CHUNK_SIZE = 1024 * 1024


def is_allowed_media(filename: str, content_type: str) -> bool:
    extension = os.path.splitext(filename)[1].lower().lstrip(".")
    return extension in ALLOWED_EXTENSIONS and content_type.startswith(ALLOWED_MIME_PREFIXES)


@router.post("/api/upload", response_model=UploadResponse)
async def upload_file(file: UploadFile = File(None)):
    """
    Store one image, video or audio file for use in a chat message.

    The file is written as <epoch-ms>-<uuid><ext> under UPLOAD_DIR and is
    served back from /uploads. The client then sends a "chat message" event
    carrying the returned fileUrl / fileName.

    Returns:
        UploadResponse: {fileUrl, fileName, fileType}

    Raises:
        HTTPException: 400 if no file or a disallowed type, 413 if larger than MAX_UPLOAD_BYTES
    """
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")

    content_type = file.content_type or ""
    if not is_allowed_media(file.filename, content_type):
        raise HTTPException(status_code=400, detail="Only images, videos, and audio files are allowed!")

    extension = os.path.splitext(file.filename)[1].lower()
    stored_name = f"{int(time.time() * 1000)}-{uuid.uuid4()}{extension}"
    os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
    path = os.path.join(settings.UPLOAD_DIR, stored_name)

    size = 0
    with open(path, "wb") as buffer:
        while chunk := await file.read(CHUNK_SIZE):
            size += len(chunk)
            if size > settings.MAX_UPLOAD_BYTES:
                break
            buffer.write(chunk)

    if size > settings.MAX_UPLOAD_BYTES:
        os.remove(path)
        limit_mb = settings.MAX_UPLOAD_BYTES // (1024 * 1024)
        raise HTTPException(status_code=413, detail=f"File too large (max {limit_mb}MB)")

    logger.info("✓ Stored upload %s (%d bytes, %s)", stored_name, size, content_type)
    return UploadResponse(fileUrl=f"/uploads/{stored_name}", fileName=file.filename, fileType=content_type)
