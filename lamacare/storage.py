"""Profile images in Supabase Storage, addressed through its REST API."""
import logging
import mimetypes
import os
import time

import httpx
from flask import current_app
from werkzeug.utils import secure_filename

from .errors import BadRequest, InternalError

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}


def _settings():
    url = current_app.config.get("SUPABASE_URL")
    key = current_app.config.get("SUPABASE_KEY")
    if not url or not key:
        raise InternalError("blob storage is not configured")
    return url.rstrip("/"), key, current_app.config["SUPABASE_BUCKET"]


def object_path(user_id: str, filename: str) -> str:
    filename = secure_filename(filename or "")
    _, ext = os.path.splitext(filename)
    ext = ext.lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise BadRequest("Images only! (jpg, jpeg, png, gif, webp)")
    return f"users/{user_id}/{int(time.time())}{ext}"


def upload_profile_image(user_id: str, file_storage) -> str:
    """Upload a werkzeug ``FileStorage`` and return its public URL."""
    path = object_path(user_id, file_storage.filename)
    base, key, bucket = _settings()
    content_type = (
        file_storage.mimetype
        or mimetypes.guess_type(path)[0]
        or "application/octet-stream"
    )
    try:
        response = httpx.post(
            f"{base}/storage/v1/object/{bucket}/{path}",
            content=file_storage.read(),
            headers={
                "Authorization": f"Bearer {key}",
                "apikey": key,
                "Content-Type": content_type,
                "x-upsert": "true",
            },
            timeout=current_app.config.get("REQUEST_TIMEOUT_SECONDS", 30),
        )
        response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.error("profile upload for %s failed: %s", user_id, exc)
        raise InternalError("cannot upload file") from exc

    logger.info("uploaded profile image %s", path)
    return f"{base}/storage/v1/object/public/{bucket}/{path}"
