"""Chart and attachment files kept on local disk under ``UPLOAD_DIR``.

Uploading is two-step: an owner asks for a one-shot upload URL, then posts
the file to it.  Download URLs embed the randomised stored name, so they
work as capabilities without a session.
"""
import logging
import mimetypes
import os
import secrets

from flask import current_app
from werkzeug.utils import secure_filename

import models
from authz import Actor, require_owner
from errors import NotAuthorized, NotFound, ValidationFailed
from models import Song, StoredFile, db, utcnow

logger = logging.getLogger(__name__)

UPLOAD_PREFIX = "/storage/upload/"
DOWNLOAD_PREFIX = "/storage/files/"


def _ext(fn):
    return (os.path.splitext(fn or "")[1] or "").lower()


def _mimetype(file_storage) -> str:
    mt = (file_storage.mimetype or "").lower()
    if not mt or mt == "application/octet-stream":
        mt = mimetypes.guess_type(file_storage.filename or "")[0] or mt
    return mt


def _store_file(file_storage) -> tuple[str, str, int]:
    """Return (stored_name, original_name, size_bytes)."""
    orig = (file_storage.filename or "file").strip()
    safe = secure_filename(orig) or "file"
    stem, ext = os.path.splitext(safe)
    ext = ext or _ext(orig) or ""
    stored = f"{stem}.{secrets.token_hex(8)}{ext}"
    path = models.UPLOAD_DIR / stored
    file_storage.save(path)
    return stored, orig, path.stat().st_size


def generate_upload_url(actor: Actor) -> str:
    user_id = require_owner(actor)
    pending = StoredFile(user_id=user_id, upload_token=secrets.token_urlsafe(24), created_at=utcnow())
    db.session.add(pending)
    db.session.commit()
    return UPLOAD_PREFIX + pending.upload_token


def save_upload(token: str, file_storage) -> int:
    """Store the file posted to an upload URL; the URL cannot be reused."""
    record = StoredFile.query.filter_by(upload_token=token).first()
    if record is None or record.is_uploaded:
        raise NotFound("Upload URL is invalid or already used.")
    if not file_storage or not (file_storage.filename or "").strip():
        raise ValidationFailed("No file selected.")
    mimetype = _mimetype(file_storage)
    if mimetype not in current_app.config["ALLOWED_MIME"]:
        raise ValidationFailed("Only PDF and image files are allowed.")

    stored, original, size = _store_file(file_storage)
    record.stored_name = stored
    record.original_name = original
    record.size_bytes = size
    record.mimetype = mimetype
    record.upload_token = None
    db.session.commit()
    logger.info("Stored upload %s (%s, %d bytes)", record.id, original, size)
    return record.id


def get_url(file_id) -> str | None:
    try:
        record = db.session.get(StoredFile, int(file_id))
    except (TypeError, ValueError):
        return None
    if record is None or not record.is_uploaded:
        return None
    return DOWNLOAD_PREFIX + record.stored_name


def get_multiple_urls(file_ids) -> dict:
    return {str(file_id): get_url(file_id) for file_id in file_ids}


def find_by_stored_name(stored_name: str) -> StoredFile | None:
    return StoredFile.query.filter_by(stored_name=stored_name).first()


def delete_file(actor: Actor, file_id: int) -> None:
    user_id = require_owner(actor)
    record = db.session.get(StoredFile, file_id)
    if record is None:
        raise NotFound("File not found.")
    if record.user_id != user_id:
        logger.warning("User %s denied deleting file %s", user_id, file_id)
        raise NotAuthorized()

    for song in Song.query.filter_by(chart_file_id=record.id):
        song.chart_file_id = None
    if record.is_uploaded:
        try:
            os.remove(record.path)
        except FileNotFoundError:
            logger.warning("File for upload %s already gone from disk", record.id)
    db.session.delete(record)
    db.session.commit()
