from flask import Blueprint, request, send_from_directory

import models
from errors import NotFound
from routes import current_actor, json_body, ok
from services import storage

storage_bp = Blueprint("storage", __name__, url_prefix="/storage")


@storage_bp.post("/upload-url")
def generate_upload_url():
    return ok(uploadUrl=storage.generate_upload_url(current_actor()))


@storage_bp.post("/upload/<token>")
def upload(token):
    file_id = storage.save_upload(token, request.files.get("file"))
    return ok(storageId=file_id), 201


@storage_bp.get("/files/<stored_name>")
def download(stored_name):
    record = storage.find_by_stored_name(stored_name)
    if record is None:
        raise NotFound("File not found.")
    return send_from_directory(models.UPLOAD_DIR, record.stored_name, mimetype=record.mimetype,
                               download_name=record.original_name)


@storage_bp.get("/url/<int:file_id>")
def get_url(file_id):
    return ok(url=storage.get_url(file_id))


@storage_bp.post("/urls")
def get_multiple_urls():
    return ok(urls=storage.get_multiple_urls(json_body().get("storageIds", [])))


@storage_bp.delete("/files/<int:file_id>")
def delete_file(file_id):
    storage.delete_file(current_actor(), file_id)
    return ok()
