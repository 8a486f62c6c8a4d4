from flask import Blueprint

from routes import arg_bool, current_actor, json_body, ok
from services import bands

bands_bp = Blueprint("bands", __name__, url_prefix="/bands")


@bands_bp.get("")
def list_bands():
    found = bands.list_bands(current_actor(), include_archived=arg_bool("includeArchived"))
    return ok(bands=[b.to_dict() for b in found])


@bands_bp.post("")
def create_band():
    band_id = bands.create(current_actor(), json_body().get("name"))
    return ok(id=band_id), 201


@bands_bp.get("/<int:band_id>")
def get_band(band_id):
    band = bands.get(current_actor(), band_id)
    return ok(band=band.to_dict() if band else None)


@bands_bp.get("/by-slug/<slug>")
def get_band_by_slug(slug):
    band = bands.get_by_slug(current_actor(), slug)
    return ok(band=band.to_dict() if band else None)


@bands_bp.patch("/<int:band_id>")
def update_band(band_id):
    bands.update(current_actor(), band_id, json_body().get("name"))
    return ok()


@bands_bp.post("/<int:band_id>/archive")
def archive_band(band_id):
    bands.archive(current_actor(), band_id, bool(json_body().get("archived", True)))
    return ok()


@bands_bp.delete("/<int:band_id>")
def delete_band(band_id):
    bands.remove(current_actor(), band_id)
    return ok()
