from flask import Blueprint

from routes import current_actor, json_body, ok, patch_body
from services import templates

templates_bp = Blueprint("templates", __name__)


@templates_bp.get("/bands/<int:band_id>/templates")
def list_templates(band_id):
    found = templates.list_templates(current_actor(), band_id)
    return ok(templates=[t.to_dict() for t in found])


@templates_bp.post("/bands/<int:band_id>/templates")
def create_template(band_id):
    data = json_body()
    template_id = templates.create(current_actor(), band_id, data.get("name"), data.get("setsConfig", []))
    return ok(id=template_id), 201


@templates_bp.post("/setlists/<int:setlist_id>/template")
def create_from_setlist(setlist_id):
    template_id = templates.create_from_setlist(current_actor(), setlist_id, json_body().get("name"))
    return ok(id=template_id), 201


@templates_bp.get("/templates/<int:template_id>")
def get_template(template_id):
    template = templates.get(current_actor(), template_id)
    return ok(template=template.to_dict() if template else None)


@templates_bp.patch("/templates/<int:template_id>")
def update_template(template_id):
    templates.update(current_actor(), template_id, patch_body())
    return ok()


@templates_bp.delete("/templates/<int:template_id>")
def delete_template(template_id):
    templates.remove(current_actor(), template_id)
    return ok()
