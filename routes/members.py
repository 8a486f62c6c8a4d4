from flask import Blueprint

from routes import arg_bool, current_actor, json_body, ok, patch_body
from services import members

members_bp = Blueprint("members", __name__)


@members_bp.get("/bands/<int:band_id>/members")
def list_members(band_id):
    found = members.list_members(current_actor(), band_id, include_archived=arg_bool("includeArchived"))
    return ok(members=[m.to_dict() for m in found])


@members_bp.post("/bands/<int:band_id>/members")
def create_member(band_id):
    data = json_body()
    member_id = members.create(current_actor(), band_id, data.get("name"),
                               email=data.get("email", ""), role=data.get("role", ""))
    return ok(id=member_id), 201


@members_bp.get("/members/<int:member_id>")
def get_member(member_id):
    member = members.get(current_actor(), member_id)
    # Owners can read the token back to share it again
    return ok(member=member.to_dict(include_token=True) if member else None)


@members_bp.patch("/members/<int:member_id>")
def update_member(member_id):
    members.update(current_actor(), member_id, patch_body())
    return ok()


@members_bp.post("/members/<int:member_id>/archive")
def archive_member(member_id):
    members.archive(current_actor(), member_id, bool(json_body().get("archived", True)))
    return ok()


@members_bp.delete("/members/<int:member_id>")
def delete_member(member_id):
    members.remove(current_actor(), member_id)
    return ok()


@members_bp.post("/members/<int:member_id>/token")
def generate_token(member_id):
    token = members.generate_access_token(current_actor(), member_id)
    return ok(token=token)


@members_bp.delete("/members/<int:member_id>/token")
def revoke_token(member_id):
    members.revoke_access_token(current_actor(), member_id)
    return ok()
