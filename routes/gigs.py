from flask import Blueprint, request

from routes import arg_bool, current_actor, int_field, json_body, ok, patch_body
from services import gigs

gigs_bp = Blueprint("gigs", __name__)


@gigs_bp.get("/bands/<int:band_id>/gigs")
def list_gigs(band_id):
    found = gigs.list_gigs(current_actor(), band_id,
                           include_archived=arg_bool("includeArchived"),
                           status=request.args.get("status"))
    return ok(gigs=[g.to_dict() for g in found])


@gigs_bp.get("/bands/<int:band_id>/gigs/upcoming")
def upcoming_gigs(band_id):
    limit = request.args.get("limit", default=5, type=int)
    found = gigs.upcoming(current_actor(), band_id, limit=max(limit, 0))
    return ok(gigs=[g.to_dict() for g in found])


@gigs_bp.post("/bands/<int:band_id>/gigs")
def create_gig(band_id):
    gig_id = gigs.create(current_actor(), band_id, patch_body(key="gig"))
    return ok(id=gig_id), 201


@gigs_bp.get("/gigs/<int:gig_id>")
def get_gig(gig_id):
    actor = current_actor()
    gig = gigs.get(actor, gig_id)
    lineup = gigs.list_lineup(actor, gig_id)
    return ok(gig=gig.to_dict() if gig else None, lineup=[e.to_dict() for e in lineup])


@gigs_bp.patch("/gigs/<int:gig_id>")
def update_gig(gig_id):
    gigs.update(current_actor(), gig_id, patch_body())
    return ok()


@gigs_bp.post("/gigs/<int:gig_id>/status")
def update_status(gig_id):
    gigs.update_status(current_actor(), gig_id, json_body().get("status"))
    return ok()


@gigs_bp.post("/gigs/<int:gig_id>/archive")
def archive_gig(gig_id):
    gigs.archive(current_actor(), gig_id, bool(json_body().get("archived", True)))
    return ok()


@gigs_bp.delete("/gigs/<int:gig_id>")
def delete_gig(gig_id):
    gigs.remove(current_actor(), gig_id)
    return ok()


@gigs_bp.get("/gigs/<int:gig_id>/members")
def list_lineup(gig_id):
    lineup = gigs.list_lineup(current_actor(), gig_id)
    return ok(members=[e.to_dict() for e in lineup])


@gigs_bp.post("/gigs/<int:gig_id>/members")
def add_member(gig_id):
    entry_id = gigs.add_member(current_actor(), gig_id, int_field(json_body(), "memberId", None))
    return ok(id=entry_id), 201


@gigs_bp.delete("/gigs/<int:gig_id>/members/<int:member_id>")
def remove_member(gig_id, member_id):
    gigs.remove_member(current_actor(), gig_id, member_id)
    return ok()


@gigs_bp.patch("/gigs/<int:gig_id>/members/<int:member_id>")
def set_response(gig_id, member_id):
    data = json_body()
    gigs.set_response(current_actor(), gig_id, member_id, data.get("status"), note=data.get("note"))
    return ok()
