from flask import Blueprint, request

from routes import arg_bool, current_actor, int_field, json_body, ok, patch_body, pdf_response
from services import setlist_items, setlists, songs
from services.generation import FLOW_PRESETS, check_setlist_pacing

setlists_bp = Blueprint("setlists", __name__)


def _item_dict(item):
    data = item.to_dict()
    data["song"] = item.song.to_dict() if item.song else None
    return data


# --- setlists ---
@setlists_bp.get("/bands/<int:band_id>/setlists")
def list_setlists(band_id):
    found = setlists.list_setlists(current_actor(), band_id, status=request.args.get("status"),
                                   include_archived=arg_bool("includeArchived"))
    return ok(setlists=[s.to_dict() for s in found])


@setlists_bp.post("/bands/<int:band_id>/setlists")
def create_setlist(band_id):
    data = json_body()
    setlist_id = setlists.create(current_actor(), band_id, data.get("name"), data.get("setsConfig", []),
                                 gig_date=data.get("gigDate"), notes=data.get("notes"))
    return ok(id=setlist_id), 201


@setlists_bp.post("/bands/<int:band_id>/setlists/from-template")
def create_from_template(band_id):
    data = json_body()
    setlist_id = setlists.create_from_template(current_actor(), band_id, data.get("templateId"),
                                               data.get("name"), gig_date=data.get("gigDate"))
    return ok(id=setlist_id), 201


@setlists_bp.get("/flow-presets")
def flow_presets():
    return ok(presets=[{"id": key, "label": label, "description": desc}
                       for key, (label, desc) in FLOW_PRESETS.items()])


@setlists_bp.get("/setlists/<int:setlist_id>")
def get_setlist(setlist_id):
    actor = current_actor()
    setlist = setlists.get(actor, setlist_id)
    if setlist is None:
        return ok(setlist=None, items=[])
    items = setlist_items.list_by_setlist(actor, setlist_id)
    return ok(setlist=setlist.to_dict(), items=[_item_dict(i) for i in items])


@setlists_bp.patch("/setlists/<int:setlist_id>")
def update_setlist(setlist_id):
    setlists.update(current_actor(), setlist_id, patch_body())
    return ok()


@setlists_bp.post("/setlists/<int:setlist_id>/archive")
def archive_setlist(setlist_id):
    setlists.archive(current_actor(), setlist_id, bool(json_body().get("archived", True)))
    return ok()


@setlists_bp.post("/setlists/<int:setlist_id>/finalise")
def finalise_setlist(setlist_id):
    setlists.finalise(current_actor(), setlist_id)
    return ok()


@setlists_bp.post("/setlists/<int:setlist_id>/duplicate")
def duplicate_setlist(setlist_id):
    new_id = setlists.duplicate(current_actor(), setlist_id, new_name=json_body().get("name"))
    return ok(id=new_id), 201


@setlists_bp.delete("/setlists/<int:setlist_id>")
def delete_setlist(setlist_id):
    setlists.remove(current_actor(), setlist_id)
    return ok()


@setlists_bp.delete("/setlists/<int:setlist_id>/sets/<int:set_index>")
def remove_set(setlist_id, set_index):
    setlists.remove_set(current_actor(), setlist_id, set_index)
    return ok()


@setlists_bp.post("/setlists/<int:setlist_id>/generate")
def generate(setlist_id):
    data = json_body()
    warnings = setlists.generate(current_actor(), setlist_id,
                                 flow_preset=data.get("flowPreset") or "classic",
                                 excluded_song_ids=data.get("excludedSongIds") or [],
                                 seed=data.get("seed"))
    return ok(warnings=warnings)


@setlists_bp.get("/setlists/<int:setlist_id>/pacing")
def pacing(setlist_id):
    actor = current_actor()
    setlist = setlists.get(actor, setlist_id)
    if setlist is None:
        return ok(warnings={})
    items = setlist_items.list_by_setlist(actor, setlist_id)
    band_songs = songs.list_songs(actor, setlist.band_id, include_archived=True)
    warnings = check_setlist_pacing(items, band_songs)
    return ok(warnings={str(k): v for k, v in warnings.items()})


@setlists_bp.get("/setlists/<int:setlist_id>/export.pdf")
def export_setlist_pdf(setlist_id):
    filename, data = setlists.export_pdf(current_actor(), setlist_id,
                                         include_charts=arg_bool("include_charts", default=True),
                                         hide_notes=arg_bool("hide_notes"))
    return pdf_response(filename, data)


# --- items ---
@setlists_bp.get("/setlists/<int:setlist_id>/items")
def list_items(setlist_id):
    items = setlist_items.list_by_setlist(current_actor(), setlist_id)
    return ok(items=[_item_dict(i) for i in items])


@setlists_bp.post("/setlists/<int:setlist_id>/items")
def add_item(setlist_id):
    data = json_body()
    item_id = setlist_items.add_song(current_actor(), setlist_id, data.get("songId"),
                                     int_field(data, "setIndex"), int_field(data, "position"),
                                     gig_notes=data.get("gigNotes"), is_pinned=bool(data.get("isPinned")))
    return ok(id=item_id), 201


@setlists_bp.post("/setlists/<int:setlist_id>/sets/<int:set_index>/clear")
def clear_set(setlist_id, set_index):
    setlist_items.clear_set(current_actor(), setlist_id, set_index,
                            keep_pinned=bool(json_body().get("keepPinned")))
    return ok()


@setlists_bp.post("/setlists/<int:setlist_id>/clear")
def clear_all(setlist_id):
    setlist_items.clear_all(current_actor(), setlist_id, keep_pinned=bool(json_body().get("keepPinned")))
    return ok()


@setlists_bp.patch("/items/<int:item_id>")
def update_item(item_id):
    setlist_items.update_item(current_actor(), item_id, patch_body())
    return ok()


@setlists_bp.post("/items/<int:item_id>/move")
def move_item(item_id):
    data = json_body()
    setlist_items.move_item(current_actor(), item_id, int_field(data, "toSetIndex"),
                            int_field(data, "toPosition"))
    return ok()


@setlists_bp.post("/items/<int:item_id>/swap")
def swap_item(item_id):
    setlist_items.swap_song(current_actor(), item_id, json_body().get("songId"))
    return ok()


@setlists_bp.delete("/items/<int:item_id>")
def delete_item(item_id):
    setlist_items.remove_item(current_actor(), item_id)
    return ok()
