import csv
import io
import logging

from flask import Blueprint, request

from errors import ValidationFailed
from routes import arg_bool, current_actor, json_body, ok, patch_body, pdf_response, snake_case
from services import songs

logger = logging.getLogger(__name__)

songs_bp = Blueprint("songs", __name__)

# Friendly CSV headers -> song fields
HEADER_ALIASES = {
    "song": "title",
    "song title": "title",
    "name": "title",
    "band": "artist",
    "performer": "artist",
    "tempo": "tempo_bpm",
    "tempo (bpm)": "tempo_bpm",
    "bpm": "tempo_bpm",
    "key": "musical_key",
    "vocal": "vocal_intensity",
    "vocals": "vocal_intensity",
    "vocal intensity": "vocal_intensity",
    "energy": "energy_level",
    "energy level": "energy_level",
    "duration": "duration_sec",
    "duration (mm:ss)": "duration_sec",
    "length": "duration_sec",
    "time": "duration_sec",
    "youtube": "youtube_url",
    "link": "youtube_url",
}
NUMERIC_FIELDS = ("vocal_intensity", "energy_level", "tempo_bpm")


def parse_mmss(s: str | None) -> int | None:
    """
    Accepts 'mm:ss' (e.g., 3:30). Also accepts '210' as seconds.
    Returns total seconds or None if empty/invalid.
    """
    if not s:
        return None
    s = s.strip()
    if not s:
        return None
    try:
        if ":" in s:
            m, sec = s.split(":", 1)
            return int(m) * 60 + int(sec)
        return int(s)
    except ValueError:
        return None


def rows_from_csv(text_data: str) -> list[dict]:
    """Song rows from CSV text: sniffed delimiter, normalized and aliased headers."""
    try:
        dialect = csv.Sniffer().sniff(text_data[:4096], delimiters=[",", ";", "\t"])
        delimiter = dialect.delimiter
    except csv.Error:
        delimiter = ","

    reader = csv.reader(io.StringIO(text_data), delimiter=delimiter)
    try:
        raw_headers = next(reader)
    except StopIteration:
        raise ValidationFailed("Empty CSV.") from None
    headers = [(h or "").strip().lower() for h in raw_headers]
    headers = [HEADER_ALIASES.get(h, h.replace(" ", "_")) for h in headers]

    rows = []
    for values in reader:
        if not any((v or "").strip() for v in values):
            continue
        raw = {h: (v or "").strip() for h, v in zip(headers, values)}
        row = {"title": raw.get("title", ""), "artist": raw.get("artist", "")}
        for field in NUMERIC_FIELDS + ("musical_key", "notes", "youtube_url"):
            if raw.get(field):
                row[field] = raw[field]
        if raw.get("duration_sec"):
            row["duration_sec"] = parse_mmss(raw["duration_sec"])
        if raw.get("tags"):
            row["tags"] = [t.strip() for t in raw["tags"].replace(";", ",").split(",") if t.strip()]
        rows.append(row)
    return rows


@songs_bp.get("/bands/<int:band_id>/songs")
def list_songs(band_id):
    args = request.args
    tags = [t for t in args.get("tags", "").split(",") if t.strip()]
    found = songs.list_songs(
        current_actor(),
        band_id,
        include_archived=arg_bool("includeArchived"),
        search=args.get("search"),
        tags=tags,
        min_vocal_intensity=args.get("minVocalIntensity", type=int),
        max_vocal_intensity=args.get("maxVocalIntensity", type=int),
        min_energy_level=args.get("minEnergyLevel", type=int),
        max_energy_level=args.get("maxEnergyLevel", type=int),
    )
    return ok(songs=[s.to_dict() for s in found])


@songs_bp.post("/bands/<int:band_id>/songs")
def create_song(band_id):
    song_id = songs.create(current_actor(), band_id, patch_body(key="song"))
    return ok(id=song_id), 201


@songs_bp.post("/bands/<int:band_id>/songs/import")
def import_songs(band_id):
    upload = request.files.get("file")
    if upload is not None:
        if not upload.filename:
            raise ValidationFailed("No file uploaded.")
        # utf-8-sig strips BOM if present
        rows = rows_from_csv(upload.read().decode("utf-8-sig", errors="replace"))
        logger.info("Parsed %d CSV rows from %s", len(rows), upload.filename)
    else:
        raw_rows = json_body().get("rows", [])
        if not isinstance(raw_rows, list) or not all(isinstance(row, dict) for row in raw_rows):
            raise ValidationFailed("rows must be a list of objects.")
        rows = [{snake_case(k): v for k, v in row.items()} for row in raw_rows]
    results = songs.bulk_import(current_actor(), band_id, rows)
    summary = {status: sum(r["status"] == status for r in results)
               for status in ("inserted", "duplicate", "skipped")}
    return ok(results=results, summary=summary)


@songs_bp.get("/bands/<int:band_id>/songs/export.pdf")
def export_songs_pdf(band_id):
    filename, data = songs.export_pdf(current_actor(), band_id)
    return pdf_response(filename, data)


@songs_bp.post("/songs/bulk/archive")
def bulk_archive():
    data = json_body()
    count = songs.bulk_archive(current_actor(), data.get("songIds", []), bool(data.get("archived", True)))
    return ok(count=count)


@songs_bp.post("/songs/bulk/tags")
def bulk_tags():
    data = json_body()
    count = songs.bulk_update_tags(current_actor(), data.get("songIds", []),
                                   add_tags=data.get("addTags"), remove_tags=data.get("removeTags"))
    return ok(count=count)


@songs_bp.get("/songs/<int:song_id>")
def get_song(song_id):
    song = songs.get(current_actor(), song_id)
    return ok(song=song.to_dict() if song else None)


@songs_bp.patch("/songs/<int:song_id>")
def update_song(song_id):
    songs.update(current_actor(), song_id, patch_body())
    return ok()


@songs_bp.post("/songs/<int:song_id>/archive")
def archive_song(song_id):
    songs.archive(current_actor(), song_id, bool(json_body().get("archived", True)))
    return ok()


@songs_bp.post("/songs/<int:song_id>/played")
def song_played(song_id):
    songs.increment_play_count(current_actor(), song_id)
    return ok()


@songs_bp.delete("/songs/<int:song_id>")
def delete_song(song_id):
    songs.remove(current_actor(), song_id)
    return ok()
