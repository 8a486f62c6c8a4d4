import logging

from authz import SONGS, Actor, authorize, degrade_to, require_owner
from errors import ValidationFailed
from models import SetlistItem, Song, StoredFile, Template, db, utcnow
from pdf_export import render_song_list_pdf, safe_filename
from services.normalize import normalize_for_dedup, normalize_for_dedup_tight
from services.patches import (
    PatchSchema,
    apply_patch,
    bounded_int,
    optional_int,
    optional_text,
    tag_list,
    trimmed,
    trimmed_required,
)

logger = logging.getLogger(__name__)

DUPLICATE_MESSAGE = "A song with the same title and artist already exists."

SONG_FIELDS = dict(
    title=trimmed_required("Title"),
    artist=trimmed,
    vocal_intensity=bounded_int(1, 5),
    energy_level=bounded_int(1, 5),
    tags=tag_list,
    notes=optional_text,
    chart_file_id=optional_int,
    youtube_url=optional_text,
    tempo_bpm=optional_int,
    musical_key=optional_text,
    duration_sec=optional_int,
)
SONG_PATCH = PatchSchema(**SONG_FIELDS)


def _tight_key(title: str, artist: str) -> str:
    return f"{normalize_for_dedup_tight(title)}|{normalize_for_dedup_tight(artist)}"


def _cell(value) -> str | None:
    """Trimmed text of an import cell; None when the cell holds something else."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    return None


def _check_chart_file(band, values: dict) -> None:
    """A chart must be a finished upload by the band's owner."""
    file_id = values.get("chart_file_id")
    if file_id is None:
        return
    record = db.session.get(StoredFile, file_id)
    if record is None or record.user_id != band.user_id or not record.is_uploaded:
        raise ValidationFailed("Chart file not found.")


def _find_duplicate(band_id: int, title: str, artist: str, exclude_id: int | None = None) -> Song | None:
    """Match on the loose key first, then on the tight key across the band."""
    loose = (Song.query
             .filter_by(band_id=band_id,
                        normalized_title=normalize_for_dedup(title),
                        normalized_artist=normalize_for_dedup(artist))
             .filter(Song.archived_at.is_(None))
             .all())
    for song in loose:
        if song.id != exclude_id:
            return song
    tight = _tight_key(title, artist)
    for song in Song.query.filter_by(band_id=band_id).filter(Song.archived_at.is_(None)):
        if song.id != exclude_id and _tight_key(song.title, song.artist) == tight:
            return song
    return None


@degrade_to(list)
def list_songs(actor: Actor, band_id: int, include_archived: bool = False, search: str | None = None,
               tags: list[str] | None = None, min_vocal_intensity: int | None = None,
               max_vocal_intensity: int | None = None, min_energy_level: int | None = None,
               max_energy_level: int | None = None) -> list[Song]:
    authorize(actor, band_id)
    search = (search or "").strip().lower()
    tags = tags or []

    def keep(s: Song) -> bool:
        if not include_archived and s.archived_at is not None:
            return False
        if search and search not in s.title.lower() and search not in s.artist.lower():
            return False
        if tags and not any(t in (s.tags or []) for t in tags):
            return False
        if min_vocal_intensity is not None and s.vocal_intensity < min_vocal_intensity:
            return False
        if max_vocal_intensity is not None and s.vocal_intensity > max_vocal_intensity:
            return False
        if min_energy_level is not None and s.energy_level < min_energy_level:
            return False
        if max_energy_level is not None and s.energy_level > max_energy_level:
            return False
        return True

    songs = [s for s in Song.query.filter_by(band_id=band_id).all() if keep(s)]
    return sorted(songs, key=lambda s: (s.title.lower(), s.id))


@degrade_to(None)
def get(actor: Actor, song_id: int) -> Song | None:
    return SONGS.load(actor, song_id)


def create(actor: Actor, band_id: int, fields: dict) -> int:
    band = authorize(actor, band_id)
    if "title" not in fields:
        raise ValidationFailed("Title is required")
    values = SONG_PATCH.clean(fields)
    values.setdefault("artist", "")
    if _find_duplicate(band_id, values["title"], values["artist"]):
        raise ValidationFailed(DUPLICATE_MESSAGE)

    now = utcnow()
    song = Song(
        band_id=band_id,
        vocal_intensity=3,
        energy_level=3,
        tags=[],
        play_count=0,
        normalized_title=normalize_for_dedup(values["title"]),
        normalized_artist=normalize_for_dedup(values["artist"]),
        created_at=now,
        updated_at=now,
    )
    _check_chart_file(band, values)
    apply_patch(song, values)
    db.session.add(song)
    db.session.commit()
    logger.info("Added song %s to band %s", song.id, band_id)
    return song.id


def update(actor: Actor, song_id: int, patch: dict) -> None:
    song = SONGS.load(actor, song_id)
    values = SONG_PATCH.clean(patch)
    if not values:
        return

    title = values.get("title", song.title)
    artist = values.get("artist", song.artist)
    if _find_duplicate(song.band_id, title, artist, exclude_id=song.id):
        raise ValidationFailed("Updating would create a duplicate (same title and artist).")
    _check_chart_file(song.band, values)

    apply_patch(song, values)
    song.normalized_title = normalize_for_dedup(title)
    song.normalized_artist = normalize_for_dedup(artist)
    song.updated_at = utcnow()
    db.session.commit()


def archive(actor: Actor, song_id: int, archived: bool) -> None:
    song = SONGS.load(actor, song_id)
    now = utcnow()
    song.archived_at = now if archived else None
    song.updated_at = now
    db.session.commit()


def bulk_archive(actor: Actor, song_ids: list[int], archived: bool) -> int:
    """Archive every listed song the actor owns; missing ids are skipped."""
    require_owner(actor)
    now, count = utcnow(), 0
    for song_id in song_ids:
        song = SONGS.find(actor, song_id)
        if song is None:
            continue
        song.archived_at = now if archived else None
        song.updated_at = now
        count += 1
    db.session.commit()
    return count


def bulk_update_tags(actor: Actor, song_ids: list[int], add_tags: list[str] | None = None,
                     remove_tags: list[str] | None = None) -> int:
    require_owner(actor)
    add_tags = tag_list(add_tags or [])
    remove_tags = set(tag_list(remove_tags or []))
    now, count = utcnow(), 0
    for song_id in song_ids:
        song = SONGS.find(actor, song_id)
        if song is None:
            continue
        tags = list(song.tags or [])
        tags.extend(t for t in add_tags if t not in tags)
        song.tags = [t for t in tags if t not in remove_tags]
        song.updated_at = now
        count += 1
    db.session.commit()
    return count


def remove(actor: Actor, song_id: int) -> None:
    """Delete a song, its setlist slots, and its pins in templates."""
    song = SONGS.load(actor, song_id)
    SetlistItem.query.filter_by(song_id=song.id).delete(synchronize_session=False)
    for template in Template.query.filter_by(band_id=song.band_id):
        if _unpin_song(template, song.id):
            logger.info("Cleared song %s from template %s", song.id, template.id)
    db.session.delete(song)
    db.session.commit()


def _unpin_song(template: Template, song_id: int) -> bool:
    changed = False
    configs = []
    for config in template.sets_config or []:
        slots = []
        for slot in config.get("pinned_slots", []):
            if slot.get("song_id") == song_id:
                slot = {**slot, "song_id": None}
                changed = True
            slots.append(slot)
        configs.append({**config, "pinned_slots": slots})
    if changed:
        # Reassign so the JSON column is flagged dirty
        template.sets_config = configs
    return changed


def increment_play_count(actor: Actor, song_id: int) -> None:
    song = SONGS.load(actor, song_id)
    now = utcnow()
    song.play_count = (song.play_count or 0) + 1
    song.last_played_at = now
    song.updated_at = now
    db.session.commit()


def bulk_import(actor: Actor, band_id: int, rows: list[dict]) -> list[dict]:
    """Insert many songs, reporting inserted/duplicate/skipped per row."""
    band = authorize(actor, band_id)
    existing_loose, existing_tight = set(), set()
    for s in Song.query.filter_by(band_id=band_id).filter(Song.archived_at.is_(None)):
        existing_loose.add(f"{normalize_for_dedup(s.title)}|{normalize_for_dedup(s.artist)}")
        existing_tight.add(_tight_key(s.title, s.artist))

    now = utcnow()
    results = []
    for row in rows:
        title, artist = _cell(row.get("title")), _cell(row.get("artist"))
        if title is None or artist is None:
            results.append({"status": "skipped", "title": "", "artist": "",
                            "reason": "Title and artist must be text"})
            continue
        if not title:
            results.append({"status": "skipped", "title": "", "artist": artist, "reason": "Missing title"})
            continue

        loose = f"{normalize_for_dedup(title)}|{normalize_for_dedup(artist)}"
        tight = _tight_key(title, artist)
        if loose in existing_loose or tight in existing_tight:
            results.append({"status": "duplicate", "title": title, "artist": artist})
            continue

        try:
            values = SONG_PATCH.clean({k: v for k, v in row.items() if v is not None and k in SONG_FIELDS})
            _check_chart_file(band, values)
        except ValidationFailed as exc:
            results.append({"status": "skipped", "title": title, "artist": artist, "reason": exc.message})
            continue
        song = Song(band_id=band_id, vocal_intensity=3, energy_level=3, tags=[], play_count=0,
                    created_at=now, updated_at=now)
        apply_patch(song, values)
        song.title, song.artist = title, artist
        song.normalized_title = normalize_for_dedup(title)
        song.normalized_artist = normalize_for_dedup(artist)
        db.session.add(song)
        db.session.flush()  # id for the result row
        results.append({"status": "inserted", "title": title, "artist": artist, "id": song.id})
        existing_loose.add(loose)
        existing_tight.add(tight)

    db.session.commit()
    logger.info("Imported %d of %d rows into band %s",
                sum(r["status"] == "inserted" for r in results), len(rows), band_id)
    return results


def export_pdf(actor: Actor, band_id: int) -> tuple[str, bytes]:
    band = authorize(actor, band_id)
    songs = (Song.query
             .filter_by(band_id=band_id)
             .filter(Song.archived_at.is_(None))
             .all())
    songs.sort(key=lambda s: (s.title.lower(), s.id))
    return safe_filename(f"{band.name} songs"), render_song_list_pdf(band, songs)
