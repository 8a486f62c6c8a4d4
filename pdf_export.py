"""PDF rendering for setlists and song lists (reportlab + PyPDF2)."""
import logging
import os
import re
from datetime import datetime
from io import BytesIO

from PyPDF2 import PdfReader, PdfWriter
from PyPDF2.errors import PdfReadError
from reportlab.lib.pagesizes import letter
from reportlab.lib.units import inch
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen import canvas as _rl_canvas

logger = logging.getLogger(__name__)

MARGIN = 0.75 * inch
TITLE_LINE_H = 14  # Helvetica 11
NOTES_LINE_H = 12  # Helvetica-Oblique 9
ROW_GAP = 2
SECTION_H = 18


def estimate_duration_seconds(bpm: int | None) -> int:
    """
    Heuristic: ~210s at 120 BPM, scaled by tempo, clamped to 2:00–6:00.
    """
    baseline_bpm = 120
    baseline_sec = 210
    if not bpm or bpm <= 0:
        return baseline_sec
    est = int(round(baseline_sec * baseline_bpm / bpm))
    return max(120, min(est, 360))


def song_duration(song) -> int:
    """Stored duration wins; else estimate from BPM."""
    if song.duration_sec and song.duration_sec > 0:
        return song.duration_sec
    return estimate_duration_seconds(song.tempo_bpm)


def fmt_mmss(total_sec: int | None) -> str:
    if total_sec is None:
        return ""
    m = total_sec // 60
    s = total_sec % 60
    return f"{m}:{s:02d}"


def safe_filename(name: str, ext: str = "pdf") -> str:
    stem = re.sub(r"[^A-Za-z0-9._-]+", "_", (name or "").strip()).strip("_") or "export"
    return f"{stem}.{ext}"


# --- ReportLab canvas that writes "Page N of M" footers ---
class NumberedCanvas(_rl_canvas.Canvas):
    # Footer: 'Printed' on the left, 'Page N of M' on the right of every page.
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._saved_page_states = []
        self._footer_left = ""
        self._margin = MARGIN
        self._page_width = letter[0]

    def showPage(self):
        self._saved_page_states.append(dict(self.__dict__))
        self._startPage()

    def save(self):
        total = len(self._saved_page_states)
        for state in self._saved_page_states:
            self.__dict__.update(state)
            self._draw_footer(total)
            super().showPage()
        super().save()

    def _draw_footer(self, total_pages: int):
        self.setFont("Helvetica", 9)
        y = max(self._margin - 0.45 * inch, 0.3 * inch)
        if self._footer_left:
            self.drawString(self._margin, y, self._footer_left)
        self.drawRightString(self._page_width - self._margin, y, f"Page {self.getPageNumber()} of {total_pages}")


class _Sheet:
    """One table-style document: page header, column headings, wrapped rows."""

    def __init__(self, title: str, meta_lines: list[str], hide_notes: bool = False):
        self.buf = BytesIO()
        self.c = NumberedCanvas(self.buf, pagesize=letter)
        self.c._footer_left = "Printed " + datetime.now().strftime("%b %d, %Y")
        self.width, self.height = letter
        self.title = title
        self.meta_lines = meta_lines
        self.hide_notes = hide_notes

        col_dur_w, col_bpm_w, self.col_key_w = 0.8 * inch, 0.7 * inch, 1.0 * inch
        self.x_dur = self.width - MARGIN - col_dur_w
        self.x_bpm = self.x_dur - col_bpm_w
        self.x_key = self.x_bpm - self.col_key_w
        self.col_dur_w, self.col_bpm_w = col_dur_w, col_bpm_w
        self.title_w = self.x_key - MARGIN - 6
        self.y = 0.0

    def header(self, suffix: str = "") -> None:
        c = self.c
        y = self.height - MARGIN
        c.setFont("Helvetica-Bold", 16)
        c.drawString(MARGIN, y, f"{self.title}{suffix}")
        y -= 18
        c.setFont("Helvetica", 10)
        for line in self.meta_lines:
            c.drawString(MARGIN, y, line)
            y -= 14
        y -= 4

        c.setFont("Helvetica-Bold", 11)
        c.drawString(MARGIN, y, "Song")
        c.drawRightString(self.x_key + self.col_key_w - 2, y, "Key")
        c.drawRightString(self.x_bpm + self.col_bpm_w - 2, y, "BPM")
        c.drawRightString(self.x_dur + self.col_dur_w - 2, y, "Dur")
        y -= 10
        c.setLineWidth(0.5)
        c.line(MARGIN, y, self.width - MARGIN, y)
        self.y = y - 8

    def _row_height(self, kind: str, row: dict) -> float:
        if kind == "section":
            return SECTION_H
        lines = simpleSplit(row["label"], "Helvetica", 11, self.title_w)
        notes_h = 0
        if not self.hide_notes and row.get("notes"):
            notes_h = len(simpleSplit(f"Notes: {row['notes']}", "Helvetica-Oblique", 9, self.title_w)) * NOTES_LINE_H
        return len(lines) * TITLE_LINE_H + notes_h + ROW_GAP

    def draw(self, rows: list[tuple[str, dict]]) -> bytes:
        c = self.c
        self.header()
        for kind, row in rows:
            if self.y - self._row_height(kind, row) < MARGIN + 20:
                c.showPage()
                self.header(" (cont.)")

            if kind == "section":
                c.setLineWidth(1.0)
                c.setStrokeColorRGB(0.75, 0.75, 0.75)
                c.line(MARGIN, self.y + 12, self.width - MARGIN, self.y + 12)
                c.setStrokeColorRGB(0, 0, 0)
                c.setFont("Helvetica-Bold", 11)
                c.drawString(MARGIN, self.y, f"- {row['name']} -")
                c.setFont("Helvetica", 10)
                c.drawRightString(self.width - MARGIN, self.y, row["meta"])
                self.y -= SECTION_H
                continue

            c.setFont("Helvetica", 11)
            for i, line in enumerate(simpleSplit(row["label"], "Helvetica", 11, self.title_w)):
                c.drawString(MARGIN, self.y, line)
                if i == 0:
                    c.drawRightString(self.x_key + self.col_key_w - 2, self.y, row.get("key", ""))
                    c.drawRightString(self.x_bpm + self.col_bpm_w - 2, self.y, row.get("bpm", ""))
                    c.drawRightString(self.x_dur + self.col_dur_w - 2, self.y, row.get("dur", ""))
                self.y -= TITLE_LINE_H

            if not self.hide_notes and row.get("notes"):
                c.setFont("Helvetica-Oblique", 9)
                for line in simpleSplit(f"Notes: {row['notes']}", "Helvetica-Oblique", 9, self.title_w):
                    c.drawString(MARGIN, self.y, line)
                    self.y -= NOTES_LINE_H
            self.y -= ROW_GAP

        # Finalize the last page so NumberedCanvas.save() can render footers
        c.showPage()
        c.save()
        data = self.buf.getvalue()
        self.buf.close()
        return data


def _song_row(num: int, song, notes: str | None) -> dict:
    return {
        "label": f"#{num} - {song.title}" + (f" - {song.artist}" if song.artist else ""),
        "key": song.musical_key or "",
        "bpm": str(song.tempo_bpm) if song.tempo_bpm else "",
        "dur": fmt_mmss(song_duration(song)),
        "notes": notes or "",
    }


def render_setlist_pdf(setlist, items, include_charts: bool = True, hide_notes: bool = False) -> bytes:
    """Setlist sheet grouped by set, then each song's PDF chart appended in order."""
    by_set: dict[int, list] = {}
    for item in items:
        by_set.setdefault(item.set_index, []).append(item)
    configs = sorted(setlist.sets_config or [], key=lambda c: c["set_index"])
    set_indexes = [c["set_index"] for c in configs]
    set_indexes += sorted(i for i in by_set if i not in set_indexes)

    rows = []
    total_sec = song_count = 0
    for set_no, set_index in enumerate(set_indexes, start=1):
        set_items = sorted(by_set.get(set_index, []), key=lambda i: i.position)
        songs = [i for i in set_items if i.song is not None]
        set_sec = sum(song_duration(i.song) for i in songs)
        total_sec += set_sec
        song_count += len(songs)
        rows.append(("section", {
            "name": f"Set {set_no}",
            "meta": f"{len(songs)} · {fmt_mmss(set_sec)}",
        }))
        for num, item in enumerate(set_items, start=1):
            if item.song is None:
                rows.append(("song", {"label": f"#{num} - (empty)"}))
            else:
                rows.append(("song", _song_row(num, item.song, item.gig_notes)))

    meta = []
    if setlist.gig_date:
        meta.append("Gig: " + setlist.gig_date.strftime("%b %d, %Y"))
    meta.append(f"Songs: {song_count}    Approx Total: {fmt_mmss(total_sec)}"
                + ("    Notes hidden" if hide_notes else ""))
    if setlist.notes and not hide_notes:
        meta.append(setlist.notes[:120])

    sheet_bytes = _Sheet(f"Setlist: {setlist.name}", meta, hide_notes=hide_notes).draw(rows)
    if not include_charts:
        return sheet_bytes
    charts = [i.song.chart_file for i in items if i.song is not None and i.song.chart_file is not None]
    return merge_charts(sheet_bytes, charts)


def merge_charts(sheet_bytes: bytes, chart_files) -> bytes:
    """Append readable PDF charts after the sheet; unreadable ones are skipped."""
    writer = PdfWriter()
    for page in PdfReader(BytesIO(sheet_bytes), strict=False).pages:
        writer.add_page(page)

    for sf in chart_files:
        if not sf.is_uploaded or not sf.is_pdf:
            continue
        abs_path = os.path.abspath(sf.path)
        if not os.path.exists(abs_path):
            logger.warning("Chart %s missing on disk", sf.id)
            continue
        try:
            reader = PdfReader(abs_path, strict=False)
            for page in reader.pages:
                writer.add_page(page)
        except (PdfReadError, OSError, ValueError):
            logger.warning("Skipping unreadable chart %s", sf.id, exc_info=True)

    out_buf = BytesIO()
    writer.write(out_buf)
    data = out_buf.getvalue()
    out_buf.close()
    return data


def render_song_list_pdf(band, songs) -> bytes:
    rows = [("song", _song_row(num, song, song.notes)) for num, song in enumerate(songs, start=1)]
    total = sum(song_duration(s) for s in songs)
    meta = [f"Songs: {len(songs)}    Approx Total: {fmt_mmss(total)}"]
    return _Sheet(f"Songs: {band.name}", meta).draw(rows)
