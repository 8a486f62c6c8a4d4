from io import BytesIO
from types import SimpleNamespace

import pytest
from PyPDF2 import PdfReader

from pdf_export import estimate_duration_seconds, fmt_mmss, merge_charts, safe_filename, song_duration
from services import setlist_items, setlists


@pytest.mark.parametrize("bpm,seconds", [(None, 210), (0, 210), (120, 210), (60, 360), (240, 120), (90, 280)])
def test_estimate_duration_seconds(bpm, seconds):
    assert estimate_duration_seconds(bpm) == seconds


def test_song_duration_prefers_stored_value():
    assert song_duration(SimpleNamespace(duration_sec=185, tempo_bpm=60)) == 185
    assert song_duration(SimpleNamespace(duration_sec=None, tempo_bpm=60)) == 360


def test_fmt_mmss():
    assert fmt_mmss(None) == ""
    assert fmt_mmss(65) == "1:05"
    assert fmt_mmss(3600) == "60:00"


def test_safe_filename():
    assert safe_filename("Friday Gig @ Joe's") == "Friday_Gig_Joe_s.pdf"
    assert safe_filename("  ") == "export.pdf"
    assert safe_filename("set.v2", ext="csv") == "set.v2.csv"


def _pages(data):
    return len(PdfReader(BytesIO(data)).pages)


def test_merge_charts_skips_unusable_files(tmp_path, owner, make_setlist):
    sheet = setlists.export_pdf(owner, make_setlist(), include_charts=False)[1]
    chart = setlists.export_pdf(owner, make_setlist("Chart"), include_charts=False)[1]
    good = tmp_path / "good.pdf"
    good.write_bytes(chart)
    bad = tmp_path / "bad.pdf"
    bad.write_bytes(b"this is not a pdf")

    def stored(id, path, mimetype="application/pdf"):
        return SimpleNamespace(id=id, path=str(path), is_uploaded=True, is_pdf=mimetype == "application/pdf")

    merged = merge_charts(sheet, [
        stored(1, good),
        stored(2, bad),
        stored(3, tmp_path / "missing.pdf"),
        stored(4, good, mimetype="image/png"),
    ])
    assert _pages(merged) == _pages(sheet) + _pages(chart)


def test_setlist_pdf_hides_notes(owner, make_song, make_setlist):
    setlist_id = make_setlist()
    setlist_items.add_song(owner, setlist_id, make_song("Noted"), 0, 0,
                          gig_notes="watch the bridge")
    _, with_notes = setlists.export_pdf(owner, setlist_id, include_charts=False)
    _, without = setlists.export_pdf(owner, setlist_id, include_charts=False, hide_notes=True)
    text = PdfReader(BytesIO(with_notes)).pages[0].extract_text()
    hidden = PdfReader(BytesIO(without)).pages[0].extract_text()
    assert "watch the bridge" in text
    assert "watch the bridge" not in hidden
    assert "Set 1" in text
