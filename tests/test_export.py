"""Tests for docpipe/export.py."""

from pathlib import Path

from docpipe.export import export_notes, notes_to_html


def test_headings():
    html = notes_to_html("# Title\n## Section\n### Sub")
    assert "<h1>Title</h1>" in html
    assert "<h2>Section</h2>" in html
    assert "<h3>Sub</h3>" in html


def test_bold_and_italic():
    html = notes_to_html("A **bold** and *italic* word")
    assert "<b>bold</b>" in html
    assert "<i>italic</i>" in html


def test_bullets():
    html = notes_to_html("- first\n- second")
    assert "<li>first</li>" in html
    assert "<li>second</li>" in html


def test_plain_lines_keep_breaks():
    html = notes_to_html("line one\nline two")
    assert "line one<br>" in html
    assert "line two<br>" in html


def test_html_escaped():
    html = notes_to_html("a < b & c")
    assert "a &lt; b &amp; c" in html


def test_default_notes_render(session):
    html = notes_to_html(session.notes)
    assert "<h1>Quick Notes</h1>" in html
    assert "<li>[ ] Check contraindications</li>" in html


def test_export_writes_file(tmp_path: Path):
    path = export_notes("# Hi", tmp_path / "out" / "notes.html")
    assert path.exists()
    assert "<h1>Hi</h1>" in path.read_text(encoding="utf-8")
