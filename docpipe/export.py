"""Notes -> minimal printable HTML. One-way and lossy."""

import html
import logging
import re
from pathlib import Path

logger = logging.getLogger(__name__)

_HEADINGS = [
    (re.compile(r"^### (.*)$"), "h3"),
    (re.compile(r"^## (.*)$"), "h2"),
    (re.compile(r"^# (.*)$"), "h1"),
]
_BULLET = re.compile(r"^\s*- (.*)$")
_BOLD = re.compile(r"\*\*(.+?)\*\*")
_ITALIC = re.compile(r"\*(.+?)\*")

_TEMPLATE = """<html>
<head>
<meta charset="utf-8">
<title>{title}</title>
<style>
body {{ font-family: 'Noto Sans TC', sans-serif; padding: 40px; line-height: 1.6; color: #333; }}
h1 {{ border-bottom: 2px solid #eee; padding-bottom: 10px; }}
h2 {{ margin-top: 20px; }}
li {{ margin-bottom: 5px; }}
</style>
</head>
<body>
{body}
</body>
</html>
"""


def _inline(text: str) -> str:
    text = _BOLD.sub(r"<b>\1</b>", text)
    return _ITALIC.sub(r"<i>\1</i>", text)


def _convert_line(line: str) -> str:
    escaped = html.escape(line, quote=False)
    for pattern, tag in _HEADINGS:
        match = pattern.match(escaped)
        if match:
            return f"<{tag}>{_inline(match.group(1))}</{tag}>"
    match = _BULLET.match(escaped)
    if match:
        return f"<li>{_inline(match.group(1))}</li>"
    return _inline(escaped) + "<br>"


def notes_to_html(notes: str, title: str = "Notes Export") -> str:
    """Headings (#, ##, ###), **bold**, *italic* and "- " bullets; other lines keep their breaks."""
    body = "\n".join(_convert_line(line) for line in notes.splitlines())
    return _TEMPLATE.format(title=html.escape(title), body=body)


def export_notes(notes: str, output_path: Path, title: str = "Notes Export") -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(notes_to_html(notes, title), encoding="utf-8")
    logger.info("Notes exported to: %s", output_path)
    return output_path
