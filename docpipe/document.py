"""PDF/image loading and page rasterization via PyMuPDF."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import pymupdf

logger = logging.getLogger(__name__)

_IMAGE_SUFFIXES = {".png": "png", ".jpg": "jpeg", ".jpeg": "jpeg", ".webp": "webp", ".gif": "gif", ".bmp": "bmp"}


class DocumentLoadFailure(Exception):
    """Raised when a document cannot be opened or a page cannot be rendered."""


@dataclass
class LoadedDocument:
    data: bytes
    kind: str              # "pdf" or "image"
    page_count: int
    name: str = ""


def _detect_kind(data: bytes, filename: str | None) -> str:
    if data[:5] == b"%PDF-":
        return "pdf"
    suffix = Path(filename).suffix.lower() if filename else ""
    if suffix == ".pdf":
        return "pdf"
    if suffix in _IMAGE_SUFFIXES or data[:8] == b"\x89PNG\r\n\x1a\n" or data[:3] == b"\xff\xd8\xff":
        return "image"
    raise DocumentLoadFailure(f"Unsupported document type: {filename or 'unnamed upload'}")


def load_document(data: bytes, filename: str | None = None) -> LoadedDocument:
    """Open a PDF or single image and report its page count.

    Raises:
        DocumentLoadFailure: Empty, unsupported or corrupt input.
    """
    if not data:
        raise DocumentLoadFailure("Document is empty")
    kind = _detect_kind(data, filename)
    if kind == "image":
        try:
            pymupdf.Pixmap(data)
        except Exception as exc:
            raise DocumentLoadFailure(f"Error loading image: {exc}") from exc
        logger.info("Loaded image %s", filename or "")
        return LoadedDocument(data=data, kind=kind, page_count=1, name=filename or "")

    try:
        with pymupdf.open(stream=data, filetype="pdf") as doc:
            page_count = doc.page_count
    except Exception as exc:
        raise DocumentLoadFailure(f"Error loading PDF. Please ensure it is a valid PDF file. ({exc})") from exc
    if page_count < 1:
        raise DocumentLoadFailure("Error loading PDF. The document has no pages.")
    logger.info("Loaded PDF %s with %d pages", filename or "", page_count)
    return LoadedDocument(data=data, kind=kind, page_count=page_count, name=filename or "")


def load_document_file(path: Path) -> LoadedDocument:
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise DocumentLoadFailure(f"Cannot read {path}: {exc}") from exc
    return load_document(data, path.name)


def render_page(document: LoadedDocument, page_number: int, scale: float = 2.0) -> bytes:
    """Render one 1-based page to PNG bytes. Images are re-encoded as PNG as-is."""
    if not 1 <= page_number <= document.page_count:
        raise DocumentLoadFailure(f"Page {page_number} out of range (1-{document.page_count})")
    try:
        if document.kind == "image":
            pix = pymupdf.Pixmap(document.data)
            if pix.colorspace and pix.colorspace.n > 3:
                pix = pymupdf.Pixmap(pymupdf.csRGB, pix)  # CMYK has no PNG encoding
            return pix.tobytes("png")
        with pymupdf.open(stream=document.data, filetype="pdf") as doc:
            page = doc.load_page(page_number - 1)
            pix = page.get_pixmap(matrix=pymupdf.Matrix(scale, scale))
            return pix.tobytes("png")
    except Exception as exc:
        raise DocumentLoadFailure(f"Failed to render page {page_number}: {exc}") from exc


async def render_pages(
    document: LoadedDocument,
    pages: list[int],
    scale: float = 2.0,
    on_page: Callable[[int, int, int], None] | None = None,
) -> list[bytes]:
    """Render pages in order, one worker-thread hop per page.

    on_page(index, total, page_number) fires before each page is rendered.
    """
    images: list[bytes] = []
    for i, page_number in enumerate(pages):
        if on_page:
            on_page(i, len(pages), page_number)
        images.append(await asyncio.to_thread(render_page, document, page_number, scale))
    return images
