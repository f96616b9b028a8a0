"""Vision OCR: one model call for all selected page images."""

import logging
from collections.abc import Callable

from docpipe.document import DocumentLoadFailure, render_pages
from docpipe.models import ModelRequest
from docpipe.pages import select_pages
from docpipe.providers.base import ModelProvider, ProviderError
from docpipe.session import Session

logger = logging.getLogger(__name__)

DEFAULT_OCR_INSTRUCTION = (
    "You are a high-precision OCR engine. Transcribe the text in these document pages "
    "exactly as it appears. Maintain the original structure. If there are tables, format "
    "them as Markdown tables. Do not add conversational text, just the transcription."
)
NO_TEXT_PLACEHOLDER = "No text extracted."


class OcrFailure(Exception):
    """Raised when the OCR call itself fails."""


async def run_ocr(
    provider: ModelProvider,
    model: str,
    images: list[bytes],
    instruction: str = DEFAULT_OCR_INSTRUCTION,
) -> str:
    """Transcribe page images with a single call, returning the text verbatim.

    An empty reply is not a failure and yields NO_TEXT_PLACEHOLDER. There is no
    retry. Callers confirm large page counts before getting here.

    Raises:
        ValueError: No images given.
        OcrFailure: The endpoint call failed.
    """
    if not images:
        raise ValueError("OCR needs at least one page image")

    request = ModelRequest(model=model, instruction_parts=[instruction], images=list(images))
    logger.info("Sending %d image(s) to %s for OCR", len(images), model)
    try:
        reply = await provider.generate(request)
    except ProviderError as exc:
        logger.error("OCR Error: %s", exc)
        raise OcrFailure(f"OCR Failed: {exc}") from exc

    return reply.text or NO_TEXT_PLACEHOLDER


async def ocr_document(
    session: Session,
    provider: ModelProvider,
    model: str,
    scale: float = 2.0,
    confirm_threshold: int = 20,
    confirm: Callable[[int], bool] | None = None,
    on_page: Callable[[int, int, int], None] | None = None,
    instruction: str = DEFAULT_OCR_INSTRUCTION,
) -> str | None:
    """Rasterize the session's selected pages and store their OCR text.

    Above `confirm_threshold` pages, `confirm(page_count)` must return True
    or nothing happens and None is returned. On any failure the session's
    previous OCR text is left as it was.

    Raises:
        DocumentLoadFailure: No document loaded, or a page fails to render.
        NoPagesSelected: The page range selects nothing.
        OcrFailure: The OCR call failed.
    """
    document = session.document
    if document is None:
        raise DocumentLoadFailure("No document loaded")

    pages = select_pages(session.page_range, document.page_count)
    if len(pages) > confirm_threshold:
        if confirm is None or not confirm(len(pages)):
            logger.info("OCR of %d pages cancelled", len(pages))
            return None

    images = await render_pages(document, pages, scale, on_page)
    text = await run_ocr(provider, model, images, instruction)
    session.ocr_text = text
    logger.info("OCR complete: %d pages, %d characters", len(pages), len(text))
    return text
