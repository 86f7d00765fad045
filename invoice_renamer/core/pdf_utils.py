"""PDF loading and first-page rasterization.

Synchronous helpers do the PyMuPDF work; ``PdfPageRasterizer`` moves it off
the event loop so a page render is a suspension point like the network call.
"""

import asyncio
import logging
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import PurePath

import fitz  # PyMuPDF

from .exceptions import RenderError
from .models import PDF_MIME_TYPE, SourceFile

logger = logging.getLogger(__name__)

# Zoom applied to page 1: legible for OCR without oversized payloads
DEFAULT_RENDER_SCALE = 1.5
DEFAULT_JPEG_QUALITY = 92


def is_pdf_upload(source: SourceFile) -> bool:
    """Whether an uploaded file is a PDF document.

    A declared MIME type wins; without one the file suffix decides.
    """
    if source.mime_type:
        return source.mime_type == PDF_MIME_TYPE
    return PurePath(source.name).suffix.lower() == ".pdf"


@contextmanager
def open_pdf_bytes(content: bytes, file_name: str = "<memory>") -> Generator[fitz.Document, None, None]:
    """Open an in-memory PDF and guarantee it is closed afterwards.

    Raises:
        RenderError: If the bytes are not a PDF or the document has no pages
    """
    try:
        doc = fitz.open(stream=content, filetype="pdf")
    except fitz.FileDataError as e:
        raise RenderError(file_name, "PDF file is corrupted", e)
    except Exception as e:
        raise RenderError(file_name, "Unable to open PDF", e)

    try:
        if doc.page_count == 0:
            raise RenderError(file_name, "PDF has no pages")
        yield doc
    finally:
        doc.close()


def render_first_page(
    content: bytes,
    file_name: str = "<memory>",
    scale: float = DEFAULT_RENDER_SCALE,
    jpeg_quality: int = DEFAULT_JPEG_QUALITY
) -> bytes:
    """Render page 1 at ``scale`` and return it as JPEG bytes.

    Raises:
        RenderError: If the document cannot be opened, is empty, or the
            page cannot be drawn or encoded
    """
    with open_pdf_bytes(content, file_name) as doc:
        try:
            page = doc.load_page(0)
        except Exception as e:
            raise RenderError(file_name, "Unable to load first page", e)

        try:
            pix = page.get_pixmap(matrix=fitz.Matrix(scale, scale), alpha=False)
        except Exception as e:
            raise RenderError(file_name, "Unable to allocate drawing surface", e)

        try:
            image = pix.tobytes(output="jpg", jpg_quality=jpeg_quality)
        except Exception as e:
            raise RenderError(file_name, "Unable to encode page image", e)

    logger.debug(f"[RENDER] {file_name} - page 1 rendered at {scale}x ({len(image)} bytes)")
    return image


class PdfPageRasterizer:
    """Renders the first page of a PDF to a JPEG buffer in a worker thread."""

    def __init__(
        self,
        scale: float = DEFAULT_RENDER_SCALE,
        jpeg_quality: int = DEFAULT_JPEG_QUALITY
    ):
        self.scale = scale
        self.jpeg_quality = jpeg_quality

    async def rasterize_first_page(self, content: bytes, file_name: str = "<memory>") -> bytes:
        """Render page 1 of ``content``; raises RenderError on failure."""
        return await asyncio.to_thread(
            render_first_page, content, file_name, self.scale, self.jpeg_quality
        )
