"""Shared fixtures: generated PDFs, a mocked genai client and pipeline fakes."""
import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import fitz  # PyMuPDF
import pytest

from invoice_renamer.core.exceptions import ExtractionError, RenderError
from invoice_renamer.core.models import InvoiceData, SourceFile

FAKE_JPEG = b"\xff\xd8\xff\xe0fake-jpeg\xff\xd9"

SAMPLE_FIELDS = {
    "businessNumber": "12345678",
    "invoiceDate": "2024/03/15",
    "buyerName": "Acme Co",
}


def make_pdf_bytes(text: str = "Invoice 12345678", pages: int = 1, width: int = 595, height: int = 842) -> bytes:
    """Build a small PDF in memory."""
    doc = fitz.open()
    try:
        for index in range(pages):
            page = doc.new_page(width=width, height=height)
            page.insert_text((72, 72), f"{text} p{index + 1}")
        return doc.tobytes()
    finally:
        doc.close()


def make_source(name: str = "invoice.pdf", content: bytes | None = None, last_modified: int = 1710460800000,
                mime_type: str = "application/pdf") -> SourceFile:
    return SourceFile(
        name=name,
        content=content if content is not None else name.encode(),
        last_modified=last_modified,
        mime_type=mime_type,
    )


class MockGeminiResponse:
    """Mock response from Gemini API."""

    def __init__(self, text: str | None):
        self.text = text


class FakeRasterizer:
    """Returns a fixed image; raises RenderError for names listed in ``fail``."""

    def __init__(self, fail: tuple[str, ...] = (), delays: dict[str, float] | None = None):
        self.fail = fail
        self.delays = delays or {}
        self.calls: list[str] = []

    async def rasterize_first_page(self, content: bytes, file_name: str = "<memory>") -> bytes:
        self.calls.append(file_name)
        await asyncio.sleep(self.delays.get(file_name, 0))
        if file_name in self.fail:
            raise RenderError(file_name, "PDF file is corrupted")
        return FAKE_JPEG + file_name.encode()


class FakeExtractor:
    """Maps file names to InvoiceData, an exception, or a delay before answering."""

    def __init__(self, results: dict[str, InvoiceData | Exception], delays: dict[str, float] | None = None):
        self.results = results
        self.delays = delays or {}
        self.started: list[str] = []
        self.finished: list[str] = []

    async def extract(self, image: bytes, file_name: str = "<image>") -> InvoiceData:
        self.started.append(file_name)
        await asyncio.sleep(self.delays.get(file_name, 0))
        result = self.results[file_name]
        self.finished.append(file_name)
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def sample_pdf_bytes():
    return make_pdf_bytes()


@pytest.fixture
def sample_invoice():
    return InvoiceData.model_validate(SAMPLE_FIELDS)


@pytest.fixture
def mock_genai_client():
    """Mock Gemini AI client answering with the sample fields."""
    client = MagicMock()
    client.aio = MagicMock()
    client.aio.models = MagicMock()
    client.aio.models.generate_content = AsyncMock(
        return_value=MockGeminiResponse(json.dumps(SAMPLE_FIELDS))
    )
    return client


@pytest.fixture
def extraction_failure():
    return ExtractionError("Malformed JSON in response", response_text="not json")
