"""Invoice field extraction through the Gemini vision API.

The genai client is created once at startup (``create_genai_client``) and
handed to ``InvoiceFieldExtractor``; tests pass a mock client instead.
"""
import json
import logging
from typing import Any

from google import genai
from google.genai import types
from pydantic import ValidationError

from .exceptions import ExtractionError
from .models import InvoiceData, InvoiceField

logger = logging.getLogger(__name__)

DEFAULT_EXTRACTION_MODEL = "gemini-2.5-flash"
IMAGE_MIME_TYPE = "image/jpeg"

EXTRACTION_PROMPT = (
    "這是一張台灣的電子發票。請辨識並回傳 JSON 格式的統一編號和開立日期。"
    "統一編號是8位數字。開立日期請使用 YYYY/MM/DD 格式。"
)
EXTRACTION_PROMPT_WITH_BUYER = (
    "這是一張台灣的電子發票。請辨識並回傳 JSON 格式的統一編號、開立日期和買方名稱。"
    "統一編號是8位數字。開立日期請使用 YYYY/MM/DD 格式。買方名稱是公司全名。"
)

_FIELD_DESCRIPTIONS = {
    InvoiceField.BUSINESS_NUMBER: "The 8-digit business number (統一編號).",
    InvoiceField.INVOICE_DATE: "The invoice issue date in YYYY/MM/DD format (開立日期).",
    InvoiceField.BUYER_NAME: "The buyer's company name (買方).",
}


def required_fields(include_buyer_name: bool = True) -> list[InvoiceField]:
    """Fields the AI response must contain."""
    fields = [InvoiceField.BUSINESS_NUMBER, InvoiceField.INVOICE_DATE]
    if include_buyer_name:
        fields.append(InvoiceField.BUYER_NAME)
    return fields


def build_response_schema(include_buyer_name: bool = True) -> types.Schema:
    """JSON schema constraining the model output to the required fields."""
    fields = required_fields(include_buyer_name)
    return types.Schema(
        type=types.Type.OBJECT,
        properties={
            field.value: types.Schema(type=types.Type.STRING, description=_FIELD_DESCRIPTIONS[field])
            for field in fields
        },
        required=[field.value for field in fields],
    )


def parse_invoice_response(response_text: str | None, include_buyer_name: bool = True) -> InvoiceData:
    """Parse and validate the model's JSON reply.

    Raises:
        ExtractionError: If the text is not a JSON object or a required
            field is missing, not a string, or blank
    """
    if not response_text or not response_text.strip():
        raise ExtractionError("Empty response from AI service", response_text=response_text or "")

    resp_txt = response_text.strip()
    try:
        payload: Any = json.loads(resp_txt)
    except json.JSONDecodeError as e:
        raise ExtractionError("Malformed JSON in response", e, resp_txt)

    if not isinstance(payload, dict):
        raise ExtractionError("Response JSON is not an object", response_text=resp_txt)

    for field in required_fields(include_buyer_name):
        value = payload.get(field.value)
        if not isinstance(value, str) or not value.strip():
            raise ExtractionError(f"Missing or empty field '{field.value}'", response_text=resp_txt)

    try:
        return InvoiceData.model_validate(
            {field.value: payload[field.value].strip() for field in required_fields(include_buyer_name)}
        )
    except ValidationError as e:
        raise ExtractionError("Response does not match invoice schema", e, resp_txt)


class InvoiceFieldExtractor:
    """Sends a page image to Gemini and returns validated InvoiceData."""

    def __init__(
        self,
        client: "genai.Client",
        model: str = DEFAULT_EXTRACTION_MODEL,
        include_buyer_name: bool = True
    ):
        self.client = client
        self.model = model
        self.include_buyer_name = include_buyer_name
        self._config = types.GenerateContentConfig(
            response_mime_type="application/json",
            response_schema=build_response_schema(include_buyer_name),
        )
        self._prompt = EXTRACTION_PROMPT_WITH_BUYER if include_buyer_name else EXTRACTION_PROMPT

    async def extract(self, image: bytes, file_name: str = "<image>") -> InvoiceData:
        """Extract invoice fields from a JPEG page image.

        No retry is attempted; any failure raises ExtractionError whose
        ``user_message`` is the single normalized failure text.
        """
        contents = [
            types.Part.from_bytes(data=image, mime_type=IMAGE_MIME_TYPE),
            self._prompt,
        ]

        logger.info(f"[EXTRACT] {file_name} - Making API call ({self.model})")
        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=contents,
                config=self._config,
            )
        except Exception as e:
            logger.error(f"[EXTRACT] {file_name} - API call failed: {str(e)[:150]}")
            raise ExtractionError("API call failed", e, model_used=self.model)

        try:
            data = parse_invoice_response(getattr(response, "text", None), self.include_buyer_name)
        except ExtractionError as e:
            e.model_used = self.model
            logger.error(f"[EXTRACT] {file_name} - {e.reason}: {(e.response_text or '')[:120]}")
            raise

        logger.info(f"[EXTRACT] {file_name} - Success: {data.business_number} / {data.invoice_date}")
        return data


def create_genai_client(settings) -> "genai.Client":
    """Build the shared genai client from Settings."""
    return genai.Client(**settings.api_client_kwargs)
