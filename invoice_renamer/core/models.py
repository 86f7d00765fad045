"""Canonical data models for invoice renaming."""
import mimetypes
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

PDF_MIME_TYPE = "application/pdf"


class FileStatus(str, Enum):
    """Processing status of a single uploaded file."""
    IDLE = "idle"
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"


class InvoiceField(str, Enum):
    """Editable invoice fields, valued by their wire names."""
    BUSINESS_NUMBER = "businessNumber"
    INVOICE_DATE = "invoiceDate"
    BUYER_NAME = "buyerName"

    @property
    def attribute(self) -> str:
        """Python attribute name on InvoiceData."""
        return _FIELD_ATTRIBUTES[self]

    @classmethod
    def parse(cls, name: "str | InvoiceField") -> "InvoiceField":
        """Accept either the wire name or the Python attribute name."""
        if isinstance(name, InvoiceField):
            return name
        for member in cls:
            if name in (member.value, member.attribute):
                return member
        raise ValueError(f"Unknown invoice field: {name!r}")


_FIELD_ATTRIBUTES = {
    InvoiceField.BUSINESS_NUMBER: "business_number",
    InvoiceField.INVOICE_DATE: "invoice_date",
    InvoiceField.BUYER_NAME: "buyer_name",
}


class InvoiceData(BaseModel):
    """Fields read from (or corrected on) an electronic invoice."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    business_number: str = Field(..., alias="businessNumber", description="8-digit business number (統一編號)")
    invoice_date: str = Field(..., alias="invoiceDate", description="Invoice issue date, '/' or '-' separated")
    buyer_name: Optional[str] = Field(None, alias="buyerName", description="Buyer company name (買方)")

    def with_field(self, field: InvoiceField, value: str) -> "InvoiceData":
        """Return a copy with one field replaced."""
        return self.model_copy(update={field.attribute: value})


class SourceFile(BaseModel):
    """An uploaded file: name, modification time and raw content."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Original file name")
    content: bytes = Field(..., repr=False, description="Raw file bytes")
    last_modified: int = Field(default=0, description="Modification time in epoch milliseconds")
    mime_type: str = Field(default="", description="Declared MIME type, empty when unknown")

    @classmethod
    def from_path(cls, path: Path | str) -> "SourceFile":
        """Load a file from disk, taking its mtime and guessed MIME type."""
        path = Path(path)
        stat = path.stat()
        mime_type, _ = mimetypes.guess_type(path.name)
        return cls(
            name=path.name,
            content=path.read_bytes(),
            last_modified=int(stat.st_mtime * 1000),
            mime_type=mime_type or "",
        )

    @property
    def size(self) -> int:
        return len(self.content)


class FileRecord(BaseModel):
    """One uploaded file and its processing outcome.

    Records are immutable; every change produces a replacement record with
    the same ``id``.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Record identity, see naming.make_record_id")
    original_file: SourceFile
    status: FileStatus = Field(default=FileStatus.IDLE)
    extracted_data: Optional[InvoiceData] = None
    new_name: Optional[str] = None
    error_message: Optional[str] = None

    @model_validator(mode="after")
    def check_consistency(self) -> "FileRecord":
        """Enforce the pairing between status, data, name and error."""
        if (self.extracted_data is None) != (self.new_name is None):
            raise ValueError("extracted_data and new_name must be set together")
        if self.extracted_data is not None and self.status != FileStatus.SUCCESS:
            raise ValueError("extracted_data is only allowed on successful records")
        if (self.error_message is not None) != (self.status == FileStatus.ERROR):
            raise ValueError("error_message must be set exactly when status is error")
        return self

    @property
    def file_name(self) -> str:
        return self.original_file.name

    @property
    def is_successful(self) -> bool:
        return self.status == FileStatus.SUCCESS


class Completion(BaseModel):
    """Outcome message emitted by one file's pipeline run."""

    model_config = ConfigDict(frozen=True)

    record_id: str
    data: Optional[InvoiceData] = None
    error_message: Optional[str] = None

    @model_validator(mode="after")
    def check_outcome(self) -> "Completion":
        if (self.data is None) == (self.error_message is None):
            raise ValueError("A completion carries either data or an error message")
        return self

    @classmethod
    def success(cls, record_id: str, data: InvoiceData) -> "Completion":
        return cls(record_id=record_id, data=data)

    @classmethod
    def failure(cls, record_id: str, error_message: str) -> "Completion":
        return cls(record_id=record_id, error_message=error_message)

    @property
    def succeeded(self) -> bool:
        return self.data is not None
