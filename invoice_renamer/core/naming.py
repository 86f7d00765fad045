"""Filename derivation and record identity.

``derive_name`` is the only place a renamed filename is computed. It is pure
and total: malformed fields produce a malformed but deterministic name.
"""
import hashlib
import re
from enum import Enum

from .models import InvoiceData, SourceFile

PDF_SUFFIX = ".pdf"

_DATE_SEPARATORS = re.compile(r"[/\-]")


class RecordIdScheme(str, Enum):
    """How record ids are built from an uploaded file."""
    NAME_MTIME = "name_mtime"
    CONTENT_HASH = "content_hash"


def normalize_date(invoice_date: str) -> str:
    """Strip every '/' and '-' from a date string."""
    return _DATE_SEPARATORS.sub("", invoice_date)


def derive_name(data: InvoiceData) -> str:
    """Build ``<businessNumber>_<date without separators>.pdf``."""
    return f"{data.business_number}_{normalize_date(data.invoice_date)}{PDF_SUFFIX}"


def make_record_id(source: SourceFile, scheme: RecordIdScheme | str = RecordIdScheme.NAME_MTIME) -> str:
    """Derive a record id for an uploaded file.

    The default scheme concatenates name and modification time, so two
    distinct files sharing both collide. ``content_hash`` appends a digest of
    the bytes, which only collides for identical content.
    """
    scheme = RecordIdScheme(scheme)
    base = f"{source.name}-{source.last_modified}"
    if scheme is RecordIdScheme.CONTENT_HASH:
        digest = hashlib.sha256(source.content).hexdigest()[:16]
        return f"{base}-{digest}"
    return base
