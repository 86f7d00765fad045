"""FileRecord state machine.

Every transition is a pure function returning a replacement record::

    IDLE -> PROCESSING -> SUCCESS | ERROR
    SUCCESS -> SUCCESS   (field edit, name re-derived)

ERROR and SUCCESS only leave through removal of the record.
"""
import logging
from collections.abc import Mapping

from .exceptions import InvalidTransitionError
from .models import Completion, FileRecord, FileStatus, InvoiceData, InvoiceField, SourceFile
from .naming import RecordIdScheme, derive_name, make_record_id

logger = logging.getLogger(__name__)

Records = dict[str, FileRecord]


def _replace(record: FileRecord, **changes) -> FileRecord:
    # Rebuild instead of model_copy so the consistency validator runs
    return FileRecord(**{**dict(record), **changes})


def _require(record: FileRecord, expected: FileStatus, action: str) -> None:
    if record.status != expected:
        raise InvalidTransitionError(record.id, record.status.value, action)


def new_record(
    source: SourceFile,
    status: FileStatus = FileStatus.IDLE,
    id_scheme: RecordIdScheme | str = RecordIdScheme.NAME_MTIME
) -> FileRecord:
    """Create the record for a freshly uploaded file."""
    if status not in (FileStatus.IDLE, FileStatus.PROCESSING):
        raise ValueError(f"New records start idle or processing, not {status.value}")
    return FileRecord(id=make_record_id(source, id_scheme), original_file=source, status=status)


def start_processing(record: FileRecord) -> FileRecord:
    _require(record, FileStatus.IDLE, "dispatch")
    return _replace(record, status=FileStatus.PROCESSING)


def mark_success(record: FileRecord, data: InvoiceData) -> FileRecord:
    """PROCESSING -> SUCCESS, deriving the new name from ``data``."""
    _require(record, FileStatus.PROCESSING, "complete")
    return _replace(
        record,
        status=FileStatus.SUCCESS,
        extracted_data=data,
        new_name=derive_name(data),
        error_message=None,
    )


def mark_error(record: FileRecord, error_message: str) -> FileRecord:
    """PROCESSING -> ERROR; data and name stay empty."""
    _require(record, FileStatus.PROCESSING, "fail")
    return _replace(
        record,
        status=FileStatus.ERROR,
        extracted_data=None,
        new_name=None,
        error_message=error_message,
    )


def edit_field(record: FileRecord, field: InvoiceField | str, value: str) -> FileRecord:
    """Replace one extracted field and re-derive the name in the same record."""
    _require(record, FileStatus.SUCCESS, "edit")
    data = record.extracted_data.with_field(InvoiceField.parse(field), value)
    return _replace(record, extracted_data=data, new_name=derive_name(data))


def apply_completion(records: Mapping[str, FileRecord], completion: Completion) -> Records:
    """Reduce a pipeline completion into a new record collection.

    Only the addressed key changes. Completions for records that were removed
    or are no longer processing are dropped.
    """
    record = records.get(completion.record_id)
    if record is None:
        logger.info(f"[BATCH] Dropping completion for removed record {completion.record_id}")
        return dict(records)
    if record.status != FileStatus.PROCESSING:
        logger.warning(
            f"[BATCH] Dropping completion for {completion.record_id} in status {record.status.value}"
        )
        return dict(records)

    if completion.succeeded:
        updated = mark_success(record, completion.data)
    else:
        updated = mark_error(record, completion.error_message)
    return {**records, record.id: updated}


def count_by_status(records: Mapping[str, FileRecord]) -> dict[FileStatus, int]:
    counts = {status: 0 for status in FileStatus}
    for record in records.values():
        counts[record.status] += 1
    return counts
