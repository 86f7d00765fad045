"""Download step: save renamed invoices, bundling several into a zip."""

import io
import logging
import zipfile
from collections.abc import Iterable
from pathlib import Path

from invoice_renamer.core.models import FileRecord, FileStatus
from invoice_renamer.core.naming import PDF_SUFFIX
from invoice_renamer.core.security import validate_output_name

logger = logging.getLogger(__name__)

DEFAULT_ARCHIVE_NAME = "renamed_invoices.zip"


def downloadable(records: Iterable[FileRecord]) -> list[FileRecord]:
    """SUCCESS records that have a derived name, in input order."""
    return [r for r in records if r.status == FileStatus.SUCCESS and r.new_name]


def unique_entry_names(names: Iterable[str]) -> list[str]:
    """Make archive entry names unique by appending `` (n)`` before the suffix."""
    seen: dict[str, int] = {}
    result = []
    for name in names:
        if name not in seen:
            seen[name] = 1
            result.append(name)
            continue
        stem, suffix = (name[:-len(PDF_SUFFIX)], PDF_SUFFIX) if name.endswith(PDF_SUFFIX) else (name, "")
        candidate = name
        while candidate in seen:
            candidate = f"{stem} ({seen[name]}){suffix}"
            seen[name] += 1
        seen[candidate] = 1
        result.append(candidate)
    return result


def build_archive(records: Iterable[FileRecord]) -> bytes | None:
    """Zip every SUCCESS record's original bytes under its derived name.

    Returns None when there is nothing to download.
    """
    ready = downloadable(records)
    if not ready:
        return None

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for record, entry_name in zip(ready, unique_entry_names(r.new_name for r in ready)):
            archive.writestr(entry_name, record.original_file.content)
    return buffer.getvalue()


def export_success_records(
    records: Iterable[FileRecord],
    output_dir: Path | str,
    archive_name: str = DEFAULT_ARCHIVE_NAME
) -> Path | None:
    """Write the download for a batch.

    One SUCCESS record is saved as the original PDF under its derived name;
    several are bundled into a zip.
    Zero SUCCESS records is a no-op returning None.

    Raises:
        SecurityError: If a derived name or the archive name is not a plain file name
    """
    ready = downloadable(records)
    if not ready:
        logger.info("No successfully processed files to download")
        return None

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    if len(ready) == 1:
        record = ready[0]
        target = output_dir / validate_output_name(record.new_name)
        target.write_bytes(record.original_file.content)
        logger.info(f"Saved {record.file_name} as {target.name}")
        return target

    for record in ready:
        validate_output_name(record.new_name)
    target = output_dir / validate_output_name(archive_name)
    target.write_bytes(build_archive(ready))
    logger.info(f"Saved {len(ready)} renamed invoices to {target}")
    return target
