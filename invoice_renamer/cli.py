"""Command-line entry point: rename invoice PDFs and prepare the email."""
import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path
from typing import List, Optional, Tuple

from dotenv import load_dotenv
from tqdm import tqdm

from invoice_renamer.config import Settings
from invoice_renamer.core.batch import BatchCoordinator
from invoice_renamer.core.exceptions import InvoiceRenamerError
from invoice_renamer.core.extractor import create_genai_client
from invoice_renamer.core.models import FileRecord, FileStatus, InvoiceField, SourceFile
from invoice_renamer.core.pdf_utils import is_pdf_upload
from invoice_renamer.delivery.export import export_success_records
from invoice_renamer.delivery.mailto import compose_mailto
from invoice_renamer.logging_config import setup_logging

logger = logging.getLogger(__name__)

_STATUS_LABELS = {
    FileStatus.IDLE: "等待中",
    FileStatus.PROCESSING: "分析中",
    FileStatus.SUCCESS: "成功",
    FileStatus.ERROR: "錯誤",
}


def collect_input_files(inputs: List[str]) -> List[Path]:
    """Expand directories (non-recursive) and keep explicit files, in order."""
    paths: List[Path] = []
    for item in inputs:
        path = Path(item)
        if path.is_dir():
            paths.extend(sorted(p for p in path.iterdir() if p.is_file()))
        elif path.is_file():
            paths.append(path)
        else:
            logger.warning(f"Input not found: {item}")
    return paths


def parse_edit(text: str) -> Tuple[str, InvoiceField, str]:
    """Parse ``FILE:FIELD=VALUE`` where FILE is the original file name."""
    try:
        target, assignment = text.split(":", 1)
        field_name, value = assignment.split("=", 1)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected FILE:FIELD=VALUE, got {text!r}")
    try:
        field = InvoiceField.parse(field_name.strip())
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))
    return target.strip(), field, value


def format_record(record: FileRecord) -> str:
    line = f"[{_STATUS_LABELS[record.status]}] {record.file_name}"
    if record.is_successful:
        data = record.extracted_data
        line += f" -> {record.new_name} (統一編號 {data.business_number}, 日期 {data.invoice_date}"
        if data.buyer_name:
            line += f", 買方 {data.buyer_name}"
        line += ")"
    elif record.status == FileStatus.ERROR:
        line += f": {record.error_message}"
    return line


def apply_edits(coordinator: BatchCoordinator, edits: List[Tuple[str, InvoiceField, str]]) -> None:
    for file_name, field, value in edits:
        matches = [r for r in coordinator.records if r.file_name == file_name]
        if not matches:
            logger.warning(f"No file named {file_name} to edit")
            continue
        for record in matches:
            if record.status != FileStatus.SUCCESS:
                logger.warning(f"{file_name} was not processed successfully, edit skipped")
                continue
            updated = coordinator.update_field(record.id, field, value)
            logger.info(f"Edited {field.value} of {file_name}, new name {updated.new_name}")


async def run(args: argparse.Namespace, settings: Settings) -> int:
    sources = [SourceFile.from_path(path) for path in collect_input_files(args.inputs)]
    pdf_sources = [source for source in sources if is_pdf_upload(source)]
    if not pdf_sources:
        logger.warning("No PDF files found in the given inputs")
        return 1

    if args.single and len(pdf_sources) > 1:
        logger.error(f"--single accepts one PDF, got {len(pdf_sources)}")
        return 2

    client = create_genai_client(settings)
    coordinator = BatchCoordinator.from_settings(settings, client)

    total = 1 if args.single else len(coordinator.add_files(sources))

    with tqdm(total=total, desc="分析發票", unit="file") as pbar:
        def on_update(record: FileRecord) -> None:
            if record.status in (FileStatus.SUCCESS, FileStatus.ERROR):
                icon = "✅" if record.status == FileStatus.SUCCESS else "❌"
                pbar.set_postfix_str(f"{icon} {record.file_name}")
                pbar.update(1)

        unsubscribe = coordinator.subscribe(on_update)
        try:
            if args.single:
                await coordinator.process_single(pdf_sources[0])
            else:
                await coordinator.process_eligible()
        finally:
            unsubscribe()

    apply_edits(coordinator, args.edits)

    for record in coordinator.records:
        print(format_record(record))
    print(f"成功 {coordinator.success_count} / 錯誤 {coordinator.error_count}")

    if not coordinator.has_success:
        return 1

    try:
        target = export_success_records(coordinator.records, args.output, settings.archive_name)
    except InvoiceRenamerError as e:
        logger.error(e.message)
        return 2
    if target is not None:
        print(f"已儲存：{target}")

    recipient = args.email
    if args.preset:
        recipient = settings.preset_recipients.get(args.preset)
        if recipient is None:
            logger.error(f"Unknown preset recipient {args.preset!r}")
            return 2
    if recipient:
        names = [record.new_name for record in coordinator.success_records]
        print(compose_mailto(recipient, names))

    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="invoice-renamer",
        description="Rename Taiwanese e-invoice PDFs as <統一編號>_<日期>.pdf using Gemini"
    )
    parser.add_argument("inputs", nargs="+", help="PDF files or folders containing them")
    parser.add_argument("--output", "-o", default="output", help="Folder for the renamed file or zip (default: output)")
    parser.add_argument("--single", action="store_true", help="Single-file mode: process exactly one PDF")
    parser.add_argument("--set", dest="edits", action="append", default=[], type=parse_edit,
                        metavar="FILE:FIELD=VALUE", help="Correct an extracted field before saving")
    recipients = parser.add_mutually_exclusive_group()
    recipients.add_argument("--email", help="Recipient address for the generated mailto link")
    recipients.add_argument("--preset", help="Name of a preset recipient from settings")
    parser.add_argument("--logs", default=None, help="Folder for the log file (default: console only)")
    parser.add_argument("--env-file", default=".env", help="Path of the .env file (default: .env)")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    load_dotenv(args.env_file)

    try:
        settings = Settings.from_env(args.env_file)
    except InvoiceRenamerError as e:
        print(e.message, file=sys.stderr)
        return 2

    setup_logging(Path(args.logs) if args.logs else None, console_level=settings.log_level)

    start_time = time.time()
    exit_code = asyncio.run(run(args, settings))
    logger.info(f"Total execution time: {time.time() - start_time:.2f} seconds")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
