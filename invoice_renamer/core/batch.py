"""Batch coordination of per-file invoice pipelines.

The coordinator is the only writer of the record collection. Pipelines never
touch it: each runs as its own task and, when done, posts a ``Completion``
onto the inbox of its dispatch round. The coordinator drains the inbox and
folds each message into the latest snapshot with ``apply_completion``.
"""
import asyncio
import logging
from collections.abc import Callable, Iterable
from functools import partial

from .exceptions import (
    CANCELLED_MESSAGE,
    UNKNOWN_ERROR_MESSAGE,
    InvoiceRenamerError,
    RecordNotFoundError,
)
from .extractor import InvoiceFieldExtractor
from .models import Completion, FileRecord, FileStatus, InvoiceField, SourceFile
from .naming import RecordIdScheme
from .pdf_utils import PdfPageRasterizer, is_pdf_upload
from .rate_limit import CapacityLimiter, create_pipeline_limiter
from .records import Records, apply_completion, count_by_status, edit_field, new_record, start_processing

logger = logging.getLogger(__name__)

RecordListener = Callable[[FileRecord], None]


class TaskHandle:
    """Cancellation handle for one in-flight file pipeline."""

    def __init__(self, record_id: str, task: asyncio.Task):
        self.record_id = record_id
        self._task = task

    def cancel(self) -> bool:
        """Request cancellation; the record then ends in ERROR."""
        return self._task.cancel()

    @property
    def done(self) -> bool:
        return self._task.done()

    @property
    def cancelled(self) -> bool:
        return self._task.cancelled()


class BatchCoordinator:
    """Owns the FileRecords of a session and runs their pipelines."""

    def __init__(
        self,
        rasterizer: PdfPageRasterizer,
        extractor: InvoiceFieldExtractor,
        limiter: CapacityLimiter | None = None,
        id_scheme: RecordIdScheme | str = RecordIdScheme.NAME_MTIME
    ):
        self.rasterizer = rasterizer
        self.extractor = extractor
        self.limiter = limiter
        self.id_scheme = RecordIdScheme(id_scheme)
        self._records: Records = {}
        self._handles: dict[str, TaskHandle] = {}
        self._listeners: list[RecordListener] = []

    @classmethod
    def from_settings(cls, settings, client) -> "BatchCoordinator":
        """Wire rasterizer, extractor and limiter from Settings and a genai client."""
        rasterizer = PdfPageRasterizer(scale=settings.render_scale, jpeg_quality=settings.jpeg_quality)
        extractor = InvoiceFieldExtractor(
            client,
            model=settings.extraction_model,
            include_buyer_name=settings.extract_buyer_name,
        )
        limiter = create_pipeline_limiter(settings.max_concurrency) if settings.max_concurrency else None
        return cls(rasterizer, extractor, limiter, settings.record_id_scheme)

    # Snapshot access

    @property
    def records(self) -> tuple[FileRecord, ...]:
        return tuple(self._records.values())

    def get(self, record_id: str) -> FileRecord:
        try:
            return self._records[record_id]
        except KeyError:
            raise RecordNotFoundError(record_id) from None

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._records

    def subscribe(self, listener: RecordListener) -> Callable[[], None]:
        """Call ``listener`` with every record replacement; returns an unsubscribe function."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _commit(self, record: FileRecord) -> None:
        self._records = {**self._records, record.id: record}
        self._notify(record)

    def _notify(self, record: FileRecord) -> None:
        for listener in list(self._listeners):
            listener(record)

    # Collection changes

    def add_files(self, sources: Iterable[SourceFile]) -> list[FileRecord]:
        """Add uploads as IDLE records.

        Non-PDF files are skipped without error. A file whose id already
        exists is skipped and the existing record kept.
        """
        added = []
        for source in sources:
            if not is_pdf_upload(source):
                logger.debug(f"[BATCH] Ignoring non-PDF upload {source.name}")
                continue
            record = new_record(source, FileStatus.IDLE, self.id_scheme)
            if record.id in self._records:
                logger.warning(f"[BATCH] Duplicate record id {record.id}, keeping existing record")
                continue
            logger.debug(f"[BATCH] Added {source.name} ({source.size} bytes) as {record.id}")
            self._commit(record)
            added.append(record)
        return added

    def remove(self, record_id: str) -> None:
        """Discard one record, cancelling its pipeline if still running."""
        if record_id not in self._records:
            raise RecordNotFoundError(record_id)
        handle = self._handles.pop(record_id, None)
        if handle is not None:
            handle.cancel()
        self._records = {key: value for key, value in self._records.items() if key != record_id}

    def reset(self) -> None:
        """Discard every record. Completions still in flight are ignored."""
        for handle in self._handles.values():
            handle.cancel()
        self._handles = {}
        self._records = {}

    def update_field(self, record_id: str, field: InvoiceField | str, value: str) -> FileRecord:
        """Edit one field of a SUCCESS record; its new name is re-derived in the same update."""
        updated = edit_field(self.get(record_id), field, value)
        self._commit(updated)
        return updated

    # Processing

    def task_handle(self, record_id: str) -> TaskHandle | None:
        return self._handles.get(record_id)

    def cancel(self, record_id: str) -> bool:
        handle = self._handles.get(record_id)
        return handle.cancel() if handle is not None else False

    async def process_eligible(self) -> list[FileRecord]:
        """Run every IDLE record's pipeline concurrently and wait for all of them.

        Returns the final records of this round that are still present.
        """
        eligible = [record for record in self._records.values() if record.status == FileStatus.IDLE]
        if not eligible:
            logger.info("[BATCH] No idle files to process")
            return []

        dispatched = []
        for record in eligible:
            processing = start_processing(record)
            self._commit(processing)
            dispatched.append(processing)

        logger.info(f"[BATCH] Processing {len(dispatched)} files")
        await self._run_round(dispatched)
        return [self._records[record.id] for record in dispatched if record.id in self._records]

    async def process_single(self, source: SourceFile) -> FileRecord:
        """Single-file mode: replace the collection with ``source`` and process it at once."""
        self.reset()
        record = new_record(source, FileStatus.PROCESSING, self.id_scheme)
        self._commit(record)
        await self._run_round([record])
        return self._records.get(record.id, record)

    async def _run_round(self, records: list[FileRecord]) -> None:
        inbox: asyncio.Queue[tuple[TaskHandle, Completion]] = asyncio.Queue()
        pending: dict[str, TaskHandle] = {}

        for record in records:
            task = asyncio.create_task(self._run_pipeline(record), name=f"invoice:{record.id}")
            handle = TaskHandle(record.id, task)
            task.add_done_callback(partial(self._post_completion, inbox, handle))
            self._handles[record.id] = handle
            pending[record.id] = handle

        try:
            while pending:
                handle, completion = await inbox.get()
                if pending.get(handle.record_id) is handle:
                    del pending[handle.record_id]
                self._apply(handle, completion)
        finally:
            # Only reached with work left if this round itself was cancelled
            for record_id, handle in pending.items():
                handle.cancel()
                self._apply(handle, Completion.failure(record_id, CANCELLED_MESSAGE))

        counts = count_by_status(self._records)
        logger.info(
            f"[BATCH] Round finished: {counts[FileStatus.SUCCESS]} success, "
            f"{counts[FileStatus.ERROR]} error"
        )

    def _apply(self, handle: TaskHandle, completion: Completion) -> None:
        # A handle that is no longer registered belongs to a removed record
        if self._handles.get(handle.record_id) is not handle:
            logger.info(f"[BATCH] Ignoring stale completion for {handle.record_id}")
            return
        del self._handles[handle.record_id]
        self._records = apply_completion(self._records, completion)
        if handle.record_id in self._records:
            self._notify(self._records[handle.record_id])

    @staticmethod
    def _post_completion(inbox: asyncio.Queue, handle: TaskHandle, task: asyncio.Task) -> None:
        if task.cancelled():
            completion = Completion.failure(handle.record_id, CANCELLED_MESSAGE)
        elif task.exception() is not None:
            logger.error(f"[BATCH] {handle.record_id} - Pipeline crashed: {task.exception()!r}")
            completion = Completion.failure(handle.record_id, UNKNOWN_ERROR_MESSAGE)
        else:
            completion = task.result()
        inbox.put_nowait((handle, completion))

    async def _run_pipeline(self, record: FileRecord) -> Completion:
        """Rasterize then extract one file; every failure becomes an error completion."""
        if self.limiter is None:
            return await self._pipeline_steps(record)
        async with self.limiter:
            return await self._pipeline_steps(record)

    async def _pipeline_steps(self, record: FileRecord) -> Completion:
        source = record.original_file
        try:
            image = await self.rasterizer.rasterize_first_page(source.content, source.name)
            data = await self.extractor.extract(image, source.name)
        except InvoiceRenamerError as e:
            logger.error(f"[BATCH] {source.name} - {e.message}")
            return Completion.failure(record.id, e.user_message)
        except Exception:
            logger.exception(f"[BATCH] {source.name} - Unexpected pipeline error")
            return Completion.failure(record.id, UNKNOWN_ERROR_MESSAGE)
        return Completion.success(record.id, data)

    # Aggregate queries

    @property
    def success_records(self) -> list[FileRecord]:
        return [record for record in self._records.values() if record.is_successful]

    @property
    def counts(self) -> dict[FileStatus, int]:
        return count_by_status(self._records)

    @property
    def success_count(self) -> int:
        return self.counts[FileStatus.SUCCESS]

    @property
    def idle_count(self) -> int:
        return self.counts[FileStatus.IDLE]

    @property
    def processing_count(self) -> int:
        return self.counts[FileStatus.PROCESSING]

    @property
    def error_count(self) -> int:
        return self.counts[FileStatus.ERROR]

    @property
    def has_success(self) -> bool:
        """Download and email steps are enabled."""
        return self.success_count > 0

    @property
    def can_process(self) -> bool:
        return self.idle_count > 0

    @property
    def is_busy(self) -> bool:
        """Some record is still processing."""
        return self.processing_count > 0
