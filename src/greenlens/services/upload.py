"""
Batch upload orchestration for greenlens.

A batch is one or more files published under shared metadata. Files are
processed strictly one after another in submission order:

1. The file's UploadTask starts as ``uploading`` at 0%.
2. The bytes go to the image CDN; progress updates touch only that task.
3. A display URL is built and the metadata record inserted.
4. The task turns ``success`` and the new ImageRecord is yielded right away.

Any failure in steps 2-3 marks that task ``error`` with a readable message and
the batch moves on to the next file. If the insert fails after the bytes were
stored, the stored object is deleted again when deletion credentials are
configured, otherwise it is logged as orphaned.

Configuration and validation problems are raised before the first transfer.
The pending form is cleared only when every task succeeded.
"""

import uuid
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime

from ..config import ServiceSettings
from ..errors import GreenLensError, ValidationError, describe_error
from ..logging_config import get_logger
from ..models.image import CaptureFile, ImageMetadata, ImageRecord, NewImage, UploadStatus, UploadTask
from .media_validator import MediaValidator, ValidationResult, validate_metadata
from .metadata import MetadataStore
from .storage import ObjectStorageClient, UploadProgress

logger = get_logger(__name__)

TaskCallback = Callable[[UploadTask], None]


@dataclass(frozen=True)
class BatchOutcome:
    """Terminal result for one file of a batch."""

    task: UploadTask
    record: ImageRecord | None = None

    @property
    def succeeded(self) -> bool:
        return self.task.status is UploadStatus.SUCCESS


@dataclass(frozen=True)
class BatchSummary:
    tasks: list[UploadTask]

    @property
    def succeeded(self) -> int:
        return sum(1 for task in self.tasks if task.status is UploadStatus.SUCCESS)

    @property
    def failed(self) -> int:
        return sum(1 for task in self.tasks if task.status is UploadStatus.ERROR)

    @property
    def completed(self) -> bool:
        return all(task.status.is_terminal for task in self.tasks)

    @property
    def all_succeeded(self) -> bool:
        return self.completed and self.failed == 0

    def message(self) -> str:
        if not self.completed:
            return f"Uploading {len(self.tasks)} image(s)..."
        if self.failed == 0:
            return f"All {self.succeeded} image(s) uploaded successfully."
        return f"{self.failed} of {len(self.tasks)} image(s) failed to upload. Fix the errors and submit again."


@dataclass
class UploadForm:
    """Files picked or captured for the next batch, plus the shared metadata being entered."""

    files: list[CaptureFile] = field(default_factory=list)
    metadata: ImageMetadata | None = None
    warning: str | None = None
    busy: bool = False

    def add_files(self, candidates: list[CaptureFile], validator: MediaValidator) -> ValidationResult:
        """Validate candidates, keep the accepted ones and remember the aggregate warning."""
        result = validator.validate(candidates)
        self.files.extend(result.accepted)
        self.warning = result.warning
        return result

    def remove_file(self, file_id: str) -> None:
        """
        Drop a pending file.

        Raises:
            ValidationError: While a batch is in flight
        """
        if self.busy:
            raise ValidationError(
                "Files cannot be removed while an upload is in progress", code="batch_in_flight"
            )
        self.files = [capture_file for capture_file in self.files if capture_file.file_id != file_id]

    def reset(self) -> None:
        self.files = []
        self.metadata = None
        self.warning = None


class UploadOrchestrator:
    """Drives batches through validation, CDN upload and metadata insert."""

    def __init__(
        self,
        settings: ServiceSettings,
        storage: ObjectStorageClient,
        store: MetadataStore,
        validator: MediaValidator | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.settings = settings
        self.storage = storage
        self.store = store
        self.validator = validator or MediaValidator(max_file_size=settings.max_file_size)
        self.clock = clock or (lambda: datetime.now(UTC))
        self.tasks: dict[str, UploadTask] = {}
        self.last_validation: ValidationResult | None = None
        self._in_flight = False

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def summary(self) -> BatchSummary:
        return BatchSummary(list(self.tasks.values()))

    def dismiss(self) -> None:
        """Forget the finished batch's tasks."""
        if self._in_flight:
            raise ValidationError("A batch is still uploading", code="batch_in_flight")
        self.tasks = {}

    def submit_form(self, form: UploadForm, on_progress: TaskCallback | None = None) -> Iterator[BatchOutcome]:
        """Submit the form's files and metadata; the form is reset only if every file succeeds."""
        if form.metadata is None:
            raise ValidationError("Image name is required", code="name_required", details={"field": "name"})
        return self.submit_batch(form.files, form.metadata, on_progress=on_progress, form=form)

    def submit_batch(
        self,
        files: list[CaptureFile],
        metadata: ImageMetadata,
        on_progress: TaskCallback | None = None,
        form: UploadForm | None = None,
    ) -> Iterator[BatchOutcome]:
        """
        Start a batch and return the stream of per-file outcomes.

        Preflight runs eagerly: missing configuration, an empty selection or
        invalid metadata raise here, before any task exists. Files failing
        media validation are left out of the batch (see ``last_validation``).

        Args:
            files: Files in submission order
            metadata: Shared metadata; names get a 1-based suffix when several files are sent
            on_progress: Called with the task after every progress or status change
            form: Pending form to reset when the whole batch succeeds

        Returns:
            Iterator yielding one BatchOutcome per accepted file, as each finishes

        Raises:
            ConfigurationError: CDN identifiers missing
            ValidationError: No files, invalid metadata, or a batch already in flight
        """
        self.settings.require_upload_credentials()

        if self._in_flight:
            raise ValidationError("A batch is already uploading", code="batch_in_flight")
        if not files:
            raise ValidationError("Please select at least one image to upload", code="no_files")

        self.last_validation = self.validator.validate(files)
        accepted = self.last_validation.accepted
        if not accepted:
            raise ValidationError(
                self.last_validation.warning or "No valid images selected",
                code="no_valid_files",
                details={"rejected": self.last_validation.rejected_count},
            )
        validate_metadata(metadata, len(accepted))

        self.tasks = {}
        batch = []
        for capture_file in accepted:
            task = UploadTask(task_id=uuid.uuid4().hex, filename=capture_file.filename)
            self.tasks[task.task_id] = task
            batch.append((task, capture_file))

        return self._run_batch(batch, metadata, on_progress, form)

    def _run_batch(
        self,
        batch: list[tuple[UploadTask, CaptureFile]],
        metadata: ImageMetadata,
        on_progress: TaskCallback | None,
        form: UploadForm | None,
    ) -> Iterator[BatchOutcome]:
        # In-flight state is set and cleared only by the running generator.
        if self._in_flight:
            raise ValidationError("A batch is already uploading", code="batch_in_flight")
        try:
            self._in_flight = True
            if form is not None:
                form.busy = True
            logger.info(
                "batch_started",
                files=len(batch),
                rejected=self.last_validation.rejected_count if self.last_validation else 0,
                category=metadata.category.value,
            )

            for index, (task, capture_file) in enumerate(batch, start=1):
                record = self._process_file(task, capture_file, metadata.for_file(index, len(batch)), on_progress)
                yield BatchOutcome(task=task, record=record)
        finally:
            for task, _ in batch:
                if task.status is UploadStatus.UPLOADING:
                    task.fail("Upload cancelled")
            self._in_flight = False
            if form is not None:
                form.busy = False

        summary = self.summary()
        logger.info("batch_completed", succeeded=summary.succeeded, failed=summary.failed)
        if summary.all_succeeded and form is not None:
            form.reset()

    def _process_file(
        self,
        task: UploadTask,
        capture_file: CaptureFile,
        metadata: ImageMetadata,
        on_progress: TaskCallback | None,
    ) -> ImageRecord | None:
        def notify() -> None:
            if on_progress:
                on_progress(task)

        def track(progress: UploadProgress) -> None:
            task.advance(progress.percentage)
            notify()

        notify()
        folder = f"{self.settings.upload_folder}/{metadata.category.value}"

        try:
            stored = self.storage.upload(capture_file, folder, progress_callback=track)
        except Exception as e:
            task.fail(describe_error(e))
            logger.warning("file_upload_failed", task_id=task.task_id, filename=task.filename, error=task.error)
            notify()
            return None

        new_image = NewImage(
            url=self.storage.build_display_url(
                stored.content_id, width=self.settings.display_width, quality="auto", format="auto"
            ),
            name=metadata.name,
            description=metadata.description,
            category=metadata.category,
            location=metadata.location,
            created_at=self.clock(),
            storage_ref=stored.content_id,
        )

        try:
            image_id = self.store.insert(new_image)
        except Exception as e:
            task.fail(describe_error(e))
            logger.warning("file_metadata_failed", task_id=task.task_id, filename=task.filename, error=task.error)
            self._discard_stored(stored.content_id)
            notify()
            return None

        task.succeed()
        notify()
        logger.info("file_published", task_id=task.task_id, filename=task.filename, image_id=image_id)
        return new_image.with_id(image_id)

    def _discard_stored(self, content_id: str) -> None:
        if not self.settings.deletion_configured:
            logger.warning("orphaned_storage_object", content_id=content_id, reason="deletion_not_configured")
            return
        try:
            self.storage.delete(content_id)
        except GreenLensError as e:
            logger.warning("orphaned_storage_object", content_id=content_id, reason=e.code)

    def delete_image(self, image_id: str) -> ImageRecord:
        """
        Delete a published image: the record first, then its stored bytes.

        Raises:
            NotFoundError, PersistenceError: From the metadata store (nothing else is touched)
        """
        record = self.store.delete(image_id)
        self._discard_stored(record.storage_ref)
        return record
