"""Command line tasks for greenlens.

Run through the ``greenlens`` console script (an invoke Program) or with
``invoke --search-root src/greenlens/cli``.
"""

import sys
from pathlib import Path

from invoke import Collection, Context, Program, task

from .. import __version__
from ..config import ServiceSettings, load_settings
from ..errors import GreenLensError
from ..logging_config import configure_structured_logging, get_logger
from ..models.image import CaptureFile, CatalogQuery, ImageMetadata, UploadTask
from ..services.capture import CameraConstraints, CaptureSession
from ..services.catalog import CatalogEngine
from ..services.media_validator import EXTENSION_MIME_TYPES, guess_mime_type
from ..services.metadata import MetadataStore
from ..services.storage import ObjectStorageClient
from ..services.upload import UploadForm, UploadOrchestrator

logger = get_logger(__name__)


def _services(env_file: str) -> tuple[ServiceSettings, MetadataStore, UploadOrchestrator]:
    configure_structured_logging()
    settings = load_settings(env_file)
    store = MetadataStore(settings)
    orchestrator = UploadOrchestrator(settings, ObjectStorageClient(settings), store)
    return settings, store, orchestrator


def _find_images(directory: Path, recursive: bool) -> list[Path]:
    pattern = "**/*" if recursive else "*"
    return sorted(
        path for path in directory.glob(pattern) if path.is_file() and path.suffix.lower() in EXTENSION_MIME_TYPES
    )


def _print_progress(task: UploadTask) -> None:
    print(f"  {task.filename}: {task.status.value} {task.progress}%", end="\r" if not task.status.is_terminal else "\n")


def _run_batch(orchestrator: UploadOrchestrator, form: UploadForm) -> bool:
    try:
        outcomes = orchestrator.submit_form(form, on_progress=_print_progress)
        for outcome in outcomes:
            if outcome.record is not None:
                print(f"  published {outcome.record.name} -> {outcome.record.id}")
            else:
                print(f"  failed {outcome.task.filename}: {outcome.task.error}")
    except GreenLensError as e:
        print(f"Error: {e}", file=sys.stderr)
        return False

    summary = orchestrator.summary()
    print(summary.message())
    return summary.all_succeeded


@task(
    help={
        "directory": "Directory containing JPEG, PNG, WebP or HEIC images",
        "name": "Image name (suffixed with an index when several files are uploaded)",
        "description": "Image description",
        "category": "flowers, nature or crops",
        "location": "Optional location",
        "recursive": "Search subdirectories too",
        "dry_run": "List the files that would be uploaded",
        "env_file": "Environment file to load",
    }
)
def upload(
    c: Context,
    directory: str,
    name: str,
    description: str,
    category: str,
    location: str = "",
    recursive: bool = False,
    dry_run: bool = False,
    env_file: str = ".env",
):
    """Upload every image in a directory as one batch."""
    root = Path(directory)
    if not root.is_dir():
        print(f"Directory not found: {directory}", file=sys.stderr)
        sys.exit(1)

    paths = _find_images(root, recursive)
    if not paths:
        logger.warning("no_image_files_found", directory=directory, recursive=recursive)
        print("No image files found to process.")
        return
    logger.info("image_files_found", directory=directory, count=len(paths), dry_run=dry_run)

    if dry_run:
        for path in paths:
            print(f"- {path}")
        logger.info("dry_run_completed", count=len(paths))
        return

    settings, store, orchestrator = _services(env_file)
    with store:
        form = UploadForm()
        candidates = [CaptureFile(path.name, guess_mime_type(path.name), path.read_bytes()) for path in paths]
        form.add_files(candidates, orchestrator.validator)
        if form.warning:
            print(f"Warning: {form.warning}")
        try:
            form.metadata = ImageMetadata.create(name, description, category, location or None)
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)

        print(f"Uploading {len(form.files)} image(s) to {settings.upload_folder}/{form.metadata.category.value}")
        if not _run_batch(orchestrator, form):
            sys.exit(1)


@task(
    help={
        "name": "Image name",
        "description": "Image description",
        "category": "flowers, nature or crops",
        "location": "Optional location",
        "count": "Number of snapshots to take",
        "device": "Camera index or device path",
        "env_file": "Environment file to load",
    }
)
def capture(
    c: Context,
    name: str,
    description: str,
    category: str,
    location: str = "",
    count: int = 1,
    device: str = "0",
    env_file: str = ".env",
):
    """Take snapshots with the camera and upload them as one batch."""
    _, store, orchestrator = _services(env_file)
    form = UploadForm()

    try:
        with CaptureSession(constraints=CameraConstraints(device=device)) as session:
            session.request()
            snapshots = [session.snapshot() for _ in range(count)]
        logger.info("snapshots_taken", count=len(snapshots), device=device)
    except GreenLensError as e:
        print(f"Error: {e.user_message}", file=sys.stderr)
        sys.exit(1)

    with store:
        form.add_files(snapshots, orchestrator.validator)
        form.metadata = ImageMetadata.create(name, description, category, location or None)
        if not _run_batch(orchestrator, form):
            sys.exit(1)


@task(
    help={
        "category": "flowers, nature, crops or all",
        "search": "Text to find in name, description or location",
        "sort": "newest, oldest or name",
        "limit": "Maximum number of records loaded from the database",
        "env_file": "Environment file to load",
    }
)
def gallery(
    c: Context,
    category: str = "all",
    search: str = "",
    sort: str = "newest",
    limit: int = 50,
    env_file: str = ".env",
):
    """List published images."""
    _, store, _ = _services(env_file)
    with store:
        query = CatalogQuery.create(category=category, search=search, sort=sort)
        result = store.query(category=query.category_filter, limit=limit)
        if not result.ok:
            print(f"Warning: could not load images ({result.error})", file=sys.stderr)

        records = CatalogEngine().refine(result.records, query)
        for record in records:
            location = f" @ {record.location}" if record.location else ""
            print(f"{record.created_at:%Y-%m-%d %H:%M}  [{record.category.value}] {record.name}{location}  {record.id}")
        print(f"{len(records)} image(s)")


@task(
    help={
        "image_id": "Id of the image to edit",
        "name": "New name",
        "description": "New description",
        "category": "New category",
        "location": "New location (empty string clears it)",
        "env_file": "Environment file to load",
    }
)
def edit(
    c: Context,
    image_id: str,
    name: str | None = None,
    description: str | None = None,
    category: str | None = None,
    location: str | None = None,
    env_file: str = ".env",
):
    """Edit the metadata of a published image."""
    _, store, _ = _services(env_file)
    with store:
        try:
            record = store.update(
                image_id, name=name, description=description, category=category, location=location
            )
        except GreenLensError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        print(f"Updated {record.id}: {record.name} [{record.category.value}]")


@task(help={"image_id": "Id of the image to delete", "env_file": "Environment file to load"})
def delete(c: Context, image_id: str, env_file: str = ".env"):
    """Delete a published image and its stored bytes."""
    _, store, orchestrator = _services(env_file)
    with store:
        try:
            record = orchestrator.delete_image(image_id)
        except GreenLensError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        print(f"Deleted {record.name} ({record.id})")


@task(help={"env_file": "Environment file to load"})
def seed(c: Context, env_file: str = ".env"):
    """Insert the sample gallery into an empty database."""
    _, store, _ = _services(env_file)
    with store:
        inserted = store.seed_defaults()
    print(f"Seeded {inserted} image(s)" if inserted else "Database already has images; nothing seeded.")


namespace = Collection(upload, capture, gallery, edit, delete, seed)
program = Program(namespace=namespace, version=__version__, name="greenlens", binary="greenlens")
