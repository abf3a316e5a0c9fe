"""Mirror local folders to object storage and back.

Both directions enumerate the full manifest before the first transfer so
progress totals are known from the first event, transfer one file at a
time, and report after every file. Uploads stop at the first failure;
a missing remote base directory downloads as an empty tree.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

from layermedia.cdn.storage import BunnyStorage, join_key
from layermedia.errors import RemoteNotFound, TransferError, ValidationError
from layermedia.model.cancel import CancelToken
from layermedia.model.progress import DownloadProgress, ProgressEmitter, Status, UploadProgress
from layermedia.model.transfer import TransferItem, TransferManifest, TransferStatus

logger = logging.getLogger(__name__)


def build_upload_manifest(local_paths: list[str], remote_base: str) -> TransferManifest:
    """One item per file under each root, keyed ``{remote_base}/{root name}/{relative path}``.

    Raises:
        ValidationError: If a root does not exist.
    """
    manifest = TransferManifest()
    for local_path in local_paths:
        root = Path(local_path)
        if root.is_file():
            manifest.items.append(
                TransferItem(str(root), join_key(remote_base, root.name), root.stat().st_size)
            )
            continue
        if not root.is_dir():
            raise ValidationError(f"Folder not found: {local_path}")
        for path in sorted(root.rglob("*")):
            if path.is_file():
                manifest.items.append(TransferItem(
                    str(path),
                    join_key(remote_base, root.name, path.relative_to(root).as_posix()),
                    path.stat().st_size,
                ))
    return manifest


def list_remote_tree(storage: BunnyStorage, remote_base: str, relative: str = "") -> list[TransferItem]:
    """Recursively list every file below *remote_base*, directories first descended.

    ``local_path`` of each item is its path relative to *remote_base*.
    """
    items: list[TransferItem] = []
    for entry in storage.list(join_key(remote_base, relative)):
        child = join_key(relative, entry.object_name)
        if entry.is_directory:
            items.extend(list_remote_tree(storage, remote_base, child))
        else:
            items.append(TransferItem(child, join_key(remote_base, child), entry.length))
    return items


def build_download_manifest(
    storage: BunnyStorage, remote_base: str, destination: str
) -> TransferManifest:
    try:
        remote_items = list_remote_tree(storage, remote_base)
    except RemoteNotFound:
        logger.info("Remote path %s not found, nothing to download", remote_base)
        remote_items = []
    return TransferManifest(items=[
        TransferItem(str(Path(destination) / item.local_path), item.remote_key, item.size)
        for item in remote_items
    ])


def scan_remote(storage: BunnyStorage, remote_base: str) -> tuple[int, int]:
    """Return ``(total_files, total_bytes)`` below *remote_base*; a missing base is empty."""
    try:
        items = list_remote_tree(storage, remote_base)
    except RemoteNotFound:
        return 0, 0
    return len(items), sum(item.size for item in items)


def upload_manifest(
    storage: BunnyStorage,
    manifest: TransferManifest,
    on_event: Callable[[UploadProgress], None] | None = None,
    cancel_token: CancelToken | None = None,
) -> UploadProgress:
    """PUT every item in order; the first failure aborts the rest."""
    emitter = ProgressEmitter(on_event)
    cancel_token = cancel_token or CancelToken()

    def event(status: Status, current: str = "", error: str | None = None) -> UploadProgress:
        return UploadProgress(
            manifest.total_files, manifest.transferred_files, current, status,
            total_bytes=manifest.total_bytes,
            uploaded_bytes=manifest.transferred_bytes,
            error=error,
        )

    manifest.status = TransferStatus.TRANSFERRING
    emitter.emit(event(Status.RUNNING))
    for item in manifest.items:
        if cancel_token.is_cancelled():
            manifest.status = TransferStatus.CANCELLED
            logger.info("Upload cancelled after %d files", manifest.transferred_files)
            return emitter.finish(event(Status.CANCELLED))
        emitter.emit(event(Status.RUNNING, item.local_path))
        try:
            storage.put(item.remote_key, item.local_path)
        except (TransferError, OSError) as e:
            manifest.status = TransferStatus.ERROR
            logger.error("Upload of %s failed: %s", item.local_path, e)
            return emitter.finish(event(
                Status.ERROR, item.local_path, f"Failed to upload {item.local_path}: {e}"
            ))
        manifest.record(item)
        emitter.emit(event(Status.RUNNING, item.local_path))

    manifest.status = TransferStatus.COMPLETED
    logger.info("Uploaded %d files (%d bytes)", manifest.transferred_files, manifest.transferred_bytes)
    return emitter.finish(event(Status.COMPLETED))


def download_manifest(
    storage: BunnyStorage,
    manifest: TransferManifest,
    on_event: Callable[[DownloadProgress], None] | None = None,
    cancel_token: CancelToken | None = None,
) -> DownloadProgress:
    """GET every item in order, recreating local directories as needed."""
    emitter = ProgressEmitter(on_event)
    cancel_token = cancel_token or CancelToken()

    def event(status: Status, current: str = "", error: str | None = None) -> DownloadProgress:
        return DownloadProgress(
            manifest.total_files, manifest.transferred_files,
            manifest.total_bytes, manifest.transferred_bytes,
            status, current_file=current, error=error,
        )

    manifest.status = TransferStatus.TRANSFERRING
    emitter.emit(event(Status.RUNNING))
    for item in manifest.items:
        if cancel_token.is_cancelled():
            manifest.status = TransferStatus.CANCELLED
            logger.info("Download cancelled after %d files", manifest.transferred_files)
            return emitter.finish(event(Status.CANCELLED))
        name = Path(item.local_path).name
        emitter.emit(event(Status.RUNNING, name))
        try:
            storage.get(item.remote_key, item.local_path)
        except (TransferError, OSError) as e:
            manifest.status = TransferStatus.ERROR
            logger.error("Download of %s failed: %s", item.remote_key, e)
            return emitter.finish(event(Status.ERROR, name, f"Failed to download {name}: {e}"))
        manifest.record(item)
        emitter.emit(event(Status.RUNNING, name))

    manifest.status = TransferStatus.COMPLETED
    logger.info(
        "Downloaded %d files (%d bytes)", manifest.transferred_files, manifest.transferred_bytes
    )
    return emitter.finish(event(Status.COMPLETED))


def upload_folders(
    storage: BunnyStorage,
    local_paths: list[str],
    remote_base: str,
    on_event: Callable[[UploadProgress], None] | None = None,
    cancel_token: CancelToken | None = None,
) -> UploadProgress:
    emitter = ProgressEmitter(on_event)
    emitter.emit(UploadProgress(0, 0, "", Status.LISTING))
    try:
        manifest = build_upload_manifest(local_paths, remote_base)
    except (ValidationError, OSError) as e:
        return emitter.finish(UploadProgress(0, 0, "", Status.ERROR, error=str(e)))
    logger.info("Uploading %d files (%d bytes)", manifest.total_files, manifest.total_bytes)
    return emitter.finish(upload_manifest(storage, manifest, emitter.relay, cancel_token))


def download_all(
    storage: BunnyStorage,
    remote_base: str,
    destination: str,
    on_event: Callable[[DownloadProgress], None] | None = None,
    cancel_token: CancelToken | None = None,
) -> DownloadProgress:
    emitter = ProgressEmitter(on_event)
    emitter.emit(DownloadProgress(0, 0, 0, 0, Status.LISTING))
    try:
        manifest = build_download_manifest(storage, remote_base, destination)
    except TransferError as e:
        return emitter.finish(DownloadProgress(0, 0, 0, 0, Status.ERROR, error=str(e)))
    logger.info("Downloading %d files (%d bytes)", manifest.total_files, manifest.total_bytes)
    return emitter.finish(download_manifest(storage, manifest, emitter.relay, cancel_token))
