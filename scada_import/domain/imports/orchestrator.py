"""
Sequential import orchestration for a SCADA batch.

Each staged file is uploaded to storage, re-parsed with the batch's final
settings and committed, strictly one file at a time and in batch order. A
failing file is marked as such and the loop moves on; nothing raised by the
collaborators escapes this module.
"""
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Union

from .errors import CommitFailed, ImportInProgress, ScadaImportError, UploadFailed
from .registry import BatchRegistry, FileEntry, FileStatus, ImportProgress, ParsedResult

logger = logging.getLogger(__name__)

NO_CONTENT_MESSAGE = "No file content"

UploadFn = Callable[[str, str, bytes], Union[str, Awaitable[str]]]
CommitFn = Callable[[ParsedResult], Union[Optional[str], Awaitable[Optional[str]]]]
StatusCallback = Callable[[int, FileEntry], None]


class _BatchDiscarded(Exception):
    """Internal signal: the registry was closed while a call was in flight."""


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _failure_message(error: Exception, prefix: str) -> str:
    if isinstance(error, ScadaImportError):
        return error.message
    detail = str(error) or error.__class__.__name__
    return f"{prefix}: {detail}"


def _notify(on_status: Optional[StatusCallback], index: int, entry: FileEntry) -> None:
    if on_status is None:
        return
    try:
        on_status(index, entry)
    except Exception:
        logger.exception("Status listener failed for %s", entry.name)


def _advance(
    entry: FileEntry,
    index: int,
    status: FileStatus,
    on_status: Optional[StatusCallback],
    error: Optional[str] = None,
) -> None:
    entry.transition(status, error)
    if status is FileStatus.ERROR:
        logger.warning(f"File {index + 1} ({entry.name}) failed: {error}")
    else:
        logger.info(f"File {index + 1} ({entry.name}) -> {status.value}")
    _notify(on_status, index, entry)


async def _upload(registry: BatchRegistry, entry: FileEntry, batch_key: str, upload_fn: UploadFn) -> str:
    try:
        result = await _resolve(upload_fn(batch_key, entry.name, entry.raw))
    except Exception as e:
        if registry.closed:
            raise _BatchDiscarded()
        raise UploadFailed(_failure_message(e, "Upload failed"), file_name=entry.name)

    if registry.closed:
        raise _BatchDiscarded()
    if isinstance(result, Exception):
        raise UploadFailed(_failure_message(result, "Upload failed"), file_name=entry.name)
    if not result:
        raise UploadFailed("Upload failed: storage returned no path", file_name=entry.name)
    return str(result)


async def _commit(registry: BatchRegistry, entry: FileEntry, commit_fn: CommitFn) -> Optional[str]:
    try:
        parsed = registry.build_result(entry)
        result = await _resolve(commit_fn(parsed))
    except Exception as e:
        if registry.closed:
            raise _BatchDiscarded()
        raise CommitFailed(_failure_message(e, "Commit failed"), file_name=entry.name)

    if registry.closed:
        raise _BatchDiscarded()
    if isinstance(result, Exception):
        raise CommitFailed(_failure_message(result, "Commit failed"), file_name=entry.name)
    if result is False:
        raise CommitFailed("Commit failed: commit was rejected", file_name=entry.name)
    return None if result in (None, True) else str(result)


async def import_file(
    registry: BatchRegistry,
    entry: FileEntry,
    *,
    upload_fn: UploadFn,
    commit_fn: CommitFn,
    batch_key: Optional[str] = None,
    on_status: Optional[StatusCallback] = None,
    index: Optional[int] = None,
) -> FileEntry:
    """
    Drive one staged file through uploading -> parsing -> done.

    Upload and commit failures end in the error status with the message kept
    on the entry. Raises _BatchDiscarded when the registry is closed mid-flight.
    `index` is the file's position reported to `on_status`; it defaults to the
    entry's current position in the registry.
    """
    batch_key = batch_key or registry.batch_key
    if index is None:
        index = next(i for i, candidate in enumerate(registry.files) if candidate is entry)

    _advance(entry, index, FileStatus.UPLOADING, on_status)
    try:
        entry.storage_path = await _upload(registry, entry, batch_key, upload_fn)
    except UploadFailed as e:
        _advance(entry, index, FileStatus.ERROR, on_status, error=e.message)
        return entry

    _advance(entry, index, FileStatus.PARSING, on_status)
    try:
        entry.import_id = await _commit(registry, entry, commit_fn)
    except CommitFailed as e:
        _advance(entry, index, FileStatus.ERROR, on_status, error=e.message)
        return entry

    _advance(entry, index, FileStatus.DONE, on_status)
    return entry


async def run_import(
    registry: BatchRegistry,
    *,
    upload_fn: UploadFn,
    commit_fn: CommitFn,
    batch_key: Optional[str] = None,
    on_status: Optional[StatusCallback] = None,
) -> ImportProgress:
    """
    Import every file of the batch, one after another.

    Files already done or failed are skipped, so the call can be repeated
    after fixing a collaborator. Files that were never decoded fail with
    "No file content" without reaching the collaborators. The batch refuses
    edits while the run is in progress. If the registry is closed while a
    call is in flight, the late result is dropped and the run stops.

    Args:
        registry: Batch to import
        upload_fn: Storage collaborator, (batch_key, file_name, raw) -> storage path
        commit_fn: Commit collaborator, ParsedResult -> optional import id
        batch_key: Storage grouping key; defaults to the registry's own key
        on_status: Optional listener called after every status change

    Returns:
        Progress counters for the batch after the run

    Raises:
        ImportInProgress: Another run is already importing this batch
    """
    if registry.importing:
        raise ImportInProgress(f"Import batch {registry.batch_key} is already being imported")

    entries = list(registry.files)
    logger.info(f"Starting import of {len(entries)} file(s) for batch {batch_key or registry.batch_key}")

    registry.importing = True
    try:
        for index, entry in enumerate(entries):
            if registry.closed:
                break
            if entry.is_terminal:
                logger.debug(f"Skipping {entry.name}: already {entry.status.value}")
                continue
            if entry.status is FileStatus.PENDING or entry.content is None:
                _advance(entry, index, FileStatus.ERROR, on_status, error=NO_CONTENT_MESSAGE)
                continue
            if entry.status is not FileStatus.STAGED:
                logger.warning(f"Skipping {entry.name}: import already in progress ({entry.status.value})")
                continue

            try:
                await import_file(
                    registry,
                    entry,
                    upload_fn=upload_fn,
                    commit_fn=commit_fn,
                    batch_key=batch_key,
                    on_status=on_status,
                    index=index,
                )
            except _BatchDiscarded:
                logger.info(f"Batch {registry.batch_key} was closed during import of {entry.name}; result ignored")
                break
    finally:
        registry.importing = False

    progress = registry.progress()
    logger.info(
        f"Import finished: {progress.done_count} done, {progress.error_count} failed, "
        f"{progress.total} total"
    )
    return progress
