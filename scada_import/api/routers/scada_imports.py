"""
SCADA import wizard endpoints.

A session walks a batch of files through the wizard steps: add files, read
them, adjust parsing and columns, then import. Existing imports of a project
can be listed and deleted.
"""
import asyncio
import logging
from typing import List, Optional

from fastapi import APIRouter, File, HTTPException, Query, UploadFile

from scada_import.api.schemas.scada import (
    AssociationRequest,
    ColumnUpdate,
    ColumnVisibilityRequest,
    DeleteImportsResponse,
    ParseSettingsUpdate,
    ReadFilesRequest,
    ScadaImportListResponse,
    ScadaImportRecord,
    SessionStateResponse,
)
from scada_import.core.config import settings
from scada_import.domain.imports.errors import AssociationInUse
from scada_import.domain.imports.history import (
    delete_all_scada_imports,
    delete_scada_import,
    list_project_tenants,
    list_scada_imports,
    make_commit_fn,
)
from scada_import.domain.imports.orchestrator import run_import
from scada_import.domain.imports.registry import AssociationCandidate
from scada_import.domain.imports.sessions import ImportSession, SessionNotFound, close_session, create_session, get_session
from scada_import.integrations.storage import upload_scada_file

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects/{project_id}/scada-import", tags=["scada-import"])

MAX_UPLOAD_BYTES = settings.upload_max_file_size_mb * 1024 * 1024


def _load_session(project_id: str, session_id: str) -> ImportSession:
    try:
        return get_session(project_id, session_id)
    except SessionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


def _check_file_index(session: ImportSession, index: int) -> None:
    if not 0 <= index < len(session.registry.files):
        raise HTTPException(status_code=404, detail=f"File index {index} not found")


def _check_column_index(session: ImportSession, index: int) -> None:
    if not 0 <= index < len(session.registry.columns):
        raise HTTPException(status_code=404, detail=f"Column index {index} not found")


def _ensure_idle(session: ImportSession) -> None:
    if session.importing:
        raise HTTPException(status_code=409, detail="An import is already running for this session")


def _ensure_within_size_limit(file_size: int, file_name: str) -> None:
    """Raise an HTTPException if a file exceeds the configured upload limit."""
    if file_size > MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=413,
            detail=(
                f"{file_name} is too large. "
                f"Maximum allowed upload size is {settings.upload_max_file_size_mb}MB."
            ),
        )


# ── Sessions ────────────────────────────────────────────────────

@router.post("/sessions", response_model=SessionStateResponse)
async def create_import_session(project_id: str):
    session = create_session(project_id)
    return SessionStateResponse.from_session(session)


@router.get("/sessions/{session_id}", response_model=SessionStateResponse)
async def get_import_session(project_id: str, session_id: str):
    return SessionStateResponse.from_session(_load_session(project_id, session_id))


@router.delete("/sessions/{session_id}")
async def close_import_session(project_id: str, session_id: str):
    try:
        close_session(project_id, session_id)
    except SessionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"success": True, "message": "Import session closed"}


# ── Files ───────────────────────────────────────────────────────

@router.post("/sessions/{session_id}/files", response_model=SessionStateResponse)
async def add_files(project_id: str, session_id: str, files: List[UploadFile] = File(...)):
    session = _load_session(project_id, session_id)
    _ensure_idle(session)

    uploads = []
    for upload in files:
        content = await upload.read()
        _ensure_within_size_limit(len(content), upload.filename)
        uploads.append((upload.filename or "upload.csv", content))

    session.registry.add_files(uploads)
    return SessionStateResponse.from_session(session)


@router.delete("/sessions/{session_id}/files/{index}", response_model=SessionStateResponse)
async def remove_file(project_id: str, session_id: str, index: int):
    session = _load_session(project_id, session_id)
    _ensure_idle(session)
    _check_file_index(session, index)
    session.registry.remove_file(index)
    return SessionStateResponse.from_session(session)


@router.put("/sessions/{session_id}/files/{index}/association", response_model=SessionStateResponse)
async def assign_association(project_id: str, session_id: str, index: int, request: AssociationRequest):
    session = _load_session(project_id, session_id)
    _ensure_idle(session)
    _check_file_index(session, index)
    try:
        session.registry.assign_association(index, request.association_id)
    except AssociationInUse as e:
        raise HTTPException(status_code=409, detail=str(e))
    return SessionStateResponse.from_session(session)


@router.get("/sessions/{session_id}/associations", response_model=List[AssociationCandidate])
async def available_associations(project_id: str, session_id: str, index: Optional[int] = Query(None)):
    session = _load_session(project_id, session_id)
    if index is not None:
        _check_file_index(session, index)
    try:
        candidates = await asyncio.to_thread(list_project_tenants, project_id)
    except Exception as e:
        logger.error(f"Could not load tenants for project {project_id}: {e}")
        raise HTTPException(status_code=502, detail=f"Could not load tenants: {str(e)}")
    return session.registry.available_associations(candidates, index)


@router.post("/sessions/{session_id}/read", response_model=SessionStateResponse)
async def read_files(project_id: str, session_id: str, request: Optional[ReadFilesRequest] = None):
    session = _load_session(project_id, session_id)
    _ensure_idle(session)
    if not session.registry.files:
        raise HTTPException(status_code=400, detail="No files selected")

    force_detect = request.force_detect if request else False
    session.registry.read_files(force_detect=force_detect)
    return SessionStateResponse.from_session(session)


# ── Parsing and columns ─────────────────────────────────────────

@router.put("/sessions/{session_id}/settings", response_model=SessionStateResponse)
async def update_settings(project_id: str, session_id: str, request: ParseSettingsUpdate):
    session = _load_session(project_id, session_id)
    _ensure_idle(session)
    session.registry.update_settings(separator=request.separator, header_row=request.header_row)
    return SessionStateResponse.from_session(session)


@router.patch("/sessions/{session_id}/columns/{index}", response_model=SessionStateResponse)
async def update_column(project_id: str, session_id: str, index: int, request: ColumnUpdate):
    session = _load_session(project_id, session_id)
    _ensure_idle(session)
    _check_column_index(session, index)

    registry = session.registry
    if request.display_name is not None:
        registry.rename_column(index, request.display_name)
    if request.visible is not None and registry.columns[index].visible != request.visible:
        registry.toggle_column_visibility(index)
    if request.data_type is not None:
        registry.set_column_data_type(index, request.data_type)
    if request.date_time_format is not None:
        registry.set_column_date_format(index, request.date_time_format)
    if request.split_by is not None:
        registry.set_column_split_by(index, request.split_by)
    return SessionStateResponse.from_session(session)


@router.put("/sessions/{session_id}/columns/visibility", response_model=SessionStateResponse)
async def set_all_columns_visible(project_id: str, session_id: str, request: ColumnVisibilityRequest):
    session = _load_session(project_id, session_id)
    _ensure_idle(session)
    session.registry.set_all_columns_visible(request.visible)
    return SessionStateResponse.from_session(session)


# ── Import ──────────────────────────────────────────────────────

@router.post("/sessions/{session_id}/import", response_model=SessionStateResponse)
async def start_import(project_id: str, session_id: str):
    """
    Upload and commit every file of the session, one at a time.

    Per-file failures are reported in the file list; the request itself only
    fails when the session is missing, busy or closed.
    """
    session = _load_session(project_id, session_id)
    _ensure_idle(session)
    if not session.registry.files:
        raise HTTPException(status_code=400, detail="No files selected")

    session.importing = True
    try:
        await run_import(
            session.registry,
            upload_fn=upload_scada_file,
            commit_fn=make_commit_fn(project_id),
            batch_key=project_id,
        )
    finally:
        session.importing = False
    return SessionStateResponse.from_session(session)


# ── Existing imports ────────────────────────────────────────────

@router.get("/scada-imports", response_model=ScadaImportListResponse)
async def get_scada_imports(project_id: str):
    try:
        imports = await asyncio.to_thread(list_scada_imports, project_id)
    except Exception as e:
        logger.error(f"Could not list SCADA imports for {project_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Could not list imports: {str(e)}")
    return ScadaImportListResponse(
        imports=[ScadaImportRecord(**item) for item in imports],
        total_count=len(imports),
    )


@router.delete("/scada-imports/{import_id}", response_model=DeleteImportsResponse)
async def remove_scada_import(project_id: str, import_id: str):
    try:
        deleted = await asyncio.to_thread(delete_scada_import, project_id, import_id)
    except Exception as e:
        logger.error(f"Failed to delete SCADA import {import_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to delete: {str(e)}")
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Import {import_id} not found")
    return DeleteImportsResponse(success=True, deleted_count=1, message="Import and associated data deleted")


@router.delete("/scada-imports", response_model=DeleteImportsResponse)
async def remove_all_scada_imports(project_id: str):
    try:
        deleted_count = await asyncio.to_thread(delete_all_scada_imports, project_id)
    except Exception as e:
        logger.error(f"Failed to delete SCADA imports for {project_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to delete all: {str(e)}")
    return DeleteImportsResponse(
        success=True,
        deleted_count=deleted_count,
        message=f"All {deleted_count} imports deleted",
    )
