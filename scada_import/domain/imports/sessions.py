"""
In-process store of live import batches.

A batch lives from the moment the user opens the import wizard until it is
closed or cancelled; closing discards the registry so late upload/commit
results for it are ignored.
"""
import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Dict, Optional

from .registry import BatchRegistry

logger = logging.getLogger(__name__)


class SessionNotFound(Exception):
    """Raised when a session id is unknown or belongs to another project."""
    pass


@dataclass
class ImportSession:
    session_id: str
    project_id: str
    registry: BatchRegistry
    importing: bool = False


_sessions: Dict[str, ImportSession] = {}
_sessions_lock = threading.Lock()


def create_session(project_id: str, preview_row_limit: Optional[int] = None) -> ImportSession:
    session_id = str(uuid.uuid4())
    # Raw files of a project share one storage prefix, keyed by project id.
    registry = BatchRegistry(batch_key=project_id, preview_row_limit=preview_row_limit)
    session = ImportSession(session_id=session_id, project_id=project_id, registry=registry)
    with _sessions_lock:
        _sessions[session_id] = session
    logger.info(f"Opened import session {session_id} for project {project_id}")
    return session


def get_session(project_id: str, session_id: str) -> ImportSession:
    with _sessions_lock:
        session = _sessions.get(session_id)
    if session is None or session.project_id != project_id:
        raise SessionNotFound(f"Import session {session_id} not found")
    return session


def close_session(project_id: str, session_id: str) -> None:
    with _sessions_lock:
        session = _sessions.get(session_id)
        if session is None or session.project_id != project_id:
            raise SessionNotFound(f"Import session {session_id} not found")
        del _sessions[session_id]
    session.registry.close()
    logger.info(f"Closed import session {session_id}")


def clear_sessions() -> None:
    """Close every live session (application shutdown)."""
    with _sessions_lock:
        sessions = list(_sessions.values())
        _sessions.clear()
    for session in sessions:
        session.registry.close()
