"""
Import history for SCADA files: the default commit collaborator.

Committed files are recorded in the scada_imports table and linked to their
tenant through project_tenants.scada_import_id. The project_tenants table is
owned by the hosted project store; this module only reads it and updates the
link column.
"""
import asyncio
import json
import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

import pandas as pd
from sqlalchemy import text

from scada_import.db.session import get_engine
from scada_import.integrations.storage import StorageError, delete_files, list_files, safe_file_name

from .columns import DataType, to_strftime
from .registry import AssociationCandidate, ParsedResult

logger = logging.getLogger(__name__)

_table_initialized = False
_table_init_lock = threading.Lock()


def ensure_scada_imports_table() -> None:
    """Create the scada_imports table on-demand."""
    global _table_initialized
    if _table_initialized:
        return

    with _table_init_lock:
        if _table_initialized:
            return
        create_scada_imports_table()
        _table_initialized = True


def create_scada_imports_table() -> None:
    engine = get_engine()
    ddl_statements = [
        """
        CREATE TABLE IF NOT EXISTS scada_imports (
            id VARCHAR(36) PRIMARY KEY,
            project_id VARCHAR(64) NOT NULL,
            file_name VARCHAR(255) NOT NULL,
            tenant_id VARCHAR(64),
            storage_path VARCHAR(500),
            data_points INTEGER NOT NULL DEFAULT 0,
            date_range_start VARCHAR(32),
            date_range_end VARCHAR(32),
            raw_data TEXT,
            created_at VARCHAR(32) NOT NULL
        )
        """,
        """CREATE INDEX IF NOT EXISTS idx_scada_imports_project ON scada_imports(project_id)""",
    ]
    with engine.begin() as conn:
        for ddl in ddl_statements:
            conn.execute(text(ddl))
    logger.info("scada_imports table ready")


def compute_date_range(result: ParsedResult) -> Tuple[Optional[str], Optional[str]]:
    """
    Earliest and latest timestamp of the first visible DateTime column.

    Values are read with the column's own display format. When that format
    reads none of them, each value is parsed on its own instead; values that
    still cannot be read are ignored.
    """
    for position, column in enumerate(result.columns):
        if column.data_type is not DataType.DATETIME:
            continue
        values = [row[position] for row in result.rows if position < len(row) and row[position]]
        if not values:
            return None, None
        parsed = pd.to_datetime(
            pd.Series(values),
            format=to_strftime(column.date_time_format),
            errors="coerce",
            exact=False,
        ).dropna()
        if parsed.empty:
            parsed = pd.to_datetime(pd.Series(values), format="mixed", errors="coerce").dropna()
        if parsed.empty:
            return None, None
        return parsed.min().isoformat(), parsed.max().isoformat()
    return None, None


def _raw_data_payload(result: ParsedResult) -> str:
    return json.dumps(
        {
            "headers": result.headers,
            "rows": result.rows,
            "columns": [column.model_dump(mode="json") for column in result.columns],
        }
    )


def record_scada_import(project_id: str, result: ParsedResult) -> str:
    """
    Persist one committed file and link its tenant.

    Returns:
        The id of the new scada_imports row
    """
    ensure_scada_imports_table()
    import_id = str(uuid.uuid4())
    date_range_start, date_range_end = compute_date_range(result)

    with get_engine().begin() as conn:
        conn.execute(
            text(
                """
                INSERT INTO scada_imports (
                    id, project_id, file_name, tenant_id, storage_path, data_points,
                    date_range_start, date_range_end, raw_data, created_at
                ) VALUES (
                    :id, :project_id, :file_name, :tenant_id, :storage_path, :data_points,
                    :date_range_start, :date_range_end, :raw_data, :created_at
                )
                """
            ),
            {
                "id": import_id,
                "project_id": project_id,
                "file_name": result.file_name,
                "tenant_id": result.association_id,
                "storage_path": result.storage_path,
                "data_points": len(result.rows),
                "date_range_start": date_range_start,
                "date_range_end": date_range_end,
                "raw_data": _raw_data_payload(result),
                "created_at": datetime.now(timezone.utc).isoformat(),
            },
        )
        if result.association_id:
            conn.execute(
                text("UPDATE project_tenants SET scada_import_id = :import_id WHERE id = :tenant_id"),
                {"import_id": import_id, "tenant_id": result.association_id},
            )

    logger.info(f"Recorded SCADA import {import_id} for {result.file_name} ({len(result.rows)} rows)")
    return import_id


def make_commit_fn(project_id: str) -> Callable[[ParsedResult], Any]:
    """Commit collaborator bound to a project; the database work runs in a worker thread."""

    async def commit(result: ParsedResult) -> str:
        return await asyncio.to_thread(record_scada_import, project_id, result)

    return commit


def _row_to_import(row: Any) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "file_name": row["file_name"],
        "tenant_id": row["tenant_id"],
        "storage_path": row["storage_path"],
        "data_points": row["data_points"],
        "date_range_start": row["date_range_start"],
        "date_range_end": row["date_range_end"],
        "created_at": row["created_at"],
    }


def list_scada_imports(project_id: str) -> List[Dict[str, Any]]:
    """Previously imported files of a project, newest first."""
    ensure_scada_imports_table()
    with get_engine().connect() as conn:
        rows = conn.execute(
            text(
                """
                SELECT id, file_name, tenant_id, storage_path, data_points,
                       date_range_start, date_range_end, created_at
                FROM scada_imports
                WHERE project_id = :project_id
                ORDER BY created_at DESC
                """
            ),
            {"project_id": project_id},
        ).mappings().all()
    return [_row_to_import(row) for row in rows]


def _remove_stored_files(project_id: str, file_name: str, storage_path: Optional[str]) -> int:
    # Every upload of the same file name is removed, not just the recorded one.
    suffix = f"_{safe_file_name(file_name)}"
    try:
        matches = [path for path in list_files(f"{project_id}/") if path.endswith(suffix)]
        if storage_path and storage_path not in matches:
            matches.append(storage_path)
        return delete_files(matches)
    except StorageError as e:
        logger.warning(f"Could not remove stored files for {file_name}: {e}")
        return 0


def delete_scada_import(project_id: str, import_id: str) -> bool:
    """
    Delete one import: unlink tenants, remove its stored files, drop the record.

    Returns:
        False when the import does not exist for this project
    """
    ensure_scada_imports_table()
    engine = get_engine()
    with engine.connect() as conn:
        row = conn.execute(
            text("SELECT file_name, storage_path FROM scada_imports WHERE id = :id AND project_id = :project_id"),
            {"id": import_id, "project_id": project_id},
        ).mappings().first()
    if row is None:
        return False

    with engine.begin() as conn:
        conn.execute(
            text("UPDATE project_tenants SET scada_import_id = NULL WHERE scada_import_id = :id"),
            {"id": import_id},
        )

    removed = _remove_stored_files(project_id, row["file_name"], row["storage_path"])

    with engine.begin() as conn:
        conn.execute(text("DELETE FROM scada_imports WHERE id = :id"), {"id": import_id})

    logger.info(f"Deleted SCADA import {import_id} ({row['file_name']}), removed {removed} stored file(s)")
    return True


def delete_all_scada_imports(project_id: str) -> int:
    """Delete every import of a project; returns how many were deleted."""
    deleted = 0
    for existing in list_scada_imports(project_id):
        if delete_scada_import(project_id, existing["id"]):
            deleted += 1
    return deleted


def _tenant_label(row: Any) -> str:
    label = row["shop_name"] or row["name"] or row["id"]
    if row["shop_number"]:
        label = f"{label} ({row['shop_number']})"
    return label


def list_project_tenants(project_id: str) -> List[AssociationCandidate]:
    """Tenants of a project that files can be associated with."""
    with get_engine().connect() as conn:
        rows = conn.execute(
            text(
                """
                SELECT id, name, shop_name, shop_number
                FROM project_tenants
                WHERE project_id = :project_id
                ORDER BY shop_number
                """
            ),
            {"project_id": project_id},
        ).mappings().all()
    return [AssociationCandidate(id=str(row["id"]), display_label=_tenant_label(row)) for row in rows]
