"""
Batch registry for one SCADA import session.

Holds the ordered list of files being imported together with the parse
settings and column interpretations they share. Everything the wizard shows
(preview, column list, per-file status, progress) is derived from here.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, field_validator

from scada_import.core.config import settings

from . import columns as column_ops
from .columns import ColumnInterpretation, DataType, SplitRule
from .errors import AssociationInUse, BatchClosed, ImportInProgress, InvalidStatusTransition, ScadaImportError
from .processors.tabular_decoder import decode_file
from .row_parser import parse_content
from .separators import Separator, detect_separator
from .type_inference import infer_columns

logger = logging.getLogger(__name__)


class FileStatus(str, Enum):
    PENDING = "pending"
    STAGED = "staged"
    UPLOADING = "uploading"
    PARSING = "parsing"
    DONE = "done"
    ERROR = "error"


ALLOWED_TRANSITIONS: Dict[FileStatus, frozenset] = {
    FileStatus.PENDING: frozenset({FileStatus.STAGED, FileStatus.ERROR}),
    FileStatus.STAGED: frozenset({FileStatus.UPLOADING}),
    FileStatus.UPLOADING: frozenset({FileStatus.PARSING, FileStatus.ERROR}),
    FileStatus.PARSING: frozenset({FileStatus.DONE, FileStatus.ERROR}),
    FileStatus.DONE: frozenset(),
    FileStatus.ERROR: frozenset(),
}

TERMINAL_STATUSES = frozenset({FileStatus.DONE, FileStatus.ERROR})


def coerce_header_row(value: Any) -> int:
    """Turn user input into a header row number; junk and values below 1 become 1."""
    if isinstance(value, bool):
        return 1
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return 1
    return number if number >= 1 else 1


class ParseSettings(BaseModel):
    separator: Separator = Separator.COMMA
    header_row: int = 1

    @field_validator("header_row", mode="before")
    @classmethod
    def _coerce_header_row(cls, value: Any) -> int:
        return coerce_header_row(value)


class AssociationCandidate(BaseModel):
    id: str
    display_label: str


class ParsedResult(BaseModel):
    """Visible-column projection of one file, ready to hand to a commit collaborator."""
    file_name: str
    association_id: Optional[str] = None
    headers: List[str]
    rows: List[List[str]]
    columns: List[ColumnInterpretation]
    raw_content: Optional[str] = None
    storage_path: Optional[str] = None


@dataclass
class FileEntry:
    name: str
    raw: bytes
    entry_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    association_id: Optional[str] = None
    status: FileStatus = FileStatus.PENDING
    error: Optional[str] = None
    content: Optional[str] = None
    storage_path: Optional[str] = None
    import_id: Optional[str] = None

    def transition(self, status: FileStatus, error: Optional[str] = None) -> None:
        """Move to a new status, refusing anything but the forward transitions."""
        status = FileStatus(status)
        if status not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidStatusTransition(
                f"{self.name}: cannot move from '{self.status.value}' to '{status.value}'"
            )
        self.status = status
        self.error = error if status is FileStatus.ERROR else None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


@dataclass
class PreviewState:
    entry_id: Optional[str] = None
    headers: List[str] = field(default_factory=list)
    rows: List[List[str]] = field(default_factory=list)


@dataclass
class ImportProgress:
    total: int
    done_count: int
    error_count: int

    @property
    def processed_count(self) -> int:
        return self.done_count + self.error_count

    @property
    def complete(self) -> bool:
        return self.total > 0 and self.processed_count == self.total


class BatchRegistry:
    """The unit of work for one import session."""

    def __init__(self, batch_key: Optional[str] = None, preview_row_limit: Optional[int] = None):
        self.batch_key = batch_key or str(uuid.uuid4())
        self.preview_row_limit = preview_row_limit or settings.preview_row_limit
        self.files: List[FileEntry] = []
        self.settings = ParseSettings()
        self.columns: List[ColumnInterpretation] = []
        self.preview = PreviewState()
        self.separator_detected = False
        self.closed = False
        self.importing = False

    # ── Files ───────────────────────────────────────────────────

    def _ensure_open(self) -> None:
        if self.closed:
            raise BatchClosed(f"Import batch {self.batch_key} has been closed")

    def _ensure_editable(self) -> None:
        self._ensure_open()
        if self.importing:
            raise ImportInProgress(f"Import batch {self.batch_key} is being imported")

    def _check_file_index(self, index: int) -> None:
        if not 0 <= index < len(self.files):
            raise IndexError(f"File index {index} out of range for {len(self.files)} files")

    def add_files(self, uploads: Iterable[Tuple[str, bytes]]) -> List[FileEntry]:
        self._ensure_editable()
        added = [FileEntry(name=name, raw=raw) for name, raw in uploads]
        self.files.extend(added)
        logger.info(f"Batch {self.batch_key}: added {len(added)} file(s), {len(self.files)} total")
        return added

    def remove_file(self, index: int) -> FileEntry:
        self._ensure_editable()
        self._check_file_index(index)
        removed = self.files.pop(index)
        logger.info(f"Batch {self.batch_key}: removed {removed.name}")
        if removed.entry_id == self.preview.entry_id:
            self.refresh_preview()
        return removed

    def preview_entry(self) -> Optional[FileEntry]:
        """First file with decoded content; the preview and column list come from it."""
        return next((entry for entry in self.files if entry.content is not None), None)

    # ── Associations ────────────────────────────────────────────

    def association_holder(self, association_id: str) -> Optional[int]:
        for index, entry in enumerate(self.files):
            if entry.association_id == association_id:
                return index
        return None

    def assign_association(self, index: int, association_id: Optional[str]) -> FileEntry:
        """
        Link a file to an external entity, or clear the link with None.

        An id already held by another file is rejected; the current holder
        keeps it until it is cleared or that file is removed.
        """
        self._ensure_editable()
        self._check_file_index(index)
        entry = self.files[index]
        if association_id is not None:
            holder = self.association_holder(association_id)
            if holder is not None and holder != index:
                raise AssociationInUse(association_id, holder)
        entry.association_id = association_id
        return entry

    def available_associations(
        self,
        candidates: Sequence[AssociationCandidate],
        index: Optional[int] = None,
    ) -> List[AssociationCandidate]:
        if index is not None:
            self._check_file_index(index)
        own = self.files[index].association_id if index is not None else None
        taken = {entry.association_id for entry in self.files if entry.association_id is not None}
        return [c for c in candidates if c.id == own or c.id not in taken]

    # ── Decoding and preview ────────────────────────────────────

    def read_files(self, force_detect: bool = False) -> List[FileEntry]:
        """
        Decode every pending file, then sniff the separator and refresh the preview.

        Decode failures only affect the failing file. Returns the entries that
        were staged by this call.
        """
        self._ensure_editable()
        staged = []
        for entry in self.files:
            if entry.status is not FileStatus.PENDING:
                continue
            try:
                entry.content = decode_file(entry.name, entry.raw)
            except ScadaImportError as e:
                logger.warning(f"Could not decode {entry.name}: {e.message}")
                entry.transition(FileStatus.ERROR, e.message)
                continue
            entry.transition(FileStatus.STAGED)
            staged.append(entry)

        source = self.preview_entry()
        if source is None:
            return staged

        if force_detect or not self.separator_detected:
            detected = detect_separator(source.content)
            logger.info(f"Batch {self.batch_key}: detected '{detected.value}' separator from {source.name}")
            self.settings = self.settings.model_copy(update={"separator": detected})
            self.separator_detected = True
            self.refresh_preview()
        elif source.entry_id != self.preview.entry_id:
            self.refresh_preview()
        return staged

    def update_settings(self, separator: Optional[Separator] = None, header_row: Any = None) -> ParseSettings:
        """Replace the parse settings; the column list is rebuilt from scratch."""
        self._ensure_editable()
        changes: Dict[str, Any] = {}
        if separator is not None:
            changes["separator"] = Separator(separator)
        if header_row is not None:
            changes["header_row"] = header_row
        self.settings = ParseSettings(**{**self.settings.model_dump(), **changes})
        self.refresh_preview()
        return self.settings

    def refresh_preview(self) -> None:
        """Re-parse the preview file and regenerate the column interpretations."""
        source = self.preview_entry()
        if source is None:
            self.preview = PreviewState()
            self.columns = []
            return

        parsed = parse_content(source.content, self.settings.separator, self.settings.header_row)
        self.preview = PreviewState(
            entry_id=source.entry_id,
            headers=parsed.headers,
            rows=parsed.rows[: self.preview_row_limit],
        )
        self.columns = infer_columns(parsed.headers, parsed.rows)

    def preview_headers(self) -> List[str]:
        return column_ops.project_headers(self.columns)

    def preview_rows(self) -> List[List[str]]:
        return column_ops.project_rows(self.preview.rows, self.columns)

    # ── Column edits ────────────────────────────────────────────

    def _edit_columns(self, operation: Callable[..., List[ColumnInterpretation]], *args) -> List[ColumnInterpretation]:
        self._ensure_editable()
        self.columns = operation(self.columns, *args)
        return self.columns

    def toggle_column_visibility(self, index: int) -> List[ColumnInterpretation]:
        return self._edit_columns(column_ops.toggle_visibility, index)

    def set_all_columns_visible(self, visible: bool) -> List[ColumnInterpretation]:
        return self._edit_columns(column_ops.set_all_visible, visible)

    def rename_column(self, index: int, name: str) -> List[ColumnInterpretation]:
        return self._edit_columns(column_ops.rename_column, index, name)

    def set_column_data_type(self, index: int, data_type: DataType) -> List[ColumnInterpretation]:
        return self._edit_columns(column_ops.set_data_type, index, data_type)

    def set_column_date_format(self, index: int, fmt: str) -> List[ColumnInterpretation]:
        return self._edit_columns(column_ops.set_date_format, index, fmt)

    def set_column_split_by(self, index: int, rule: SplitRule) -> List[ColumnInterpretation]:
        return self._edit_columns(column_ops.set_split_by, index, rule)

    # ── Results and progress ────────────────────────────────────

    def build_result(self, entry: FileEntry) -> ParsedResult:
        """Re-parse one file with the final settings and project it through the visible columns."""
        parsed = parse_content(entry.content or "", self.settings.separator, self.settings.header_row)
        return ParsedResult(
            file_name=entry.name,
            association_id=entry.association_id,
            headers=column_ops.project_headers(self.columns),
            rows=column_ops.project_rows(parsed.rows, self.columns),
            columns=column_ops.visible_columns(self.columns),
            raw_content=entry.content,
            storage_path=entry.storage_path,
        )

    def parsed_result(self, index: int) -> ParsedResult:
        self._check_file_index(index)
        return self.build_result(self.files[index])

    def progress(self) -> ImportProgress:
        return ImportProgress(
            total=len(self.files),
            done_count=sum(1 for entry in self.files if entry.status is FileStatus.DONE),
            error_count=sum(1 for entry in self.files if entry.status is FileStatus.ERROR),
        )

    def close(self) -> None:
        """Discard the batch; late results for its files are ignored."""
        logger.info(f"Batch {self.batch_key}: closed with {len(self.files)} file(s)")
        self.closed = True
        self.files = []
        self.columns = []
        self.preview = PreviewState()
        self.settings = ParseSettings()
        self.separator_detected = False
