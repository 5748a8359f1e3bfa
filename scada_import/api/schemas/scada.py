from typing import List, Optional, Union

from pydantic import BaseModel, Field

from scada_import.domain.imports.columns import DATETIME_FORMATS, ColumnInterpretation, DataType, SplitRule
from scada_import.domain.imports.registry import FileStatus, ImportProgress, ParseSettings
from scada_import.domain.imports.separators import Separator
from scada_import.domain.imports.sessions import ImportSession


class FileEntryInfo(BaseModel):
    index: int
    entry_id: str
    name: str
    size: int
    association_id: Optional[str] = None
    status: FileStatus
    error: Optional[str] = None
    storage_path: Optional[str] = None
    import_id: Optional[str] = None


class ImportProgressInfo(BaseModel):
    total: int
    done_count: int
    error_count: int
    processed_count: int
    complete: bool

    @classmethod
    def from_progress(cls, progress: ImportProgress) -> "ImportProgressInfo":
        return cls(
            total=progress.total,
            done_count=progress.done_count,
            error_count=progress.error_count,
            processed_count=progress.processed_count,
            complete=progress.complete,
        )


class SessionStateResponse(BaseModel):
    """Everything the import wizard renders for one session."""
    session_id: str
    project_id: str
    settings: ParseSettings
    separator_detected: bool
    files: List[FileEntryInfo]
    columns: List[ColumnInterpretation]
    preview_headers: List[str]
    preview_rows: List[List[str]]
    progress: ImportProgressInfo
    importing: bool = False
    datetime_formats: List[str] = Field(default_factory=lambda: list(DATETIME_FORMATS))

    @classmethod
    def from_session(cls, session: ImportSession) -> "SessionStateResponse":
        registry = session.registry
        return cls(
            session_id=session.session_id,
            project_id=session.project_id,
            settings=registry.settings,
            separator_detected=registry.separator_detected,
            files=[
                FileEntryInfo(
                    index=index,
                    entry_id=entry.entry_id,
                    name=entry.name,
                    size=len(entry.raw),
                    association_id=entry.association_id,
                    status=entry.status,
                    error=entry.error,
                    storage_path=entry.storage_path,
                    import_id=entry.import_id,
                )
                for index, entry in enumerate(registry.files)
            ],
            columns=registry.columns,
            preview_headers=registry.preview_headers(),
            preview_rows=registry.preview_rows(),
            progress=ImportProgressInfo.from_progress(registry.progress()),
            importing=session.importing,
        )


class ReadFilesRequest(BaseModel):
    force_detect: bool = False  # Re-run separator detection even if it already ran for this batch


class ParseSettingsUpdate(BaseModel):
    separator: Optional[Separator] = None
    header_row: Optional[Union[int, str]] = None


class AssociationRequest(BaseModel):
    association_id: Optional[str] = None


class ColumnUpdate(BaseModel):
    display_name: Optional[str] = None
    visible: Optional[bool] = None
    data_type: Optional[DataType] = None
    date_time_format: Optional[str] = None
    split_by: Optional[SplitRule] = None


class ColumnVisibilityRequest(BaseModel):
    visible: bool


class ScadaImportRecord(BaseModel):
    id: str
    file_name: str
    tenant_id: Optional[str] = None
    storage_path: Optional[str] = None
    data_points: Optional[int] = None
    date_range_start: Optional[str] = None
    date_range_end: Optional[str] = None
    created_at: Optional[str] = None


class ScadaImportListResponse(BaseModel):
    success: bool = True
    imports: List[ScadaImportRecord]
    total_count: int


class DeleteImportsResponse(BaseModel):
    success: bool
    deleted_count: int
    message: str
