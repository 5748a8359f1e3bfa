import pytest

from scada_import.domain.imports.columns import DataType
from scada_import.domain.imports.errors import AssociationInUse, BatchClosed, ImportInProgress, InvalidStatusTransition
from scada_import.domain.imports.registry import (
    AssociationCandidate,
    BatchRegistry,
    FileEntry,
    FileStatus,
    ParseSettings,
    coerce_header_row,
)
from scada_import.domain.imports.separators import Separator

SEMICOLON_EXPORT = (
    "Timestamp;Active Power kW;Status\n"
    "2024-01-01 00:00;12.5;yes\n"
    "2024-01-01 00:30;13;no\n"
    "2024-01-01 01:00;11.25;yes\n"
).encode("utf-8")

COMMA_EXPORT = b"time,kw\n2024-02-01 00:00,4\n2024-02-01 00:30,5\n"


def _registry(*files, **kwargs):
    registry = BatchRegistry(batch_key="project-1", **kwargs)
    registry.add_files(files)
    return registry


def test_added_files_start_pending():
    registry = _registry(("a.csv", COMMA_EXPORT), ("b.csv", COMMA_EXPORT))

    assert [entry.status for entry in registry.files] == [FileStatus.PENDING, FileStatus.PENDING]
    assert registry.files[0].entry_id != registry.files[1].entry_id
    assert registry.columns == []


def test_read_files_stages_detects_separator_and_infers_columns():
    registry = _registry(("site.csv", SEMICOLON_EXPORT))

    staged = registry.read_files()

    assert [entry.name for entry in staged] == ["site.csv"]
    assert registry.files[0].status is FileStatus.STAGED
    assert registry.files[0].content.startswith("Timestamp;")
    assert registry.settings.separator is Separator.SEMICOLON
    assert registry.separator_detected is True
    assert [c.original_name for c in registry.columns] == ["Timestamp", "Active Power kW", "Status"]
    assert [c.data_type for c in registry.columns] == [DataType.DATETIME, DataType.FLOAT, DataType.BOOLEAN]
    assert registry.preview_headers() == ["Timestamp", "Active Power kW", "Status"]
    assert registry.preview_rows()[0] == ["2024-01-01 00:00", "12.5", "yes"]


def test_preview_is_limited_and_inference_samples_leading_rows():
    content = "kw\n" + "\n".join(str(i) for i in range(30)) + "\n1.5\n"
    registry = _registry(("long.csv", content.encode()), preview_row_limit=5)

    registry.read_files()

    assert len(registry.preview_rows()) == 5
    assert registry.columns[0].data_type is DataType.INT  # 1.5 is past the 20-value sample


def test_decode_failure_only_affects_that_file():
    registry = _registry(("bad.bin", b"\x00\x01\x02"), ("good.csv", COMMA_EXPORT))

    registry.read_files()

    bad, good = registry.files
    assert bad.status is FileStatus.ERROR
    assert "bad.bin" in bad.error
    assert good.status is FileStatus.STAGED
    assert registry.preview.entry_id == good.entry_id


def test_separator_is_detected_once_per_batch():
    registry = _registry(("site.csv", SEMICOLON_EXPORT))
    registry.read_files()
    registry.update_settings(separator=Separator.TAB)

    registry.add_files([("second.csv", COMMA_EXPORT)])
    registry.read_files()

    assert registry.settings.separator is Separator.TAB
    assert registry.files[1].status is FileStatus.STAGED


def test_forced_detection_runs_again():
    registry = _registry(("site.csv", SEMICOLON_EXPORT))
    registry.read_files()
    registry.update_settings(separator=Separator.COMMA)

    registry.read_files(force_detect=True)

    assert registry.settings.separator is Separator.SEMICOLON


def test_settings_change_rebuilds_columns_wholesale():
    registry = _registry(("site.csv", SEMICOLON_EXPORT))
    registry.read_files()
    registry.rename_column(0, "When")
    registry.toggle_column_visibility(2)

    registry.update_settings(header_row=1)

    assert registry.columns[0].display_name == "Timestamp"
    assert all(c.visible for c in registry.columns)


def test_header_row_beyond_content_empties_preview():
    registry = _registry(("site.csv", SEMICOLON_EXPORT))
    registry.read_files()

    registry.update_settings(header_row=99)

    assert registry.columns == []
    assert registry.preview_headers() == []
    assert registry.preview_rows() == []


@pytest.mark.parametrize("value, expected", [
    ("3", 3),
    (2, 2),
    ("", 1),
    ("abc", 1),
    ("0", 1),
    (-2, 1),
    (None, 1),
])
def test_coerce_header_row(value, expected):
    assert coerce_header_row(value) == expected


def test_parse_settings_coerces_header_row():
    assert ParseSettings(header_row="junk").header_row == 1
    assert ParseSettings(separator="tab", header_row="4") == ParseSettings(separator=Separator.TAB, header_row=4)


def test_column_edits_flow_into_results():
    registry = _registry(("site.csv", SEMICOLON_EXPORT))
    registry.read_files()
    registry.rename_column(1, "Power")
    registry.toggle_column_visibility(2)
    registry.set_column_data_type(1, DataType.FLOAT)

    result = registry.parsed_result(0)

    assert result.file_name == "site.csv"
    assert result.headers == ["Timestamp", "Power"]
    assert result.rows[1] == ["2024-01-01 00:30", "13"]
    assert [c.original_name for c in result.columns] == ["Timestamp", "Active Power kW"]
    assert result.raw_content == SEMICOLON_EXPORT.decode()


def test_removing_preview_file_moves_preview_to_next_file():
    registry = _registry(("site.csv", SEMICOLON_EXPORT), ("second.csv", COMMA_EXPORT))
    registry.read_files()
    registry.update_settings(separator=Separator.COMMA)

    registry.remove_file(0)

    assert registry.preview.entry_id == registry.files[0].entry_id
    assert [c.original_name for c in registry.columns] == ["time", "kw"]


def test_association_is_unique_within_batch():
    registry = _registry(("a.csv", COMMA_EXPORT), ("b.csv", COMMA_EXPORT))
    registry.assign_association(0, "tenant-1")

    with pytest.raises(AssociationInUse) as excinfo:
        registry.assign_association(1, "tenant-1")

    assert excinfo.value.holder_index == 0
    assert registry.files[0].association_id == "tenant-1"
    assert registry.files[1].association_id is None


def test_association_can_move_after_release():
    registry = _registry(("a.csv", COMMA_EXPORT), ("b.csv", COMMA_EXPORT))
    registry.assign_association(0, "tenant-1")
    registry.assign_association(0, "tenant-1")  # re-selecting your own tenant is fine

    registry.assign_association(0, None)
    registry.assign_association(1, "tenant-1")

    assert registry.files[1].association_id == "tenant-1"


def test_removing_a_file_releases_its_association():
    registry = _registry(("a.csv", COMMA_EXPORT), ("b.csv", COMMA_EXPORT))
    registry.assign_association(0, "tenant-1")

    registry.remove_file(0)
    registry.assign_association(0, "tenant-1")

    assert registry.files[0].name == "b.csv"


def test_available_associations_hide_taken_ids():
    registry = _registry(("a.csv", COMMA_EXPORT), ("b.csv", COMMA_EXPORT))
    candidates = [
        AssociationCandidate(id="t1", display_label="Shop A (1)"),
        AssociationCandidate(id="t2", display_label="Shop B (2)"),
        AssociationCandidate(id="t3", display_label="Shop C (3)"),
    ]
    registry.assign_association(0, "t1")
    registry.assign_association(1, "t2")

    assert [c.id for c in registry.available_associations(candidates)] == ["t3"]
    assert [c.id for c in registry.available_associations(candidates, index=0)] == ["t1", "t3"]


@pytest.mark.parametrize("path", [
    [FileStatus.PENDING, FileStatus.STAGED, FileStatus.UPLOADING, FileStatus.PARSING, FileStatus.DONE],
    [FileStatus.PENDING, FileStatus.ERROR],
    [FileStatus.PENDING, FileStatus.STAGED, FileStatus.UPLOADING, FileStatus.ERROR],
    [FileStatus.PENDING, FileStatus.STAGED, FileStatus.UPLOADING, FileStatus.PARSING, FileStatus.ERROR],
])
def test_allowed_status_paths(path):
    entry = FileEntry(name="a.csv", raw=b"")
    for status in path[1:]:
        entry.transition(status, "boom" if status is FileStatus.ERROR else None)

    assert entry.status is path[-1]


@pytest.mark.parametrize("path", [
    [FileStatus.UPLOADING],
    [FileStatus.STAGED, FileStatus.PARSING],
    [FileStatus.STAGED, FileStatus.ERROR],
    [FileStatus.STAGED, FileStatus.UPLOADING, FileStatus.PARSING, FileStatus.DONE, FileStatus.ERROR],
    [FileStatus.ERROR, FileStatus.STAGED],
    [FileStatus.STAGED, FileStatus.UPLOADING, FileStatus.STAGED],
])
def test_backward_or_skipping_transitions_are_rejected(path):
    entry = FileEntry(name="a.csv", raw=b"")
    with pytest.raises(InvalidStatusTransition):
        for status in path:
            entry.transition(status)


def test_error_message_is_kept_only_in_error_status():
    entry = FileEntry(name="a.csv", raw=b"")
    entry.transition(FileStatus.ERROR, "No file content")

    assert entry.error == "No file content"
    assert entry.is_terminal


def test_progress_is_derived_from_statuses():
    registry = _registry(("a.csv", COMMA_EXPORT), ("b.csv", COMMA_EXPORT), ("c.csv", COMMA_EXPORT))
    registry.read_files()
    first, second, _ = registry.files
    for status in (FileStatus.UPLOADING, FileStatus.PARSING, FileStatus.DONE):
        first.transition(status)
    second.transition(FileStatus.UPLOADING)
    second.transition(FileStatus.ERROR, "Upload failed: boom")

    progress = registry.progress()

    assert progress.total == 3
    assert progress.done_count == 1
    assert progress.processed_count == 2
    assert progress.complete is False


def test_closed_registry_is_empty_and_rejects_changes():
    registry = _registry(("a.csv", COMMA_EXPORT))
    registry.read_files()

    registry.close()

    assert registry.closed
    assert registry.files == []
    assert registry.columns == []
    assert registry.settings == ParseSettings()
    with pytest.raises(BatchClosed):
        registry.add_files([("b.csv", COMMA_EXPORT)])


@pytest.mark.parametrize("index", [-1, 2])
def test_file_indices_outside_the_batch_are_rejected(index):
    registry = _registry(("a.csv", COMMA_EXPORT), ("b.csv", COMMA_EXPORT))
    registry.assign_association(1, "tenant-1")

    with pytest.raises(IndexError):
        registry.assign_association(index, "tenant-1")
    with pytest.raises(IndexError):
        registry.remove_file(index)
    with pytest.raises(IndexError):
        registry.parsed_result(index)

    assert registry.files[1].association_id == "tenant-1"
    assert len(registry.files) == 2


def test_batch_refuses_edits_while_importing():
    registry = _registry(("a.csv", COMMA_EXPORT))
    registry.read_files()
    registry.importing = True

    for change in (
        lambda: registry.add_files([("b.csv", COMMA_EXPORT)]),
        lambda: registry.remove_file(0),
        lambda: registry.assign_association(0, "tenant-1"),
        lambda: registry.update_settings(header_row=2),
        lambda: registry.rename_column(0, "When"),
    ):
        with pytest.raises(ImportInProgress):
            change()

    assert registry.progress().total == 1
    assert registry.columns[0].display_name == "time"
