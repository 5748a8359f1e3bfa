"""
Per-column interpretation metadata and the pure edit operations over it.

The column list is positional: entry i always describes header i of the
parsed file, whatever its visibility. Every edit returns a new list.
"""
import re
from datetime import datetime
from enum import Enum
from typing import List, Sequence

from pydantic import BaseModel


class DataType(str, Enum):
    DATETIME = "DateTime"
    FLOAT = "Float"
    INT = "Int"
    STRING = "String"
    BOOLEAN = "Boolean"


class SplitRule(str, Enum):
    NONE = "none"
    TAB = "tab"
    COMMA = "comma"
    SEMICOLON = "semicolon"
    SPACE = "space"


DEFAULT_DATETIME_FORMAT = "YYYY-MM-DD HH:mm:ss"

DATETIME_FORMATS = [
    "YYYY-MM-DD HH:mm:ss",
    "YYYY-MM-DD HH:mm",
    "YYYY-MM-DD",
    "DD/MM/YYYY HH:mm:ss",
    "DD/MM/YYYY",
    "MM/DD/YYYY HH:mm:ss",
    "MM/DD/YYYY",
    "YYYY/MM/DD HH:mm:ss",
    "DD-MM-YYYY HH:mm:ss",
    "DD-MM-YYYY",
    "DD MMM YYYY HH:mm",
]

# Longest tokens first so "MMM" is not read as "MM" + "M".
_FORMAT_TOKENS = [
    ("YYYY", "%Y"),
    ("MMM", "%b"),
    ("MM", "%m"),
    ("DD", "%d"),
    ("HH", "%H"),
    ("mm", "%M"),
    ("ss", "%S"),
]
_FORMAT_TOKEN_RE = re.compile("|".join(token for token, _ in _FORMAT_TOKENS))
_FORMAT_TOKEN_MAP = dict(_FORMAT_TOKENS)


class ColumnInterpretation(BaseModel):
    original_name: str
    display_name: str
    visible: bool = True
    data_type: DataType = DataType.STRING
    date_time_format: str = DEFAULT_DATETIME_FORMAT
    split_by: SplitRule = SplitRule.NONE


def to_strftime(fmt: str) -> str:
    """Translate a display format such as "DD/MM/YYYY HH:mm" into a strftime pattern."""
    escaped = fmt.replace("%", "%%")
    return _FORMAT_TOKEN_RE.sub(lambda match: _FORMAT_TOKEN_MAP[match.group(0)], escaped)


def _reads_all(values: Sequence[str], pattern: str) -> bool:
    try:
        for value in values:
            datetime.strptime(value, pattern)
    except ValueError:
        return False
    return True


def matching_datetime_format(values: Sequence[str]) -> str:
    """First supported display format that reads every value, else the default."""
    for fmt in DATETIME_FORMATS:
        if _reads_all(values, to_strftime(fmt)):
            return fmt
    return DEFAULT_DATETIME_FORMAT


def _check_index(columns: Sequence[ColumnInterpretation], index: int) -> None:
    if not 0 <= index < len(columns):
        raise IndexError(f"Column index {index} out of range for {len(columns)} columns")


def _replace(columns: Sequence[ColumnInterpretation], index: int, **changes) -> List[ColumnInterpretation]:
    _check_index(columns, index)
    return [
        column.model_copy(update=changes) if i == index else column
        for i, column in enumerate(columns)
    ]


def toggle_visibility(columns: Sequence[ColumnInterpretation], index: int) -> List[ColumnInterpretation]:
    _check_index(columns, index)
    return _replace(columns, index, visible=not columns[index].visible)


def set_all_visible(columns: Sequence[ColumnInterpretation], visible: bool) -> List[ColumnInterpretation]:
    return [column.model_copy(update={"visible": visible}) for column in columns]


def rename_column(columns: Sequence[ColumnInterpretation], index: int, name: str) -> List[ColumnInterpretation]:
    return _replace(columns, index, display_name=name)


def set_data_type(columns: Sequence[ColumnInterpretation], index: int, data_type: DataType) -> List[ColumnInterpretation]:
    return _replace(columns, index, data_type=DataType(data_type))


def set_date_format(columns: Sequence[ColumnInterpretation], index: int, fmt: str) -> List[ColumnInterpretation]:
    return _replace(columns, index, date_time_format=fmt)


def set_split_by(columns: Sequence[ColumnInterpretation], index: int, rule: SplitRule) -> List[ColumnInterpretation]:
    return _replace(columns, index, split_by=SplitRule(rule))


def visible_indices(columns: Sequence[ColumnInterpretation]) -> List[int]:
    return [i for i, column in enumerate(columns) if column.visible]


def visible_columns(columns: Sequence[ColumnInterpretation]) -> List[ColumnInterpretation]:
    return [column for column in columns if column.visible]


def project_headers(columns: Sequence[ColumnInterpretation]) -> List[str]:
    """Display names of the visible columns, in original column order."""
    return [column.display_name for column in visible_columns(columns)]


def project_rows(rows: Sequence[Sequence[str]], columns: Sequence[ColumnInterpretation]) -> List[List[str]]:
    """
    Keep only the visible columns of each row.

    Ragged rows are tolerated: a cell missing from a short row becomes "".
    """
    indices = visible_indices(columns)
    return [[row[i] if i < len(row) else "" for i in indices] for row in rows]
