"""
Column type inference for freshly parsed SCADA files.

The guess is advisory: it only seeds the default column interpretation and the
user is free to override it afterwards.
"""
import logging
import re
from typing import List, Sequence

from .columns import DEFAULT_DATETIME_FORMAT, ColumnInterpretation, DataType, matching_datetime_format

logger = logging.getLogger(__name__)

SAMPLE_SIZE = 20
BOOLEAN_TOKENS = {"true", "false", "0", "1", "yes", "no"}

_DATE_PREFIX = re.compile(r"\d{4}[-/]\d{2}[-/]\d{2}")
_NUMERIC = re.compile(r"[-+]?\d+(\.\d+)?([eE][+-]?\d+)?")


def sample_values(values: Sequence[str]) -> List[str]:
    """The first SAMPLE_SIZE non-empty values, trimmed."""
    return [v.strip() for v in values if v and v.strip()][:SAMPLE_SIZE]


def guess_data_type(values: Sequence[str]) -> DataType:
    """
    Guess the semantic type of a column from its values.

    Checks, in order, DateTime, Float/Int, Boolean and falls back to String.
    Only the first SAMPLE_SIZE non-empty values take part.
    """
    sample = sample_values(values)
    if not sample:
        return DataType.STRING

    if all(_DATE_PREFIX.match(v) for v in sample):
        return DataType.DATETIME

    if all(_NUMERIC.fullmatch(v) for v in sample):
        return DataType.FLOAT if any("." in v for v in sample) else DataType.INT

    distinct = {v.lower() for v in sample}
    if len(distinct) <= 2 and distinct <= BOOLEAN_TOKENS:
        return DataType.BOOLEAN

    return DataType.STRING


def column_values(rows: Sequence[Sequence[str]], index: int) -> List[str]:
    return [row[index] if index < len(row) else "" for row in rows]


def infer_columns(headers: Sequence[str], rows: Sequence[Sequence[str]]) -> List[ColumnInterpretation]:
    """Build the default interpretation for every header of a parsed file."""
    columns = []
    for index, header in enumerate(headers):
        values = column_values(rows, index)
        data_type = guess_data_type(values)
        date_time_format = DEFAULT_DATETIME_FORMAT
        if data_type is DataType.DATETIME:
            date_time_format = matching_datetime_format(sample_values(values))
        columns.append(
            ColumnInterpretation(
                original_name=header,
                display_name=header,
                visible=True,
                data_type=data_type,
                date_time_format=date_time_format,
            )
        )
    logger.debug("Inferred column types: %s", [(c.original_name, c.data_type.value) for c in columns])
    return columns
