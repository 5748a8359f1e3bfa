"""
Line splitting and row parsing for decoded SCADA exports.
"""
import re
from dataclasses import dataclass, field
from typing import List, Union

from .separators import Separator

_LINE_BREAK = re.compile(r"\r?\n|\r")


@dataclass
class ParsedContent:
    headers: List[str] = field(default_factory=list)
    rows: List[List[str]] = field(default_factory=list)


def _split_quoted_csv(line: str) -> List[str]:
    # A double quote toggles quoting; quotes never survive into the value.
    fields: List[str] = []
    current: List[str] = []
    in_quotes = False
    for ch in line:
        if ch == '"':
            in_quotes = not in_quotes
        elif ch == "," and not in_quotes:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
    fields.append("".join(current).strip())
    return fields


def split_line(line: str, separator: Union[Separator, str]) -> List[str]:
    """
    Split one line into fields.

    Only the comma separator honours quoting and trims fields; tab, semicolon
    and space are literal splits.
    """
    separator = Separator(separator)
    if separator is Separator.COMMA:
        return _split_quoted_csv(line)
    return line.split(separator.char)


def content_lines(content: str) -> List[str]:
    """Return the lines of a text blob that are not blank."""
    return [line for line in _LINE_BREAK.split(content) if line.strip()]


def parse_content(content: str, separator: Union[Separator, str], header_row: int) -> ParsedContent:
    """
    Split a text blob into a header row and data rows.

    Args:
        content: Decoded text
        separator: Field separator
        header_row: 1-based position of the header among the non-blank lines;
            values below 1 clamp to the first line

    Returns:
        ParsedContent; empty when header_row points past the last line
    """
    lines = content_lines(content)
    header_idx = max(0, header_row - 1)
    if header_idx >= len(lines):
        return ParsedContent()

    headers = split_line(lines[header_idx], separator)
    rows = [split_line(line, separator) for line in lines[header_idx + 1:]]
    return ParsedContent(headers=headers, rows=rows)
