"""Field separators and the heuristic that proposes one for a text blob."""
import logging
from enum import Enum

logger = logging.getLogger(__name__)

SNIFF_LINE_COUNT = 5


class Separator(str, Enum):
    TAB = "tab"
    COMMA = "comma"
    SEMICOLON = "semicolon"
    SPACE = "space"

    @property
    def char(self) -> str:
        return SEPARATOR_CHARS[self]


SEPARATOR_CHARS = {
    Separator.TAB: "\t",
    Separator.COMMA: ",",
    Separator.SEMICOLON: ";",
    Separator.SPACE: " ",
}


def detect_separator(content: str) -> Separator:
    """
    Guess the field delimiter from the first few non-empty lines.

    Tab wins only when it outnumbers both commas and semicolons; semicolon
    wins over comma only when strictly more frequent; comma is the default.
    Space is never proposed because free text is full of spaces.
    """
    sample_lines = []
    for line in content.splitlines():
        if line.strip():
            sample_lines.append(line)
        if len(sample_lines) >= SNIFF_LINE_COUNT:
            break

    sample = "\n".join(sample_lines)
    tab_count = sample.count("\t")
    comma_count = sample.count(",")
    semicolon_count = sample.count(";")

    if tab_count > comma_count and tab_count > semicolon_count:
        detected = Separator.TAB
    elif semicolon_count > comma_count:
        detected = Separator.SEMICOLON
    else:
        detected = Separator.COMMA

    logger.debug(
        "Separator counts tab=%d comma=%d semicolon=%d -> %s",
        tab_count, comma_count, semicolon_count, detected.value,
    )
    return detected
