"""Column letter arithmetic and output column allocation.

Spreadsheet columns use bijective base-26: there is no zero digit, so "Z" is
26 and "AA" is 27.
"""

import re
from typing import Iterable, List, Optional, Set

from ..utils.logging import get_logger

logger = get_logger(__name__)

_LETTERS_RE = re.compile(r"^[A-Za-z]+$")

EXPLICIT_COLUMN_PATTERNS = [
    re.compile(r"\b(?:to|into|in\s+to)\s+(?:column|col\.?)\s+([A-Za-z]{1,3})\b", re.IGNORECASE),
    re.compile(r"\b(?:output|write|put|place|store|save)\s+(?:\w+\s+){0,3}?in\s+(?:column|col\.?)\s+([A-Za-z]{1,3})\b", re.IGNORECASE),
    re.compile(r"\b(?:output|results?)\s+(?:column|col\.?)\s*[:=]?\s*([A-Za-z]{1,3})\b", re.IGNORECASE),
]


def letter_to_number(letters: str) -> int:
    """Convert column letters to a 1-based column number ("A" -> 1, "AA" -> 27)."""
    if not letters or not _LETTERS_RE.match(letters):
        raise ValueError(f"Invalid column letters: {letters!r}")
    number = 0
    for ch in letters.upper():
        number = number * 26 + (ord(ch) - ord("A") + 1)
    return number


def number_to_letter(number: int) -> str:
    """Convert a 1-based column number to column letters (27 -> "AA")."""
    if number < 1:
        raise ValueError(f"Column number must be positive, got {number}")
    letters = []
    while number > 0:
        remainder = (number - 1) % 26
        letters.append(chr(ord("A") + remainder))
        number = (number - 1) // 26
    return "".join(reversed(letters))


def empty_columns_after(data_columns: Iterable[str], count: int) -> List[str]:
    """Return ``count`` column letters following the right-most data column."""
    numbers = [letter_to_number(col) for col in data_columns]
    start = max(numbers) + 1 if numbers else 1
    return [number_to_letter(start + i) for i in range(count)]


def build_range(start_col: str, end_col: str, start_row: int, end_row: int) -> str:
    """Build an A1 range; ordering is the caller's responsibility."""
    return f"{start_col}{start_row}:{end_col}{end_row}"


def detect_explicit_output_column(command: str) -> Optional[str]:
    """Find a user directive such as "to column H" and return the letter."""
    for pattern in EXPLICIT_COLUMN_PATTERNS:
        match = pattern.search(command)
        if match:
            return match.group(1).upper()
    return None


def split_aspects(output_format: Optional[str]) -> List[str]:
    """Split a declared output format on "|" into its aspects (at least one)."""
    if not output_format:
        return [""]
    aspects = [part.strip() for part in str(output_format).split("|")]
    aspects = [part for part in aspects if part]
    return aspects or [""]


class OutputColumnAllocator:
    """Hands out output columns to workflow steps.

    Columns come from the context's empty-column pool through a running
    cursor. A step with N aspects takes N consecutive columns. An explicit
    user column overrides the first step only and is always exactly one
    column. No column is handed out twice; once the pool runs dry, letters
    are synthesized after the highest column seen.
    """

    def __init__(
        self,
        empty_columns: Iterable[str],
        data_columns: Iterable[str] = (),
        explicit_column: Optional[str] = None,
    ):
        self.pool: List[str] = [col.upper() for col in empty_columns]
        self.data_columns: List[str] = [col.upper() for col in data_columns]
        self.explicit_column = explicit_column.upper() if explicit_column else None
        self.cursor = 0
        self.used: Set[str] = set()
        self._steps_allocated = 0

    def _highest_known(self) -> int:
        known = self.data_columns + self.pool + list(self.used)
        return max((letter_to_number(col) for col in known), default=0)

    def _next_column(self) -> str:
        while self.cursor < len(self.pool):
            column = self.pool[self.cursor]
            self.cursor += 1
            if column not in self.used and column not in self.data_columns:
                return column
        column = number_to_letter(self._highest_known() + 1)
        logger.debug(f"Empty column pool exhausted, synthesized {column}")
        return column

    def allocate(self, aspect_count: int = 1) -> List[str]:
        """Reserve output columns for the next step."""
        is_first = self._steps_allocated == 0
        self._steps_allocated += 1

        if is_first and self.explicit_column:
            self.used.add(self.explicit_column)
            return [self.explicit_column]

        columns = []
        for _ in range(max(1, aspect_count)):
            column = self._next_column()
            self.used.add(column)
            columns.append(column)
        return columns
