"""Unit tests for column arithmetic and output column allocation."""

import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from sheet_router.core.columns import (
    OutputColumnAllocator,
    build_range,
    detect_explicit_output_column,
    empty_columns_after,
    letter_to_number,
    number_to_letter,
    split_aspects,
)


class TestColumnArithmetic:
    """Bijective base-26 conversions."""

    @pytest.mark.parametrize("letters,number", [
        ("A", 1), ("Z", 26), ("AA", 27), ("AZ", 52), ("BA", 53), ("ZZ", 702), ("AAA", 703),
    ])
    def test_known_values(self, letters, number):
        assert letter_to_number(letters) == number
        assert number_to_letter(number) == letters

    def test_lowercase_accepted(self):
        assert letter_to_number("ab") == 28

    def test_every_two_letter_column_survives_conversion(self):
        for number in range(1, 703):
            letters = number_to_letter(number)
            assert letter_to_number(letters) == number
            assert number_to_letter(letter_to_number(letters)) == letters

    @pytest.mark.parametrize("bad", ["", "A1", "1", "$A"])
    def test_invalid_letters_rejected(self, bad):
        with pytest.raises(ValueError):
            letter_to_number(bad)

    def test_non_positive_number_rejected(self):
        with pytest.raises(ValueError):
            number_to_letter(0)

    def test_empty_columns_after_gap(self):
        assert empty_columns_after(["A", "C"], 5) == ["D", "E", "F", "G", "H"]

    def test_empty_columns_after_nothing(self):
        assert empty_columns_after([], 3) == ["A", "B", "C"]

    def test_empty_columns_cross_z(self):
        assert empty_columns_after(["Y"], 3) == ["Z", "AA", "AB"]

    def test_build_range(self):
        assert build_range("B", "D", 2, 10) == "B2:D10"


class TestDirectivesAndAspects:
    """Explicit output column detection and aspect splitting."""

    @pytest.mark.parametrize("command,expected", [
        ("Summarize the notes to column H", "H"),
        ("translate into col. f", "F"),
        ("Put the results in column K", "K"),
        ("output column: M", "M"),
        ("Summarize the notes", None),
    ])
    def test_detect_explicit_output_column(self, command, expected):
        assert detect_explicit_output_column(command) == expected

    def test_split_aspects(self):
        assert split_aspects("Insight | Pattern | Observation") == ["Insight", "Pattern", "Observation"]
        assert split_aspects("Sentiment") == ["Sentiment"]
        assert split_aspects(None) == [""]
        assert split_aspects(" | ") == [""]


class TestOutputColumnAllocator:
    """Cursor-based allocation over the empty column pool."""

    def test_consecutive_steps_take_consecutive_columns(self):
        allocator = OutputColumnAllocator(["D", "E", "F", "G"], data_columns=["A", "B", "C"])
        assert allocator.allocate(1) == ["D"]
        assert allocator.allocate(2) == ["E", "F"]
        assert allocator.allocate(1) == ["G"]

    def test_three_aspects_reserve_three_columns(self):
        allocator = OutputColumnAllocator(["D", "E", "F", "G"])
        assert allocator.allocate(3) == ["D", "E", "F"]

    def test_explicit_column_overrides_first_step_only(self):
        allocator = OutputColumnAllocator(["D", "E", "F"], explicit_column="h")
        assert allocator.allocate(3) == ["H"]
        assert allocator.allocate(1) == ["D"]

    def test_pool_exhaustion_synthesizes_after_highest(self):
        allocator = OutputColumnAllocator(["D"], data_columns=["A", "B", "C"])
        assert allocator.allocate(1) == ["D"]
        assert allocator.allocate(2) == ["E", "F"]

    def test_data_columns_in_pool_are_skipped(self):
        allocator = OutputColumnAllocator(["B", "C"], data_columns=["A", "B"])
        assert allocator.allocate(1) == ["C"]

    def test_no_column_handed_out_twice(self):
        allocator = OutputColumnAllocator(["D", "E"], explicit_column="D")
        first = allocator.allocate(1)
        second = allocator.allocate(1)
        assert first == ["D"]
        assert second == ["E"]
