"""Core routing components: columns, analysis, parsing and normalization.

``CommandRouter`` lives in ``core.orchestrator`` and is exported from the
package root, since it depends on the skills and agents packages which in
turn import from here.
"""

from .columns import (
    OutputColumnAllocator,
    build_range,
    detect_explicit_output_column,
    empty_columns_after,
    letter_to_number,
    number_to_letter,
    split_aspects,
)
from .formula_shortcuts import match_formula_shortcut
from .normalizer import SheetResponseNormalizer, normalize_sheet_response
from .plan_parser import PlanParser, estimate_chain_time, formula_plan
from .request_analyzer import RequestAnalyzer

__all__ = [
    "OutputColumnAllocator",
    "PlanParser",
    "RequestAnalyzer",
    "SheetResponseNormalizer",
    "build_range",
    "detect_explicit_output_column",
    "empty_columns_after",
    "estimate_chain_time",
    "formula_plan",
    "letter_to_number",
    "match_formula_shortcut",
    "normalize_sheet_response",
    "number_to_letter",
    "split_aspects",
]
