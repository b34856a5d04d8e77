"""Deterministic native-formula plans for commands that need no model call.

Translation and case/whitespace cleanup on a single column are fully
determined by the command text, so they go straight to a formula plan.
"""

import re
from typing import Optional

from ..models.base import DataContext
from ..models.plan import ExecutionPlan
from ..utils.logging import get_logger
from .columns import OutputColumnAllocator, detect_explicit_output_column
from .plan_parser import formula_plan

logger = get_logger(__name__)

LANGUAGE_CODES = {
    "spanish": "es",
    "french": "fr",
    "german": "de",
    "chinese": "zh",
    "japanese": "ja",
    "korean": "ko",
    "portuguese": "pt",
    "italian": "it",
    "russian": "ru",
    "arabic": "ar",
    "english": "en",
}

TRANSLATE_RE = re.compile(r"\btranslate\b.*?\b(?:column|col\.?)\s+([A-Z]{1,3})\b", re.I)
LANGUAGE_RE = re.compile(r"\b(" + "|".join(LANGUAGE_CODES) + r")\b", re.I)

TEXT_FUNCTIONS = [
    (re.compile(r"\b(?:uppercase|upper\s+case)\b", re.I), "UPPER", "Uppercase"),
    (re.compile(r"\b(?:lowercase|lower\s+case)\b", re.I), "LOWER", "Lowercase"),
    (re.compile(r"\b(?:proper\s*case|title\s*case|capitalize)\b", re.I), "PROPER", "Proper case"),
    (re.compile(r"\btrim\b", re.I), "TRIM", "Trim whitespace in"),
]
COLUMN_REF_RE = re.compile(r"\b(?:column|col\.?)\s+([A-Z]{1,3})\b", re.I)
COMPOUND_RE = re.compile(r"\b(?:then|and|also|plus)\b", re.I)


def _output_column(command: str, source: str, context: DataContext) -> str:
    explicit = detect_explicit_output_column(command)
    if explicit and explicit != source:
        return explicit
    allocator = OutputColumnAllocator(
        context.empty_columns, list(context.data_columns) + [source]
    )
    return allocator.allocate(1)[0]


def _translate(command: str, context: DataContext) -> Optional[ExecutionPlan]:
    column_match = TRANSLATE_RE.search(command)
    language_match = LANGUAGE_RE.search(command)
    if not column_match or not language_match:
        return None

    source = column_match.group(1).upper()
    language = language_match.group(1).lower()
    code = LANGUAGE_CODES[language]
    output = _output_column(command, source, context)
    formula = f'=GOOGLETRANSLATE({source}{{{{ROW}}}}, "auto", "{code}")'
    return formula_plan(
        formula,
        output,
        context,
        description=f"Translate column {source} to {language.capitalize()}",
        summary=f"Translate column {source} to {language.capitalize()} in column {output}",
    )


def _text_function(command: str, context: DataContext) -> Optional[ExecutionPlan]:
    for pattern, function, label in TEXT_FUNCTIONS:
        if not pattern.search(command):
            continue
        column_match = COLUMN_REF_RE.search(command)
        if not column_match:
            return None
        source = column_match.group(1).upper()
        output = _output_column(command, source, context)
        return formula_plan(
            f"={function}({source}{{{{ROW}}}})",
            output,
            context,
            description=f"{label} column {source}",
            summary=f"{label} column {source} into column {output}",
        )
    return None


def match_formula_shortcut(command: str, context: DataContext) -> Optional[ExecutionPlan]:
    """Return a native formula plan when the command maps to one directly."""
    if COMPOUND_RE.search(command):
        return None
    plan = _translate(command, context) or _text_function(command, context)
    if plan is not None:
        logger.info(f"⚡ Formula shortcut: {plan.steps[0].formula} -> {plan.steps[0].output_column}")
    return plan
