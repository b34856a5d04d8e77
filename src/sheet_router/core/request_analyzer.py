"""Request analyzer: scores how specific or vague a command is."""

import re
from typing import List, Optional

from ..models.base import DataContext, Recommendation, RequestAnalysis, RequestType

ACTION_VERBS = [
    re.compile(r"\b(format|highlight|color|style|bold|italic|underline)\b", re.I),
    re.compile(r"\b(add|create|insert|remove|delete|clear)\b", re.I),
    re.compile(r"\b(filter|sort|group|hide|show)\b", re.I),
    re.compile(r"\b(chart|graph|plot|visualize)\b", re.I),
    re.compile(r"\b(validate|restrict|dropdown|checkbox)\b", re.I),
    re.compile(r"\b(translate|convert|extract|calculate)\b", re.I),
]

TARGET_PATTERNS = [
    re.compile(r"\bcolumn\s*[A-Z]\b", re.I),
    re.compile(r"\b[A-Z]\d+(?::[A-Z]\d+)?\b"),  # cell refs are case-sensitive
    re.compile(r"\brow\s*\d+\b", re.I),
    re.compile(r"\bheader(s)?\b", re.I),
    re.compile(r"\b(the\s+)?(first|last|all)\s+(row|column|cell)", re.I),
    re.compile(r"\b(selected|this)\s+(range|cell|column|row)", re.I),
]

SPECIFIC_TYPES = [
    re.compile(r"\b(currency|percent|percentage|decimal|number|date|time)\b", re.I),
    re.compile(r"\b(bold|italic|underline|strikethrough)\b", re.I),
    re.compile(r"\b(border|borders|outline)\b", re.I),
    re.compile(r"\b(left|right|center)\s*(align|alignment)?\b", re.I),
    re.compile(r"\b(pie|bar|line|column|scatter|area)\s*(chart|graph)?\b", re.I),
    re.compile(r"\b(dropdown|checkbox|list|validation)\b", re.I),
    re.compile(r"\b(red|green|blue|yellow|orange|purple|#[0-9a-f]{6})\b", re.I),
]

VAGUE_ADJECTIVES = [
    re.compile(r"\b(professional|professionally)\b", re.I),
    re.compile(r"\b(nice|nicely|good|better|best)\b", re.I),
    re.compile(r"\b(pretty|beautiful|clean|neat)\b", re.I),
    re.compile(r"\b(proper|properly|correct|correctly)\b", re.I),
    re.compile(r"\b(appropriate|appropriately)\b", re.I),
    re.compile(r"\b(improved?|enhance|enhanced?)\b", re.I),
    re.compile(r"\b(fix|fixed|fixing)\b", re.I),
    re.compile(r"\b(optimize|optimized?)\b", re.I),
]

# "with" does not count as a connector
COMPOSITE_INDICATORS = [
    re.compile(r"\b(and|also|plus)\b", re.I),
    re.compile(r"\b(everything|all\s+of\s+it|the\s+whole)\b", re.I),
    re.compile(r"\b(complete|full|entire)\s+(format|style|look)", re.I),
]

QUESTION_PATTERNS = [
    re.compile(r"\b(what|which|who|where|when|why|how)\b.*\?", re.I),
    re.compile(r"\b(can\s+you|could\s+you|would\s+you)\s+(tell|show|explain)", re.I),
    re.compile(r"\b(summarize|summary|analyze|analysis|overview)\b", re.I),
]

MARKDOWN_TABLE_RE = re.compile(r"\|.*\|.*\|")

CATEGORY_PATTERNS = [
    ("format", re.compile(r"\b(format|style|bold|italic|color|background)\b", re.I)),
    ("conditionalFormat", re.compile(r"\b(highlight|conditional)\b", re.I)),
    ("chart", re.compile(r"\b(chart|graph|plot|visualize)\b", re.I)),
    ("filter", re.compile(r"\b(filter|sort|show\s+only|hide)\b", re.I)),
    ("dataValidation", re.compile(r"\b(dropdown|checkbox|validation|restrict)\b", re.I)),
    ("format", re.compile(r"\b(border|align|currency|percent)\b", re.I)),
    ("writeData", re.compile(r"\|.*\|.*\||\b(paste|write|create)\s+(this\s+)?(table|data)\b", re.I)),
    ("sheetOps", re.compile(r"\b(freeze|unfreeze|hide|unhide|insert|delete)\s*(row|column)", re.I)),
]

WEIGHT_ACTION_VERB = 0.25
WEIGHT_TARGET = 0.25
WEIGHT_SPECIFIC_TYPE = 0.3
WEIGHT_NOT_VAGUE = 0.2
TABLE_SPECIFICITY = 0.95
VAGUE_PENALTY = 0.5
COMPOSITE_PENALTY = 0.7
EXECUTE_THRESHOLD = 0.6
SPECIFIC_THRESHOLD = 0.5


def _any(patterns, text: str) -> bool:
    return any(p.search(text) for p in patterns)


class RequestAnalyzer:
    """Classifies a command as specific, composite, vague or a question."""

    def analyze(self, command: str, context: Optional[DataContext] = None) -> RequestAnalysis:
        has_action_verb = _any(ACTION_VERBS, command)
        has_target = _any(TARGET_PATTERNS, command)
        has_specific_type = _any(SPECIFIC_TYPES, command)
        has_vague = _any(VAGUE_ADJECTIVES, command)
        has_composite = _any(COMPOSITE_INDICATORS, command)
        is_question = _any(QUESTION_PATTERNS, command)
        has_table = bool(MARKDOWN_TABLE_RE.search(command))

        categories: List[str] = []
        for category, pattern in CATEGORY_PATTERNS:
            if pattern.search(command) and category not in categories:
                categories.append(category)

        implied = max(1, len(categories))
        if has_composite:
            implied = max(2, implied)
        if has_vague and not has_specific_type:
            implied = max(3, implied)

        specificity = 0.0
        if has_action_verb:
            specificity += WEIGHT_ACTION_VERB
        if has_target:
            specificity += WEIGHT_TARGET
        if has_specific_type:
            specificity += WEIGHT_SPECIFIC_TYPE
        if not has_vague:
            specificity += WEIGHT_NOT_VAGUE

        # Pasted table data is unambiguous regardless of wording
        if has_table:
            specificity = TABLE_SPECIFICITY
        else:
            if has_vague and not has_specific_type:
                specificity *= VAGUE_PENALTY
            if has_composite and implied > 2:
                specificity *= COMPOSITE_PENALTY
        specificity = round(specificity, 4)

        if is_question:
            request_type = RequestType.QUESTION
        elif has_table:
            request_type = RequestType.SPECIFIC
        elif has_vague and not has_specific_type:
            request_type = RequestType.VAGUE
        elif implied > 1 or has_composite:
            request_type = RequestType.COMPOSITE
        elif specificity >= SPECIFIC_THRESHOLD:
            request_type = RequestType.SPECIFIC
        else:
            request_type = RequestType.VAGUE

        if request_type == RequestType.SPECIFIC and specificity >= EXECUTE_THRESHOLD:
            recommendation = Recommendation.EXECUTE
        elif request_type == RequestType.COMPOSITE or (
            request_type == RequestType.VAGUE and categories
        ):
            recommendation = Recommendation.SUGGEST_OPTIONS
        else:
            recommendation = Recommendation.CLARIFY

        return RequestAnalysis(
            type=request_type,
            specificity=specificity,
            implied_action_count=implied,
            detected_categories=categories,
            recommendation=recommendation,
            has_action_verb=has_action_verb,
            has_target=has_target,
            has_specific_type=has_specific_type,
            has_vague_adjectives=has_vague,
            has_composite_indicator=has_composite,
            has_table_data=has_table,
            is_question=is_question,
        )

    def is_specific_enough(self, command: str, required_specificity: float = 0.5) -> bool:
        """Whether a skill may handle the command directly."""
        analysis = self.analyze(command)
        return analysis.specificity >= required_specificity and analysis.type == RequestType.SPECIFIC

    def should_show_suggestions(self, command: str) -> bool:
        analysis = self.analyze(command)
        return analysis.recommendation in (Recommendation.SUGGEST_OPTIONS, Recommendation.CLARIFY)

    def get_vagueness_reason(self, command: str) -> str:
        """Human-readable explanation of why a command is vague, for logs."""
        analysis = self.analyze(command)
        reasons = []
        if analysis.has_vague_adjectives:
            reasons.append("uses subjective adjectives (professional, nice, good)")
        if not analysis.has_target:
            reasons.append("no specific target (column, range, cells)")
        if not analysis.has_action_verb:
            reasons.append("no clear action verb")
        if analysis.implied_action_count > 1:
            reasons.append(f"implies {analysis.implied_action_count} different actions")
        return "; ".join(reasons) if reasons else "unknown"
