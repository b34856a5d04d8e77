"""The skill table.

Each skill is one row: instructions, output schema, intent scorer and
selection metadata. ``version`` is bookkeeping only; the current row is the
latest version of a skill.
"""

import re
from typing import Dict, Iterable, Optional

from ..models.base import DataContext, OutputMode, SheetAction, SkillId
from ..models.skills import Skill, SkillExample, SkillSchema

MARKDOWN_TABLE_RE = re.compile(r"\|.*\|.*\|")


def _score(command: str, weighted: Iterable) -> float:
    return sum(weight for pattern, weight in weighted if pattern.search(command))


def _rx(pattern: str) -> re.Pattern:
    return re.compile(pattern, re.I)


# Intent scorers

CHART_WEIGHTS = [
    (_rx(r"\b(chart|graph|plot|visualize)\b"), 0.5),
    (_rx(r"\b(pie|bar|line|column|area|scatter|histogram|donut)\b"), 0.4),
    (_rx(r"\b(show|create|make|build|generate)\s+(me\s+)?(a\s+)?(chart|graph|visual)"), 0.3),
    (_rx(r"\b(over\s+time|trend|growth|monthly|yearly|quarterly)\b"), 0.2),
]
COMPARE_RE = _rx(r"\bcompare\b")


def score_chart(command: str, context: Optional[DataContext] = None) -> float:
    score = _score(command, CHART_WEIGHTS)
    if context is not None:
        if COMPARE_RE.search(command) and len(context.data_columns) > 2:
            score += 0.15
        if len(context.data_columns) >= 2:
            score += 0.05
    return min(score, 1.0)


CHAT_WEIGHTS = [
    (_rx(r"\b(what|which|who|how\s+many|how\s+much)\b.*\?"), 0.6),
    (_rx(r"\b(summarize|summary|overview)\b"), 0.5),
    (_rx(r"\b(analyze|analysis|insights?)\b"), 0.5),
    (_rx(r"\b(tell\s+me|explain|describe)\b"), 0.4),
    (_rx(r"\b(list|show\s+me)\s+(the\s+)?(top|bottom)\b"), 0.4),
    (_rx(r"\b(currency|percent|border|bold|highlight|dropdown|checkbox)\b"), -0.4),
    (_rx(r"\b(chart|pie|bar|line|scatter)\b"), -0.5),
]


def score_chat(command: str, context: Optional[DataContext] = None) -> float:
    return max(0.0, min(1.0, _score(command, CHAT_WEIGHTS)))


FORMAT_WEIGHTS = [
    (_rx(r"\bformat\b"), 0.4),
    (_rx(r"\b(currency|percent|percentage|decimal)\b"), 0.5),
    (_rx(r"\b(bold|italic|underline)\b"), 0.4),
    (_rx(r"\b(border|borders|alignment|align)\b"), 0.4),
    (_rx(r"\b(background|bgcolor|color)\b"), 0.3),
    (_rx(r"\bheaders?\b.*\b(style|format|bold)\b"), 0.3),
]


def score_format(command: str, context: Optional[DataContext] = None) -> float:
    return min(_score(command, FORMAT_WEIGHTS), 1.0)


CONDITIONAL_WEIGHTS = [
    (_rx(r"\bhighlight\b"), 0.5),
    (_rx(r"\bconditional\b"), 0.5),
    (_rx(r"\b(red|green|yellow)\s+(if|when|for)\b"), 0.5),
    (_rx(r"\b(negative|positive)\b"), 0.4),
    (_rx(r"\b(above|below|greater|less)\s+than\b"), 0.4),
    (_rx(r"\bcolou?r\b.*\b(based|depending)\b"), 0.4),
]


def score_conditional_format(command: str, context: Optional[DataContext] = None) -> float:
    return min(_score(command, CONDITIONAL_WEIGHTS), 1.0)


VALIDATION_WEIGHTS = [
    (_rx(r"\bdropdown\b"), 0.6),
    (_rx(r"\bcheckbox(es)?\b"), 0.6),
    (_rx(r"\bvalidation\b"), 0.5),
    (_rx(r"\b(list|options|select)\b"), 0.3),
    (_rx(r"\b(restrict|only\s+allow)\b"), 0.4),
]


def score_data_validation(command: str, context: Optional[DataContext] = None) -> float:
    return min(_score(command, VALIDATION_WEIGHTS), 1.0)


FILTER_WEIGHTS = [
    (_rx(r"\bfilter\b"), 0.6),
    (_rx(r"\bshow\s+(only|just)\b"), 0.5),
    (_rx(r"\bhide\s+(rows|data)\b"), 0.5),
    (_rx(r"\bwhere\s+\w+\s+(=|is|equals)\b"), 0.4),
]


def score_filter(command: str, context: Optional[DataContext] = None) -> float:
    return min(_score(command, FILTER_WEIGHTS), 1.0)


SHEET_OPS_WEIGHTS = [
    (_rx(r"\b(freeze|unfreeze)\b"), 0.6),
    (_rx(r"\b(hide|show|unhide)\s+(the\s+)?(rows?|columns?)\b"), 0.5),
    (_rx(r"\b(insert|delete)\s+(a\s+|\d+\s+)?(rows?|columns?)\b"), 0.6),
    (_rx(r"\bsort\b"), 0.5),
    (_rx(r"\bclear\b"), 0.5),
    (_rx(r"\b(resize|width|height|auto\s*-?fit)\b"), 0.5),
    (_rx(r"\brename\s+(the\s+)?(sheet|tab)\b"), 0.6),
    (_rx(r"\btab\s+colou?r\b"), 0.6),
    (_rx(r"\b(group|ungroup)\b"), 0.5),
    (_rx(r"\bprotect\b"), 0.5),
]


def score_sheet_ops(command: str, context: Optional[DataContext] = None) -> float:
    return min(_score(command, SHEET_OPS_WEIGHTS), 1.0)


def capability_matches(command: str, capabilities: Iterable[str]) -> int:
    """Count capability phrases ("create-table" reads as "create table") found in the command."""
    count = 0
    for capability in capabilities:
        phrase = r"\s+".join(re.escape(word) for word in capability.split("-"))
        if re.search(rf"\b{phrase}\b", command, re.I):
            count += 1
    return count


def score_capabilities(command: str, capabilities: Iterable[str]) -> float:
    matches = capability_matches(command, capabilities)
    if matches == 0:
        return 0.0
    return min(1.0, 0.5 + 0.15 * matches)


FORMULA_CAPABILITIES = (
    "translate", "translation", "googletranslate", "extract", "regex", "pattern",
    "regexextract", "uppercase", "lowercase", "proper-case", "capitalize", "sum",
    "average", "count", "max", "min", "aggregation", "concatenate", "concat", "join",
    "combine-text", "trim", "split", "text-operation",
)
TABLE_CAPABILITIES = (
    "create-table", "make-table", "convert-to-table", "table-format", "format-as-table",
    "professional-table", "structured-table", "data-table", "table-with-headers",
    "table-with-filters", "frozen-header",
)
WRITE_DATA_CAPABILITIES = (
    "write-data", "paste-data", "insert-data", "put-data", "markdown-table", "csv-data",
    "tsv-data", "create-table-from-data", "help-paste", "structured-data",
)


def score_formula(command: str, context: Optional[DataContext] = None) -> float:
    return score_capabilities(command, FORMULA_CAPABILITIES)


def score_table(command: str, context: Optional[DataContext] = None) -> float:
    return score_capabilities(command, TABLE_CAPABILITIES)


def score_write_data(command: str, context: Optional[DataContext] = None) -> float:
    if MARKDOWN_TABLE_RE.search(command):
        return 0.95
    return score_capabilities(command, WRITE_DATA_CAPABILITIES)


# Instructions

CHART_INSTRUCTIONS = """## CHART Skill

For chart/visualization requests, return outputMode: "sheet" with sheetAction: "chart".

{
  "outputMode": "sheet",
  "sheetAction": "chart",
  "sheetConfig": {
    "chartType": "line|bar|column|pie|area|scatter|histogram",
    "domainColumn": "[category/date column from context]",
    "dataColumns": ["[numeric columns from context]"],
    "seriesNames": ["[column headers]"],
    "title": "[user's title or derived from data]",
    "legendPosition": "top|bottom|right|none",
    "yAxisFormat": "currency|percent|decimal"
  }
}

- PIE: exactly ONE dataColumn
- LINE/BAR/AREA: include all relevant numeric columns
- SCATTER: domainColumn holds X values, dataColumns hold Y values only
- Revenue/sales data: yAxisFormat "currency"
"""

FORMAT_INSTRUCTIONS = """## FORMAT Skill

For formatting requests, return outputMode: "sheet" with sheetAction: "format".

{
  "outputMode": "sheet",
  "sheetAction": "format",
  "sheetConfig": {
    "formatType": "currency|percent|number|date|text",
    "range": "B3:H3",
    "options": {
      "decimals": 2, "locale": "USD", "pattern": "yyyy-mm-dd",
      "bold": true, "italic": true, "backgroundColor": "#003366", "textColor": "#FFFFFF",
      "alignment": "left|center|right", "borders": true, "wrap": true
    }
  }
}

- "format headers" uses explicitRowInfo.headerRange
- "format data" uses explicitRowInfo.dataRange
- Combine options in one request: "bold headers with blue background" gives { bold: true, backgroundColor: "#003366" }
"""

CONDITIONAL_FORMAT_INSTRUCTIONS = """## CONDITIONAL FORMAT Skill

For highlighting/color-coding requests, return outputMode: "sheet" with sheetAction: "conditionalFormat".

{
  "outputMode": "sheet",
  "sheetAction": "conditionalFormat",
  "sheetConfig": {
    "range": "[data rows only, from context]",
    "rules": [
      {"condition": "greaterThan|lessThan|equals|contains|between|negative|positive|max|min",
       "value": <user's threshold>,
       "format": {"backgroundColor": "#90EE90", "bold": true}}
    ]
  }
}

- Colors: red #FF0000, light red #FFB6C1, green #90EE90, yellow #FFFF00
- "highlight column C" covers C[dataStartRow]:C[dataEndRow]
"""

DATA_VALIDATION_INSTRUCTIONS = """## DATA VALIDATION Skill

For dropdown/checkbox/restriction requests, return outputMode: "sheet" with sheetAction: "dataValidation".

{
  "outputMode": "sheet",
  "sheetAction": "dataValidation",
  "sheetConfig": {
    "validationType": "dropdown|checkbox|number|date|email|url",
    "range": "[column][dataStartRow]:[column][dataEndRow]",
    "values": ["...user's options..."],
    "min": <user's min>,
    "max": <user's max>
  }
}

1. Use sheetAction "dataValidation" (NOT "validation")
2. Put min, max and values directly in sheetConfig (NOT nested in options/criteria)
"""

FILTER_INSTRUCTIONS = """## FILTER Skill

For filtering requests, return outputMode: "sheet" with sheetAction: "filter".

{
  "outputMode": "sheet",
  "sheetAction": "filter",
  "sheetConfig": {
    "dataRange": "[explicitRowInfo.fullRangeIncludingHeader]",
    "criteria": [
      {"column": "[column letter]", "condition": "equals|contains|greaterThan|lessThan|between", "value": <value>}
    ]
  }
}

- dataRange includes the header row
- Multiple criteria are AND-ed together
"""

WRITE_DATA_INSTRUCTIONS = """## WRITE DATA Skill

When the user pastes table data in the command, parse it and write it to the sheet.

{
  "outputMode": "sheet",
  "sheetAction": "writeData",
  "sheetConfig": {
    "data": [["Header1", "Header2"], ["Value1", "Value2"]],
    "startCell": "[user's location or 'A1']"
  }
}

- Parse the actual data into a 2D array; the first row holds the headers
- Empty cells become ""
"""

TABLE_INSTRUCTIONS = """## TABLE Skill

Convert data into a native table with auto-formatting and filters.

{
  "outputMode": "sheet",
  "sheetAction": "createTable",
  "sheetConfig": {
    "range": "[explicitRowInfo.fullRangeIncludingHeader]",
    "tableName": "[user's name or omitted]",
    "freezeHeader": true
  }
}
"""

SHEET_OPS_INSTRUCTIONS = """## SHEET OPERATIONS Skill

Sheet-level operations, returned as outputMode "sheet" with sheetAction "sheetOps":

{
  "outputMode": "sheet",
  "sheetAction": "sheetOps",
  "sheetConfig": {"operation": "<operation>", ...parameters}
}

- freezeRows {rows}, freezeColumns {columns}, freeze {rows, columns}, unfreeze
- hideRows/showRows {startRow, numRows}, hideColumns/showColumns {startColumn, numColumns}
- insertRows {after|before, count}, insertColumns {after|before, count}
- deleteRows {startRow, count}, deleteColumns {startColumn, count}
- clear, clearContent, clearFormat, clearValidation, clearNotes {range}
- sort {range, sortBy: [{column, ascending}]}
- autoResize, setColumnWidth {column, width}, setRowHeight {row, height}
- renameSheet {name}, setTabColor {color}, groupRows/ungroupRows, protect {range}
"""

FORMULA_INSTRUCTIONS = """## FORMULA Skill

For mechanical transformations, return outputMode "formula" with a native Google Sheets formula.

{
  "outputMode": "formula",
  "isMultiStep": false,
  "isCommand": true,
  "steps": [{
    "action": "formula",
    "description": "Apply native formula",
    "prompt": "=FORMULA([column from context]{{ROW}})",
    "outputFormat": "formula"
  }],
  "summary": "Apply [formula type]"
}

- Use the {{ROW}} placeholder for the row number
- GOOGLETRANSLATE([col]{{ROW}}, "auto", "[target lang]")
- UPPER/LOWER/PROPER([col]{{ROW}}), TRIM([col]{{ROW}}), REGEXEXTRACT([col]{{ROW}}, "[pattern]")
"""

CHAT_INSTRUCTIONS = """## CHAT Skill

Return outputMode "chat" for questions, vague requests, or when clarification is needed.

{
  "outputMode": "chat",
  "steps": [],
  "chatResponse": "Your response in Markdown",
  "suggestedActions": [{"label": "Short label", "command": "Executable command using context"}]
}

- Derive suggestions from the actual columns and ranges in the data context
- Each suggestion is ONE action; never combine actions with "and"
- For vague requests ("professional", "nice") give at most 4 atomic suggestions
"""


# Worked examples

FORMAT_EXAMPLES = (
    SkillExample(
        command="Format column C as currency",
        context="Data rows 2-20, column C = Revenue",
        response={
            "outputMode": "sheet",
            "sheetAction": "format",
            "sheetConfig": {"formatType": "currency", "range": "C2:C20", "options": {"decimals": 2, "locale": "USD"}},
            "summary": "Format C2:C20 as currency",
        },
        skill_id=SkillId.FORMAT,
    ),
)

CONDITIONAL_FORMAT_EXAMPLES = (
    SkillExample(
        command="Highlight negative values in column D in red",
        context="Data rows 2-50, column D = Profit",
        response={
            "outputMode": "sheet",
            "sheetAction": "conditionalFormat",
            "sheetConfig": {
                "range": "D2:D50",
                "rules": [{"condition": "negative", "format": {"backgroundColor": "#FFB6C1"}}],
            },
        },
        skill_id=SkillId.CONDITIONAL_FORMAT,
    ),
)

DATA_VALIDATION_EXAMPLES = (
    SkillExample(
        command="Add a dropdown with High, Medium, Low to column E",
        context="Data rows 2-30",
        response={
            "outputMode": "sheet",
            "sheetAction": "dataValidation",
            "sheetConfig": {"validationType": "dropdown", "range": "E2:E30", "values": ["High", "Medium", "Low"]},
        },
        skill_id=SkillId.DATA_VALIDATION,
    ),
)

FORMULA_EXAMPLES = (
    SkillExample(
        command="Translate column B to French",
        response={
            "outputMode": "formula",
            "steps": [{
                "action": "formula",
                "description": "Translate to French",
                "prompt": '=GOOGLETRANSLATE(B{{ROW}}, "auto", "fr")',
                "outputFormat": "formula",
            }],
            "summary": "Translate column B to French",
        },
        skill_id=SkillId.FORMULA,
    ),
)

CHAT_EXAMPLES = (
    SkillExample(
        command="Which region has the highest sales?",
        response={
            "outputMode": "chat",
            "steps": [],
            "chatResponse": "**West** has the highest sales.",
        },
        skill_id=SkillId.CHAT,
    ),
)


# The table

SKILL_TABLE: Dict[SkillId, Skill] = {
    skill.id: skill
    for skill in (
        Skill(
            id=SkillId.FORMAT,
            name="Data Formatting",
            version="1.0.0",
            description="Format numbers, dates, styles, borders, alignment, merging",
            instructions=FORMAT_INSTRUCTIONS,
            schema=SkillSchema(OutputMode.SHEET, SheetAction.FORMAT, ("formatType", "range"), ("options",)),
            token_cost=500,
            priority=8,
            intent_score=score_format,
            examples=FORMAT_EXAMPLES,
            composable=True,
        ),
        Skill(
            id=SkillId.CHART,
            name="Chart & Visualization",
            version="1.0.0",
            description="Create charts and visualizations from data",
            instructions=CHART_INSTRUCTIONS,
            schema=SkillSchema(
                OutputMode.SHEET, SheetAction.CHART,
                ("chartType", "domainColumn", "dataColumns"),
                ("title", "seriesNames", "legendPosition", "yAxisFormat", "curveType", "pieHole", "trendlines"),
            ),
            token_cost=800,
            priority=10,
            intent_score=score_chart,
            composable=False,
            conflicts=(SkillId.WRITE_DATA,),
        ),
        Skill(
            id=SkillId.CONDITIONAL_FORMAT,
            name="Conditional Formatting",
            version="1.0.0",
            description="Highlight cells based on values or conditions",
            instructions=CONDITIONAL_FORMAT_INSTRUCTIONS,
            schema=SkillSchema(OutputMode.SHEET, SheetAction.CONDITIONAL_FORMAT, ("range", "rules")),
            token_cost=350,
            priority=8,
            intent_score=score_conditional_format,
            examples=CONDITIONAL_FORMAT_EXAMPLES,
            composable=True,
        ),
        Skill(
            id=SkillId.DATA_VALIDATION,
            name="Data Validation",
            version="1.0.0",
            description="Add input restrictions and validation rules",
            instructions=DATA_VALIDATION_INSTRUCTIONS,
            schema=SkillSchema(
                OutputMode.SHEET, SheetAction.DATA_VALIDATION, ("validationType", "range"), ("values", "options"),
            ),
            token_cost=300,
            priority=7,
            intent_score=score_data_validation,
            examples=DATA_VALIDATION_EXAMPLES,
            composable=True,
        ),
        Skill(
            id=SkillId.FILTER,
            name="Data Filtering",
            version="1.0.0",
            description="Filter data to show/hide rows based on criteria",
            instructions=FILTER_INSTRUCTIONS,
            schema=SkillSchema(OutputMode.SHEET, SheetAction.FILTER, ("dataRange", "criteria")),
            token_cost=250,
            priority=7,
            intent_score=score_filter,
            composable=False,
        ),
        Skill(
            id=SkillId.WRITE_DATA,
            name="Write Table Data",
            version="1.1.0",
            description="Parse and write pasted table/CSV data to sheet",
            instructions=WRITE_DATA_INSTRUCTIONS,
            schema=SkillSchema(OutputMode.SHEET, SheetAction.WRITE_DATA, ("data",), ("startCell", "range")),
            token_cost=300,
            priority=9,
            capabilities=WRITE_DATA_CAPABILITIES,
            intent_score=score_write_data,
            composable=False,
            conflicts=(SkillId.CHART,),
        ),
        Skill(
            id=SkillId.TABLE,
            name="Table Creation",
            version="1.1.0",
            description="Convert data range into formatted table",
            instructions=TABLE_INSTRUCTIONS,
            schema=SkillSchema(OutputMode.SHEET, SheetAction.CREATE_TABLE, ("range",), ("tableName", "freezeHeader")),
            token_cost=250,
            priority=7,
            capabilities=TABLE_CAPABILITIES,
            intent_score=score_table,
            composable=False,
        ),
        Skill(
            id=SkillId.SHEET_OPS,
            name="Sheet Operations",
            version="1.0.0",
            description="Sheet-level operations like freeze, hide, sort, resize",
            instructions=SHEET_OPS_INSTRUCTIONS,
            schema=SkillSchema(
                OutputMode.SHEET, SheetAction.SHEET_OPS, ("operation",),
                ("rows", "columns", "range", "startRow", "endRow", "startColumn", "endColumn",
                 "count", "sortBy", "name", "color", "height", "width"),
            ),
            token_cost=500,
            priority=7,
            intent_score=score_sheet_ops,
            composable=True,
        ),
        Skill(
            id=SkillId.FORMULA,
            name="Native Formulas",
            version="1.1.0",
            description="Native Google Sheets formula operations",
            instructions=FORMULA_INSTRUCTIONS,
            schema=SkillSchema(OutputMode.FORMULA, None, ("steps",), ("summary", "clarification")),
            token_cost=250,
            priority=9,
            capabilities=FORMULA_CAPABILITIES,
            intent_score=score_formula,
            examples=FORMULA_EXAMPLES,
            composable=False,
        ),
        Skill(
            id=SkillId.CHAT,
            name="Data Q&A",
            version="1.0.0",
            description="Answer questions and provide information about data",
            instructions=CHAT_INSTRUCTIONS,
            schema=SkillSchema(OutputMode.CHAT, None, ("chatResponse",), ("summary", "clarification")),
            token_cost=200,
            priority=5,
            intent_score=score_chat,
            examples=CHAT_EXAMPLES,
        ),
    )
}

SKILL_DESCRIPTIONS: Dict[str, str] = {skill_id.value: skill.description for skill_id, skill in SKILL_TABLE.items()}

# Fallback skill per request-analyzer category
CATEGORY_SKILLS: Dict[str, SkillId] = {
    "format": SkillId.FORMAT,
    "conditionalFormat": SkillId.CONDITIONAL_FORMAT,
    "chart": SkillId.CHART,
    "filter": SkillId.FILTER,
    "dataValidation": SkillId.DATA_VALIDATION,
    "writeData": SkillId.WRITE_DATA,
    "sheetOps": SkillId.SHEET_OPS,
}
