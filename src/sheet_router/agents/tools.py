"""Function tool declarations offered to the tool-calling model.

Declarations use the OpenAI ``tools`` format. Every tool accepts an optional
``description`` that is surfaced as the step label in the resulting plan.
"""

from typing import Any, Dict, List, Optional

DESCRIPTION_PARAM = {
    "type": "string",
    "description": "Brief description for the UI, e.g. \"Bold headers\"",
}

TOOL_DESCRIPTIONS: Dict[str, str] = {
    "format": "Style cells: number/currency/percent/date formats, bold, colors, borders, alignment, banding.",
    "formula": "Native spreadsheet formula applied per row with {{ROW}} as the row placeholder.",
    "chart": "Create a chart (bar, column, line, pie, area, scatter) from columns of the data.",
    "conditionalFormat": "Highlight cells based on their values with conditional formatting rules.",
    "dataValidation": "Add dropdowns, checkboxes, number/date/text validation, email or URL rules.",
    "filter": "Filter data to show or hide rows based on criteria.",
    "sheetOps": "Sheet operations: freeze, sort, hide/show, insert/delete, resize, rename, tab color.",
    "writeData": "Write a block of values (such as a pasted table) starting at a cell.",
    "analyze": "Answer a question about the data in text, without modifying the sheet.",
    "table": "Turn a range into a structured table with a frozen header row.",
}


def _tool(name: str, properties: Dict[str, Any], required: Optional[List[str]] = None) -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": TOOL_DESCRIPTIONS[name],
            "parameters": {
                "type": "object",
                "properties": {"description": DESCRIPTION_PARAM, **properties},
                "required": required or [],
            },
        },
    }


_RANGE = {"type": "string", "description": "A1 notation range, e.g. \"B2:B100\""}
_COLUMN = {"type": "string", "description": "Column letter, e.g. \"C\""}

SHEET_TOOLS: List[Dict[str, Any]] = [
    _tool("format", {
        "range": _RANGE,
        "formatType": {
            "type": "string",
            "enum": ["currency", "percent", "number", "date", "text", "bold", "italic",
                     "borders", "alignment", "background", "textColor", "banding"],
        },
        "options": {"type": "object", "description": "Format options such as decimals, color, pattern"},
        "operations": {
            "type": "array",
            "description": "Several formats applied in one call",
            "items": {"type": "object"},
        },
    }),
    _tool("formula", {
        "formula": {"type": "string", "description": "Formula with {{ROW}} placeholder, e.g. \"=UPPER(A{{ROW}})\""},
        "outputColumn": _COLUMN,
        "startRow": {"type": "integer"},
        "endRow": {"type": "integer"},
    }, ["formula"]),
    _tool("chart", {
        "chartType": {"type": "string", "enum": ["bar", "column", "line", "pie", "area", "scatter"]},
        "domainColumn": _COLUMN,
        "dataColumns": {"type": "array", "items": {"type": "string"}},
        "title": {"type": "string"},
    }, ["chartType"]),
    _tool("conditionalFormat", {
        "range": _RANGE,
        "rules": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "type": {"type": "string", "description": "e.g. greaterThan, lessThan, equals, textContains, colorScale"},
                    "value": {},
                    "value2": {},
                    "format": {"type": "object"},
                },
            },
        },
    }, ["rules"]),
    _tool("dataValidation", {
        "range": _RANGE,
        "validationType": {
            "type": "string",
            "enum": ["dropdown", "checkbox", "number", "date", "text", "email", "url", "custom"],
        },
        "values": {"type": "array", "items": {"type": "string"}},
        "min": {"type": "number"},
        "max": {"type": "number"},
        "strict": {"type": "boolean"},
    }, ["validationType"]),
    _tool("filter", {
        "range": _RANGE,
        "criteria": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "column": _COLUMN,
                    "operator": {"type": "string"},
                    "value": {},
                },
            },
        },
    }),
    _tool("sheetOps", {
        "operations": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "operation": {"type": "string", "description": "e.g. freezeRows, sort, hideColumns, rename"},
                    "range": _RANGE,
                },
            },
        },
    }, ["operations"]),
    _tool("writeData", {
        "data": {"type": "array", "items": {"type": "array", "items": {}}},
        "startCell": {"type": "string", "description": "Top-left cell, e.g. \"A1\""},
    }, ["data"]),
    _tool("analyze", {
        "question": {"type": "string"},
        "focusColumns": {"type": "array", "items": {"type": "string"}},
        "outputType": {"type": "string", "enum": ["summary", "insight", "answer"]},
    }),
    _tool("table", {
        "range": _RANGE,
        "tableName": {"type": "string"},
        "freezeHeader": {"type": "boolean"},
    }),
]

TOOL_NAMES = [tool["function"]["name"] for tool in SHEET_TOOLS]

# Output format of a step produced by each tool; unknown tools produce json
TOOL_OUTPUT_FORMATS: Dict[str, str] = {name: name for name in TOOL_NAMES}
TOOL_OUTPUT_FORMATS["analyze"] = "chat"


def get_tool(name: str) -> Optional[Dict[str, Any]]:
    for tool in SHEET_TOOLS:
        if tool["function"]["name"] == name:
            return tool
    return None
