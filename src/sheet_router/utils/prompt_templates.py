"""Prompt templates for classification, plan generation and evaluation."""

import json
from typing import Any, Dict, List

from ..models.base import DataContext


class PromptTemplates:
    """Centralized prompt templates."""

    CLASSIFY_INTENT = """Classify this Google Sheets command into the correct category.

COMMAND: "{command}"

DATA CONTEXT:
{context_summary}

AVAILABLE SKILLS:
{skill_list}

INSTRUCTIONS:
1. Determine the outputMode:
   - "sheet": Direct action on spreadsheet (format, chart, filter, validation, etc.)
   - "chat": Question or request for information
   - "formula": Simple text operation (translate, uppercase, extract)
   - "workflow": Complex multi-step operation

2. Determine the skillId (for sheet/formula modes):
   - Match to one of: {skill_ids}
   - Use "chat" for questions

3. For sheet actions, determine sheetAction type.

RESPOND WITH ONLY JSON (no markdown):
{{
  "outputMode": "sheet|chat|formula|workflow",
  "skillId": "format|chart|...|null",
  "sheetAction": "format|chart|...|null",
  "confidence": 0.0-1.0,
  "reasoning": "brief explanation"
}}"""

    CORE_INSTRUCTIONS = """You are a Google Sheets workflow designer.

TASK: Accomplish the user's request using the appropriate outputMode.

OUTPUT MODES:
- "sheet": Direct sheet actions (chart, format, validation, filter, writeData)
- "formula": Native Google Sheets formulas (FREE, instant)
- "chat": Answer questions about the data
- "columns": AI-powered row-by-row transformation

RULE 1 - USE THE CONTEXT:
The DATA CONTEXT provides exact row/column information. Always use it:
- explicitRowInfo.headerRange is the exact header row (e.g. "A1:G1")
- explicitRowInfo.dataStartRow / dataEndRow are the data rows (e.g. 2 to 7)
- explicitRowInfo.dataRange is the exact data range (e.g. "A2:G7")
When the user says "column G" and data rows are 2 to 7, use "G2:G7", not "G:G".

RULE 2 - RESPECT USER VALUES:
Include every value the user explicitly mentions:
- Numbers: "between 1000 and 100000" gives min: 1000, max: 100000
- Options: "High, Medium, Low" gives values: ["High", "Medium", "Low"]
- Colors: "dark blue" gives backgroundColor: "#003366"

CRITICAL RULES:
1. Return ONLY valid JSON, no markdown, no explanation
2. Derive ranges from explicitRowInfo in context, never guess
3. Include all user-specified values directly in config
4. Data actions target DATA rows, not headers
"""

    DEFAULT_CHAT_INSTRUCTIONS = """
## Conversational Response Mode

When you can't determine a specific sheet action, respond in CHAT mode.

Return this structure:
{
  "outputMode": "chat",
  "isMultiStep": false,
  "isCommand": true,
  "steps": [],
  "summary": "Responding to your request",
  "clarification": "Brief description",
  "chatResponse": "Your helpful response in Markdown"
}

### For Ambiguous Requests
If the request could be interpreted multiple ways, ask which of these the user wants:
- "Create a [pie/bar/line] chart showing..."
- "Format column X as currency" or "Make headers bold with blue background"
- "Highlight cells where value > 1000 in red"
- "Add dropdown with options High, Medium, Low"
- "Show only rows where status = Active"

### For General Questions
Answer questions about the data using the context provided, in Markdown.
"""

    CHAIN_INSTRUCTIONS = """You convert user requests into row-by-row AI column workflows.

Return ONLY JSON:
{{
  "outputMode": "columns",
  "isMultiStep": true,
  "isCommand": true,
  "steps": [
    {{
      "action": "classify|extract|summarize|generate|analyze|translate|clean|score|validate",
      "description": "Short description (5-15 words)",
      "prompt": "Detailed instruction applied to each row",
      "outputFormat": "Single value name, or several separated by | for multiple output columns"
    }}
  ],
  "summary": "Brief summary of the workflow",
  "clarification": "Friendly explanation of the proposed solution"
}}

RULES:
1. At most {max_steps} steps
2. Chained requests ("classify then summarize") become one step per action
3. Steps must be executable on each spreadsheet row
4. Never just split the user's text into steps; propose concrete actions"""

    AGENT_SYSTEM = """You are an intelligent Google Sheets agent.

## Available Tools
{tool_list}

## Current Spreadsheet Context
- Headers: {headers}
- Columns with Data: {columns}
- Data Range (without headers): {data_range}
- Full Range (with headers, for filters): {full_range}
- Header Row Range: {header_range}
- Row Count: {row_count}
- Data Rows: {data_start_row} to {data_end_row}
- Empty Columns (for output): {empty_columns}
- Sample Data: {sample_data}

## Rules
1. Formula first: for calculable tasks use native formulas (free, instant, auto-updating).
   Only use "analyze" for open-ended questions requiring interpretation.
2. Map the user's column references to column letters using the Headers above.
3. "Convert column" uses the existing column; "add a new column" uses the first empty column.
4. Use the exact numbers, text, colors and options the user specifies.
5. Filters require the header row: the range starts at row 1 and covers all data columns.
6. For "do X and Y", call multiple tools, one per part.
7. Charts: domainColumn is a text/label column, dataColumns are numeric columns only.
8. Prefer action over clarification. Only ask when critical information is missing and no
   reasonable default exists.
9. Give every tool call a short user-facing "description" (10-50 chars)."""

    RETRY_FEEDBACK = """{command}

IMPORTANT: Previous attempt had issues. Please fix:
{issues}"""

    EVALUATE_WORKFLOW = """Evaluate this COMPLETE WORKFLOW of Google Sheets tool calls:

User's Goal: "{command}"

Spreadsheet Context:
- Headers: {headers}
- Data Range: {data_range}

WORKFLOW ({tool_count} tool calls):
{workflow}

IMPORTANT EVALUATION RULES:
- This may be a MULTI-TOOL workflow where each tool handles PART of the goal
- Do NOT reject a tool just because it doesn't do everything
- Evaluate if the COMBINATION of all tools achieves the user's goal
- Only report issues if parameters are WRONG (wrong column, wrong range, wrong values)
- Accept if tools correctly split the work (e.g. one tool for headers, another for data)

Questions:
1. Does the COMBINATION of these tools achieve the user's goal?
2. Are the column letters correct (check against headers)?
3. Are the ranges appropriate?
4. Are there any actual parameter errors?"""

    @staticmethod
    def summarize_context(context: DataContext, max_headers: int = 5) -> str:
        """Compact context summary for the classification prompt."""
        parts = []
        if context.data_columns:
            parts.append(f"Columns: {', '.join(context.data_columns)}")
        if context.headers:
            header_list = ", ".join(
                f'{col}="{name}"' for col, name in list(context.headers.items())[:max_headers]
            )
            parts.append(f"Headers: {header_list}")
        if context.row_count:
            parts.append(f"Rows: {context.row_count}")
        return "\n".join(parts) if parts else "No specific context provided"

    @staticmethod
    def render_data_context(context: DataContext) -> str:
        """Full context block for plan generation prompts."""
        payload: Dict[str, Any] = {
            "headers": context.headers,
            "dataColumns": context.data_columns,
            "emptyColumns": context.empty_columns[:5],
            "sampleData": context.sample_data,
            "rowCount": context.row_count,
            "dataRange": context.resolved_data_range,
            "dataStartRow": context.data_start_row,
            "dataEndRow": context.data_end_row,
        }
        if context.explicit_row_info:
            payload["explicitRowInfo"] = context.explicit_row_info.to_wire()
        return json.dumps(payload, ensure_ascii=False, default=str)

    @staticmethod
    def generate_classification_prompt(command: str, context: DataContext, skills: Dict[str, str]) -> str:
        skill_list = "\n".join(f"{skill_id}: {description}" for skill_id, description in skills.items())
        return PromptTemplates.CLASSIFY_INTENT.format(
            command=command,
            context_summary=PromptTemplates.summarize_context(context),
            skill_list=skill_list,
            skill_ids=", ".join(skills),
        )

    @staticmethod
    def generate_plan_prompt(command: str, context: DataContext) -> str:
        return (
            f"DATA CONTEXT:\n{PromptTemplates.render_data_context(context)}\n\n"
            f'USER REQUEST: "{command}"\n\n'
            "Respond with the JSON object only."
        )

    @staticmethod
    def generate_chain_system_prompt(max_steps: int) -> str:
        return PromptTemplates.CHAIN_INSTRUCTIONS.format(max_steps=max_steps)

    @staticmethod
    def generate_agent_system_prompt(context: DataContext, tool_descriptions: Dict[str, str]) -> str:
        columns = context.data_columns or list(context.headers)
        if columns:
            full_range = f"{columns[0]}1:{columns[-1]}{context.data_end_row}"
            header_range = f"{columns[0]}1:{columns[-1]}1"
        else:
            full_range = "unknown"
            header_range = "unknown"
        tool_list = "\n".join(f"- {name}: {desc}" for name, desc in tool_descriptions.items())
        return PromptTemplates.AGENT_SYSTEM.format(
            tool_list=tool_list,
            headers=json.dumps(context.headers, ensure_ascii=False),
            columns=", ".join(columns) or "none",
            data_range=context.resolved_data_range or "unknown",
            full_range=full_range,
            header_range=header_range,
            row_count=context.row_count,
            data_start_row=context.data_start_row,
            data_end_row=context.data_end_row,
            empty_columns=", ".join(context.empty_columns[:5]) or "none",
            sample_data=json.dumps(context.sample_data, ensure_ascii=False, default=str),
        )

    @staticmethod
    def generate_retry_prompt(command: str, issues: List[str]) -> str:
        return PromptTemplates.RETRY_FEEDBACK.format(
            command=command,
            issues="\n".join(issues) if issues else "- Output did not meet the goal",
        )

    @staticmethod
    def generate_evaluation_prompt(command: str, context: DataContext, workflow: List[str]) -> str:
        return PromptTemplates.EVALUATE_WORKFLOW.format(
            command=command,
            headers=json.dumps(context.headers, ensure_ascii=False),
            data_range=context.resolved_data_range or "unknown",
            tool_count=len(workflow),
            workflow="\n".join(workflow),
        )

    @staticmethod
    def estimate_tokens(text: str) -> int:
        """Rough token estimation (1 token ≈ 4 characters)."""
        return len(text) // 4
