"""Representative commands used to pre-populate the intent cache."""

from dataclasses import dataclass
from typing import List, Optional

from ..models.base import Classification, ClassificationSource, OutputMode, SheetAction, SkillId


@dataclass(frozen=True)
class SeedIntent:
    """A hand-labelled command for the similarity cache."""
    command: str
    output_mode: OutputMode
    skill_id: Optional[SkillId] = None
    sheet_action: Optional[SheetAction] = None
    category: Optional[str] = None

    def to_classification(self) -> Classification:
        return Classification(
            output_mode=self.output_mode,
            skill_id=self.skill_id,
            sheet_action=self.sheet_action,
            confidence=1.0,
            source=ClassificationSource.CACHE,
            reasoning="Seed example",
        )


def _sheet(command: str, skill: SkillId, action: SheetAction, category: str) -> SeedIntent:
    return SeedIntent(command, OutputMode.SHEET, skill, action, category)


DEFAULT_SEEDS: List[SeedIntent] = [
    _sheet("create a pie chart of sales by region", SkillId.CHART, SheetAction.CHART, "chart"),
    _sheet("make a bar chart comparing revenue and cost", SkillId.CHART, SheetAction.CHART, "chart"),
    _sheet("show me a line graph of monthly growth", SkillId.CHART, SheetAction.CHART, "chart"),
    _sheet("format column c as currency", SkillId.FORMAT, SheetAction.FORMAT, "format"),
    _sheet("make the headers bold with a blue background", SkillId.FORMAT, SheetAction.FORMAT, "format"),
    _sheet("add borders to the table", SkillId.FORMAT, SheetAction.FORMAT, "format"),
    _sheet("highlight negative values in red", SkillId.CONDITIONAL_FORMAT,
           SheetAction.CONDITIONAL_FORMAT, "conditionalFormat"),
    _sheet("highlight cells greater than 1000 in green", SkillId.CONDITIONAL_FORMAT,
           SheetAction.CONDITIONAL_FORMAT, "conditionalFormat"),
    _sheet("add a dropdown with high, medium, low", SkillId.DATA_VALIDATION,
           SheetAction.DATA_VALIDATION, "dataValidation"),
    _sheet("add checkboxes to column f", SkillId.DATA_VALIDATION,
           SheetAction.DATA_VALIDATION, "dataValidation"),
    _sheet("only allow numbers between 1 and 100 in column d", SkillId.DATA_VALIDATION,
           SheetAction.DATA_VALIDATION, "dataValidation"),
    _sheet("show only rows where status is active", SkillId.FILTER, SheetAction.FILTER, "filter"),
    _sheet("filter to deals over 50000", SkillId.FILTER, SheetAction.FILTER, "filter"),
    _sheet("freeze the header row", SkillId.SHEET_OPS, SheetAction.SHEET_OPS, "sheetOps"),
    _sheet("sort by date descending", SkillId.SHEET_OPS, SheetAction.SHEET_OPS, "sheetOps"),
    _sheet("auto fit column widths", SkillId.SHEET_OPS, SheetAction.SHEET_OPS, "sheetOps"),
    _sheet("convert this range into a table", SkillId.TABLE, SheetAction.CREATE_TABLE, "table"),
    _sheet("paste this data into the sheet", SkillId.WRITE_DATA, SheetAction.WRITE_DATA, "writeData"),
    SeedIntent("translate column b to spanish", OutputMode.FORMULA, SkillId.FORMULA, category="formula"),
    SeedIntent("convert column a to uppercase", OutputMode.FORMULA, SkillId.FORMULA, category="formula"),
    SeedIntent("extract email addresses from column c", OutputMode.FORMULA, SkillId.FORMULA, category="formula"),
    SeedIntent("what is the total revenue?", OutputMode.CHAT, SkillId.CHAT, category="chat"),
    SeedIntent("summarize this data", OutputMode.CHAT, SkillId.CHAT, category="chat"),
    SeedIntent("which region has the most sales?", OutputMode.CHAT, SkillId.CHAT, category="chat"),
    SeedIntent("classify each lead then summarize by category", OutputMode.WORKFLOW, category="workflow"),
]
