"""Turns raw model output into a canonical ExecutionPlan."""

from typing import Any, Dict, List, Optional

from ..exceptions import PlanParseError
from ..models.base import Classification, DataContext, OutputMode
from ..models.plan import ExecutionPlan, Step, StepAction
from ..utils.config import RouterConfig, get_config
from ..utils.json_utils import extract_json_object
from ..utils.logging import get_logger
from .columns import OutputColumnAllocator, detect_explicit_output_column, split_aspects
from .normalizer import normalize_sheet_response

logger = get_logger(__name__)

STEP_ACTION_ALIASES = {
    "process": StepAction.ANALYZE,
    "categorize": StepAction.CLASSIFY,
    "categorise": StepAction.CLASSIFY,
    "label": StepAction.CLASSIFY,
    "tag": StepAction.CLASSIFY,
    "find": StepAction.EXTRACT,
    "pull": StepAction.EXTRACT,
    "get": StepAction.EXTRACT,
    "summarise": StepAction.SUMMARIZE,
    "summary": StepAction.SUMMARIZE,
    "create": StepAction.GENERATE,
    "write": StepAction.GENERATE,
    "draft": StepAction.GENERATE,
    "evaluate": StepAction.SCORE,
    "rate": StepAction.SCORE,
    "rank": StepAction.SCORE,
    "check": StepAction.VALIDATE,
    "verify": StepAction.VALIDATE,
    "tidy": StepAction.CLEAN,
    "normalize": StepAction.CLEAN,
    "fix": StepAction.CLEAN,
}

FORMULA_CLARIFICATION = "Using native formula.\n✅ FREE ✅ Instant ✅ Auto-updates"
FALLBACK_CLARIFICATION = (
    "I couldn't fully understand that request, so I'll analyze your data "
    "and generate results based on your command."
)


def normalize_step_action(action: Any) -> StepAction:
    """Map a model-declared step action onto the closed vocabulary."""
    name = str(action or "").strip().lower()
    try:
        return StepAction(name)
    except ValueError:
        pass
    if name in STEP_ACTION_ALIASES:
        return STEP_ACTION_ALIASES[name]
    logger.debug(f"Unknown step action '{name}', using generate")
    return StepAction.GENERATE


def estimate_chain_time(step_count: int, minutes_per_step: int = 2) -> str:
    """Rough wall-clock estimate for a row-by-row workflow."""
    minutes = step_count * minutes_per_step
    if minutes < 1:
        return "< 1 minute"
    if minutes < 5:
        return f"~{minutes} minutes"
    return f"{minutes}-{minutes + 2} minutes"


def chain_fields(context: DataContext) -> Dict[str, Any]:
    """Chain-level input description shared by every columns plan."""
    columns = list(context.data_columns)
    return {
        "input_range": context.resolved_data_range,
        "input_column": columns[0] if columns else None,
        "input_columns": columns,
        "row_count": context.row_count,
        "has_multiple_input_columns": len(columns) > 1,
    }


def formula_plan(
    formula: str,
    output_column: str,
    context: DataContext,
    description: str = "Apply native formula",
    summary: Optional[str] = None,
    clarification: Optional[str] = None,
    classification: Optional[Classification] = None,
) -> ExecutionPlan:
    """Single-step native formula plan filling ``output_column`` over the data rows."""
    step = Step(
        id="step_1",
        order=1,
        action="formula",
        description=description,
        prompt=formula,
        formula=formula,
        input_columns=list(context.data_columns),
        output_column=output_column,
        output_columns=[output_column],
        output_format="formula",
        start_row=context.data_start_row,
        end_row=context.data_end_row,
    )
    return ExecutionPlan(
        output_mode=OutputMode.FORMULA,
        steps=[step],
        summary=summary or f"Apply formula to column {output_column}",
        clarification=clarification or FORMULA_CLARIFICATION,
        is_multi_step=False,
        estimated_time="Instant",
        classification=classification,
        **chain_fields(context),
    )


class PlanParser:
    """Parses model text into an ExecutionPlan; never raises."""

    def __init__(self, config: Optional[RouterConfig] = None):
        self.config = config or get_config()

    def parse(
        self,
        raw_text: str,
        context: DataContext,
        command: str,
        classification: Optional[Classification] = None,
    ) -> ExecutionPlan:
        try:
            data = self._load(raw_text)
        except PlanParseError as e:
            logger.warning(f"⚠️ {e}; using fallback plan. Output was: {str(raw_text)[:300]!r}")
            return self.fallback_plan(context, command, classification)

        try:
            return self.build_plan(data, context, command, classification)
        except Exception as e:
            logger.error(f"❌ Failed to build plan from model output: {e}")
            return self.fallback_plan(context, command, classification)

    @staticmethod
    def _load(raw_text: str) -> Dict[str, Any]:
        try:
            return extract_json_object(raw_text or "")
        except ValueError as e:
            raise PlanParseError("Model output is not valid JSON", detail=str(e)) from e

    @staticmethod
    def _resolve_mode(data: Dict[str, Any], steps: List[Any]) -> OutputMode:
        declared = str(data.get("outputMode") or "").strip()
        try:
            return OutputMode(declared)
        except ValueError:
            pass
        if not declared and data.get("sheetAction"):
            return OutputMode.SHEET
        if steps:
            logger.info(f"Unknown outputMode '{declared}' with steps, treating as columns")
            return OutputMode.COLUMNS
        logger.info(f"Unknown outputMode '{declared}' without steps, treating as chat")
        return OutputMode.CHAT

    def build_plan(
        self,
        data: Dict[str, Any],
        context: DataContext,
        command: str,
        classification: Optional[Classification] = None,
    ) -> ExecutionPlan:
        """Dispatch a loaded JSON object to the branch for its output mode."""
        steps = data.get("steps") if isinstance(data.get("steps"), list) else []
        mode = self._resolve_mode(data, steps)

        if mode == OutputMode.CHAT:
            return self._parse_chat(data, classification)
        if mode == OutputMode.FORMULA:
            plan = self._parse_formula(data, steps, context, command, classification)
            if plan is not None:
                return plan
            if not steps:
                return self._parse_chat(data, classification)
        if mode == OutputMode.SHEET:
            return self._parse_sheet(data, context, command, classification)
        return self._parse_columns(data, steps, context, command, classification)

    def _parse_chat(self, data: Dict[str, Any], classification: Optional[Classification]) -> ExecutionPlan:
        suggested = data.get("suggestedActions")
        return ExecutionPlan(
            output_mode=OutputMode.CHAT,
            steps=[],
            summary=data.get("summary") or "",
            clarification=data.get("clarification") or "",
            chat_response=data.get("chatResponse") or data.get("response"),
            suggested_actions=suggested if isinstance(suggested, list) else [],
            is_multi_step=False,
            is_command=bool(data.get("isCommand", True)),
            classification=classification,
        )

    def _parse_formula(
        self,
        data: Dict[str, Any],
        steps: List[Any],
        context: DataContext,
        command: str,
        classification: Optional[Classification],
    ) -> Optional[ExecutionPlan]:
        first = steps[0] if steps and isinstance(steps[0], dict) else {}
        formula = first.get("formula") or data.get("formula")
        if not formula:
            prompt = str(first.get("prompt") or "").strip()
            if prompt.startswith("="):
                formula = prompt
        if not formula:
            logger.warning("Formula response carried no formula text")
            return None

        column = (
            detect_explicit_output_column(command)
            or (context.empty_columns[0] if context.empty_columns else None)
            or self.config.fallback_formula_column
        )
        return formula_plan(
            str(formula),
            str(column).upper(),
            context,
            description=first.get("description") or "Apply native formula",
            summary=data.get("summary"),
            clarification=data.get("clarification"),
            classification=classification,
        )

    def _parse_sheet(
        self,
        data: Dict[str, Any],
        context: DataContext,
        command: str,
        classification: Optional[Classification],
    ) -> ExecutionPlan:
        normalized = normalize_sheet_response(data, command, context)
        action = normalized.sheet_action
        normalizations = list(normalized.normalizations)

        if (
            classification is not None
            and classification.sheet_action is not None
            and classification.confidence >= self.config.classifier_override_confidence
            and classification.sheet_action.value != action
        ):
            logger.info(
                f"🔀 Classifier override: {action} -> {classification.sheet_action.value} "
                f"(confidence {classification.confidence:.2f})"
            )
            action = classification.sheet_action.value
            normalizations.append("classifier_override")

        return ExecutionPlan(
            output_mode=OutputMode.SHEET,
            steps=[],
            summary=data.get("summary") or f"Apply {action} to the sheet",
            clarification=data.get("clarification") or "",
            is_multi_step=False,
            sheet_action=action,
            sheet_config=normalized.sheet_config,
            was_normalized=bool(normalizations),
            normalizations=normalizations,
            estimated_time="Instant",
            classification=classification,
        )

    def _parse_columns(
        self,
        data: Dict[str, Any],
        steps: List[Any],
        context: DataContext,
        command: str,
        classification: Optional[Classification],
    ) -> ExecutionPlan:
        declared = [raw for raw in steps if isinstance(raw, dict)][: self.config.max_chain_steps]
        if not declared:
            logger.warning("Columns response carried no usable steps")
            return self.fallback_plan(context, command, classification)

        allocator = OutputColumnAllocator(
            context.empty_columns,
            context.data_columns,
            detect_explicit_output_column(command),
        )
        built: List[Step] = []
        prior_outputs: List[str] = []

        for index, raw in enumerate(declared, start=1):
            action = normalize_step_action(raw.get("action"))
            output_format = raw.get("outputFormat")
            aspects = split_aspects(output_format)
            columns = allocator.allocate(len(aspects))

            input_columns = list(context.data_columns)
            for column in prior_outputs:
                if column not in input_columns:
                    input_columns.append(column)

            prompt = str(raw.get("prompt") or "").strip() or command
            config = raw.get("config") if isinstance(raw.get("config"), dict) else {}

            built.append(Step(
                id=f"step_{index}",
                order=index,
                action=action.value,
                description=raw.get("description") or action.value.capitalize(),
                prompt=prompt,
                input_columns=input_columns,
                output_column=columns[0],
                output_columns=columns,
                output_format=output_format,
                aspects=[aspect for aspect in aspects if aspect],
                depends_on=built[-1].id if built else None,
                config=config,
            ))
            prior_outputs.extend(columns)

        logger.info(
            f"Parsed {len(built)}-step workflow: "
            + ", ".join(f"{s.action}->{','.join(s.output_columns)}" for s in built)
        )
        return ExecutionPlan(
            output_mode=OutputMode.COLUMNS,
            steps=built,
            summary=data.get("summary") or f"{len(built)}-step workflow",
            clarification=data.get("clarification") or "",
            is_multi_step=len(built) > 1,
            is_command=bool(data.get("isCommand", True)),
            estimated_time=estimate_chain_time(len(built), self.config.minutes_per_step),
            classification=classification,
            **chain_fields(context),
        )

    def fallback_plan(
        self,
        context: DataContext,
        command: str,
        classification: Optional[Classification] = None,
    ) -> ExecutionPlan:
        """Deterministic analyze-then-generate plan used when parsing fails."""
        allocator = OutputColumnAllocator(context.empty_columns, context.data_columns)
        first_column = allocator.allocate(1)[0]
        second_column = allocator.allocate(1)[0]
        data_columns = list(context.data_columns)

        steps = [
            Step(
                id="step_1",
                order=1,
                action=StepAction.ANALYZE.value,
                description="Analyze the data",
                prompt=command,
                input_columns=data_columns,
                output_column=first_column,
                output_columns=[first_column],
            ),
            Step(
                id="step_2",
                order=2,
                action=StepAction.GENERATE.value,
                description="Generate results",
                prompt=command,
                input_columns=data_columns + [first_column],
                output_column=second_column,
                output_columns=[second_column],
                depends_on="step_1",
            ),
        ]
        return ExecutionPlan(
            output_mode=OutputMode.COLUMNS,
            steps=steps,
            summary="Analyze and generate results",
            clarification=FALLBACK_CLARIFICATION,
            is_multi_step=True,
            estimated_time=estimate_chain_time(len(steps), self.config.minutes_per_step),
            is_fallback=True,
            classification=classification,
            **chain_fields(context),
        )
