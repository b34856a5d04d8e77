"""Self-correcting executor: tool-calling generation with workflow evaluation.

Each attempt asks the tool-calling model for a set of tool calls, then an
optional evaluator judges the whole workflow at once. Failed evaluations are
fed back into the next attempt until the attempt budget or the soft time
budget runs out. The final tool calls are converted into an ExecutionPlan.
"""

import json
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..core.columns import OutputColumnAllocator
from ..core.normalizer import SheetResponseNormalizer
from ..core.plan_parser import chain_fields, formula_plan
from ..exceptions import EvaluationError
from ..models.base import AgentRequest, AgentResponse, DataContext, OutputMode, SheetAction
from ..models.plan import (
    AgentRunResult,
    EvaluationResult,
    ExecutionPlan,
    ExecutorState,
    Step,
    StepEvaluation,
    ToolCall,
)
from ..utils.config import RouterConfig
from ..utils.llm import StructuredGenerator, ToolCallingGenerator
from ..utils.prompt_templates import PromptTemplates
from .base import BaseAgent
from .tools import SHEET_TOOLS, TOOL_DESCRIPTIONS, TOOL_OUTPUT_FORMATS

CLARIFICATION_MESSAGE = "I need more information to complete this task."
CLARIFICATION_REASON = "Agent needs more information to proceed"
SKIPPED_CONFIDENCE = 0.8
EVALUATOR_FAILURE_CONFIDENCE = 0.5


class SheetsAgent(BaseAgent):
    """Runs the generate/evaluate/retry loop over the sheet tools."""

    def __init__(
        self,
        tool_generator: ToolCallingGenerator,
        evaluator: Optional[StructuredGenerator] = None,
        config: Optional[RouterConfig] = None,
        tools: Optional[List[Dict[str, Any]]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(
            name="sheets_agent",
            description="Plans spreadsheet operations with tool calls and self-evaluation",
            config=config,
        )
        self.tool_generator = tool_generator
        self.evaluator = evaluator
        self.tools = tools if tools is not None else SHEET_TOOLS
        self.clock = clock

    async def process(self, request: AgentRequest) -> AgentResponse:
        try:
            result = await self.run(request.command, request.context)
            if result.error and not result.tool_calls:
                return self.create_error_response(request, result.error)
            plan = self.convert_to_plan(result, request.context, request.command)
            return self.create_success_response(request, {
                "plan": plan,
                "attempts": result.attempts,
                "state": result.state.value,
                "elapsedMs": result.elapsed_ms,
            })
        except Exception as e:
            self.logger.error(f"Sheets agent failed: {e}")
            return self.create_error_response(request, str(e))

    async def run(self, command: str, context: DataContext) -> AgentRunResult:
        """Generate tool calls, evaluating and retrying within the budgets."""
        start = self.clock()
        system = PromptTemplates.generate_agent_system_prompt(context, TOOL_DESCRIPTIONS)
        max_attempts = self.config.max_attempts

        def timed_out() -> bool:
            elapsed = self.clock() - start
            if elapsed > self.config.soft_timeout_seconds:
                self.logger.warning(f"Soft timeout after {elapsed:.1f}s, keeping current result")
                return True
            return False

        attempt = 0
        text = ""
        tool_calls: List[ToolCall] = []
        error: Optional[str] = None
        step_results: List[StepEvaluation] = []
        state = ExecutorState.GENERATING

        while attempt < max_attempts:
            if attempt > 0 and timed_out():
                self.logger.info("Skipping retry due to timeout")
                state = ExecutorState.TIMED_OUT
                break

            prompt = command if attempt == 0 else self._retry_prompt(command, step_results)
            attempt += 1
            state = ExecutorState.GENERATING
            self.logger.info(f"Attempt {attempt}/{max_attempts}")

            try:
                generated = await self.tool_generator.generate_with_tools(prompt, self.tools, system=system)
            except Exception as e:
                self.logger.error(f"Tool-calling generation failed on attempt {attempt}: {e}")
                error = str(e)
                state = ExecutorState.EXHAUSTED
                break
            text = generated.text
            tool_calls = list(generated.tool_calls)
            self.logger.debug(
                f"Generation complete: {len(tool_calls)} tool calls, finish reason {generated.finish_reason}"
            )

            skip_reason = self._skip_reason(tool_calls)
            if skip_reason is None and timed_out():
                skip_reason = "timeout"

            if skip_reason is not None:
                self.logger.debug(f"Skipping evaluation: {skip_reason}")
                step_results = self._attach(tool_calls, EvaluationResult(
                    meets_goal=True, confidence=SKIPPED_CONFIDENCE
                ))
                state = ExecutorState.TIMED_OUT if skip_reason == "timeout" else ExecutorState.SATISFIED
                break

            state = ExecutorState.EVALUATING
            try:
                evaluation = await self._evaluate(command, context, tool_calls)
            except EvaluationError as e:
                self.logger.warning(f"Evaluation failed, accepting result: {e}")
                evaluation = EvaluationResult(
                    meets_goal=True,
                    confidence=EVALUATOR_FAILURE_CONFIDENCE,
                    issues=["Evaluation skipped"],
                )

            step_results = self._attach(tool_calls, evaluation)
            self.logger.info(
                f"Workflow evaluation: meets_goal={evaluation.meets_goal}, "
                f"confidence={evaluation.confidence:.2f}, issues={evaluation.issues}"
            )

            if evaluation.meets_goal:
                state = ExecutorState.SATISFIED
                break
            if attempt < max_attempts:
                self.logger.info("Issues found, retrying")
            else:
                self.logger.info("Max attempts reached, proceeding with current result")
                state = ExecutorState.EXHAUSTED

        return AgentRunResult(
            text=text,
            tool_calls=tool_calls,
            attempts=attempt,
            state=state,
            step_results=step_results,
            elapsed_ms=int((self.clock() - start) * 1000),
            error=error,
        )

    def _skip_reason(self, tool_calls: List[ToolCall]) -> Optional[str]:
        if self.evaluator is None:
            return "no evaluator"
        if not tool_calls:
            return "no tool calls"
        if len(tool_calls) == 1 and tool_calls[0].tool_name == "formula":
            return "single formula"
        return None

    @staticmethod
    def _attach(tool_calls: List[ToolCall], evaluation: EvaluationResult) -> List[StepEvaluation]:
        return [StepEvaluation(tool=tc.tool_name, params=tc.args, evaluation=evaluation) for tc in tool_calls]

    @staticmethod
    def _retry_prompt(command: str, step_results: List[StepEvaluation]) -> str:
        issues = [
            f"- {sr.tool}: {', '.join(sr.evaluation.issues)}"
            for sr in step_results
            if not sr.evaluation.meets_goal
        ]
        return PromptTemplates.generate_retry_prompt(command, issues)

    async def _evaluate(self, command: str, context: DataContext, tool_calls: List[ToolCall]) -> EvaluationResult:
        workflow = [
            f"{i}. {tc.tool_name}: {json.dumps(tc.args, ensure_ascii=False, default=str)}"
            for i, tc in enumerate(tool_calls, start=1)
        ]
        prompt = PromptTemplates.generate_evaluation_prompt(command, context, workflow)
        try:
            return await self.evaluator.generate_structured(EvaluationResult, prompt)
        except Exception as e:
            raise EvaluationError("Evaluator call failed", detail=str(e)) from e

    def convert_to_plan(self, result: AgentRunResult, context: DataContext, command: str) -> ExecutionPlan:
        """Turn the executor's tool calls into an ExecutionPlan."""
        tool_calls = result.tool_calls
        summary = result.text or f"Executed {len(tool_calls)} operations"

        if not tool_calls:
            return self._clarification_plan(result, context, command)

        allocator = OutputColumnAllocator(context.empty_columns, context.data_columns)

        if len(tool_calls) > 1:
            steps: List[Step] = []
            produced: List[str] = []
            for i, tc in enumerate(tool_calls):
                step = self._step(i, tc, context, command, allocator, produced)
                produced.extend(step.output_columns)
                steps.append(step)
            self.logger.info(f"Multi-tool workflow with {len(steps)} steps, using step-by-step execution")
            return ExecutionPlan(
                output_mode=OutputMode.COLUMNS,
                steps=steps,
                summary=summary,
                is_multi_step=True,
                **chain_fields(context),
            )

        call = tool_calls[0]
        args = dict(call.args)

        if call.tool_name == "formula" and args.get("formula"):
            step = self._step(0, call, context, command, allocator)
            return formula_plan(
                args["formula"],
                step.output_column,
                context,
                description=step.description,
                summary=summary,
            )

        if call.tool_name == "analyze":
            return ExecutionPlan(
                output_mode=OutputMode.CHAT,
                summary=summary,
                chat_response=result.text,
                is_command=False,
                **chain_fields(context),
            )

        action, steps = self._sheet_action(call.tool_name), [self._step(0, call, context, command, allocator)]
        normalized = SheetResponseNormalizer(command, context).normalize(action, args, None)
        return ExecutionPlan(
            output_mode=OutputMode.SHEET,
            steps=steps,
            summary=summary,
            sheet_action=normalized.sheet_action,
            sheet_config=normalized.sheet_config,
            was_normalized=normalized.was_normalized,
            normalizations=normalized.normalizations,
            **chain_fields(context),
        )

    @staticmethod
    def _sheet_action(tool_name: str) -> str:
        if tool_name == "table":
            return SheetAction.CREATE_TABLE.value
        return tool_name

    @staticmethod
    def _formula_target(
        args: Dict[str, Any], context: DataContext, allocator: OutputColumnAllocator
    ) -> Tuple[str, int, int]:
        requested = str(args.get("outputColumn") or "").strip().upper()
        if requested and requested not in allocator.data_columns and requested not in allocator.used:
            allocator.used.add(requested)
            output_column = requested
        else:
            output_column = allocator.allocate(1)[0]
        start_row = args.get("startRow") or context.data_start_row
        end_row = args.get("endRow") or context.data_end_row
        return output_column, int(start_row), int(end_row)

    def _step(
        self,
        index: int,
        call: ToolCall,
        context: DataContext,
        command: str,
        allocator: OutputColumnAllocator,
        produced: Optional[List[str]] = None,
    ) -> Step:
        args = dict(call.args)
        inputs = list(context.data_columns)
        inputs.extend(col for col in produced or [] if col not in inputs)
        step = Step(
            id=f"step_{index + 1}",
            order=index + 1,
            action=call.tool_name,
            description=args.get("description") or call.tool_name,
            prompt=command,
            input_columns=inputs,
            output_format=TOOL_OUTPUT_FORMATS.get(call.tool_name, "json"),
            depends_on=f"step_{index}" if index > 0 else None,
            config=args,
        )
        if call.tool_name == "formula":
            column, start_row, end_row = self._formula_target(args, context, allocator)
            step = step.model_copy(update={
                "formula": args.get("formula"),
                "output_column": column,
                "output_columns": [column],
                "start_row": start_row,
                "end_row": end_row,
            })
        return step

    @staticmethod
    def _clarification_plan(result: AgentRunResult, context: DataContext, command: str) -> ExecutionPlan:
        return ExecutionPlan(
            output_mode=OutputMode.CHAT,
            summary=result.text or "Executed 0 operations",
            clarification=CLARIFICATION_MESSAGE,
            chat_response=result.text or None,
            is_command=False,
            needs_clarification=True,
            clarification_context={
                "originalCommand": command,
                "agentResponse": result.text,
                "availableData": {
                    "headers": dict(context.headers),
                    "dataRange": context.resolved_data_range,
                    "rowCount": context.row_count,
                    "emptyColumns": list(context.empty_columns[:3]),
                },
                "reason": CLARIFICATION_REASON,
            },
            data_context=context.summary(),
            **chain_fields(context),
        )
