"""Execution plan models shared by the parser, the executor and the router."""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import ConfigDict, Field

from .base import Classification, OutputMode, WireModel


class StepAction(str, Enum):
    """Closed vocabulary for AI column-transformation steps."""
    CLASSIFY = "classify"
    EXTRACT = "extract"
    SUMMARIZE = "summarize"
    GENERATE = "generate"
    ANALYZE = "analyze"
    TRANSLATE = "translate"
    CLEAN = "clean"
    SCORE = "score"
    VALIDATE = "validate"


class ExecutorState(str, Enum):
    """States of the self-correcting executor loop."""
    GENERATING = "generating"
    EVALUATING = "evaluating"
    SATISFIED = "satisfied"
    EXHAUSTED = "exhausted"
    TIMED_OUT = "timed_out"


class Step(WireModel):
    """A single unit of work inside an execution plan."""

    id: str
    order: int
    action: str
    description: str = ""
    prompt: str = ""
    input_columns: List[str] = Field(default_factory=list)
    output_column: Optional[str] = None
    output_columns: List[str] = Field(default_factory=list)
    output_format: Optional[str] = None
    aspects: List[str] = Field(default_factory=list)
    depends_on: Optional[str] = None
    config: Dict[str, Any] = Field(default_factory=dict)
    formula: Optional[str] = None
    start_row: Optional[int] = None
    end_row: Optional[int] = None


class ExecutionPlan(WireModel):
    """Canonical plan handed to the downstream spreadsheet executor."""

    model_config = ConfigDict(frozen=True)

    output_mode: OutputMode
    steps: List[Step] = Field(default_factory=list)
    summary: str = ""
    clarification: str = ""
    chat_response: Optional[str] = None
    suggested_actions: List[Any] = Field(default_factory=list)
    is_multi_step: bool = False
    is_command: bool = True

    sheet_action: Optional[str] = None
    sheet_config: Dict[str, Any] = Field(default_factory=dict)
    was_normalized: bool = False
    normalizations: List[str] = Field(default_factory=list)

    estimated_time: Optional[str] = None
    input_range: Optional[str] = None
    input_column: Optional[str] = None
    input_columns: List[str] = Field(default_factory=list)
    row_count: Optional[int] = None
    has_multiple_input_columns: bool = False

    needs_clarification: bool = False
    clarification_context: Optional[Dict[str, Any]] = None
    data_context: Optional[Dict[str, Any]] = None

    is_fallback: bool = False
    classification: Optional[Classification] = None


class NormalizedSheetResponse(WireModel):
    """Result of the sheet-mode normalization cascade."""

    sheet_action: str
    sheet_config: Dict[str, Any] = Field(default_factory=dict)
    was_normalized: bool = False
    normalizations: List[str] = Field(default_factory=list)


class ToolCall(WireModel):
    """A tool invocation emitted by the tool-calling model."""

    tool_name: str
    args: Dict[str, Any] = Field(default_factory=dict)


class ToolCallingResult(WireModel):
    """Raw output of one tool-calling generation."""

    text: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)
    finish_reason: Optional[str] = None


class EvaluationResult(WireModel):
    """Structured verdict returned by the evaluator model."""

    meets_goal: bool
    confidence: float = 0.5
    issues: List[str] = Field(default_factory=list)
    should_retry: bool = False
    suggested_fix: Optional[str] = None


class StepEvaluation(WireModel):
    """Evaluation attached to one tool call of an attempt."""

    tool: str
    params: Dict[str, Any] = Field(default_factory=dict)
    evaluation: EvaluationResult


class AgentRunResult(WireModel):
    """Outcome of the self-correcting loop, before plan conversion."""

    text: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)
    attempts: int = 0
    state: ExecutorState = ExecutorState.GENERATING
    step_results: List[StepEvaluation] = Field(default_factory=list)
    elapsed_ms: int = 0
    error: Optional[str] = None
