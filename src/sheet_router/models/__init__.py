"""Data models for the command routing engine."""

from .base import (
    AgentRequest,
    AgentResponse,
    AgentStatus,
    CachedIntent,
    CacheLookup,
    Classification,
    ClassificationSource,
    DataContext,
    ExplicitRowInfo,
    OutputMode,
    Recommendation,
    RequestAnalysis,
    RequestType,
    SheetAction,
    SkillId,
)
from .plan import (
    AgentRunResult,
    EvaluationResult,
    ExecutionPlan,
    ExecutorState,
    NormalizedSheetResponse,
    Step,
    StepAction,
    StepEvaluation,
    ToolCall,
    ToolCallingResult,
)
from .skills import Skill, SkillExample, SkillMatch, SkillSchema, SkillSelection

__all__ = [
    "AgentRequest",
    "AgentResponse",
    "AgentStatus",
    "AgentRunResult",
    "CachedIntent",
    "CacheLookup",
    "Classification",
    "ClassificationSource",
    "DataContext",
    "EvaluationResult",
    "ExecutionPlan",
    "ExecutorState",
    "ExplicitRowInfo",
    "NormalizedSheetResponse",
    "OutputMode",
    "Recommendation",
    "RequestAnalysis",
    "RequestType",
    "SheetAction",
    "Skill",
    "SkillExample",
    "SkillId",
    "SkillMatch",
    "SkillSchema",
    "SkillSelection",
    "Step",
    "StepAction",
    "StepEvaluation",
    "ToolCall",
    "ToolCallingResult",
]
