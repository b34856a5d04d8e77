"""Skill records used by the skill registry."""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from .base import DataContext, OutputMode, RequestAnalysis, SheetAction, SkillId


IntentScorer = Callable[[str, Optional[DataContext]], float]


@dataclass(frozen=True)
class SkillSchema:
    """Declared output shape of a skill."""
    output_mode: OutputMode
    sheet_action: Optional[SheetAction] = None
    required_fields: Tuple[str, ...] = ()
    optional_fields: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SkillExample:
    """A worked command/response pair shown to the model."""
    command: str
    response: Dict[str, Any]
    context: Optional[str] = None
    skill_id: Optional[SkillId] = None


@dataclass(frozen=True)
class Skill:
    """One row of the skill table."""
    id: SkillId
    name: str
    version: str
    description: str
    instructions: str
    schema: SkillSchema
    token_cost: int
    priority: int
    capabilities: Tuple[str, ...] = ()
    intent_score: Optional[IntentScorer] = None
    examples: Tuple[SkillExample, ...] = ()
    composable: bool = False
    conflicts: Tuple[SkillId, ...] = ()

    @property
    def output_mode(self) -> OutputMode:
        return self.schema.output_mode

    @property
    def sheet_action(self) -> Optional[SheetAction]:
        return self.schema.sheet_action

    def conflicts_with(self, other: "Skill") -> bool:
        return other.id in self.conflicts or self.id in other.conflicts


@dataclass
class SkillMatch:
    """Intent score of a single skill for a command."""
    skill_id: SkillId
    confidence: float
    matched_patterns: List[str] = field(default_factory=list)
    version: str = "1.0.0"


@dataclass
class SkillSelection:
    """Skills chosen for a command together with routing diagnostics."""
    skills: List[Skill]
    confidence_matches: List[SkillMatch]
    estimated_token_cost: int
    request_analysis: RequestAnalysis
    used_fallback: bool = False
    forced_chat_mode: bool = False

    @property
    def skill_ids(self) -> List[SkillId]:
        return [skill.id for skill in self.skills]
