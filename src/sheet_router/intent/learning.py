"""Skill outcome tracking.

Outcomes are advisory: the router records them fire-and-forget and never
reads them while routing a request. ``skill_stats`` and review flags are for
operators.
"""

import asyncio
import uuid
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from pydantic import Field

from ..models.base import WireModel
from ..utils.logging import get_logger

REPEATED_FAILURE_COUNT = 3
REVIEW_MIN_USES = 5
LOW_SUCCESS_RATE = 0.5
HIGH_EDIT_RATE = 0.3


class SkillOutcome(WireModel):
    """One execution result for a skill."""

    skill_id: str
    skill_version: str = "1.0.0"
    command: str
    success: bool
    error_message: Optional[str] = None
    user_edited: bool = False
    execution_time_ms: Optional[int] = None
    command_embedding: Optional[List[float]] = None
    created_at: datetime = Field(default_factory=datetime.now)


class SkillPerformance(WireModel):
    """Aggregated stats for one skill version."""

    skill_id: str
    skill_version: str
    total_uses: int = 0
    successes: int = 0
    failures: int = 0
    edits: int = 0
    success_rate: float = 0.0
    avg_execution_time_ms: float = 0.0
    last_used: Optional[datetime] = None


class SkillReviewFlag(WireModel):
    """A skill whose recent outcomes suggest its instructions need attention."""

    skill_id: str
    skill_version: str
    pattern: str
    detail: str = ""
    created_at: datetime = Field(default_factory=datetime.now)


@runtime_checkable
class LearningStore(Protocol):
    """Usage store for skill outcomes."""

    async def record_skill_outcome(self, outcome: SkillOutcome) -> Optional[str]:
        ...

    async def record_user_edit(self, usage_id: str) -> None:
        ...

    async def get_skill_performance(self, skill_id: Optional[str] = None) -> List[SkillPerformance]:
        ...


class InMemoryLearningStore:
    """Keeps outcomes in process memory, grouped by skill and version."""

    def __init__(self):
        self._usages: Dict[str, SkillOutcome] = {}
        self._by_skill: Dict[tuple, List[str]] = defaultdict(list)
        self._lock = asyncio.Lock()
        self.logger = get_logger("intent.learning")

    async def record_skill_outcome(self, outcome: SkillOutcome) -> Optional[str]:
        usage_id = uuid.uuid4().hex
        async with self._lock:
            self._usages[usage_id] = outcome
            self._by_skill[(outcome.skill_id, outcome.skill_version)].append(usage_id)
        self.logger.info(
            f"Recorded {'success' if outcome.success else 'failure'} for {outcome.skill_id}"
        )
        return usage_id

    async def record_user_edit(self, usage_id: str) -> None:
        async with self._lock:
            outcome = self._usages.get(usage_id)
            if outcome is None:
                self.logger.warning(f"Unknown usage id for edit: {usage_id}")
                return
            self._usages[usage_id] = outcome.model_copy(update={"user_edited": True})

    def _performance(self, skill_id: str, version: str, usage_ids: List[str]) -> SkillPerformance:
        outcomes = [self._usages[u] for u in usage_ids]
        successes = sum(1 for o in outcomes if o.success)
        timings = [o.execution_time_ms for o in outcomes if o.execution_time_ms is not None]
        return SkillPerformance(
            skill_id=skill_id,
            skill_version=version,
            total_uses=len(outcomes),
            successes=successes,
            failures=len(outcomes) - successes,
            edits=sum(1 for o in outcomes if o.user_edited),
            success_rate=successes / len(outcomes) if outcomes else 0.0,
            avg_execution_time_ms=sum(timings) / len(timings) if timings else 0.0,
            last_used=max((o.created_at for o in outcomes), default=None),
        )

    async def get_skill_performance(self, skill_id: Optional[str] = None) -> List[SkillPerformance]:
        return [
            self._performance(sid, version, usage_ids)
            for (sid, version), usage_ids in self._by_skill.items()
            if skill_id is None or sid == skill_id
        ]

    async def skills_needing_review(self) -> List[SkillReviewFlag]:
        """Flag repeated failures, low success rates and frequent user edits."""
        flags = []
        for (skill_id, version), usage_ids in self._by_skill.items():
            outcomes = [self._usages[u] for u in usage_ids]
            recent = outcomes[-REPEATED_FAILURE_COUNT:]
            if len(recent) == REPEATED_FAILURE_COUNT and not any(o.success for o in recent):
                flags.append(SkillReviewFlag(
                    skill_id=skill_id,
                    skill_version=version,
                    pattern="repeated_failure",
                    detail=recent[-1].error_message or "",
                ))
                continue

            perf = self._performance(skill_id, version, usage_ids)
            if perf.total_uses < REVIEW_MIN_USES:
                continue
            if perf.success_rate < LOW_SUCCESS_RATE:
                flags.append(SkillReviewFlag(
                    skill_id=skill_id,
                    skill_version=version,
                    pattern="low_success_rate",
                    detail=f"{perf.success_rate:.0%} over {perf.total_uses} uses",
                ))
            elif perf.edits / perf.total_uses > HIGH_EDIT_RATE:
                flags.append(SkillReviewFlag(
                    skill_id=skill_id,
                    skill_version=version,
                    pattern="high_edit_rate",
                    detail=f"{perf.edits} of {perf.total_uses} results edited",
                ))
        return flags

    def stats(self) -> Dict[str, Any]:
        return {"usages": len(self._usages), "skills": len(self._by_skill)}
