"""Skill registry: intent detection, skill selection and prompt assembly."""

from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Union

from ..core.request_analyzer import RequestAnalyzer
from ..models.base import DataContext, OutputMode, Recommendation, RequestAnalysis, RequestType, SkillId
from ..models.skills import Skill, SkillExample, SkillMatch, SkillSelection
from ..utils.cache_manager import ReferenceDataCache
from ..utils.config import RouterConfig, get_config
from ..utils.logging import get_logger
from ..utils.prompt_templates import PromptTemplates
from .definitions import CATEGORY_SKILLS, SKILL_TABLE, capability_matches
from .examples import format_examples_for_prompt, rank_examples

ExampleLoader = Callable[[], Awaitable[List[SkillExample]]]

LEARNED_EXAMPLES_KEY = "learned_examples"
VAGUE_SPECIFICITY = 0.5
SPECIFIC_SPECIFICITY = 0.7
VAGUE_CHAT_CONFIDENCE = 0.75
VAGUE_ACTION_DAMPING = 0.8


class SkillRegistry:
    """Explicitly constructed registry over the skill table.

    Learned examples come from an optional async loader and are held in a
    TTL reference cache; ``refresh()`` and ``invalidate()`` control it.
    """

    def __init__(
        self,
        config: Optional[RouterConfig] = None,
        skills: Optional[Dict[SkillId, Skill]] = None,
        analyzer: Optional[RequestAnalyzer] = None,
        example_loader: Optional[ExampleLoader] = None,
        learning_store: Any = None,
    ):
        self.config = config or get_config()
        self._skills: Dict[SkillId, Skill] = dict(skills or SKILL_TABLE)
        self._ordered: List[Skill] = sorted(self._skills.values(), key=lambda s: s.priority, reverse=True)
        self.analyzer = analyzer or RequestAnalyzer()
        self.learning_store = learning_store
        self.example_loader = example_loader
        self.reference_cache: ReferenceDataCache = ReferenceDataCache(
            ttl_seconds=self.config.reference_cache_ttl_seconds
        )
        if example_loader is not None:
            self.reference_cache.register(LEARNED_EXAMPLES_KEY, example_loader)
        self.logger = get_logger("skills.registry")

    def get_skill(self, skill_id: Union[str, SkillId]) -> Optional[Skill]:
        try:
            return self._skills.get(SkillId(skill_id))
        except ValueError:
            return None

    def all_skills(self) -> List[Skill]:
        """Skills in priority order."""
        return list(self._ordered)

    @staticmethod
    def _needs_suggestions(analysis: RequestAnalysis) -> bool:
        return analysis.recommendation in (Recommendation.SUGGEST_OPTIONS, Recommendation.CLARIFY)

    def detect_intent(
        self,
        command: str,
        context: Optional[DataContext] = None,
        analysis: Optional[RequestAnalysis] = None,
    ) -> List[SkillMatch]:
        """Score every skill; keep those above the minimum confidence, best first."""
        analysis = analysis or self.analyzer.analyze(command, context)
        damp_actions = self._needs_suggestions(analysis) and analysis.type != RequestType.QUESTION

        if analysis.type != RequestType.SPECIFIC:
            self.logger.debug(
                f"Request analysis: type={analysis.type.value}, "
                f"specificity={analysis.specificity:.2f}, recommendation={analysis.recommendation.value}"
            )

        matches = []
        for skill in self._ordered:
            confidence = skill.intent_score(command, context) if skill.intent_score else 0.0

            if damp_actions:
                if skill.id == SkillId.CHAT:
                    confidence = max(confidence, VAGUE_CHAT_CONFIDENCE)
                elif skill.output_mode == OutputMode.SHEET:
                    confidence *= analysis.specificity * VAGUE_ACTION_DAMPING

            if confidence >= self.config.min_skill_confidence:
                matched = [c for c in skill.capabilities if capability_matches(command, [c])]
                matches.append(SkillMatch(
                    skill_id=skill.id,
                    confidence=confidence,
                    matched_patterns=matched,
                    version=skill.version,
                ))

        # Stable sort keeps priority order among equal confidences
        matches.sort(key=lambda m: m.confidence, reverse=True)
        return matches

    def select(
        self,
        command: str,
        context: Optional[DataContext] = None,
        force_skills: Iterable[Union[str, SkillId]] = (),
    ) -> SkillSelection:
        """Choose the skills whose instructions go into the plan prompt."""
        analysis = self.analyzer.analyze(command, context)
        matches = self.detect_intent(command, context, analysis)
        needs_suggestions = self._needs_suggestions(analysis)

        selected: List[Skill] = []
        for skill_id in force_skills:
            skill = self.get_skill(skill_id)
            if skill is not None and skill not in selected:
                selected.append(skill)

        used_fallback = False
        forced_chat = False
        exclude_chat = False

        vague_for_chat = analysis.type == RequestType.VAGUE or (
            analysis.type == RequestType.COMPOSITE and analysis.specificity < VAGUE_SPECIFICITY
        )
        specific_enough = analysis.specificity >= SPECIFIC_SPECIFICITY and analysis.type != RequestType.QUESTION

        if needs_suggestions and vague_for_chat and analysis.type != RequestType.QUESTION and not selected:
            selected.append(self._skills[SkillId.CHAT])
            forced_chat = True
            self.logger.info(
                f"Vague request (type={analysis.type.value}, specificity={analysis.specificity:.2f}), "
                "using only the chat skill"
            )
        elif specific_enough:
            exclude_chat = True
            self.logger.debug("Specific request, excluding the chat skill")

        if not forced_chat:
            for match in matches:
                if len(selected) >= self.config.max_skills:
                    break
                if match.confidence < self.config.min_skill_confidence:
                    break
                skill = self._skills.get(match.skill_id)
                if skill is None or skill in selected:
                    continue
                if exclude_chat and skill.id == SkillId.CHAT:
                    continue
                if any(skill.conflicts_with(other) for other in selected):
                    self.logger.debug(f"Skipping {skill.id.value}: conflicts with selected skills")
                    continue
                selected.append(skill)

        if not selected:
            if exclude_chat and analysis.detected_categories:
                category = analysis.detected_categories[0]
                skill_id = CATEGORY_SKILLS.get(category)
                if skill_id is not None:
                    selected.append(self._skills[skill_id])
                    self.logger.info(f"No skill above threshold, loading {skill_id.value} from category '{category}'")

            if not selected and not exclude_chat:
                selected.append(self._skills[SkillId.CHAT])
                used_fallback = True
                self.logger.info("No skills matched, falling back to chat")
            elif not selected:
                selected.append(self._skills[SkillId.FORMAT])
                self.logger.info("No skills matched and chat excluded, defaulting to format")

        if not used_fallback and matches and matches[0].confidence < self.config.high_skill_confidence:
            used_fallback = True

        tokens = self.config.base_prompt_tokens + sum(skill.token_cost for skill in selected)
        return SkillSelection(
            skills=selected,
            confidence_matches=matches,
            estimated_token_cost=tokens,
            request_analysis=analysis,
            used_fallback=used_fallback,
            forced_chat_mode=forced_chat,
        )

    def load_instructions(self, skills: List[Skill]) -> str:
        if not skills:
            return PromptTemplates.DEFAULT_CHAT_INSTRUCTIONS
        return "\n---\n".join(f"\n{skill.instructions}\n" for skill in skills)

    async def _learned_examples(self) -> List[SkillExample]:
        if self.example_loader is None:
            return []
        examples = await self.reference_cache.get(LEARNED_EXAMPLES_KEY)
        return list(examples or [])

    async def load_examples(
        self,
        skills: List[Skill],
        command: str,
        max_examples: Optional[int] = None,
    ) -> List[SkillExample]:
        """Most relevant built-in and learned examples for the selected skills."""
        limit = self.config.max_examples if max_examples is None else max_examples
        if limit <= 0 or not skills:
            return []
        skill_ids = {skill.id for skill in skills}
        candidates = [example for skill in skills for example in skill.examples]
        candidates.extend(ex for ex in await self._learned_examples() if ex.skill_id in skill_ids)
        return rank_examples(candidates, command, limit)

    async def build_prompt(self, selection: SkillSelection, command: str) -> str:
        """System prompt: core rules, selected skill instructions and examples."""
        parts = [PromptTemplates.CORE_INSTRUCTIONS, self.load_instructions(selection.skills)]
        examples = format_examples_for_prompt(await self.load_examples(selection.skills, command))
        if examples:
            parts.append(examples)
        prompt = "\n\n".join(parts)
        self.logger.debug(
            f"Built prompt with skills {[s.id.value for s in selection.skills]} "
            f"(~{PromptTemplates.estimate_tokens(prompt)} tokens)"
        )
        return prompt

    async def refresh(self) -> None:
        """Reload learned examples now, ignoring the TTL."""
        if self.example_loader is not None:
            await self.reference_cache.refresh(LEARNED_EXAMPLES_KEY)

    def invalidate(self) -> None:
        self.reference_cache.invalidate()

    async def skill_stats(self) -> List[Dict[str, Any]]:
        """Per-skill metadata plus success rate when a learning store is attached."""
        rates: Dict[str, float] = {}
        if self.learning_store is not None:
            for perf in await self.learning_store.get_skill_performance():
                rates[perf.skill_id] = perf.success_rate

        return [
            {
                "id": skill.id.value,
                "name": skill.name,
                "version": skill.version,
                "tokenCost": skill.token_cost,
                "priority": skill.priority,
                "successRate": rates.get(skill.id.value),
            }
            for skill in self._ordered
        ]
