"""End-to-end command routing: context in, ExecutionPlan out."""

import re
import time
from typing import Any, Dict, List, Optional

from ..agents.sheets_agent import SheetsAgent
from ..exceptions import ContextValidationError
from ..intent.classifier import IntentRouter
from ..intent.learning import LearningStore, SkillOutcome
from ..intent.store import SimilarityStore
from ..models.base import (
    AgentRequest,
    AgentStatus,
    Classification,
    DataContext,
    OutputMode,
    RequestAnalysis,
    RequestType,
)
from ..models.plan import ExecutionPlan
from ..skills.registry import SkillRegistry
from ..utils.background import BackgroundTaskQueue
from ..utils.config import RouterConfig, get_config
from ..utils.llm import EmbeddingProvider, StructuredGenerator, TextGenerator, ToolCallingGenerator
from ..utils.logging import get_logger, setup_logging
from ..utils.prompt_templates import PromptTemplates
from .formula_shortcuts import match_formula_shortcut
from .plan_parser import PlanParser

AI_VERB_RE = re.compile(
    r"\b(classify|categori[sz]e|extract|summari[sz]e|generate|write|translate|analy[sz]e|"
    r"score|rate|clean|tag|label|detect|sentiment|rewrite)\b",
    re.I,
)
CHAIN_MODES = (OutputMode.COLUMNS, OutputMode.WORKFLOW)


class CommandRouter:
    """Routes a spreadsheet command to an ExecutionPlan.

    Pipeline:
    1. Validate the raw context into a DataContext
    2. Try native formula shortcuts
    3. Analyze the request, classify the intent and select skills
    4. Generate a plan (single call, or the self-correcting executor)
    5. Parse and normalize into the canonical plan shape
    """

    def __init__(
        self,
        text_generator: TextGenerator,
        config: Optional[RouterConfig] = None,
        embedder: Optional[EmbeddingProvider] = None,
        store: Optional[SimilarityStore] = None,
        structured_generator: Optional[StructuredGenerator] = None,
        tool_generator: Optional[ToolCallingGenerator] = None,
        learning_store: Optional[LearningStore] = None,
        registry: Optional[SkillRegistry] = None,
        queue: Optional[BackgroundTaskQueue] = None,
    ):
        self.config = config or get_config()
        self.text_generator = text_generator
        self.learning_store = learning_store
        self.queue = queue or BackgroundTaskQueue(maxsize=self.config.learning_queue_size)
        self.logger = get_logger(__name__)

        self.intent_router = IntentRouter(
            text_generator=text_generator,
            embedder=embedder,
            store=store,
            config=self.config,
            queue=self.queue,
        )
        self.registry = registry or SkillRegistry(config=self.config, learning_store=learning_store)
        self.parser = PlanParser(self.config)
        self.agent: Optional[SheetsAgent] = None
        if tool_generator is not None:
            self.agent = SheetsAgent(tool_generator, evaluator=structured_generator, config=self.config)

        self.stats = {
            "total_requests": 0,
            "formula_shortcuts": 0,
            "agent_runs": 0,
            "fallback_plans": 0,
            "average_routing_time_ms": 0.0,
        }

    @classmethod
    def from_config(cls, config: Optional[RouterConfig] = None, **kwargs: Any) -> "CommandRouter":
        """Build a router backed by the OpenAI-compatible HTTP client."""
        from ..utils.openai_client import OpenAICompatibleClient

        config = config or get_config()
        setup_logging(config.log_level, config.log_file)
        client = OpenAICompatibleClient(config)
        return cls(
            text_generator=client,
            config=config,
            embedder=kwargs.pop("embedder", client),
            structured_generator=kwargs.pop("structured_generator", client if config.evaluator_model else None),
            tool_generator=kwargs.pop("tool_generator", client if config.use_agent else None),
            **kwargs,
        )

    def _build_context(self, raw_context: Any) -> DataContext:
        try:
            return DataContext.from_raw(raw_context)
        except ContextValidationError as e:
            self.logger.warning(f"Invalid data context, using an empty one: {e}")
            return DataContext()

    async def route(self, command: str, raw_context: Any = None) -> ExecutionPlan:
        """Produce an ExecutionPlan for a command; never raises."""
        start = time.perf_counter()
        self.stats["total_requests"] += 1
        context = self._build_context(raw_context)
        classification: Optional[Classification] = None

        try:
            self.logger.info(f"Routing command: {command[:100]}")

            shortcut = match_formula_shortcut(command, context)
            if shortcut is not None:
                self.logger.info("Native formula shortcut matched, skipping the model")
                self.stats["formula_shortcuts"] += 1
                return shortcut

            analysis = self.registry.analyzer.analyze(command, context)
            classification = await self.intent_router.classify(command, context)
            plan = await self._plan(command, context, analysis, classification)

        except Exception as e:
            self.logger.error(f"Routing failed, using fallback plan: {e}")
            plan = self.parser.fallback_plan(context, command, classification)

        if plan.is_fallback:
            self.stats["fallback_plans"] += 1
        if classification is not None and plan.classification is None:
            plan = plan.model_copy(update={"classification": classification})

        self._update_timing(int((time.perf_counter() - start) * 1000))
        self.logger.info(
            f"Plan ready: mode={plan.output_mode.value}, steps={len(plan.steps)}, fallback={plan.is_fallback}"
        )
        return plan

    def wants_chain(self, analysis: RequestAnalysis, classification: Classification, command: str) -> bool:
        """Whether the command calls for a multi-step AI column workflow."""
        if classification.output_mode in CHAIN_MODES:
            return True
        return (
            analysis.type == RequestType.COMPOSITE
            and analysis.implied_action_count > 1
            and bool(AI_VERB_RE.search(command))
        )

    async def _plan(
        self,
        command: str,
        context: DataContext,
        analysis: RequestAnalysis,
        classification: Classification,
    ) -> ExecutionPlan:
        chain = self.wants_chain(analysis, classification, command)

        if self.agent is not None and self.config.use_agent and not chain:
            self.stats["agent_runs"] += 1
            request = AgentRequest(agent_id=self.agent.name, command=command, context=context)
            response = await self.agent.execute_with_timeout(request)
            if response.status != AgentStatus.SUCCESS:
                self.logger.warning(
                    f"Agent {response.status.value} ({response.error_log}), using fallback plan"
                )
                return self.parser.fallback_plan(context, command, classification)
            result = response.result
            self.logger.info(f"Agent finished in state {result['state']} after {result['attempts']} attempts")
            return result["plan"]

        if chain:
            self.logger.info("Using the chain prompt for a multi-step workflow")
            system = PromptTemplates.generate_chain_system_prompt(self.config.max_chain_steps)
        else:
            selection = self.registry.select(command, context)
            self.logger.info(
                f"Selected skills {[s.id.value for s in selection.skills]} "
                f"(~{selection.estimated_token_cost} tokens, fallback={selection.used_fallback})"
            )
            system = await self.registry.build_prompt(selection, command)

        prompt = PromptTemplates.generate_plan_prompt(command, context)
        text = await self.text_generator.generate(prompt, system=system, temperature=self.config.llm_temperature)
        return self.parser.parse(text, context, command, classification)

    def report_outcome(
        self,
        command: str,
        classification: Classification,
        success: bool,
        error_message: Optional[str] = None,
        skill_ids: Optional[List[str]] = None,
        execution_time_ms: Optional[int] = None,
    ) -> bool:
        """Feed an execution outcome back into the learning loop; returns immediately."""
        scheduled = self.intent_router.learn_from_outcome(command, classification, success, error_message)

        if self.learning_store is not None:
            ids = list(skill_ids or ([classification.skill_id.value] if classification.skill_id else []))
            for skill_id in ids:
                skill = self.registry.get_skill(skill_id)
                outcome = SkillOutcome(
                    skill_id=skill_id,
                    skill_version=skill.version if skill else "1.0.0",
                    command=command,
                    success=success,
                    error_message=error_message,
                    execution_time_ms=execution_time_ms,
                )
                scheduled = self.queue.submit(
                    lambda outcome=outcome: self._record_skill_outcome(outcome),
                    label="skill outcome",
                ) or scheduled
        return scheduled

    async def _record_skill_outcome(self, outcome: SkillOutcome) -> None:
        try:
            await self.learning_store.record_skill_outcome(outcome)
        except Exception as e:
            self.logger.warning(f"Failed to record skill outcome for {outcome.skill_id}: {e}")

    def _update_timing(self, elapsed_ms: int) -> None:
        total = self.stats["total_requests"]
        current = self.stats["average_routing_time_ms"]
        self.stats["average_routing_time_ms"] = (current * (total - 1) + elapsed_ms) / total

    async def get_routing_statistics(self) -> Dict[str, Any]:
        return {
            "processing_stats": dict(self.stats),
            "cache_stats": await self.intent_router.cache_stats(),
            "thresholds": self.config.get_thresholds(),
        }

    async def aclose(self) -> None:
        """Drain pending learning work and stop the background worker."""
        await self.queue.drain()
        await self.queue.close()
