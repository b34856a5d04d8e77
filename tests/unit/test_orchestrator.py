"""End-to-end tests for the command router with in-memory collaborators."""

import asyncio
import json
import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from fakes import FakeEmbedder, FakeTextGenerator, FakeToolGenerator

from sheet_router import CommandRouter
from sheet_router.intent.learning import InMemoryLearningStore
from sheet_router.intent.store import InMemorySimilarityStore
from sheet_router.models.base import Classification, ClassificationSource, OutputMode, SkillId
from sheet_router.models.plan import ToolCall, ToolCallingResult
from sheet_router.utils.config import RouterConfig
from sheet_router.utils.openai_client import OpenAICompatibleClient
from sheet_router.utils.prompt_templates import PromptTemplates

LEADS_CONTEXT = {
    "headers": {"A": "Lead", "B": "Notes"},
    "dataColumns": ["A", "B"],
    "rowCount": 25,
}

COLUMNS_CLASSIFICATION = json.dumps({"outputMode": "columns", "skillId": "chat", "confidence": 0.9})
CHART_CLASSIFICATION = json.dumps({
    "outputMode": "sheet", "skillId": "chart", "sheetAction": "chart", "confidence": 0.9,
})
FORMAT_CLASSIFICATION = json.dumps({
    "outputMode": "sheet", "skillId": "format", "sheetAction": "format", "confidence": 0.7,
})
CHAT_CLASSIFICATION = json.dumps({"outputMode": "chat", "skillId": "chat", "confidence": 0.8})

TWO_STEP_PLAN = json.dumps({
    "outputMode": "columns",
    "summary": "Classify leads, then summarize by category",
    "steps": [
        {"action": "classify", "prompt": "Classify each lead", "outputFormat": "Category"},
        {"action": "summarize", "prompt": "Summarize the lead by its category"},
    ],
})


@pytest.fixture
def config():
    return RouterConfig()


class TestRoute:
    """Command in, ExecutionPlan out."""

    @pytest.mark.asyncio
    async def test_translate_uses_formula_shortcut(self, config):
        generator = FakeTextGenerator(FORMAT_CLASSIFICATION, "{}")
        router = CommandRouter(generator, config=config)

        plan = await router.route("translate column B to Spanish", {"dataColumns": ["A", "B"]})

        wire = plan.to_wire()
        assert wire["outputMode"] == "formula"
        assert 'GOOGLETRANSLATE(B{{ROW}}, "auto", "es")' in wire["steps"][0]["formula"]
        assert generator.calls == []
        assert router.stats["formula_shortcuts"] == 1
        await router.aclose()

    @pytest.mark.asyncio
    async def test_multi_step_workflow(self, config):
        generator = FakeTextGenerator(COLUMNS_CLASSIFICATION, TWO_STEP_PLAN)
        router = CommandRouter(generator, config=config)

        plan = await router.route("classify leads then summarize by category", LEADS_CONTEXT)

        assert plan.output_mode == OutputMode.COLUMNS
        assert len(plan.steps) == 2
        assert plan.steps[0].output_column != plan.steps[1].output_column
        assert plan.steps[1].depends_on == "step_1"
        assert plan.is_multi_step
        assert plan.classification.output_mode == OutputMode.COLUMNS

        system = generator.plan_calls[0]["system"]
        assert system == PromptTemplates.generate_chain_system_prompt(config.max_chain_steps)
        assert generator.plan_calls[0]["temperature"] == config.llm_temperature
        await router.aclose()

    @pytest.mark.asyncio
    async def test_confident_classification_overrides_sheet_action(self, config):
        plan_reply = json.dumps({"outputMode": "sheet", "sheetAction": "format", "sheetConfig": {"range": "A1:B26"}})
        router = CommandRouter(FakeTextGenerator(CHART_CLASSIFICATION, plan_reply), config=config)

        plan = await router.route("Create a bar chart of notes per lead", LEADS_CONTEXT)

        assert plan.output_mode == OutputMode.SHEET
        assert plan.sheet_action == "chart"
        assert "classifier_override" in plan.normalizations
        await router.aclose()

    @pytest.mark.asyncio
    async def test_skill_prompt_used_for_single_intent(self, config):
        plan_reply = json.dumps({"outputMode": "sheet", "sheetAction": "format", "sheetConfig": {"range": "A1:B1"}})
        generator = FakeTextGenerator(FORMAT_CLASSIFICATION, plan_reply)
        router = CommandRouter(generator, config=config)

        await router.route("Make the header row bold", LEADS_CONTEXT)

        system = generator.plan_calls[0]["system"]
        assert system.startswith(PromptTemplates.CORE_INSTRUCTIONS)
        await router.aclose()

    @pytest.mark.asyncio
    async def test_generator_error_gives_fallback(self, config):
        generator = FakeTextGenerator(FORMAT_CLASSIFICATION, RuntimeError("upstream 503"))
        router = CommandRouter(generator, config=config)

        plan = await router.route("Make the header row bold", LEADS_CONTEXT)

        assert plan.is_fallback
        assert len(plan.steps) == 2
        assert plan.classification is not None
        assert plan.classification.skill_id == SkillId.FORMAT
        assert router.stats["fallback_plans"] == 1
        await router.aclose()

    @pytest.mark.asyncio
    async def test_unparseable_plan_gives_fallback(self, config):
        router = CommandRouter(FakeTextGenerator(FORMAT_CLASSIFICATION, "sorry, no"), config=config)
        plan = await router.route("Make the header row bold", LEADS_CONTEXT)
        assert plan.is_fallback
        assert [s.output_column for s in plan.steps] == ["C", "D"]
        await router.aclose()

    @pytest.mark.asyncio
    async def test_invalid_context_is_replaced(self, config):
        plan_reply = json.dumps({"outputMode": "chat", "chatResponse": "Hello"})
        router = CommandRouter(FakeTextGenerator(CHAT_CLASSIFICATION, plan_reply), config=config)

        plan = await router.route("What is this?", ["not", "a", "mapping"])

        assert plan.output_mode == OutputMode.CHAT
        assert plan.chat_response == "Hello"
        await router.aclose()

    @pytest.mark.asyncio
    async def test_object_reasoning_still_reaches_plan_generation(self, config):
        classification_reply = json.dumps({
            "outputMode": "sheet", "skillId": "chart", "sheetAction": "chart",
            "confidence": 0.9, "reasoning": {"why": "chart words"},
        })
        plan_reply = json.dumps({"outputMode": "sheet", "sheetAction": "chart", "sheetConfig": {"range": "A1:B26"}})
        generator = FakeTextGenerator(classification_reply, plan_reply)
        router = CommandRouter(generator, config=config)

        plan = await router.route("make a bar chart of sales", LEADS_CONTEXT)

        assert not plan.is_fallback
        assert len(generator.plan_calls) == 1
        assert plan.classification.skill_id == SkillId.CHART
        assert plan.classification.source == ClassificationSource.AI
        await router.aclose()

    @pytest.mark.asyncio
    async def test_wants_chain(self, config):
        router = CommandRouter(FakeTextGenerator(), config=config)
        analysis = router.registry.analyzer.analyze("Bold the headers and add borders")
        columns = Classification(output_mode=OutputMode.COLUMNS)
        sheet = Classification(output_mode=OutputMode.SHEET)

        assert router.wants_chain(analysis, columns, "Bold the headers and add borders")
        assert not router.wants_chain(analysis, sheet, "Bold the headers and add borders")
        await router.aclose()


class TestAgentPath:
    """Routing through the self-correcting executor."""

    @pytest.fixture
    def config(self):
        return RouterConfig(use_agent=True)

    @pytest.mark.asyncio
    async def test_agent_tool_calls_become_plan(self, config):
        tools = FakeToolGenerator([ToolCallingResult(tool_calls=[
            ToolCall(tool_name="chart", args={"chartType": "line", "range": "A1:B26"}),
            ToolCall(tool_name="format", args={"range": "A1:B1", "options": {"bold": True}}),
        ])])
        generator = FakeTextGenerator(CHART_CLASSIFICATION, "{}")
        router = CommandRouter(generator, config=config, tool_generator=tools)

        plan = await router.route("Chart notes per lead and bold the headers", LEADS_CONTEXT)

        assert plan.output_mode == OutputMode.COLUMNS
        assert [s.action for s in plan.steps] == ["chart", "format"]
        assert router.stats["agent_runs"] == 1
        assert generator.plan_calls == []
        await router.aclose()

    @pytest.mark.asyncio
    async def test_agent_failure_gives_fallback(self, config):
        tools = FakeToolGenerator([RuntimeError("tool model down")])
        router = CommandRouter(FakeTextGenerator(CHART_CLASSIFICATION, "{}"), config=config, tool_generator=tools)

        plan = await router.route("Chart notes per lead", LEADS_CONTEXT)

        assert plan.is_fallback
        await router.aclose()

    @pytest.mark.asyncio
    async def test_agent_hard_timeout_gives_fallback(self):
        class SlowToolGenerator:
            def __init__(self):
                self.prompts = []

            async def generate_with_tools(self, prompt, tools, system=None):
                self.prompts.append(prompt)
                await asyncio.sleep(1)
                return ToolCallingResult()

        config = RouterConfig(use_agent=True, hard_timeout_seconds=0.05)
        tools = SlowToolGenerator()
        router = CommandRouter(FakeTextGenerator(CHART_CLASSIFICATION, "{}"), config=config, tool_generator=tools)

        plan = await router.route("Chart notes per lead", LEADS_CONTEXT)

        assert plan.is_fallback
        assert len(tools.prompts) == 1
        assert router.stats["agent_runs"] == 1
        await router.aclose()

    @pytest.mark.asyncio
    async def test_chain_bypasses_agent(self, config):
        tools = FakeToolGenerator([ToolCallingResult()])
        generator = FakeTextGenerator(COLUMNS_CLASSIFICATION, TWO_STEP_PLAN)
        router = CommandRouter(generator, config=config, tool_generator=tools)

        plan = await router.route("classify leads then summarize by category", LEADS_CONTEXT)

        assert len(plan.steps) == 2
        assert tools.prompts == []
        await router.aclose()


class TestOutcomesAndStats:
    """Learning loop feedback and diagnostics."""

    @pytest.mark.asyncio
    async def test_report_outcome_feeds_cache_and_skill_stats(self, config):
        store = InMemorySimilarityStore()
        learning = InMemoryLearningStore()
        router = CommandRouter(
            FakeTextGenerator(),
            config=config,
            embedder=FakeEmbedder({"bold the header row": [1.0, 0.0, 0.0]}),
            store=store,
            learning_store=learning,
        )
        classification = Classification(
            output_mode=OutputMode.SHEET,
            skill_id=SkillId.FORMAT,
            confidence=0.9,
            source=ClassificationSource.AI,
        )

        assert router.report_outcome("Bold the header row", classification, True, execution_time_ms=120)
        await router.queue.drain()

        assert store.find_by_command("bold the header row") is not None
        performance = await learning.get_skill_performance("format")
        assert performance[0].total_uses == 1
        assert performance[0].avg_execution_time_ms == pytest.approx(120)
        await router.aclose()

    @pytest.mark.asyncio
    async def test_report_outcome_for_explicit_skills(self, config):
        learning = InMemoryLearningStore()
        router = CommandRouter(FakeTextGenerator(), config=config, learning_store=learning)
        classification = Classification(output_mode=OutputMode.SHEET, skill_id=SkillId.FORMAT)

        router.report_outcome("Chart and bold", classification, False, "bad range", skill_ids=["chart", "format"])
        await router.queue.drain()

        performance = {p.skill_id: p for p in await learning.get_skill_performance()}
        assert set(performance) == {"chart", "format"}
        assert performance["chart"].failures == 1
        await router.aclose()

    @pytest.mark.asyncio
    async def test_report_outcome_without_stores(self, config):
        router = CommandRouter(FakeTextGenerator(), config=config)
        classification = Classification(output_mode=OutputMode.CHAT)
        assert router.report_outcome("hello", classification, True) is False
        await router.aclose()

    @pytest.mark.asyncio
    async def test_routing_statistics(self, config):
        router = CommandRouter(FakeTextGenerator(), config=config)
        await router.route("uppercase column B", {"dataColumns": ["A", "B"]})

        stats = await router.get_routing_statistics()

        assert stats["processing_stats"]["total_requests"] == 1
        assert stats["processing_stats"]["formula_shortcuts"] == 1
        assert stats["cache_stats"]["total_entries"] == 0
        assert stats["thresholds"]["cache_similarity"] == pytest.approx(0.85)
        await router.aclose()


class TestFromConfig:

    @pytest.mark.asyncio
    async def test_builds_http_backed_router(self):
        config = RouterConfig(llm_api_key="test-key", log_level="WARNING", use_agent=True)
        router = CommandRouter.from_config(config)

        assert isinstance(router.text_generator, OpenAICompatibleClient)
        assert router.agent is not None
        assert router.agent.evaluator is router.text_generator
        assert router.intent_router.embedder is router.text_generator

        await router.aclose()
        await router.text_generator.aclose()
