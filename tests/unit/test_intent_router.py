"""Unit tests for the three-tier intent router and its learning loop."""

import json
import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from fakes import FakeEmbedder, FakeTextGenerator, FixedSimilarityStore

from sheet_router.exceptions import ClassificationError
from sheet_router.intent.classifier import (
    IntentRouter,
    classify_with_heuristics,
    parse_classification_response,
)
from sheet_router.intent.seeds import DEFAULT_SEEDS, SeedIntent
from sheet_router.intent.store import InMemorySimilarityStore
from sheet_router.models.base import (
    Classification,
    ClassificationSource,
    OutputMode,
    SheetAction,
    SkillId,
)
from sheet_router.utils.background import BackgroundTaskQueue
from sheet_router.utils.config import RouterConfig

CHART_CLASSIFICATION = Classification(
    output_mode=OutputMode.SHEET,
    skill_id=SkillId.CHART,
    sheet_action=SheetAction.CHART,
    confidence=1.0,
    source=ClassificationSource.CACHE,
)

AI_FORMAT_REPLY = json.dumps({
    "outputMode": "sheet",
    "skillId": "format",
    "sheetAction": "format",
    "confidence": 0.92,
    "reasoning": "Formatting request",
})


class TestParseClassificationResponse:
    """Lenient parsing of classifier replies."""

    def test_parses_fenced_json(self):
        result = parse_classification_response(f"```json\n{AI_FORMAT_REPLY}\n```")
        assert result.output_mode == OutputMode.SHEET
        assert result.skill_id == SkillId.FORMAT
        assert result.sheet_action == SheetAction.FORMAT
        assert result.confidence == pytest.approx(0.92)
        assert result.source == ClassificationSource.AI

    def test_unknown_values_are_coerced(self):
        result = parse_classification_response('{"outputMode": "banana", "skillId": "nope", "confidence": 7}')
        assert result.output_mode == OutputMode.CHAT
        assert result.skill_id == SkillId.CHAT
        assert result.sheet_action is None
        assert result.confidence == 1.0

    def test_missing_confidence_defaults(self):
        result = parse_classification_response('{"outputMode": "formula", "skillId": "formula"}')
        assert result.confidence == pytest.approx(0.7)

    def test_non_string_reasoning_is_stringified(self):
        reply = json.dumps({
            "outputMode": "sheet", "skillId": "chart", "sheetAction": "chart",
            "confidence": 0.9, "reasoning": {"why": "chart words"},
        })
        result = parse_classification_response(reply)
        assert result.sheet_action == SheetAction.CHART
        assert isinstance(result.reasoning, str)
        assert "chart words" in result.reasoning

    def test_no_json_raises(self):
        with pytest.raises(ClassificationError):
            parse_classification_response("I think this is a chart request")


class TestHeuristics:
    """Keyword fallback tier."""

    @pytest.mark.parametrize("command,mode,skill,confidence", [
        ("| a | b |\n| 1 | 2 |", OutputMode.SHEET, SkillId.WRITE_DATA, 0.9),
        ("create a table for this data", OutputMode.SHEET, SkillId.WRITE_DATA, 0.85),
        ("data: apples, pears", OutputMode.SHEET, SkillId.WRITE_DATA, 0.85),
        ("What is the total revenue?", OutputMode.CHAT, SkillId.CHAT, 0.8),
        ("plot sales by month", OutputMode.SHEET, SkillId.CHART, 0.7),
        ("make the totals bold", OutputMode.SHEET, SkillId.FORMAT, 0.7),
        ("uppercase the names", OutputMode.FORMULA, SkillId.FORMULA, 0.7),
        ("do the thing", OutputMode.CHAT, SkillId.CHAT, 0.5),
    ])
    def test_rules_in_order(self, command, mode, skill, confidence):
        result = classify_with_heuristics(command)
        assert result.output_mode == mode
        assert result.skill_id == skill
        assert result.confidence == pytest.approx(confidence)
        assert result.source == ClassificationSource.FALLBACK

    def test_question_without_question_mark_is_not_chat(self):
        result = classify_with_heuristics("summarize the chart data")
        assert result.skill_id == SkillId.CHART


class TestIntentRouterTiers:
    """Cache, AI and heuristic tiers."""

    @pytest.fixture
    def config(self):
        return RouterConfig()

    @pytest.mark.asyncio
    async def test_cache_hit_at_threshold(self, config):
        generator = FakeTextGenerator(classification_reply=AI_FORMAT_REPLY)
        store = FixedSimilarityStore(0.85, CHART_CLASSIFICATION)
        router = IntentRouter(generator, FakeEmbedder(), store, config=config)

        result = await router.classify("chart revenue by region")

        assert result.source == ClassificationSource.CACHE
        assert result.skill_id == SkillId.CHART
        assert result.confidence == pytest.approx(0.85)
        assert store.hits == ["entry-1"]
        assert generator.calls == []
        assert result.classification_time_ms is not None

    @pytest.mark.asyncio
    async def test_similarity_just_below_threshold_misses(self, config):
        generator = FakeTextGenerator(classification_reply=AI_FORMAT_REPLY)
        store = FixedSimilarityStore(0.84999, CHART_CLASSIFICATION, claim_hit=True)
        router = IntentRouter(generator, FakeEmbedder(), store, config=config)

        result = await router.classify("chart revenue by region")

        assert result.source == ClassificationSource.AI
        assert result.skill_id == SkillId.FORMAT
        assert store.hits == []
        assert len(generator.calls) == 1

    @pytest.mark.asyncio
    async def test_classifier_uses_low_temperature(self, config):
        generator = FakeTextGenerator(classification_reply=AI_FORMAT_REPLY)
        router = IntentRouter(generator, config=config)
        await router.classify("bold the header row")
        assert generator.calls[0]["temperature"] == config.classifier_temperature
        assert generator.calls[0]["system"] is None

    @pytest.mark.asyncio
    async def test_embedding_failure_skips_cache_only(self, config):
        generator = FakeTextGenerator(classification_reply=AI_FORMAT_REPLY)
        embedder = FakeEmbedder(error=RuntimeError("embedding service down"))
        store = FixedSimilarityStore(0.99, CHART_CLASSIFICATION)
        router = IntentRouter(generator, embedder, store, config=config)

        result = await router.classify("bold the header row")

        assert result.source == ClassificationSource.AI
        assert result.skill_id == SkillId.FORMAT

    @pytest.mark.asyncio
    async def test_ai_failure_falls_to_heuristics(self, config):
        generator = FakeTextGenerator(classification_reply=RuntimeError("503"))
        router = IntentRouter(generator, config=config)

        result = await router.classify("plot sales by month")

        assert result.source == ClassificationSource.FALLBACK
        assert result.skill_id == SkillId.CHART

    @pytest.mark.asyncio
    async def test_unparseable_ai_reply_falls_to_heuristics(self, config):
        router = IntentRouter(FakeTextGenerator(classification_reply="sure, a chart"), config=config)
        result = await router.classify("plot sales by month")
        assert result.source == ClassificationSource.FALLBACK

    @pytest.mark.asyncio
    async def test_odd_reply_fields_still_classify_via_ai(self, config):
        reply = json.dumps({
            "outputMode": "sheet", "skillId": "chart", "sheetAction": "chart",
            "confidence": "very", "reasoning": ["chart", "words"],
        })
        router = IntentRouter(FakeTextGenerator(classification_reply=reply), config=config)

        result = await router.classify("make a bar chart of sales")

        assert result.source == ClassificationSource.AI
        assert result.skill_id == SkillId.CHART
        assert result.confidence == pytest.approx(0.7)

    @pytest.mark.asyncio
    async def test_no_collaborators_still_classifies(self, config):
        router = IntentRouter(config=config)
        result = await router.classify("What is the total revenue?")
        assert result.output_mode == OutputMode.CHAT
        assert 0.0 <= result.confidence <= 1.0


class TestLearningLoop:
    """Outcome recording and cache promotion."""

    @pytest.fixture
    def store(self):
        return InMemorySimilarityStore()

    @pytest.fixture
    def router(self, store):
        embedder = FakeEmbedder({"bold the header row": [1.0, 0.0, 0.0]})
        return IntentRouter(FakeTextGenerator(AI_FORMAT_REPLY), embedder, store, config=RouterConfig())

    @pytest.mark.asyncio
    async def test_confident_ai_success_is_promoted(self, router, store):
        classification = Classification(output_mode=OutputMode.SHEET, skill_id=SkillId.FORMAT,
                                        confidence=0.9, source=ClassificationSource.AI)
        assert router.learn_from_outcome("Bold the header row", classification, success=True)
        await router.queue.drain()

        entry = store.find_by_command("bold the header row")
        assert entry is not None
        assert entry.classification.skill_id == SkillId.FORMAT
        assert not entry.is_seed
        await router.queue.close()

    @pytest.mark.asyncio
    async def test_promoted_command_then_hits_cache(self, router, store):
        classification = Classification(output_mode=OutputMode.SHEET, skill_id=SkillId.FORMAT,
                                        confidence=0.9, source=ClassificationSource.AI)
        router.learn_from_outcome("Bold the header row", classification, success=True)
        await router.queue.drain()

        result = await router.classify("bold   the header ROW")
        assert result.source == ClassificationSource.CACHE
        assert result.confidence == pytest.approx(1.0)
        await router.queue.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("confidence,source,success", [
        (0.79, ClassificationSource.AI, True),
        (0.95, ClassificationSource.FALLBACK, True),
        (0.95, ClassificationSource.AI, False),
    ])
    async def test_not_promoted(self, router, store, confidence, source, success):
        classification = Classification(output_mode=OutputMode.SHEET, skill_id=SkillId.FORMAT,
                                        confidence=confidence, source=source)
        router.learn_from_outcome("Bold the header row", classification, success=success)
        await router.queue.drain()
        assert len(store) == 0
        await router.queue.close()

    @pytest.mark.asyncio
    async def test_learning_failures_are_swallowed(self, store):
        embedder = FakeEmbedder(error=RuntimeError("boom"))
        router = IntentRouter(embedder=embedder, store=store, config=RouterConfig())
        classification = Classification(output_mode=OutputMode.CHAT, confidence=0.9)
        assert router.learn_from_outcome("hello", classification, success=True)
        await router.queue.drain()
        assert len(store) == 0
        await router.queue.close()

    def test_learning_outside_event_loop_is_dropped(self, store):
        router = IntentRouter(embedder=FakeEmbedder(), store=store, config=RouterConfig())
        classification = Classification(output_mode=OutputMode.CHAT, confidence=0.9)
        assert router.learn_from_outcome("hello", classification, success=True) is False
        assert router.queue.dropped == 1

    def test_learning_without_store_is_a_no_op(self):
        router = IntentRouter(config=RouterConfig())
        classification = Classification(output_mode=OutputMode.CHAT)
        assert router.learn_from_outcome("hello", classification, success=True) is False


class TestSeeding:
    """Batch seeding of the intent cache."""

    @pytest.mark.asyncio
    async def test_seed_default_intents(self):
        store = InMemorySimilarityStore()
        router = IntentRouter(embedder=FakeEmbedder(), store=store, config=RouterConfig())

        result = await router.seed_cache(batch_size=10)

        assert result == {"updated": len(DEFAULT_SEEDS), "failed": 0}
        stats = await router.cache_stats()
        assert stats["seed_entries"] == len({s.command.lower() for s in DEFAULT_SEEDS})
        assert stats["learned_entries"] == 0

    @pytest.mark.asyncio
    async def test_failed_batch_counts_as_failed(self):
        store = InMemorySimilarityStore()
        embedder = FakeEmbedder(error=RuntimeError("rate limited"))
        router = IntentRouter(embedder=embedder, store=store, config=RouterConfig())
        seeds = [SeedIntent("bold headers", OutputMode.SHEET, SkillId.FORMAT, SheetAction.FORMAT, "format")]

        result = await router.seed_cache(seeds)

        assert result == {"updated": 0, "failed": 1}

    @pytest.mark.asyncio
    async def test_seeding_requires_store(self):
        with pytest.raises(ClassificationError):
            await IntentRouter(config=RouterConfig()).seed_cache()

    @pytest.mark.asyncio
    async def test_cache_stats_without_store(self):
        stats = await IntentRouter(config=RouterConfig()).cache_stats()
        assert stats["total_entries"] == 0
