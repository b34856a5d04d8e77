"""Intent router: embedding cache, then AI classification, then heuristics.

The router always produces a Classification. Each tier that fails raises
``ClassificationError`` internally and the cascade moves on to the next one.
Outcomes are fed back through ``learn_from_outcome``, which promotes
confident, successful AI classifications into the similarity cache.
"""

import asyncio
import re
import time
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..exceptions import ClassificationError
from ..models.base import (
    Classification,
    ClassificationSource,
    DataContext,
    OutputMode,
    SheetAction,
    SkillId,
)
from ..utils.background import BackgroundTaskQueue
from ..utils.config import RouterConfig, get_config
from ..utils.json_utils import extract_json_object
from ..utils.llm import EmbeddingProvider, TextGenerator, canonicalize_command
from ..utils.logging import get_logger
from ..utils.prompt_templates import PromptTemplates
from .seeds import DEFAULT_SEEDS, SeedIntent
from .store import SimilarityStore

logger = get_logger(__name__)

MARKDOWN_TABLE_RE = re.compile(r"\|.*\|.*\|")
CREATE_TABLE_RES = [
    re.compile(r"\bcreate\s+(a\s+)?table\b", re.I),
    re.compile(r"\btable\s+(for|from|based\s+on|with)\s+(this\s+)?data\b", re.I),
    re.compile(r"\bpaste\s+(this\s+|the\s+)?data\b", re.I),
]
DATA_LIST_RE = re.compile(r"\bdata\s*:", re.I)
QUESTION_RE = re.compile(r"\b(what|which|who|how\s+many|summarize|explain)\b", re.I)
CHART_RE = re.compile(r"\b(chart|graph|plot|pie|bar|line|visualize)\b", re.I)
FORMAT_RE = re.compile(r"\b(format|bold|italic|currency|percent|border|align)\b", re.I)
FORMULA_RE = re.compile(r"\b(translate|uppercase|lowercase|trim|extract)\b", re.I)


def _enum_or_none(enum_cls, value):
    if value is None:
        return None
    try:
        return enum_cls(str(value).strip())
    except ValueError:
        return None


def parse_classification_response(text: str) -> Classification:
    """Leniently parse a classifier reply, coercing unknown enum values."""
    try:
        data = extract_json_object(text)
    except ValueError as e:
        raise ClassificationError("Classifier reply had no JSON object", detail=str(e)) from e

    output_mode = _enum_or_none(OutputMode, data.get("outputMode")) or OutputMode.CHAT
    skill_id = _enum_or_none(SkillId, data.get("skillId"))
    if output_mode == OutputMode.CHAT and skill_id is None:
        skill_id = SkillId.CHAT

    reasoning = data.get("reasoning")
    try:
        return Classification(
            output_mode=output_mode,
            skill_id=skill_id,
            sheet_action=_enum_or_none(SheetAction, data.get("sheetAction")),
            confidence=data.get("confidence"),
            source=ClassificationSource.AI,
            reasoning=str(reasoning) if reasoning is not None else None,
        )
    except (ValueError, TypeError) as e:
        raise ClassificationError("Classifier reply had invalid fields", detail=str(e)) from e


def _fallback(
    mode: OutputMode,
    confidence: float,
    reasoning: str,
    skill: Optional[SkillId] = None,
    action: Optional[SheetAction] = None,
) -> Classification:
    return Classification(
        output_mode=mode,
        skill_id=skill,
        sheet_action=action,
        confidence=confidence,
        source=ClassificationSource.FALLBACK,
        reasoning=reasoning,
    )


def classify_with_heuristics(command: str) -> Classification:
    """Keyword classification used when both the cache and the AI tier fail."""
    if MARKDOWN_TABLE_RE.search(command):
        return _fallback(OutputMode.SHEET, 0.9, "Detected markdown table pattern",
                         SkillId.WRITE_DATA, SheetAction.WRITE_DATA)

    if any(p.search(command) for p in CREATE_TABLE_RES) or (
        DATA_LIST_RE.search(command) and "," in command
    ):
        return _fallback(OutputMode.SHEET, 0.85, "Detected create table / data import pattern",
                         SkillId.WRITE_DATA, SheetAction.WRITE_DATA)

    if QUESTION_RE.search(command) and "?" in command:
        return _fallback(OutputMode.CHAT, 0.8, "Detected question pattern", SkillId.CHAT)

    if CHART_RE.search(command):
        return _fallback(OutputMode.SHEET, 0.7, "Detected chart keywords", SkillId.CHART, SheetAction.CHART)

    if FORMAT_RE.search(command):
        return _fallback(OutputMode.SHEET, 0.7, "Detected format keywords", SkillId.FORMAT, SheetAction.FORMAT)

    if FORMULA_RE.search(command):
        return _fallback(OutputMode.FORMULA, 0.7, "Detected formula keywords", SkillId.FORMULA)

    return _fallback(OutputMode.CHAT, 0.5, "No specific pattern matched", SkillId.CHAT)


class IntentRouter:
    """Three-tier intent classifier with a learning loop."""

    def __init__(
        self,
        text_generator: Optional[TextGenerator] = None,
        embedder: Optional[EmbeddingProvider] = None,
        store: Optional[SimilarityStore] = None,
        config: Optional[RouterConfig] = None,
        queue: Optional[BackgroundTaskQueue] = None,
        skill_descriptions: Optional[Dict[str, str]] = None,
    ):
        self.config = config or get_config()
        self.text_generator = text_generator
        self.embedder = embedder
        self.store = store
        self.queue = queue or BackgroundTaskQueue(maxsize=self.config.learning_queue_size)
        if skill_descriptions is None:
            from ..skills.definitions import SKILL_DESCRIPTIONS
            skill_descriptions = SKILL_DESCRIPTIONS
        self.skill_descriptions = skill_descriptions

    def _canonical(self, command: str) -> str:
        return canonicalize_command(command, self.config.embedding_max_chars)

    async def classify(self, command: str, context: Optional[DataContext] = None) -> Classification:
        """Classify a command; never raises."""
        start = time.perf_counter()
        context = context or DataContext()

        result = None
        try:
            result = await self._classify_with_cache(command)
        except ClassificationError as e:
            logger.warning(f"Cache tier skipped: {e}")

        if result is None:
            try:
                result = await self._classify_with_ai(command, context)
            except ClassificationError as e:
                logger.warning(f"AI tier failed, using heuristics: {e}")
                result = classify_with_heuristics(command)

        elapsed = int((time.perf_counter() - start) * 1000)
        logger.info(
            f"Classified as {result.output_mode.value}/"
            f"{result.skill_id.value if result.skill_id else '-'} "
            f"via {result.source.value} (confidence {result.confidence:.2f}, {elapsed}ms)"
        )
        return result.model_copy(update={"classification_time_ms": elapsed})

    async def _classify_with_cache(self, command: str) -> Optional[Classification]:
        if self.embedder is None or self.store is None:
            return None

        canonical = self._canonical(command)
        try:
            embedding = await self.embedder.embed(canonical)
        except Exception as e:
            raise ClassificationError("Embedding failed", detail=str(e)) from e

        threshold = self.config.cache_similarity_threshold
        try:
            lookup = await self.store.find_similar(embedding, threshold)
        except Exception as e:
            raise ClassificationError("Similarity lookup failed", detail=str(e)) from e

        if not lookup.hit or lookup.cached_intent is None or lookup.similarity < threshold:
            logger.debug(f"Cache miss (best similarity {lookup.similarity:.3f})")
            return None

        cached = lookup.cached_intent
        logger.info(f"Cache hit: similarity {lookup.similarity:.3f}, command '{cached.canonical_command}'")
        try:
            await self.store.record_hit(cached.id)
        except Exception as e:
            logger.warning(f"Failed to record cache hit: {e}")

        return cached.classification.model_copy(update={
            "confidence": max(0.0, min(1.0, lookup.similarity)),
            "source": ClassificationSource.CACHE,
        })

    async def _classify_with_ai(self, command: str, context: DataContext) -> Classification:
        if self.text_generator is None:
            raise ClassificationError("No text generator configured")

        prompt = PromptTemplates.generate_classification_prompt(command, context, self.skill_descriptions)
        try:
            text = await self.text_generator.generate(prompt, temperature=self.config.classifier_temperature)
        except Exception as e:
            raise ClassificationError("AI classification call failed", detail=str(e)) from e

        return parse_classification_response(text)

    def learn_from_outcome(
        self,
        command: str,
        classification: Classification,
        success: bool,
        error_message: Optional[str] = None,
    ) -> bool:
        """Schedule outcome recording and cache promotion; returns immediately."""
        if self.embedder is None or self.store is None:
            return False
        return self.queue.submit(
            lambda: self._learn(command, classification, success, error_message),
            label="intent learning",
        )

    async def _learn(
        self,
        command: str,
        classification: Classification,
        success: bool,
        error_message: Optional[str],
    ) -> None:
        try:
            canonical = self._canonical(command)
            embedding = await self.embedder.embed(canonical)
            await self.store.record_outcome(canonical, embedding, success, error_message)

            if (
                success
                and classification.source == ClassificationSource.AI
                and classification.confidence >= self.config.cache_promotion_confidence
            ):
                await self.store.upsert(
                    canonical,
                    embedding,
                    classification,
                    category=classification.skill_id.value if classification.skill_id else None,
                )
                logger.info(f"Promoted '{canonical}' to intent cache")
        except Exception as e:
            logger.warning(f"Learning from outcome failed: {e}")

    async def seed_cache(
        self,
        seeds: Optional[Sequence[SeedIntent]] = None,
        batch_size: Optional[int] = None,
    ) -> Dict[str, int]:
        """Embed seed intents in batches and store them flagged as seeds."""
        if self.embedder is None or self.store is None:
            raise ClassificationError("Seeding requires an embedder and a similarity store")

        seeds = list(DEFAULT_SEEDS if seeds is None else seeds)
        batch_size = batch_size or self.config.seed_batch_size
        updated = 0
        failed = 0
        batches = (len(seeds) + batch_size - 1) // batch_size

        for i in range(0, len(seeds), batch_size):
            batch = seeds[i:i + batch_size]
            commands = [self._canonical(seed.command) for seed in batch]
            try:
                embeddings = await asyncio.gather(*(self.embedder.embed(c) for c in commands))
            except Exception as e:
                logger.error(f"Seed batch embedding failed: {e}")
                failed += len(batch)
                continue

            for seed, canonical, embedding in zip(batch, commands, embeddings):
                try:
                    await self.store.upsert(
                        canonical, embedding, seed.to_classification(), is_seed=True, category=seed.category
                    )
                    updated += 1
                except Exception as e:
                    logger.error(f"Failed to store seed '{canonical}': {e}")
                    failed += 1
            logger.info(f"Processed seed batch {i // batch_size + 1}/{batches}")

        logger.info(f"Seed initialization complete: {updated} updated, {failed} failed")
        return {"updated": updated, "failed": failed}

    async def cache_stats(self) -> Dict[str, Any]:
        if self.store is None:
            return {
                "total_entries": 0,
                "seed_entries": 0,
                "learned_entries": 0,
                "avg_success_rate": 0.0,
                "hits": 0,
                "misses": 0,
            }
        try:
            return await self.store.stats()
        except Exception as e:
            logger.error(f"Failed to read cache stats: {e}")
            return {"total_entries": 0, "seed_entries": 0, "learned_entries": 0, "avg_success_rate": 0.0}
