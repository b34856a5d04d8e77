"""Intent classification, the similarity cache and the learning loop."""

from .classifier import IntentRouter, classify_with_heuristics, parse_classification_response
from .learning import InMemoryLearningStore, LearningStore, SkillOutcome, SkillPerformance, SkillReviewFlag
from .seeds import DEFAULT_SEEDS, SeedIntent
from .store import InMemorySimilarityStore, SimilarityStore

__all__ = [
    "DEFAULT_SEEDS",
    "InMemoryLearningStore",
    "InMemorySimilarityStore",
    "IntentRouter",
    "LearningStore",
    "SeedIntent",
    "SimilarityStore",
    "SkillOutcome",
    "SkillPerformance",
    "SkillReviewFlag",
    "classify_with_heuristics",
    "parse_classification_response",
]
