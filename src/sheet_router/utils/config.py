"""Configuration management for the command routing engine."""

from typing import Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RouterConfig(BaseSettings):
    """Application configuration.

    Every threshold the router, registry, parser and executor depend on lives
    here so it can be tuned per deployment through ``SHEET_ROUTER_*``
    environment variables or a ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_prefix="SHEET_ROUTER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # LLM endpoint (OpenAI-compatible)
    llm_api_key: str = Field(default="")
    llm_base_url: str = Field(default="https://api.openai.com/v1")
    llm_model: str = Field(default="gpt-4o-mini")
    evaluator_model: Optional[str] = Field(default="gpt-4o-mini")
    embedding_model: str = Field(default="text-embedding-3-small")
    llm_temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    classifier_temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    llm_max_tokens: Optional[int] = Field(default=None)
    llm_timeout_seconds: int = Field(default=60)
    embedding_max_chars: int = Field(default=8000)

    # Intent cache
    cache_similarity_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    cache_promotion_confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    seed_batch_size: int = Field(default=20, gt=0)

    # Skill selection
    min_skill_confidence: float = Field(default=0.6, ge=0.0, le=1.0)
    high_skill_confidence: float = Field(default=0.85, ge=0.0, le=1.0)
    max_skills: int = Field(default=2, gt=0)
    max_examples: int = Field(default=2, ge=0)
    base_prompt_tokens: int = Field(default=200)

    # Plan parsing
    classifier_override_confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    max_chain_steps: int = Field(default=4, gt=0)
    minutes_per_step: int = Field(default=2, gt=0)
    fallback_formula_column: str = Field(default="D")

    # Self-correcting executor
    use_agent: bool = Field(default=False)
    max_attempts: int = Field(default=2, gt=0)
    soft_timeout_seconds: float = Field(default=45.0, gt=0)
    hard_timeout_seconds: float = Field(default=60.0, gt=0)

    # Caches and background work
    reference_cache_ttl_seconds: int = Field(default=300, gt=0)
    learning_queue_size: int = Field(default=256, gt=0)

    # Logging
    log_level: str = Field(default="INFO")
    log_file: Optional[str] = Field(default=None)

    def get_thresholds(self) -> Dict[str, float]:
        """Routing thresholds, mainly for diagnostics endpoints and logs."""
        return {
            "cache_similarity": self.cache_similarity_threshold,
            "cache_promotion": self.cache_promotion_confidence,
            "min_skill_confidence": self.min_skill_confidence,
            "high_skill_confidence": self.high_skill_confidence,
            "classifier_override": self.classifier_override_confidence,
        }


_config_instance: Optional[RouterConfig] = None


def get_config() -> RouterConfig:
    """Get the default configuration instance with lazy initialization.

    Components take an explicit ``config`` argument; this is only the default
    used when the caller does not pass one.
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = RouterConfig()
    return _config_instance
