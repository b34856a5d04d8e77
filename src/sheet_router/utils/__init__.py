"""Utility modules for the command routing engine."""

from .background import BackgroundTaskQueue
from .cache_manager import ReferenceDataCache
from .config import RouterConfig, get_config
from .llm import (
    EmbeddingProvider,
    StructuredGenerator,
    TextGenerator,
    ToolCallingGenerator,
    canonicalize_command,
)
from .logging import get_logger, setup_logging
from .openai_client import OpenAICompatibleClient
from .prompt_templates import PromptTemplates

__all__ = [
    "BackgroundTaskQueue",
    "EmbeddingProvider",
    "OpenAICompatibleClient",
    "PromptTemplates",
    "ReferenceDataCache",
    "RouterConfig",
    "StructuredGenerator",
    "TextGenerator",
    "ToolCallingGenerator",
    "canonicalize_command",
    "get_config",
    "get_logger",
    "setup_logging",
]
