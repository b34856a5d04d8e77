"""Provider-neutral LLM interfaces used by the routing engine.

The core only talks to these narrow protocols, so it never branches on which
provider sits behind them. ``OpenAICompatibleClient`` implements all four.
"""

from typing import Any, Dict, List, Optional, Protocol, Type, TypeVar, runtime_checkable

from pydantic import BaseModel

from ..models.plan import ToolCallingResult

T = TypeVar("T", bound=BaseModel)


@runtime_checkable
class TextGenerator(Protocol):
    """Free-text generation."""

    async def generate(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> str:
        ...


@runtime_checkable
class StructuredGenerator(Protocol):
    """Generation constrained to a pydantic schema."""

    async def generate_structured(self, schema: Type[T], prompt: str) -> T:
        ...


@runtime_checkable
class ToolCallingGenerator(Protocol):
    """Generation with tool declarations; returns emitted tool calls."""

    async def generate_with_tools(
        self,
        prompt: str,
        tools: List[Dict[str, Any]],
        system: Optional[str] = None,
    ) -> ToolCallingResult:
        ...


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Text to vector."""

    async def embed(self, text: str) -> List[float]:
        ...


def canonicalize_command(text: str, max_chars: int = 8000) -> str:
    """Canonical form of a command used as embedding input and cache key."""
    return " ".join(text.strip().lower().split())[:max_chars]
