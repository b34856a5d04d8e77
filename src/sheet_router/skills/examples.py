"""Ranking and rendering of worked examples for plan prompts."""

import json
from typing import Iterable, List

from ..models.skills import SkillExample


def score_example(example: SkillExample, command: str) -> float:
    """Keyword relevance of an example to a command.

    An exact (case-insensitive) match scores 1.0; otherwise the share of the
    example's words that also occur in the command.
    """
    command_lower = command.lower().strip()
    example_lower = example.command.lower().strip()
    if command_lower == example_lower:
        return 1.0

    command_words = set(command_lower.split())
    example_words = example_lower.split()
    if not example_words:
        return 0.0
    matches = sum(1 for word in example_words if word in command_words)
    return matches / len(example_words)


def rank_examples(examples: Iterable[SkillExample], command: str, limit: int = 2) -> List[SkillExample]:
    """Best ``limit`` examples by relevance; examples with no overlap are dropped."""
    scored = [(score_example(example, command), example) for example in examples]
    scored = [item for item in scored if item[0] > 0]
    scored.sort(key=lambda item: item[0], reverse=True)
    return [example for _, example in scored[:limit]]


def format_examples_for_prompt(examples: List[SkillExample]) -> str:
    if not examples:
        return ""

    parts = ["EXAMPLES:"]
    for i, example in enumerate(examples, start=1):
        parts.append(f"\n=== Example {i} ===")
        parts.append(f'User: "{example.command}"')
        if example.context:
            parts.append(f"Context: {example.context}")
        parts.append(f"Response:\n{json.dumps(example.response, indent=2, ensure_ascii=False)}")
    return "\n".join(parts)
