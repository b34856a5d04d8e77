"""Skill table and registry."""

from .definitions import CATEGORY_SKILLS, SKILL_DESCRIPTIONS, SKILL_TABLE
from .registry import SkillRegistry

__all__ = ["CATEGORY_SKILLS", "SKILL_DESCRIPTIONS", "SKILL_TABLE", "SkillRegistry"]
