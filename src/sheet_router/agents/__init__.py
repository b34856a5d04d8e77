"""Agents for the command routing engine."""

from .base import BaseAgent
from .sheets_agent import SheetsAgent
from .tools import SHEET_TOOLS, TOOL_DESCRIPTIONS, get_tool

__all__ = ["BaseAgent", "SheetsAgent", "SHEET_TOOLS", "TOOL_DESCRIPTIONS", "get_tool"]
