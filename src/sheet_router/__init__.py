"""
Sheet Router

Command routing and execution-plan assembly for spreadsheet assistants:
request analysis, three-tier intent classification with a learning loop,
skill selection, plan parsing and normalization, and a self-correcting
tool-calling executor.
"""

__version__ = "0.1.0"

from .core.orchestrator import CommandRouter
from .models.base import Classification, DataContext, OutputMode
from .models.plan import ExecutionPlan, Step
from .utils.config import RouterConfig

__all__ = [
    "Classification",
    "CommandRouter",
    "DataContext",
    "ExecutionPlan",
    "OutputMode",
    "RouterConfig",
    "Step",
]
