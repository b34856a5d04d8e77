"""Error taxonomy for the command routing engine.

Every error here is raised inside a component and caught at that component's
public boundary; callers of ``CommandRouter.route`` never see them.
"""

from typing import Optional


class SheetRouterError(Exception):
    """Base class for all routing engine errors."""

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def __str__(self) -> str:
        if self.detail:
            return f"{self.message} ({self.detail})"
        return self.message


class ClassificationError(SheetRouterError):
    """An embedding lookup or AI classification call failed."""


class PlanParseError(SheetRouterError):
    """Model output did not contain an extractable JSON object."""


class EvaluationError(SheetRouterError):
    """The evaluator model call failed or returned an unusable object."""


class ProviderError(SheetRouterError):
    """An outbound LLM or embedding provider request failed."""

    def __init__(self, message: str, detail: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message, detail)
        self.status_code = status_code


class ContextValidationError(SheetRouterError):
    """The inbound spreadsheet context could not be interpreted."""
