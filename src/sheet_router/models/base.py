"""Base data models for the command routing engine."""

import re
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ..exceptions import ContextValidationError


COLUMN_LETTERS_RE = re.compile(r"^[A-Z]+$")
MAX_SAMPLE_VALUES = 3


class WireModel(BaseModel):
    """Base model whose serialized field names are the camelCase wire names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
    )

    def to_wire(self) -> Dict[str, Any]:
        """Dump using wire field names, dropping unset optional values."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class OutputMode(str, Enum):
    """Top-level execution strategy for a command."""
    SHEET = "sheet"
    FORMULA = "formula"
    CHAT = "chat"
    COLUMNS = "columns"
    WORKFLOW = "workflow"


class SheetAction(str, Enum):
    """Native operations available in sheet mode."""
    CHART = "chart"
    FORMAT = "format"
    CONDITIONAL_FORMAT = "conditionalFormat"
    DATA_VALIDATION = "dataValidation"
    FILTER = "filter"
    WRITE_DATA = "writeData"
    CREATE_TABLE = "createTable"
    SHEET_OPS = "sheetOps"


class SkillId(str, Enum):
    """Identifiers of the known skills."""
    FORMAT = "format"
    CHART = "chart"
    CONDITIONAL_FORMAT = "conditionalFormat"
    DATA_VALIDATION = "dataValidation"
    FILTER = "filter"
    WRITE_DATA = "writeData"
    TABLE = "table"
    SHEET_OPS = "sheetOps"
    FORMULA = "formula"
    CHAT = "chat"


class ClassificationSource(str, Enum):
    """Which router tier produced a classification."""
    CACHE = "cache"
    AI = "ai"
    FALLBACK = "fallback"


class RequestType(str, Enum):
    """Shape of a user request as judged by the request analyzer."""
    SPECIFIC = "specific"
    COMPOSITE = "composite"
    VAGUE = "vague"
    QUESTION = "question"


class Recommendation(str, Enum):
    """What the caller should do with a request."""
    EXECUTE = "execute"
    SUGGEST_OPTIONS = "suggest_options"
    CLARIFY = "clarify"


class AgentStatus(str, Enum):
    """Agent execution status."""
    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"
    TIMEOUT = "timeout"


class ExplicitRowInfo(WireModel):
    """Row metadata supplied when the caller knows exactly where the header sits."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    header_row_number: int = 1
    header_range: Optional[str] = None
    data_start_row: int = 2
    data_end_row: int = 2
    data_range: Optional[str] = None
    full_range_including_header: Optional[str] = None
    header_names: List[str] = Field(default_factory=list)


class DataContext(WireModel):
    """Description of the currently visible spreadsheet region.

    Built once per request at the system boundary (see ``from_raw``) and never
    mutated afterwards.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    headers: Dict[str, str] = Field(default_factory=dict)
    data_columns: List[str] = Field(default_factory=list)
    empty_columns: List[str] = Field(default_factory=list)
    sample_data: Dict[str, List[Any]] = Field(default_factory=dict)
    row_count: int = 0
    start_row: int = 2
    end_row: Optional[int] = None
    data_range: Optional[str] = None
    explicit_row_info: Optional[ExplicitRowInfo] = None

    @field_validator("data_columns", "empty_columns", mode="before")
    @classmethod
    def _normalize_columns(cls, value):
        if value is None:
            return []
        columns = []
        for item in value:
            letters = str(item).strip().upper()
            if COLUMN_LETTERS_RE.match(letters) and letters not in columns:
                columns.append(letters)
        return columns

    @field_validator("headers", mode="before")
    @classmethod
    def _normalize_headers(cls, value):
        if value is None:
            return {}
        if isinstance(value, list):
            # Positional header lists are mapped onto A, B, C, ...
            from ..core.columns import number_to_letter
            return {number_to_letter(i + 1): str(name) for i, name in enumerate(value) if name is not None}
        return {str(col).strip().upper(): str(name) for col, name in value.items() if name is not None}

    @field_validator("sample_data", mode="before")
    @classmethod
    def _truncate_samples(cls, value):
        if not value:
            return {}
        return {
            str(col).strip().upper(): list(values or [])[:MAX_SAMPLE_VALUES]
            for col, values in value.items()
        }

    @classmethod
    def from_raw(cls, raw: Optional[Dict[str, Any]]) -> "DataContext":
        """Validate an untyped caller payload into a DataContext.

        Accepts camelCase or snake_case keys plus the ``columnsWithData`` and
        ``dataStartRow``/``dataEndRow`` spellings used by spreadsheet add-ons.
        Unknown keys are ignored; a payload that is not a mapping is rejected.
        """
        if raw is None:
            return cls()
        if isinstance(raw, DataContext):
            return raw
        if not isinstance(raw, dict):
            raise ContextValidationError(
                "Context must be a mapping", detail=type(raw).__name__
            )

        payload = dict(raw)
        if "dataColumns" not in payload and "data_columns" not in payload:
            payload["dataColumns"] = payload.get("columnsWithData") or []
        if "startRow" not in payload and "start_row" not in payload and payload.get("dataStartRow"):
            payload["startRow"] = payload["dataStartRow"]
        if "endRow" not in payload and "end_row" not in payload and payload.get("dataEndRow"):
            payload["endRow"] = payload["dataEndRow"]

        known = set(cls.model_fields) | {f.alias for f in cls.model_fields.values() if f.alias}
        payload = {k: v for k, v in payload.items() if k in known}

        try:
            context = cls.model_validate(payload)
        except ValueError as e:
            raise ContextValidationError("Invalid spreadsheet context", detail=str(e)) from e

        if not context.empty_columns:
            from ..core.columns import empty_columns_after
            context = context.model_copy(
                update={"empty_columns": empty_columns_after(context.data_columns, 10)}
            )
        return context

    @property
    def data_start_row(self) -> int:
        if self.explicit_row_info:
            return self.explicit_row_info.data_start_row
        return self.start_row

    @property
    def data_end_row(self) -> int:
        if self.explicit_row_info:
            return self.explicit_row_info.data_end_row
        if self.end_row:
            return self.end_row
        return self.start_row + max(self.row_count, 1) - 1

    @property
    def resolved_data_range(self) -> Optional[str]:
        """Data range without headers, derived from the columns when not supplied."""
        if self.data_range:
            return self.data_range
        if self.explicit_row_info and self.explicit_row_info.data_range:
            return self.explicit_row_info.data_range
        if not self.data_columns:
            return None
        return f"{self.data_columns[0]}{self.data_start_row}:{self.data_columns[-1]}{self.data_end_row}"

    def summary(self, empty_limit: int = 3) -> Dict[str, Any]:
        """Compact description surfaced to end users alongside clarifications."""
        return {
            "headers": dict(self.headers),
            "columns": list(self.data_columns),
            "rowCount": self.row_count,
            "emptyColumns": list(self.empty_columns[:empty_limit]),
        }


class RequestAnalysis(WireModel):
    """Read-only judgement of how specific a command is."""

    type: RequestType
    specificity: float
    implied_action_count: int = 1
    detected_categories: List[str] = Field(default_factory=list)
    recommendation: Recommendation
    has_action_verb: bool = False
    has_target: bool = False
    has_specific_type: bool = False
    has_vague_adjectives: bool = False
    has_composite_indicator: bool = False
    has_table_data: bool = False
    is_question: bool = False


class Classification(WireModel):
    """Routing decision produced by the intent router."""

    output_mode: OutputMode
    skill_id: Optional[SkillId] = None
    sheet_action: Optional[SheetAction] = None
    confidence: float = 0.7
    source: ClassificationSource = ClassificationSource.AI
    reasoning: Optional[str] = None
    classification_time_ms: Optional[int] = None

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value):
        if value is None:
            return 0.7
        try:
            number = float(value)
        except (TypeError, ValueError):
            return 0.7
        return max(0.0, min(1.0, number))


class CachedIntent(WireModel):
    """A command/classification pair held by the similarity store."""

    id: str
    canonical_command: str
    embedding: List[float] = Field(default_factory=list)
    classification: Classification
    category: Optional[str] = None
    hit_count: int = 0
    outcome_count: int = 0
    success_count: int = 0
    success_rate: float = 1.0
    is_seed: bool = False
    created_at: datetime = Field(default_factory=datetime.now)
    last_used_at: Optional[datetime] = None


class CacheLookup(WireModel):
    """Result of a similarity search."""

    hit: bool = False
    cached_intent: Optional[CachedIntent] = None
    similarity: float = 0.0
    lookup_time_ms: int = 0


class AgentRequest(BaseModel):
    """Request handed to an agent."""
    agent_id: str
    request_id: str = Field(default_factory=lambda: f"req_{datetime.now().isoformat()}")
    timestamp: datetime = Field(default_factory=datetime.now)
    command: str
    context: DataContext = Field(default_factory=DataContext)


class AgentResponse(BaseModel):
    """Response returned by an agent."""
    agent_id: str
    request_id: str
    status: AgentStatus
    result: Optional[Dict[str, Any]] = None
    error_log: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.now)
    execution_time_ms: Optional[int] = None
