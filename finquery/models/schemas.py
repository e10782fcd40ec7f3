"""
Pydantic models for structured data flow through the query engine.
These models ensure type safety between parser, executor and callers.
"""
import logging
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger("finquery.models")


class Mode(str, Enum):
    """Dataset domain a question is asked against."""
    GENERAL = "general"
    EXPENSES = "expenses"
    INVESTMENTS = "investments"
    CARDS = "cards"


class Aggregation(str, Enum):
    """Post-filter reduction requested by a query."""
    SUM = "sum"
    COUNT = "count"
    AVERAGE = "average"
    GROUP = "group"
    NONE = "none"


class ExecutionStatus(str, Enum):
    """Status of query execution."""
    SUCCESS = "success"
    ERROR = "error"
    VALIDATION_FAILED = "validation_failed"  # Predicate blocked by the validator


_AGGREGATION_SYNONYMS = {
    "avg": "average",
    "mean": "average",
    "total": "sum",
    "groupby": "group",
    "group_by": "group",
    "data": "none",
    "list": "none",
}


# ============================================================
# Query Models
# ============================================================

class QueryObject(BaseModel):
    """Structured query description produced from a backend reply."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    operation: str = Field(default="filter", description="Query operation (always 'filter' today)")
    filter_expression: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("filter_expression", "filterExpression", "filterCode", "filter"),
        serialization_alias="filterExpression",
        description="Predicate over one record",
    )
    aggregation: Aggregation = Field(default=Aggregation.NONE, description="Reduction applied to matches")
    aggregation_field: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("aggregation_field", "aggregationField"),
        serialization_alias="aggregationField",
    )
    group_by: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("group_by", "groupBy"),
        serialization_alias="groupBy",
    )
    explanation: Optional[str] = Field(default=None, description="Human-readable explanation")

    @field_validator("aggregation", mode="before")
    @classmethod
    def _coerce_aggregation(cls, value: Any) -> str:
        if value is None:
            return Aggregation.NONE.value
        if isinstance(value, Aggregation):
            return value.value
        text = str(value).strip().lower()
        text = _AGGREGATION_SYNONYMS.get(text, text)
        if text not in {a.value for a in Aggregation}:
            logger.warning("Unknown aggregation %r, returning raw matches instead", value)
            return Aggregation.NONE.value
        return text

    @field_validator("filter_expression", "aggregation_field", "group_by", "explanation", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class PredicateValidation(BaseModel):
    """Result of the predicate safety gate."""
    is_valid: bool = Field(description="Whether the predicate passed validation")
    pattern: Optional[str] = Field(default=None, description="Denylisted pattern that matched")
    reason: Optional[str] = Field(default=None, description="Human-readable rejection reason")


# ============================================================
# Result Models
# ============================================================

Number = Union[int, float]


class SumResult(BaseModel):
    type: Literal["sum"] = "sum"
    field: str
    value: Number
    count: int


class CountResult(BaseModel):
    type: Literal["count"] = "count"
    value: int
    count: int


class AverageResult(BaseModel):
    type: Literal["average"] = "average"
    field: str
    value: Number
    count: int


class GroupBucket(BaseModel):
    """Members of one group plus running totals."""
    items: List[Dict[str, Any]] = Field(default_factory=list)
    count: int = 0
    sum: Number = 0


class GroupResult(BaseModel):
    type: Literal["group"] = "group"
    group_by: str
    groups: Dict[str, GroupBucket] = Field(default_factory=dict)
    count: int


class DataResult(BaseModel):
    type: Literal["data"] = "data"
    data: List[Dict[str, Any]] = Field(default_factory=list)
    count: int


QueryResult = Annotated[
    Union[SumResult, CountResult, AverageResult, GroupResult, DataResult],
    Field(discriminator="type"),
]


class ExecutionOutcome(BaseModel):
    """Tagged outcome of running one QueryObject; the executor never raises."""
    success: bool
    status: ExecutionStatus
    result: Optional[QueryResult] = None
    explanation: Optional[str] = None
    error: Optional[str] = None
    blocked_pattern: Optional[str] = None

    @classmethod
    def ok(cls, result, explanation: Optional[str]) -> "ExecutionOutcome":
        return cls(
            success=True,
            status=ExecutionStatus.SUCCESS,
            result=result,
            explanation=explanation or "Query executed successfully",
        )

    @classmethod
    def failed(cls, error: str, status: ExecutionStatus = ExecutionStatus.ERROR,
               blocked_pattern: Optional[str] = None) -> "ExecutionOutcome":
        return cls(success=False, status=status, error=error, blocked_pattern=blocked_pattern)


# ============================================================
# Assistant Answers
# ============================================================

class QueryAnswerStatus(str, Enum):
    EXECUTED = "executed"
    UNPARSED = "unparsed"        # No structured query in the backend reply
    FAILED = "failed"            # Executor returned a failure outcome


class QueryAnswer(BaseModel):
    """Everything the UI needs to render a structured answer."""
    mode: Mode
    conversation_id: str
    metadata_included: bool
    status: QueryAnswerStatus
    query: Optional[QueryObject] = None
    outcome: Optional[ExecutionOutcome] = None
    raw_response: str
    provider: Optional[str] = None
    fallback_used: bool = False


class ChatAnswer(BaseModel):
    """Free-text advisory answer."""
    mode: Mode
    answer: str
    provider: Optional[str] = None
    fallback_used: bool = False
