"""Models module initialization."""
from .schemas import (
    Mode,
    Aggregation,
    ExecutionStatus,
    QueryObject,
    PredicateValidation,
    SumResult,
    CountResult,
    AverageResult,
    GroupBucket,
    GroupResult,
    DataResult,
    QueryResult,
    ExecutionOutcome,
    QueryAnswerStatus,
    QueryAnswer,
    ChatAnswer,
)

__all__ = [
    "Mode",
    "Aggregation",
    "ExecutionStatus",
    "QueryObject",
    "PredicateValidation",
    "SumResult",
    "CountResult",
    "AverageResult",
    "GroupBucket",
    "GroupResult",
    "DataResult",
    "QueryResult",
    "ExecutionOutcome",
    "QueryAnswerStatus",
    "QueryAnswer",
    "ChatAnswer",
]
