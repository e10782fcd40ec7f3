"""
Query engine for FinQuery.

Turns a parsed QueryObject into a result, safely:
    autocorrect -> validator -> predicate (restricted interpreter) -> executor
plus the metadata descriptor the backend needs to write queries.
"""

from .autocorrect import auto_correct_query
from .validator import DENYLIST, validate_predicate
from .predicate import (
    UNDEFINED,
    JSDate,
    PredicateError,
    PredicateSyntaxError,
    PredicateEvaluationError,
    CompiledPredicate,
    compile_predicate,
    parse_float,
)
from .metadata import MetadataGenerator
from .executor import MODE_COLLECTIONS, QueryExecutor, as_number, group_key

__all__ = [
    "auto_correct_query",
    "DENYLIST",
    "validate_predicate",
    "UNDEFINED",
    "JSDate",
    "PredicateError",
    "PredicateSyntaxError",
    "PredicateEvaluationError",
    "CompiledPredicate",
    "compile_predicate",
    "parse_float",
    "MetadataGenerator",
    "MODE_COLLECTIONS",
    "QueryExecutor",
    "as_number",
    "group_key",
]
