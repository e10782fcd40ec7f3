"""
Sandboxed execution of structured queries.

Pipeline for one QueryObject:
    1. resolve the collection for the mode (expenses -> e, investments -> i)
    2. validate the filter expression against the denylist
    3. compile it with the restricted predicate interpreter
    4. filter a snapshot of the collection
    5. apply exactly one aggregation

execute() never raises; every failure comes back as a tagged
ExecutionOutcome.
"""
import logging
import math
from typing import Any, Callable, Dict, List, Union

from pydantic import ValidationError

from finquery.adapters.dataset_store import DatasetStore
from finquery.models import (
    Aggregation,
    AverageResult,
    CountResult,
    DataResult,
    ExecutionOutcome,
    ExecutionStatus,
    GroupBucket,
    GroupResult,
    QueryObject,
    SumResult,
)
from finquery.query_engine.predicate import (
    UNDEFINED,
    PredicateSyntaxError,
    compile_predicate,
    make_date,
    parse_float,
    to_string,
)
from finquery.query_engine.validator import validate_predicate

logger = logging.getLogger("finquery.executor")


# mode -> (collection, predicate parameter)
MODE_COLLECTIONS = {
    "expenses": ("expenses", "e"),
    "investments": ("investments", "i"),
}

UNKNOWN_GROUP = "unknown"


def as_number(value: Any) -> Union[int, float]:
    """parseFloat(value) || 0"""
    number = parse_float(value)
    return 0 if math.isnan(number) else number


def group_key(record: Dict[str, Any], group_by: str) -> str:
    """Bucket key for one record: YYYY-MM / YYYY for dates, else the field value."""
    if group_by in ("month", "year"):
        source = record.get("date") or record.get("createdAt")
        if source is None:
            return UNKNOWN_GROUP
        date = make_date([source])
        if not date.valid:
            return UNKNOWN_GROUP
        dt = date.as_datetime()
        return f"{dt.year}-{dt.month:02d}" if group_by == "month" else str(dt.year)

    value = record.get(group_by)
    if value is None or value == "":
        return UNKNOWN_GROUP
    return to_string(value)


class QueryExecutor:
    """Runs QueryObjects against a DatasetStore."""

    def __init__(self, store: DatasetStore):
        self.store = store

    def execute(self, query: Union[QueryObject, Dict[str, Any]], mode: str) -> ExecutionOutcome:
        """
        Execute a query against the collection of a mode.

        Returns:
            ExecutionOutcome (success, validation_failed or error)
        """
        try:
            if not isinstance(query, QueryObject):
                query = QueryObject.model_validate(query)
            return self._execute(query, getattr(mode, "value", mode))
        except ValidationError as e:
            logger.warning("Invalid query object: %s", e)
            return ExecutionOutcome.failed(f"Invalid query object: {e.errors()[0]['msg']}")
        except Exception as e:
            logger.exception("Query execution error")
            return ExecutionOutcome.failed(str(e))

    def _execute(self, query: QueryObject, mode: str) -> ExecutionOutcome:
        if mode not in MODE_COLLECTIONS:
            return ExecutionOutcome.failed(f"Unsupported mode: {mode}")
        collection, param = MODE_COLLECTIONS[mode]

        predicate = self._build_predicate(query, param)
        if isinstance(predicate, ExecutionOutcome):
            return predicate

        records = self.store.get_collection(collection)
        matches = self._filter(records, predicate)
        logger.info("Filter matched %d of %d %s", len(matches), len(records), collection)

        return ExecutionOutcome.ok(self._aggregate(query, matches), query.explanation)

    def _build_predicate(self, query: QueryObject, param: str):
        code = query.filter_expression
        if code is None:
            # No filter means every record matches
            return lambda record: True

        validation = validate_predicate(code)
        if not validation.is_valid:
            return ExecutionOutcome.failed(
                validation.reason,
                status=ExecutionStatus.VALIDATION_FAILED,
                blocked_pattern=validation.pattern,
            )

        try:
            return compile_predicate(code, default_param=param)
        except PredicateSyntaxError as e:
            logger.warning("Invalid filter code %r: %s", code, e)
            return ExecutionOutcome.failed(f"Invalid filter code syntax: {e}")

    def _filter(self, records: List[Dict[str, Any]], predicate: Callable[[Any], bool]) -> List[Dict[str, Any]]:
        matches = []
        for record in records:
            try:
                if predicate(record):
                    matches.append(record)
            except Exception as e:
                logger.debug("Filter execution error on record %r: %s", record.get("id", UNDEFINED), e)
        return matches

    def _aggregate(self, query: QueryObject, matches: List[Dict[str, Any]]):
        aggregation = query.aggregation
        field = query.aggregation_field
        count = len(matches)

        if aggregation == Aggregation.SUM and field:
            total = sum(as_number(item.get(field)) for item in matches)
            return SumResult(field=field, value=total, count=count)

        if aggregation == Aggregation.COUNT:
            return CountResult(value=count, count=count)

        if aggregation == Aggregation.AVERAGE and field:
            total = sum(as_number(item.get(field)) for item in matches)
            return AverageResult(field=field, value=total / count if count else 0, count=count)

        if aggregation == Aggregation.GROUP and query.group_by:
            groups: Dict[str, GroupBucket] = {}
            for item in matches:
                bucket = groups.setdefault(group_key(item, query.group_by), GroupBucket())
                bucket.items.append(item)
                bucket.count += 1
                if field:
                    bucket.sum += as_number(item.get(field))
            return GroupResult(group_by=query.group_by, groups=groups, count=count)

        return DataResult(data=matches, count=count)
