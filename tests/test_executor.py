"""
Query executor tests.

Runs QueryObjects against in-memory collections; checks every aggregation,
the validation gate, per-record error isolation and determinism.
"""

from unittest.mock import patch

import pytest

from finquery.adapters import InMemoryDatasetStore
from finquery.models import ExecutionStatus, QueryObject
from finquery.query_engine import QueryExecutor, group_key


@pytest.fixture
def executor(store):
    return QueryExecutor(store)


# =============================================================================
# AGGREGATIONS
# =============================================================================

class TestAggregations:

    def test_sum_groceries(self, executor):
        outcome = executor.execute({
            "operation": "filter",
            "filterCode": "e => e.category == 'Groceries'",
            "aggregation": "sum",
            "aggregationField": "amount",
        }, "expenses")

        assert outcome.success
        assert outcome.status == ExecutionStatus.SUCCESS
        assert outcome.result.model_dump() == {"type": "sum", "field": "amount", "value": 5000, "count": 1}

    def test_group_by_category(self, executor):
        outcome = executor.execute({
            "filterCode": "e => true",
            "aggregation": "group",
            "groupBy": "category",
            "aggregationField": "amount",
        }, "expenses")

        groups = outcome.result.groups
        assert list(groups) == ["Groceries", "Travel"]
        assert (groups["Groceries"].count, groups["Groceries"].sum) == (1, 5000)
        assert (groups["Travel"].count, groups["Travel"].sum) == (1, 12000)
        assert groups["Travel"].items[0]["title"] == "Flight to Goa"
        assert outcome.result.count == 2

    def test_count(self, executor):
        outcome = executor.execute({"filterCode": "e => e.amount > 1000", "aggregation": "count"}, "expenses")
        assert outcome.result.type == "count"
        assert outcome.result.value == 2

    def test_average(self, executor):
        outcome = executor.execute(
            {"filterCode": "i => i.goal === 'LONG_TERM'", "aggregation": "average", "aggregationField": "amount"},
            "investments",
        )
        assert outcome.result.type == "average"
        assert outcome.result.value == pytest.approx(66500)
        assert outcome.result.count == 2

    def test_average_without_matches_is_zero(self, executor):
        outcome = executor.execute(
            {"filterCode": "e => false", "aggregation": "average", "aggregationField": "amount"}, "expenses"
        )
        assert outcome.result.value == 0
        assert outcome.result.count == 0

    def test_none_returns_matches(self, executor):
        outcome = executor.execute({"filterCode": "i => i.currency === 'USD'", "aggregation": "none"}, "investments")
        assert outcome.result.type == "data"
        assert [r["name"] for r in outcome.result.data] == ["Apple"]

    def test_sum_without_field_returns_data(self, executor):
        outcome = executor.execute({"filterCode": "e => true", "aggregation": "sum"}, "expenses")
        assert outcome.result.type == "data"
        assert outcome.result.count == 2

    def test_missing_filter_matches_everything(self, executor):
        outcome = executor.execute({"aggregation": "count"}, "investments")
        assert outcome.result.value == 3

    def test_unparsable_amounts_contribute_zero(self, more_expenses):
        executor = QueryExecutor(InMemoryDatasetStore(expenses=more_expenses))
        outcome = executor.execute({"filterCode": "e => true", "aggregation": "sum", "aggregationField": "amount"},
                                   "expenses")
        assert outcome.result.value == pytest.approx(7700.5)
        assert outcome.result.count == 5

    def test_group_by_month_and_year(self, more_expenses):
        executor = QueryExecutor(InMemoryDatasetStore(expenses=more_expenses))

        by_month = executor.execute({"filterCode": "e => true", "aggregation": "group", "groupBy": "month",
                                     "aggregationField": "amount"}, "expenses").result
        assert list(by_month.groups) == ["2024-11", "2024-12", "2023-10"]
        assert by_month.groups["2024-11"].sum == pytest.approx(2000.5)
        # The gift has no date and falls back to createdAt
        assert by_month.groups["2024-12"].count == 2

        by_year = executor.execute({"filterCode": "e => true", "aggregation": "group", "groupBy": "year"},
                                   "expenses").result
        assert {k: b.count for k, b in by_year.groups.items()} == {"2024": 4, "2023": 1}
        assert by_year.groups["2024"].sum == 0

    def test_empty_dataset_grouping(self):
        executor = QueryExecutor(InMemoryDatasetStore())
        outcome = executor.execute({"filterCode": "e => true", "aggregation": "group", "groupBy": "category"},
                                   "expenses")
        assert outcome.success
        assert outcome.result.groups == {}
        assert outcome.result.count == 0


class TestGroupKey:

    def test_missing_or_invalid_values(self):
        assert group_key({}, "category") == "unknown"
        assert group_key({"category": ""}, "category") == "unknown"
        assert group_key({"date": "someday"}, "month") == "unknown"
        assert group_key({}, "year") == "unknown"

    def test_non_string_values(self):
        assert group_key({"quantity": 5}, "quantity") == "5"
        assert group_key({"active": True}, "active") == "true"


# =============================================================================
# FAILURES ARE RETURNED, NEVER RAISED
# =============================================================================

class TestFailures:

    def test_denylisted_filter_never_touches_records(self, store):
        executor = QueryExecutor(store)
        with patch.object(store, "get_collection", wraps=store.get_collection) as get_collection:
            outcome = executor.execute({"filterCode": "e => window.alert(e.amount)", "aggregation": "none"},
                                       "expenses")

        assert outcome.success is False
        assert outcome.status == ExecutionStatus.VALIDATION_FAILED
        assert outcome.blocked_pattern == r"window\."
        assert r"window\." in outcome.error
        get_collection.assert_not_called()

    def test_function_constructor_form_is_blocked(self, executor):
        outcome = executor.execute({"filterCode": "function (e) { return true; }"}, "expenses")
        assert outcome.status == ExecutionStatus.VALIDATION_FAILED

    def test_unsupported_mode(self, executor):
        outcome = executor.execute({"filterCode": "e => true"}, "general")
        assert outcome.success is False
        assert "Unsupported mode" in outcome.error

    def test_syntax_error(self, executor):
        outcome = executor.execute({"filterCode": "e => e.amount >"}, "expenses")
        assert outcome.success is False
        assert outcome.status == ExecutionStatus.ERROR
        assert outcome.error.startswith("Invalid filter code syntax")

    def test_bad_record_is_non_matching(self):
        store = InMemoryDatasetStore(expenses=[
            {"title": "Rent", "amount": 100},
            {"amount": 200},
            {"title": "Rental car", "amount": 300},
        ])
        outcome = QueryExecutor(store).execute(
            {"filterCode": "e => e.title.startsWith('Rent')", "aggregation": "sum", "aggregationField": "amount"},
            "expenses",
        )
        assert outcome.success
        assert outcome.result.value == 400
        assert outcome.result.count == 2

    def test_invalid_query_object(self, executor):
        outcome = executor.execute({"filterCode": 42}, "expenses")
        assert outcome.success is False
        assert outcome.error.startswith("Invalid query object")

    def test_query_object_instance_accepted(self, executor):
        query = QueryObject(filter_expression="e => e.amount > 10000", aggregation="count")
        outcome = executor.execute(query, "expenses")
        assert outcome.result.value == 1

    def test_explanation_passed_through(self, executor):
        outcome = executor.execute({"filterCode": "e => true", "aggregation": "count",
                                    "explanation": "All expenses"}, "expenses")
        assert outcome.explanation == "All expenses"


def test_deterministic(store):
    executor = QueryExecutor(store)
    query = {"filterCode": "e => true", "aggregation": "group", "groupBy": "category", "aggregationField": "amount"}
    first = executor.execute(query, "expenses")
    second = executor.execute(query, "expenses")
    assert first.model_dump() == second.model_dump()


def test_records_are_not_mutated(store, expenses):
    QueryExecutor(store).execute({"filterCode": "e => true", "aggregation": "group", "groupBy": "category"},
                                 "expenses")
    assert store.get_collection("expenses") == expenses


@pytest.mark.parametrize("filter_code", [
    "e => e.date.slice(0, 7) === '2024-11'",
    "e => e.date.substring(0, 7) === '2024-11'",
    "e => e.date.split('-')[1] === '11'",
    "e => new Date(e.date).toISOString().startsWith('2024-11')",
    "e => e.note?.toLowerCase().includes('x') || e.date?.startsWith('2024-11')",
])
def test_common_date_idioms_execute(executor, filter_code):
    outcome = executor.execute({"filterCode": filter_code, "aggregation": "count"}, "expenses")
    assert outcome.success, outcome.error
    assert outcome.result.value == 2
