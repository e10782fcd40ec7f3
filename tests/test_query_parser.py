"""
Query parser tests.

Covers JSON extraction from noisy backend replies: fenced blocks,
surrounding prose, braces inside strings, and several brace spans.
"""

import pytest

from finquery.models import Aggregation
from finquery.orchestrator import JSONExtractionError, extract_first_json_block, parse_query_response
from finquery.orchestrator.json_utils import iter_json_spans


# =============================================================================
# SPAN EXTRACTION
# =============================================================================

class TestJsonSpans:

    def test_nested_and_string_braces(self):
        text = 'a {"x": {"y": 1}} b {"code": "e => { return 1 }"} c'
        assert list(iter_json_spans(text)) == ['{"x": {"y": 1}}', '{"code": "e => { return 1 }"}']

    def test_escaped_quote_inside_string(self):
        text = '{"title": "say \\"hi\\" {"}'
        assert list(iter_json_spans(text)) == [text]

    def test_extract_first_object(self):
        parsed, span = extract_first_json_block('Here: {"a": 1} and {"b": 2}')
        assert parsed == {"a": 1}
        assert span == '{"a": 1}'

    def test_extract_nothing(self):
        with pytest.raises(JSONExtractionError):
            extract_first_json_block("no json here")


# =============================================================================
# QUERY PARSING
# =============================================================================

class TestParseQueryResponse:

    def test_bare_json(self):
        query = parse_query_response(
            '{"operation": "filter", "filterCode": "e => e.amount > 5000", '
            '"aggregation": "sum", "aggregationField": "amount", "explanation": "Big ones"}'
        )
        assert query.filter_expression == "e => e.amount > 5000"
        assert query.aggregation == Aggregation.SUM
        assert query.aggregation_field == "amount"
        assert query.explanation == "Big ones"

    def test_fenced_block_with_prose(self):
        text = (
            "Sure! Here is the query:\n"
            "```json\n"
            '{"operation": "filter", "filterCode": "e => e.category === \'Travel\'", "aggregation": "count"}\n'
            "```\n"
            "Let me know if you need anything else."
        )
        query = parse_query_response(text)
        assert query.aggregation == Aggregation.COUNT
        assert query.filter_expression == "e => e.category === 'Travel'"

    def test_block_body_braces_in_string(self):
        text = 'Result: {"filterCode": "e => { const d = new Date(e.date); return d.getFullYear() === 2024; }"}'
        query = parse_query_response(text)
        assert query.filter_expression.startswith("e => { const d")

    def test_skips_unrelated_object(self):
        text = (
            'Context {"note": "ignore me"} then the query '
            '{"operation": "filter", "filterCode": "e => true", "aggregation": "group", "groupBy": "category"}'
        )
        query = parse_query_response(text)
        assert query.aggregation == Aggregation.GROUP
        assert query.group_by == "category"

    def test_filter_is_auto_corrected(self):
        query = parse_query_response('{"operation": "filter", "filterCode": "e.category == \'Food\'"}')
        assert query.filter_expression == "e => e.category === 'Food'"

    def test_filter_expression_alias(self):
        query = parse_query_response('{"filterExpression": "i => i.term == \'LONG_TERM\'", "aggregation": "none"}')
        assert query.filter_expression == "i => i.goal === 'LONG_TERM'"

    def test_missing_filter_is_none(self):
        query = parse_query_response('{"operation": "filter", "aggregation": "count"}')
        assert query.filter_expression is None

    def test_unknown_aggregation_becomes_none(self):
        query = parse_query_response('{"filterCode": "e => true", "aggregation": "median"}')
        assert query.aggregation == Aggregation.NONE

    def test_aggregation_synonym(self):
        query = parse_query_response('{"filterCode": "e => true", "aggregation": "AVG", "aggregationField": "amount"}')
        assert query.aggregation == Aggregation.AVERAGE

    def test_serializes_with_wire_names(self):
        query = parse_query_response('{"filterCode": "e => true", "groupBy": "month", "aggregation": "group"}')
        dumped = query.model_dump(by_alias=True)
        assert dumped["filterExpression"] == "e => true"
        assert dumped["groupBy"] == "month"

    @pytest.mark.parametrize("text", [
        "",
        "I could not build a query for that.",
        "{not json at all}",
        '["a", "list"]',
        '{"answer": "42"}',
        "{ unterminated",
    ])
    def test_unparseable_returns_none(self, text):
        assert parse_query_response(text) is None
