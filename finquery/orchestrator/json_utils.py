"""
Robust JSON extraction for structured-query replies.

PROBLEM
-------
Backends rarely return bare JSON. A typical reply looks like:
    "Sure! Here is the query:
     ```json
     {"operation": "filter", "filterCode": "e => e.amount > 5000"}
     ```
     Let me know if you need anything else."

and sometimes contains more than one object, or braces inside strings
("e => { return e.amount > 5 }").

SOLUTION
--------
Collect candidate spans in a fixed order and keep the first one that
decodes to a JSON object AND looks like a query:
    1. a fenced ```json block
    2. every balanced top-level {...} span (brace-depth scan, string aware)
    3. the first '{' to the last '}'
"""
import json
import logging
import re
from typing import Any, Dict, Iterator, List, Optional, Tuple

from pydantic import ValidationError

from finquery.models import QueryObject
from finquery.query_engine.autocorrect import auto_correct_query

logger = logging.getLogger("finquery.parser")

_FENCED_JSON = re.compile(r"```json\s*([\s\S]*?)\s*```", re.IGNORECASE)

# Keys that make a JSON object a query rather than some other payload
QUERY_KEYS = frozenset({
    "operation", "filterCode", "filterExpression", "filter_expression", "filter",
    "aggregation", "aggregationField", "groupBy",
})


class JSONExtractionError(Exception):
    """Raised when no JSON object can be extracted."""
    pass


def iter_json_spans(text: str) -> Iterator[str]:
    """
    Yield every balanced top-level {...} span of text.

    Algorithm:
    ----------
    1. Walk the text tracking brace depth
    2. Braces inside double-quoted strings don't count
    3. Backslash escapes the next character
    4. Each time depth returns to 0, yield the span
    """
    depth = 0
    in_string = False
    escape_next = False
    start_idx = None

    for i, char in enumerate(text):
        if escape_next:
            escape_next = False
            continue

        if char == "\\":
            escape_next = True
            continue

        if char == '"':
            in_string = not in_string
            continue

        if in_string:
            continue

        if char == "{":
            if depth == 0:
                start_idx = i
            depth += 1
        elif char == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                yield text[start_idx:i + 1]
                start_idx = None


def candidate_spans(text: str) -> List[str]:
    """All candidate JSON spans, in priority order, without duplicates."""
    candidates: List[str] = []

    def add(span: Optional[str]) -> None:
        if span and span not in candidates:
            candidates.append(span)

    fenced = _FENCED_JSON.search(text)
    if fenced:
        add(fenced.group(1).strip())

    for span in iter_json_spans(text):
        add(span)

    first, last = text.find("{"), text.rfind("}")
    if first != -1 and last > first:
        add(text[first:last + 1])

    return candidates


def extract_first_json_block(text: str) -> Tuple[Dict[str, Any], str]:
    """
    Return the first candidate span that decodes to a JSON object.

    Returns:
        Tuple of (parsed_dict, span)

    Raises:
        JSONExtractionError: If no candidate decodes to an object
    """
    if not text or not isinstance(text, str):
        raise JSONExtractionError("Input text is empty or not a string")

    for span in candidate_spans(text.strip()):
        try:
            parsed = json.loads(span)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed, span

    raise JSONExtractionError("No JSON object found in response")


def parse_query_response(text: str) -> Optional[QueryObject]:
    """
    Extract a QueryObject from a backend reply.

    The first candidate that decodes to an object carrying query keys and
    validates as a QueryObject wins. A present filter expression is run
    through the auto-corrector.

    Returns:
        QueryObject, or None when the reply holds no usable query
    """
    if not text or not isinstance(text, str):
        logger.warning("Failed to parse query: empty response")
        return None

    for span in candidate_spans(text.strip()):
        try:
            parsed = json.loads(span)
        except json.JSONDecodeError:
            continue
        if not isinstance(parsed, dict) or not QUERY_KEYS.intersection(parsed):
            continue

        try:
            query = QueryObject.model_validate(parsed)
        except ValidationError as e:
            logger.debug("Candidate rejected: %s", e)
            continue

        if query.filter_expression:
            original = query.filter_expression
            corrected = auto_correct_query(original)
            if corrected != original:
                logger.info("✏️ Auto-corrected query: %r -> %r", original, corrected)
                query = query.model_copy(update={"filter_expression": corrected})

        logger.debug("Parsed query: %s", query.model_dump(by_alias=True))
        return query

    logger.warning("Failed to parse query: no valid query JSON found in response: %.200s", text)
    return None
