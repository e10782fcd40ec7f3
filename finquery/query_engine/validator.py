"""
Predicate safety gate.

A predicate is rejected if any denylisted pattern appears anywhere in it
(case-insensitive). Accepted predicates still only run through the
restricted interpreter in predicate.py, which refuses unknown identifiers
and methods on its own.
"""
import logging
import re
from typing import List, Tuple

from finquery.models import PredicateValidation

logger = logging.getLogger("finquery.validator")


# (pattern, reason)
DENYLIST: List[Tuple[str, str]] = [
    # Dynamic evaluation
    (r"eval\s*\(", "dynamic code evaluation"),
    (r"Function\s*\(", "dynamic function construction"),
    (r"exec\s*\(", "dynamic code evaluation"),
    # Global objects
    (r"window\.", "global object access"),
    (r"document\.", "global object access"),
    (r"globalThis", "global object access"),
    # Browser storage
    (r"localStorage", "storage access"),
    (r"sessionStorage", "storage access"),
    # Network
    (r"fetch\s*\(", "network access"),
    (r"XMLHttpRequest", "network access"),
    # Module loading
    (r"import\s+", "module loading"),
    (r"import\s*\(", "module loading"),
    (r"require\s*\(", "module loading"),
    (r"__import__", "module loading"),
    # Process / environment
    (r"process\.", "process access"),
    # Prototype pollution
    (r"__proto__", "prototype access"),
]

_COMPILED = [(re.compile(pattern, re.IGNORECASE), pattern, reason) for pattern, reason in DENYLIST]


def validate_predicate(code: str) -> PredicateValidation:
    """
    Check a predicate against the denylist.

    Returns:
        PredicateValidation with is_valid=False and the matched pattern
        on the first hit
    """
    text = code or ""
    for regex, pattern, reason in _COMPILED:
        if regex.search(text):
            logger.warning("🚫 Predicate blocked (%s): %s", pattern, text[:200])
            return PredicateValidation(
                is_valid=False,
                pattern=pattern,
                reason=f"Query contains forbidden pattern: {pattern} ({reason})",
            )
    return PredicateValidation(is_valid=True)
