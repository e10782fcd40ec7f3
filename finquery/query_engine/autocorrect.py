"""
Auto-correction of common mistakes in backend-written filter predicates.

Every rewrite is anchored so that applying it to its own output changes
nothing, and the pipeline is repeated to a fixed point; running it twice
gives the same text as once.
"""
import re

_FENCE_OPEN = re.compile(r"^```(?:javascript|js|python|py)?\s*", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\s*```$")
_LEADING_RETURN = re.compile(r"^return\s+")

# Loose equality that is not already part of ===, !==, <=, >=
_LOOSE_EQ = re.compile(r"(?<![=!<>])==(?!=)")
_LOOSE_NEQ = re.compile(r"!=(?!=)")

_FIELD_REWRITES = [
    (re.compile(r"\be\.month\b", re.IGNORECASE), "new Date(e.date).getMonth()"),
    (re.compile(r"\be\.year\b", re.IGNORECASE), "new Date(e.date).getFullYear()"),
    (re.compile(r"\bi\.month\b", re.IGNORECASE), "new Date(i.createdAt).getMonth()"),
    (re.compile(r"\bi\.year\b", re.IGNORECASE), "new Date(i.createdAt).getFullYear()"),
    # Investments keep SHORT_TERM/LONG_TERM in "goal"
    (re.compile(r"\bi\.term\b", re.IGNORECASE), "i.goal"),
]

_DECLARATION = re.compile(r"\b(?:const|let|var)\s")


def _strip_wrappers(text: str) -> str:
    while True:
        stripped = text.strip()
        stripped = _FENCE_OPEN.sub("", stripped)
        stripped = _FENCE_CLOSE.sub("", stripped)
        stripped = _LEADING_RETURN.sub("", stripped.strip())
        if stripped == text:
            return stripped
        text = stripped


def _ensure_parameter(text: str) -> str:
    if not text or "=>" in text or "function" in text:
        return text
    var_name = "e" if text.startswith("e.") or " e." in text else "i"
    return f"{var_name} => {text}"


def _wrap_declaration_body(text: str) -> str:
    if "=>" not in text or not _DECLARATION.search(text):
        return text
    arrow_index = text.index("=>")
    after_arrow = text[arrow_index + 2:].strip()
    if after_arrow.startswith("{"):
        return text
    return f"{text[:arrow_index + 2]} {{ {after_arrow} }}"


_MAX_PASSES = 8


def _correct_once(text: str) -> str:
    corrected = _strip_wrappers(text)
    corrected = _ensure_parameter(corrected)

    corrected = _LOOSE_EQ.sub("===", corrected)
    corrected = _LOOSE_NEQ.sub("!==", corrected)

    for pattern, replacement in _FIELD_REWRITES:
        corrected = pattern.sub(replacement, corrected)
    corrected = _wrap_declaration_body(corrected)
    return corrected.strip()


def auto_correct_query(query_code: str) -> str:
    """
    Repair a filter predicate.

    Repairs, in order:
        1. strip ``` fences and leading `return`
        2. give a bare condition a parameter (e for expenses, i otherwise)
        3. == -> ===, != -> !==
        4. e.month / e.year / i.month / i.year -> Date calls
        5. i.term -> i.goal
        6. wrap an arrow body that declares locals in { }

    Wrapping a body can expose text to the earlier repairs (`=>==` becomes
    `=> { ==`), so the pass is repeated until the text stops changing.

    Examples:
        >>> auto_correct_query("e.category == 'Food'")
        "e => e.category === 'Food'"
        >>> auto_correct_query("```js\\ni => i.term == 'LONG_TERM'\\n```")
        "i => i.goal === 'LONG_TERM'"
    """
    if not query_code:
        return ""

    corrected = query_code
    for _ in range(_MAX_PASSES):
        updated = _correct_once(corrected)
        if updated == corrected:
            break
        corrected = updated
    return corrected
