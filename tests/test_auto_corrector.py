"""Auto-corrector tests: each repair on its own, then idempotence."""

import random

import pytest

from finquery.query_engine import auto_correct_query


@pytest.mark.parametrize("raw, expected", [
    # fences and leading return
    ("```javascript\ne => e.amount > 5000\n```", "e => e.amount > 5000"),
    ("```js\ni => i.type === 'GOLD'\n```", "i => i.type === 'GOLD'"),
    ("```\ne => true\n```", "e => true"),
    ("return e => e.amount > 10", "e => e.amount > 10"),
    # bare conditions get a parameter
    ("e.category === 'Food'", "e => e.category === 'Food'"),
    ("i.amount > 1000", "i => i.amount > 1000"),
    ("true", "i => true"),
    # loose equality
    ("e => e.category == 'Food'", "e => e.category === 'Food'"),
    ("e => e.category != 'Food'", "e => e.category !== 'Food'"),
    ("e => e.amount >= 10 && e.amount <= 20", "e => e.amount >= 10 && e.amount <= 20"),
    # pseudo date fields
    ("e => e.month === 10", "e => new Date(e.date).getMonth() === 10"),
    ("e => e.Year === 2024", "e => new Date(e.date).getFullYear() === 2024"),
    ("i => i.year === 2023", "i => new Date(i.createdAt).getFullYear() === 2023"),
    ("i => i.month === 0", "i => new Date(i.createdAt).getMonth() === 0"),
    # term/goal confusion
    ("i => i.term === 'SHORT_TERM'", "i => i.goal === 'SHORT_TERM'"),
    # declarations need a block body
    ("e => const d = new Date(e.date); return d.getMonth() === 10",
     "e => { const d = new Date(e.date); return d.getMonth() === 10 }"),
    ("e => { const d = new Date(e.date); return d.getMonth() === 10; }",
     "e => { const d = new Date(e.date); return d.getMonth() === 10; }"),
])
def test_repairs(raw, expected):
    assert auto_correct_query(raw) == expected


def test_fields_that_merely_contain_month_are_untouched():
    assert auto_correct_query("e => e.monthly === true") == "e => e.monthly === true"


def test_empty_input():
    assert auto_correct_query("") == ""
    assert auto_correct_query(None) == ""


@pytest.mark.parametrize("raw", [
    "",
    "   ",
    "e.category == 'Food'",
    "```js\nreturn e.amount == 5\n```",
    "return return e.amount != 3",
    "```\n```js\ne => true\n```\n```",
    "i.term == 'LONG_TERM' && i.month == 2",
    "e => const x = e.amount; x > 5",
    "a == b == c != d",
    "x === y !== z <= w >= v",
    "===!==!=====",
    "function (e) { return e.amount == 1 }",
    "e.MONTH == e.year",
    "```python\nreturn\n```",
    "return",
    "let",
    "=>",
    "e => { let y = 1 }",
    "let x =>== 1",
    "const a =>!= b",
    "var v => x == 1 ; e.month != 2",
])
def test_idempotent(raw):
    once = auto_correct_query(raw)
    assert auto_correct_query(once) == once


def test_declaration_wrap_does_not_expose_loose_equality():
    assert auto_correct_query("let x =>== 1") == "let x => { === 1 }"


# Fragments the individual repairs react to
_FRAGMENTS = [
    "=", "==", "!=", "===", "!==", "=>", ">", "<", "!", " ", "\n", "{", "}", ";",
    "let ", "const ", "var ", "return ", "```", "```js\n", "js", "function",
    "e.", "i.", "e", "i", "month", "year", "term", "amount", "'x'", "1", "(", ")",
]


def test_idempotent_on_random_inputs():
    rng = random.Random(20241105)
    for _ in range(3000):
        raw = "".join(rng.choice(_FRAGMENTS) for _ in range(rng.randint(1, 12)))
        once = auto_correct_query(raw)
        assert auto_correct_query(once) == once, raw
