"""
Restricted predicate language for filter expressions.

PURPOSE:
========
Backends write filters as small JavaScript-style functions:

    e => e.category === 'Groceries' && new Date(e.date).getMonth() === 10

They are never handed to a host evaluator. Instead the text is tokenized,
parsed into an AST and interpreted against one record at a time.

WHAT IS SUPPORTED:
==================
- Forms: `p => expr`, `(p) => expr`, `p => { ... }`, `function (p) { ... }`,
  or a bare expression over the default parameter
- Statements: const/let/var, return, if/else, expression statements
  (a block without return yields its last expression statement)
- Operators: ! - + * / % + - < <= > >= === !== == != && || ?:
- Calls: new Date(x), parseFloat, parseInt, Number, String, Boolean, isNaN,
  Math.abs/round/floor/ceil/min/max, and a fixed set of date, string and
  array methods (see ALLOWED_METHODS)
- Optional chaining: `a?.b`, `a?.[k]`, `a?.m()` give undefined when `a` is
  null or undefined
- Values follow JavaScript rules for equality, comparison, `+`, truthiness
  and dates. All dates are UTC; months are 0-indexed.

Anything else (unknown identifiers, methods, assignment, loops, nested
functions, dunder members) is rejected when the predicate is compiled.

USAGE:
======
    predicate = compile_predicate("e => e.amount > 5000", default_param="e")
    matches = [r for r in records if predicate(r)]
"""
import math
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, NamedTuple, Optional, Tuple, Union


# ============================================================
# ERRORS
# ============================================================

class PredicateError(Exception):
    """Base class for predicate failures."""
    pass


class PredicateSyntaxError(PredicateError):
    """The predicate cannot be compiled (bad syntax or disallowed construct)."""
    pass


class PredicateEvaluationError(PredicateError):
    """The predicate failed while evaluating one record."""
    pass


# ============================================================
# VALUE MODEL
# ============================================================

class _Undefined:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "undefined"

    def __bool__(self):
        return False


UNDEFINED = _Undefined()

# Completion value of statements that produce none (declarations, empty if)
_EMPTY = object()

_EPOCH = datetime(1970, 1, 1)
_MAX_SAFE_INTEGER = 2 ** 53


def _num(value: float) -> Union[int, float]:
    """Collapse integral floats to int so results print as 5, not 5.0."""
    if isinstance(value, float) and value.is_integer() and abs(value) < _MAX_SAFE_INTEGER:
        return int(value)
    return value


class JSDate:
    """A point in time as milliseconds since the epoch (NaN = Invalid Date)."""

    __slots__ = ("ms",)

    def __init__(self, ms: float):
        if not math.isnan(ms):
            try:
                _EPOCH + timedelta(milliseconds=ms)
            except OverflowError:
                ms = math.nan
        self.ms = _num(ms) if not math.isnan(ms) else math.nan

    @classmethod
    def from_datetime(cls, value: datetime) -> "JSDate":
        return cls((value - _EPOCH) / timedelta(milliseconds=1))

    @property
    def valid(self) -> bool:
        return not math.isnan(self.ms)

    def as_datetime(self) -> Optional[datetime]:
        if not self.valid:
            return None
        return _EPOCH + timedelta(milliseconds=self.ms)

    def iso(self) -> str:
        dt = self.as_datetime()
        if dt is None:
            return "Invalid Date"
        return dt.isoformat(timespec="milliseconds") + "Z"

    def __repr__(self):
        return f"JSDate({self.iso()})"


_ISO_DATE = re.compile(r"^(\d{4})(?:-(\d{2})(?:-(\d{2}))?)?$")
_SLASH_DATE = re.compile(r"^(\d{4})/(\d{1,2})/(\d{1,2})$")
_ISO_DATETIME = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})[T ](\d{2}):(\d{2})(?::(\d{2})(?:\.(\d{1,9}))?)?\s*(Z|[+-]\d{2}:?\d{2})?$",
    re.IGNORECASE,
)


def parse_date_string(text: str) -> JSDate:
    """Parse ISO-style date strings as UTC; anything else is Invalid Date."""
    text = text.strip()
    try:
        match = _ISO_DATE.match(text) or _SLASH_DATE.match(text)
        if match:
            year, month, day = match.groups()
            return JSDate.from_datetime(datetime(int(year), int(month or 1), int(day or 1)))

        match = _ISO_DATETIME.match(text)
        if match:
            year, month, day, hour, minute, second, fraction, offset = match.groups()
            micro = int((fraction or "0")[:6].ljust(6, "0"))
            value = datetime(int(year), int(month), int(day), int(hour), int(minute),
                             int(second or 0), micro)
            if offset and offset.upper() != "Z":
                sign = -1 if offset[0] == "-" else 1
                digits = offset[1:].replace(":", "")
                value -= sign * timedelta(hours=int(digits[:2]), minutes=int(digits[2:]))
            return JSDate.from_datetime(value)
    except (ValueError, OverflowError):
        pass
    return JSDate(math.nan)


def make_date(args: List[Any]) -> JSDate:
    """Semantics of `new Date(...)` with at least one argument."""
    if len(args) == 1:
        value = args[0]
        if isinstance(value, JSDate):
            return JSDate(value.ms)
        value = to_primitive(value)
        if isinstance(value, str):
            return parse_date_string(value)
        number = to_number(value)
        if math.isnan(number) or math.isinf(number):
            return JSDate(math.nan)
        return JSDate(float(number))

    # new Date(year, monthIndex, day, hours, minutes, seconds, ms)
    parts = [to_number(a) for a in args[:7]]
    if any(math.isnan(p) or math.isinf(p) for p in parts):
        return JSDate(math.nan)
    parts = [int(p) for p in parts] + [0] * (7 - len(parts))
    year, month, day, hours, minutes, seconds, millis = parts
    if len(args) < 3:
        day = 1
    year += month // 12
    month %= 12
    try:
        value = datetime(year, month + 1, 1) + timedelta(
            days=day - 1, hours=hours, minutes=minutes, seconds=seconds, milliseconds=millis
        )
    except (ValueError, OverflowError):
        return JSDate(math.nan)
    return JSDate.from_datetime(value)


def js_type(value: Any) -> str:
    if value is UNDEFINED:
        return "undefined"
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, JSDate):
        return "date"
    if isinstance(value, (list, tuple)):
        return "array"
    return "object"


_OBJECT_TYPES = ("date", "array", "object")


def format_number(value: Union[int, float]) -> str:
    if isinstance(value, int):
        return str(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    return repr(value)


def to_string(value: Any) -> str:
    kind = js_type(value)
    if kind == "undefined":
        return "undefined"
    if kind == "null":
        return "null"
    if kind == "boolean":
        return "true" if value else "false"
    if kind == "number":
        return format_number(value)
    if kind == "string":
        return value
    if kind == "date":
        return value.iso()
    if kind == "array":
        return ",".join("" if item is None or item is UNDEFINED else to_string(item) for item in value)
    return "[object Object]"


def to_primitive(value: Any, hint: str = "default") -> Any:
    kind = js_type(value)
    if kind == "date":
        return value.ms if hint == "number" else value.iso()
    if kind in ("array", "object"):
        return to_string(value)
    return value


_NUMERIC_LITERAL = re.compile(r"[+-]?(?:Infinity|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")
_HEX_LITERAL = re.compile(r"0[xX][0-9a-fA-F]+")


def to_number(value: Any) -> Union[int, float]:
    kind = js_type(value)
    if kind == "undefined":
        return math.nan
    if kind == "null":
        return 0
    if kind == "boolean":
        return int(value)
    if kind == "number":
        return value
    if kind == "string":
        text = value.strip()
        if not text:
            return 0
        if _NUMERIC_LITERAL.fullmatch(text):
            return parse_float(text)
        if _HEX_LITERAL.fullmatch(text):
            return int(text, 16)
        return math.nan
    return to_number(to_primitive(value, "number"))


def truthy(value: Any) -> bool:
    kind = js_type(value)
    if kind in ("undefined", "null"):
        return False
    if kind == "boolean":
        return value
    if kind == "number":
        return value != 0 and not math.isnan(value)
    if kind == "string":
        return value != ""
    return True


def parse_float(value: Any) -> Union[int, float]:
    """JavaScript parseFloat: longest numeric prefix, NaN when there is none."""
    if js_type(value) == "number":
        return value
    match = _NUMERIC_LITERAL.match(to_string(value).lstrip())
    if not match:
        return math.nan
    text = match.group(0)
    if text.endswith("Infinity"):
        return -math.inf if text.startswith("-") else math.inf
    if re.fullmatch(r"[+-]?\d+", text):
        return int(text)
    return _num(float(text))


_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def parse_int(value: Any = UNDEFINED, radix: Any = UNDEFINED) -> Union[int, float]:
    """JavaScript parseInt."""
    text = to_string(value).strip()
    sign = 1
    if text[:1] in ("+", "-"):
        sign = -1 if text[0] == "-" else 1
        text = text[1:]

    base = 0 if radix is UNDEFINED else to_number(radix)
    base = 0 if math.isnan(base) or math.isinf(base) else int(base)
    if base == 0:
        base = 10
        if text[:2].lower() == "0x":
            base, text = 16, text[2:]
    elif base == 16 and text[:2].lower() == "0x":
        text = text[2:]
    if base < 2 or base > 36:
        return math.nan

    digits = ""
    for ch in text:
        digit = _DIGITS.find(ch.lower()) if len(ch.lower()) == 1 else -1
        if digit < 0 or digit >= base:
            break
        digits += ch
    if not digits:
        return math.nan
    return sign * int(digits, base)


def strict_equals(a: Any, b: Any) -> bool:
    kind = js_type(a)
    if kind != js_type(b):
        return False
    if kind in ("undefined", "null"):
        return True
    if kind in ("number", "string", "boolean"):
        return a == b
    return a is b


def loose_equals(a: Any, b: Any) -> bool:
    ta, tb = js_type(a), js_type(b)
    if ta == tb:
        return strict_equals(a, b)
    if {ta, tb} == {"null", "undefined"}:
        return True
    if ta == "number" and tb == "string":
        return a == to_number(b)
    if ta == "string" and tb == "number":
        return to_number(a) == b
    if ta == "boolean":
        return loose_equals(to_number(a), b)
    if tb == "boolean":
        return loose_equals(a, to_number(b))
    if ta in _OBJECT_TYPES and tb in ("number", "string"):
        return loose_equals(to_primitive(a), b)
    if tb in _OBJECT_TYPES and ta in ("number", "string"):
        return loose_equals(a, to_primitive(b))
    return False


def same_value_zero(a: Any, b: Any) -> bool:
    if js_type(a) == "number" and js_type(b) == "number" and math.isnan(a) and math.isnan(b):
        return True
    return strict_equals(a, b)


def _less_than(a: Any, b: Any) -> Optional[bool]:
    """Abstract relational comparison; None when either side is NaN."""
    pa, pb = to_primitive(a, "number"), to_primitive(b, "number")
    if isinstance(pa, str) and isinstance(pb, str):
        return pa < pb
    x, y = to_number(pa), to_number(pb)
    if math.isnan(x) or math.isnan(y):
        return None
    return x < y


def _add(a: Any, b: Any) -> Any:
    pa, pb = to_primitive(a), to_primitive(b)
    if isinstance(pa, str) or isinstance(pb, str):
        return to_string(pa) + to_string(pb)
    return _num(to_number(pa) + to_number(pb))


def _divide(x: Union[int, float], y: Union[int, float]) -> Union[int, float]:
    if y == 0:
        if x == 0 or math.isnan(x):
            return math.nan
        return math.copysign(math.inf, x) * math.copysign(1, y)
    return _num(x / y)


def _modulo(x: Union[int, float], y: Union[int, float]) -> Union[int, float]:
    if y == 0 or math.isnan(x) or math.isnan(y) or math.isinf(x):
        return math.nan
    if math.isinf(y):
        return x
    return _num(math.fmod(x, y))


def _binary(op: str, a: Any, b: Any) -> Any:
    if op == "===":
        return strict_equals(a, b)
    if op == "!==":
        return not strict_equals(a, b)
    if op == "==":
        return loose_equals(a, b)
    if op == "!=":
        return not loose_equals(a, b)
    if op == "<":
        return _less_than(a, b) is True
    if op == ">":
        return _less_than(b, a) is True
    if op == "<=":
        return _less_than(b, a) is False
    if op == ">=":
        return _less_than(a, b) is False
    if op == "+":
        return _add(a, b)

    x, y = to_number(a), to_number(b)
    if op == "-":
        return _num(x - y)
    if op == "*":
        return _num(x * y)
    if op == "/":
        return _divide(x, y)
    if op == "%":
        return _modulo(x, y)
    raise PredicateEvaluationError(f"Unsupported operator: {op}")


# ============================================================
# BUILT-INS
# ============================================================

def _finite_op(fn):
    def apply(value: Any = UNDEFINED, *_):
        number = to_number(value)
        if math.isnan(number) or math.isinf(number):
            return number
        return _num(fn(number))
    return apply


def _math_min(*args):
    numbers = [to_number(a) for a in args]
    if any(math.isnan(n) for n in numbers):
        return math.nan
    return min(numbers, default=math.inf)


def _math_max(*args):
    numbers = [to_number(a) for a in args]
    if any(math.isnan(n) for n in numbers):
        return math.nan
    return max(numbers, default=-math.inf)


GLOBAL_FUNCTIONS = {
    "parseFloat": lambda value=UNDEFINED, *_: parse_float(value),
    "parseInt": parse_int,
    "Number": lambda value=0, *_: to_number(value),
    "String": lambda value="", *_: to_string(value),
    "Boolean": lambda value=False, *_: truthy(value),
    "isNaN": lambda value=UNDEFINED, *_: math.isnan(to_number(value)),
}

MATH_FUNCTIONS = {
    "abs": lambda value=UNDEFINED, *_: _num(abs(to_number(value))),
    "round": _finite_op(lambda x: math.floor(x + 0.5)),
    "floor": _finite_op(math.floor),
    "ceil": _finite_op(math.ceil),
    "min": _math_min,
    "max": _math_max,
}


def _date_method(name: str, date: JSDate) -> Union[int, float, str]:
    if name == "toISOString":
        if not date.valid:
            raise PredicateEvaluationError("Invalid time value")
        return date.iso()
    dt = date.as_datetime()
    if dt is None:
        return math.nan
    if name == "getMonth":
        return dt.month - 1
    if name == "getFullYear":
        return dt.year
    if name == "getDate":
        return dt.day
    if name == "getDay":
        return (dt.weekday() + 1) % 7
    return date.ms


def _to_index(value: Any, default: Union[int, float]) -> Union[int, float]:
    """ToIntegerOrInfinity for slice-style arguments; undefined gives the default."""
    if value is UNDEFINED:
        return default
    number = to_number(value)
    if math.isnan(number):
        return 0
    if math.isinf(number):
        return number
    return int(number)


def _slice(items: Union[str, List[Any]], args: List[Any]) -> Union[str, List[Any]]:
    length = len(items)

    def resolve(index):
        if index < 0:
            return int(max(length + index, 0))
        return int(min(index, length))

    start = resolve(_to_index(args[0] if args else UNDEFINED, 0))
    end = resolve(_to_index(args[1] if len(args) > 1 else UNDEFINED, length))
    return items[start:max(start, end)]


def _substring(text: str, args: List[Any]) -> str:
    length = len(text)
    start = _to_index(args[0] if args else UNDEFINED, 0)
    end = _to_index(args[1] if len(args) > 1 else UNDEFINED, length)
    start, end = (int(min(max(i, 0), length)) for i in (start, end))
    if start > end:
        start, end = end, start
    return text[start:end]


def _split(text: str, args: List[Any]) -> List[str]:
    separator = args[0] if args else UNDEFINED
    if separator is UNDEFINED:
        parts = [text]
    else:
        separator = to_string(separator)
        parts = list(text) if separator == "" else text.split(separator)
    limit = args[1] if len(args) > 1 else UNDEFINED
    if limit is not UNDEFINED:
        number = to_number(limit)
        number = 0 if math.isnan(number) or math.isinf(number) else int(number) % 2 ** 32
        parts = parts[:number]
    return parts


def _string_method(name: str, text: str, args: List[Any]) -> Any:
    if name == "toLowerCase":
        return text.lower()
    if name == "toUpperCase":
        return text.upper()
    if name == "trim":
        return text.strip()
    if name == "slice":
        return _slice(text, args)
    if name == "substring":
        return _substring(text, args)
    if name == "split":
        return _split(text, args)
    needle = to_string(args[0]) if args else "undefined"
    if name == "includes":
        return needle in text
    if name == "startsWith":
        return text.startswith(needle)
    if name == "endsWith":
        return text.endswith(needle)
    return text.find(needle)


def _array_method(name: str, items: List[Any], args: List[Any]) -> Any:
    if name == "slice":
        return _slice(items, args)
    target = args[0] if args else UNDEFINED
    if name == "includes":
        return any(same_value_zero(item, target) for item in items)
    for index, item in enumerate(items):
        if strict_equals(item, target):
            return index
    return -1


DATE_METHODS = frozenset({"getMonth", "getFullYear", "getDate", "getDay", "getTime", "toISOString"})
STRING_METHODS = frozenset({
    "toLowerCase", "toUpperCase", "trim", "includes", "startsWith", "endsWith", "indexOf",
    "slice", "substring", "split",
})
ARRAY_METHODS = frozenset({"includes", "indexOf", "slice"})
ALLOWED_METHODS = DATE_METHODS | STRING_METHODS | ARRAY_METHODS

_LITERALS = {
    "true": True,
    "false": False,
    "null": None,
    "undefined": UNDEFINED,
    "NaN": math.nan,
    "Infinity": math.inf,
}

_KEYWORDS = frozenset({
    "const", "let", "var", "return", "if", "else", "function", "new", "this",
    "typeof", "instanceof", "in", "of", "delete", "void", "while", "for", "do",
    "class", "import", "export", "throw", "try", "catch", "finally", "yield",
    "await", "async", "switch", "case", "break", "continue", "default", "with", "super",
})

_RESERVED_NAMES = _KEYWORDS | set(_LITERALS) | set(GLOBAL_FUNCTIONS) | {"Math", "Date"}


# ============================================================
# TOKENIZER
# ============================================================

class Token(NamedTuple):
    kind: str      # num | str | name | op | eof
    value: Any
    pos: int


_TOKEN_SPEC = [
    ("ws", r"\s+"),
    ("comment", r"//[^\n]*|/\*[\s\S]*?\*/"),
    ("num", r"0[xX][0-9a-fA-F]+|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?"),
    ("str", r"'(?:[^'\\\n]|\\.)*'|\"(?:[^\"\\\n]|\\.)*\""),
    ("name", r"[A-Za-z_$][A-Za-z0-9_$]*"),
    ("op", r"===|!==|=>|==|!=|<=|>=|&&|\|\||\?\.(?!\d)|[()\[\]{}.,;:?!<>+\-*/%=]"),
]
_MASTER = re.compile("|".join(f"(?P<{name}>{pattern})" for name, pattern in _TOKEN_SPEC))

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "v": "\v", "0": "\0"}
_ESCAPE_RE = re.compile(r"\\(u[0-9a-fA-F]{4}|x[0-9a-fA-F]{2}|[\s\S])")


def _unescape(body: str) -> str:
    def replace(match):
        seq = match.group(1)
        if len(seq) > 1:
            return chr(int(seq[1:], 16))
        return _ESCAPES.get(seq, seq)
    return _ESCAPE_RE.sub(replace, body)


def tokenize(source: str) -> List[Token]:
    tokens: List[Token] = []
    pos = 0
    while pos < len(source):
        match = _MASTER.match(source, pos)
        if not match:
            raise PredicateSyntaxError(f"Unexpected character {source[pos]!r} at position {pos}")
        kind, text = match.lastgroup, match.group()
        if kind == "num":
            if text[:2].lower() == "0x":
                tokens.append(Token("num", int(text, 16), pos))
            elif any(c in text for c in ".eE"):
                tokens.append(Token("num", _num(float(text)), pos))
            else:
                tokens.append(Token("num", int(text), pos))
        elif kind == "str":
            tokens.append(Token("str", _unescape(text[1:-1]), pos))
        elif kind in ("name", "op"):
            tokens.append(Token(kind, text, pos))
        pos = match.end()
    tokens.append(Token("eof", None, pos))
    return tokens


# ============================================================
# AST
# ============================================================

@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class Identifier:
    name: str


@dataclass(frozen=True)
class ArrayLiteral:
    elements: Tuple[Any, ...]


@dataclass(frozen=True)
class Member:
    obj: Any
    key: Any                # Literal for .name, any expression for [expr]
    optional: bool = False


@dataclass(frozen=True)
class Unary:
    op: str
    operand: Any


@dataclass(frozen=True)
class Binary:
    op: str
    left: Any
    right: Any


@dataclass(frozen=True)
class Logical:
    op: str
    left: Any
    right: Any


@dataclass(frozen=True)
class Conditional:
    test: Any
    consequent: Any
    alternate: Any


@dataclass(frozen=True)
class Call:
    name: str
    args: Tuple[Any, ...]


@dataclass(frozen=True)
class MathCall:
    name: str
    args: Tuple[Any, ...]


@dataclass(frozen=True)
class MethodCall:
    obj: Any
    method: str
    args: Tuple[Any, ...]
    optional: bool = False


@dataclass(frozen=True)
class OptionalChain:
    expr: Any               # a Member/MethodCall chain containing ?.


@dataclass(frozen=True)
class NewDate:
    args: Tuple[Any, ...]


@dataclass(frozen=True)
class VarDecl:
    declarations: Tuple[Tuple[str, Any], ...]


@dataclass(frozen=True)
class Return:
    value: Any


@dataclass(frozen=True)
class If:
    test: Any
    consequent: Any
    alternate: Any


@dataclass(frozen=True)
class ExprStmt:
    expr: Any


@dataclass(frozen=True)
class Block:
    body: Tuple[Any, ...]


@dataclass(frozen=True)
class FunctionNode:
    params: Tuple[str, ...]
    body: Any               # Block or a single expression


# ============================================================
# PARSER
# ============================================================

_BINARY_PRECEDENCE = [
    ("||",),
    ("&&",),
    ("===", "!==", "==", "!="),
    ("<", "<=", ">", ">="),
    ("+", "-"),
    ("*", "/", "%"),
]


class Parser:
    """Recursive-descent parser producing a FunctionNode."""

    def __init__(self, source: str, default_param: str):
        self.source = source
        self.tokens = tokenize(source)
        self.index = 0
        self.default_param = default_param
        self.scope: set = set()

    # -- token helpers -------------------------------------------------

    def peek(self, offset: int = 0) -> Token:
        return self.tokens[min(self.index + offset, len(self.tokens) - 1)]

    def advance(self) -> Token:
        token = self.peek()
        self.index += 1
        return token

    def at(self, value: str, offset: int = 0) -> bool:
        token = self.peek(offset)
        return token.kind in ("op", "name") and token.value == value

    def accept(self, value: str) -> bool:
        if self.at(value):
            self.advance()
            return True
        return False

    def expect(self, value: str) -> Token:
        if not self.at(value):
            self.error(f"Expected {value!r}")
        return self.advance()

    def error(self, message: str, token: Optional[Token] = None):
        token = token or self.peek()
        found = "end of input" if token.kind == "eof" else repr(token.value)
        raise PredicateSyntaxError(f"{message} at position {token.pos} (found {found})")

    # -- entry point ---------------------------------------------------

    def parse(self) -> FunctionNode:
        if self.at("function"):
            function = self._parse_function_expression()
        elif self._is_arrow_start():
            function = self._parse_arrow()
        else:
            self._bind(self.default_param)
            function = FunctionNode((self.default_param,), self.parse_expression())

        self.accept(";")
        if self.peek().kind != "eof":
            self.error("Unexpected trailing input")
        return function

    def _is_arrow_start(self) -> bool:
        if self.peek().kind == "name" and self.at("=>", 1):
            return True
        if not self.at("("):
            return False
        offset = 1
        while True:
            token = self.peek(offset)
            if token.kind == "name":
                offset += 1
                if self.at(",", offset):
                    offset += 1
                    continue
            if self.at(")", offset):
                return self.at("=>", offset + 1)
            return False

    def _parse_params(self) -> Tuple[str, ...]:
        params: List[str] = []
        if self.accept("("):
            while not self.at(")"):
                params.append(self._parse_binding_name())
                if not self.accept(","):
                    break
            self.expect(")")
        else:
            params.append(self._parse_binding_name())
        for name in params:
            self._bind(name)
        return tuple(params)

    def _parse_arrow(self) -> FunctionNode:
        params = self._parse_params()
        self.expect("=>")
        if self.at("{"):
            return FunctionNode(params, self.parse_block())
        return FunctionNode(params, self.parse_expression())

    def _parse_function_expression(self) -> FunctionNode:
        self.expect("function")
        if self.peek().kind == "name":
            self._parse_binding_name()
        if not self.at("("):
            self.error("Expected '('")
        params = self._parse_params()
        return FunctionNode(params, self.parse_block())

    def _parse_binding_name(self) -> str:
        token = self.advance()
        if token.kind != "name":
            self.error("Expected a name", token)
        self._check_name(token.value, token)
        if token.value in _RESERVED_NAMES:
            self.error(f"Reserved name {token.value!r} cannot be declared", token)
        return token.value

    def _check_name(self, name: str, token: Token) -> None:
        if name.startswith("__"):
            self.error(f"Access to {name!r} is not allowed", token)

    def _bind(self, name: str) -> None:
        self.scope.add(name)

    # -- statements ----------------------------------------------------

    def parse_block(self) -> Block:
        self.expect("{")
        body = []
        while not self.at("}"):
            if self.peek().kind == "eof":
                self.error("Unterminated block")
            body.append(self.parse_statement())
        self.expect("}")
        return Block(tuple(body))

    def parse_statement(self):
        if self.at("{"):
            return self.parse_block()
        if self.accept(";"):
            return Block(())
        if self.peek().kind == "name" and self.peek().value in ("const", "let", "var"):
            return self._parse_declaration()
        if self.accept("return"):
            value = None
            if not (self.at(";") or self.at("}") or self.peek().kind == "eof"):
                value = self.parse_expression()
            self.accept(";")
            return Return(value)
        if self.accept("if"):
            self.expect("(")
            test = self.parse_expression()
            self.expect(")")
            consequent = self.parse_statement()
            alternate = self.parse_statement() if self.accept("else") else None
            return If(test, consequent, alternate)

        expr = self.parse_expression()
        self.accept(";")
        return ExprStmt(expr)

    def _parse_declaration(self) -> VarDecl:
        self.advance()
        declarations = []
        while True:
            name = self._parse_binding_name()
            init = self.parse_expression() if self.accept("=") else None
            self._bind(name)
            declarations.append((name, init))
            if not self.accept(","):
                break
        self.accept(";")
        return VarDecl(tuple(declarations))

    # -- expressions ---------------------------------------------------

    def parse_expression(self):
        test = self._parse_binary(0)
        if self.accept("?"):
            consequent = self.parse_expression()
            self.expect(":")
            alternate = self.parse_expression()
            return Conditional(test, consequent, alternate)
        return test

    def _parse_binary(self, level: int):
        if level == len(_BINARY_PRECEDENCE):
            return self._parse_unary()
        operators = _BINARY_PRECEDENCE[level]
        left = self._parse_binary(level + 1)
        while self.peek().kind == "op" and self.peek().value in operators:
            op = self.advance().value
            right = self._parse_binary(level + 1)
            left = Logical(op, left, right) if op in ("&&", "||") else Binary(op, left, right)
        return left

    def _parse_unary(self):
        if self.peek().kind == "op" and self.peek().value in ("!", "-", "+"):
            op = self.advance().value
            return Unary(op, self._parse_unary())
        return self._parse_postfix()

    def _parse_arguments(self) -> Tuple[Any, ...]:
        self.expect("(")
        args = []
        while not self.at(")"):
            args.append(self.parse_expression())
            if not self.accept(","):
                break
        self.expect(")")
        return tuple(args)

    def _parse_postfix(self):
        node = self._parse_primary()
        chained = False
        while True:
            optional = self.accept("?.")
            if optional and self.accept("["):
                node = self._parse_index(node, optional)
            elif optional or self.accept("."):
                token = self.advance()
                if token.kind != "name":
                    self.error("Expected a property name", token)
                self._check_name(token.value, token)
                if self.at("("):
                    if token.value not in ALLOWED_METHODS:
                        self.error(f"Method {token.value!r} is not allowed", token)
                    node = MethodCall(node, token.value, self._parse_arguments(), optional)
                else:
                    node = Member(node, Literal(token.value), optional)
            elif self.accept("["):
                node = self._parse_index(node, False)
            elif self.at("("):
                self.error("Only built-in functions can be called")
            else:
                return OptionalChain(node) if chained else node
            chained = chained or optional

    def _parse_index(self, node, optional: bool) -> Member:
        key = self.parse_expression()
        self.expect("]")
        return Member(node, key, optional)

    def _parse_primary(self):
        token = self.advance()

        if token.kind in ("num", "str"):
            return Literal(token.value)

        if token.kind == "name":
            name = token.value
            if name in _LITERALS:
                return Literal(_LITERALS[name])
            if name == "new":
                callee = self.advance()
                if callee.kind != "name" or callee.value != "Date":
                    self.error("Only 'new Date(...)' is allowed", callee)
                args = self._parse_arguments()
                if not args:
                    self.error("new Date() needs an argument", callee)
                return NewDate(args)
            if name == "Math":
                self.expect(".")
                fn = self.advance()
                if fn.kind != "name" or fn.value not in MATH_FUNCTIONS:
                    self.error("Unsupported Math function", fn)
                return MathCall(fn.value, self._parse_arguments())
            if name in GLOBAL_FUNCTIONS:
                if not self.at("("):
                    self.error(f"{name} can only be called")
                return Call(name, self._parse_arguments())
            if name in self.scope:
                return Identifier(name)
            self.error(f"Unknown identifier {name!r}", token)

        if token.kind == "op" and token.value == "(":
            expr = self.parse_expression()
            self.expect(")")
            return expr

        if token.kind == "op" and token.value == "[":
            elements = []
            while not self.at("]"):
                elements.append(self.parse_expression())
                if not self.accept(","):
                    break
            self.expect("]")
            return ArrayLiteral(tuple(elements))

        self.error("Unexpected token", token)


# ============================================================
# INTERPRETER
# ============================================================

def get_member(obj: Any, key: Any) -> Any:
    """Property read with JavaScript semantics over plain records."""
    name = to_string(key)
    if obj is None or obj is UNDEFINED:
        raise PredicateEvaluationError(
            f"Cannot read properties of {to_string(obj)} (reading '{name}')"
        )
    if name.startswith("__"):
        raise PredicateEvaluationError(f"Access to {name!r} is not allowed")

    if isinstance(obj, dict):
        return obj.get(name, UNDEFINED)
    if isinstance(obj, (str, list, tuple)):
        if name == "length":
            return len(obj)
        if name.isdigit() and int(name) < len(obj):
            return obj[int(name)]
    return UNDEFINED


class _ShortCircuit(Exception):
    """Raised inside an optional chain whose base is null or undefined."""


class Interpreter:
    """Evaluates a FunctionNode against one record."""

    def __init__(self, function: FunctionNode):
        self.function = function

    def run(self, record: Any) -> Any:
        env: Dict[str, Any] = {}
        params = self.function.params
        for index, name in enumerate(params):
            env[name] = record if index == 0 else UNDEFINED

        body = self.function.body
        if isinstance(body, Block):
            _, value = self.execute(body, env)
            return UNDEFINED if value is _EMPTY else value
        return self.evaluate(body, env)

    # -- statements ----------------------------------------------------

    def execute(self, node, env) -> Tuple[bool, Any]:
        """Run a statement; returns (returned, completion value)."""
        return getattr(self, f"_exec_{type(node).__name__}")(node, env)

    def _exec_Block(self, node: Block, env):
        completion = _EMPTY
        for statement in node.body:
            returned, value = self.execute(statement, env)
            if returned:
                return True, value
            if value is not _EMPTY:
                completion = value
        return False, completion

    def _exec_VarDecl(self, node: VarDecl, env):
        for name, init in node.declarations:
            env[name] = UNDEFINED if init is None else self.evaluate(init, env)
        return False, _EMPTY

    def _exec_Return(self, node: Return, env):
        return True, UNDEFINED if node.value is None else self.evaluate(node.value, env)

    def _exec_If(self, node: If, env):
        if truthy(self.evaluate(node.test, env)):
            return self.execute(node.consequent, env)
        if node.alternate is not None:
            return self.execute(node.alternate, env)
        return False, _EMPTY

    def _exec_ExprStmt(self, node: ExprStmt, env):
        return False, self.evaluate(node.expr, env)

    # -- expressions ---------------------------------------------------

    def evaluate(self, node, env) -> Any:
        return getattr(self, f"_eval_{type(node).__name__}")(node, env)

    def _eval_Literal(self, node: Literal, env):
        return node.value

    def _eval_Identifier(self, node: Identifier, env):
        if node.name not in env:
            raise PredicateEvaluationError(f"{node.name} is not defined")
        return env[node.name]

    def _eval_ArrayLiteral(self, node: ArrayLiteral, env):
        return [self.evaluate(element, env) for element in node.elements]

    def _eval_Member(self, node: Member, env):
        obj = self.evaluate(node.obj, env)
        if node.optional and (obj is None or obj is UNDEFINED):
            raise _ShortCircuit()
        return get_member(obj, self.evaluate(node.key, env))

    def _eval_OptionalChain(self, node: OptionalChain, env):
        try:
            return self.evaluate(node.expr, env)
        except _ShortCircuit:
            return UNDEFINED

    def _eval_Unary(self, node: Unary, env):
        value = self.evaluate(node.operand, env)
        if node.op == "!":
            return not truthy(value)
        number = to_number(value)
        return _num(-number) if node.op == "-" else number

    def _eval_Binary(self, node: Binary, env):
        return _binary(node.op, self.evaluate(node.left, env), self.evaluate(node.right, env))

    def _eval_Logical(self, node: Logical, env):
        left = self.evaluate(node.left, env)
        if node.op == "&&":
            return self.evaluate(node.right, env) if truthy(left) else left
        return left if truthy(left) else self.evaluate(node.right, env)

    def _eval_Conditional(self, node: Conditional, env):
        if truthy(self.evaluate(node.test, env)):
            return self.evaluate(node.consequent, env)
        return self.evaluate(node.alternate, env)

    def _eval_Call(self, node: Call, env):
        args = [self.evaluate(arg, env) for arg in node.args]
        return GLOBAL_FUNCTIONS[node.name](*args)

    def _eval_MathCall(self, node: MathCall, env):
        args = [self.evaluate(arg, env) for arg in node.args]
        return MATH_FUNCTIONS[node.name](*args)

    def _eval_NewDate(self, node: NewDate, env):
        return make_date([self.evaluate(arg, env) for arg in node.args])

    def _eval_MethodCall(self, node: MethodCall, env):
        target = self.evaluate(node.obj, env)
        method = node.method
        if node.optional and (target is None or target is UNDEFINED):
            raise _ShortCircuit()
        args = [self.evaluate(arg, env) for arg in node.args]

        if target is None or target is UNDEFINED:
            raise PredicateEvaluationError(
                f"Cannot read properties of {to_string(target)} (reading '{method}')"
            )
        if isinstance(target, JSDate) and method in DATE_METHODS:
            return _date_method(method, target)
        if isinstance(target, str) and method in STRING_METHODS:
            return _string_method(method, target, args)
        if isinstance(target, (list, tuple)) and method in ARRAY_METHODS:
            return _array_method(method, list(target), args)
        raise PredicateEvaluationError(f"{js_type(target)}.{method} is not a function")


# ============================================================
# PUBLIC API
# ============================================================

class CompiledPredicate:
    """A compiled single-argument predicate; call it with a record."""

    def __init__(self, source: str, function: FunctionNode):
        self.source = source
        self.function = function
        self._interpreter = Interpreter(function)

    @property
    def param(self) -> Optional[str]:
        return self.function.params[0] if self.function.params else None

    def evaluate(self, record: Any) -> Any:
        """Raw (JavaScript-typed) return value for one record."""
        try:
            return self._interpreter.run(record)
        except (RecursionError, OverflowError) as e:
            raise PredicateEvaluationError(str(e)) from e

    def __call__(self, record: Any) -> bool:
        return truthy(self.evaluate(record))

    def __repr__(self):
        return f"CompiledPredicate({self.source!r})"


def compile_predicate(source: str, default_param: str = "e") -> CompiledPredicate:
    """
    Compile predicate text into a callable.

    Args:
        source: Predicate text (arrow function, function, or bare expression)
        default_param: Parameter name for bare expressions ("e" or "i")

    Raises:
        PredicateSyntaxError: Bad syntax or a disallowed construct
    """
    if not source or not source.strip():
        raise PredicateSyntaxError("Empty filter expression")
    try:
        function = Parser(source.strip(), default_param).parse()
    except RecursionError as e:
        raise PredicateSyntaxError("Filter expression is nested too deeply") from e
    return CompiledPredicate(source, function)
