"""Parser and evaluator for workflow branch conditions.

Conditions are a closed boolean/comparison language over literals::

    expr       := or
    or         := and ("||" and)*
    and        := unary ("&&" unary)*
    unary      := "!" unary | comparison
    comparison := primary (("==" | "!=" | "===" | "!==" | "<" | "<=" | ">" | ">=") primary)?
    primary    := NUMBER | STRING | "true" | "false" | "null"

Nothing outside this grammar is accepted; there are no identifiers, calls
or member accesses.
"""

from typing import Any, List, NamedTuple, Optional
import math
import re


class ConditionSyntaxError(ValueError):
    """Raised when a condition falls outside the grammar"""


class Token(NamedTuple):
    kind: str
    value: Any


_TOKEN_RE = re.compile(r"""
    (?P<ws>\s+)
  | (?P<number>-?\d+(?:\.\d+)?)
  | (?P<string>"[^"]*"|'[^']*')
  | (?P<op>===|!==|==|!=|<=|>=|&&|\|\||<|>|!)
  | (?P<word>[A-Za-z_][A-Za-z0-9_]*)
""", re.VERBOSE)

_KEYWORDS = {"true": True, "false": False, "null": None}
_COMPARISONS = ("===", "!==", "==", "!=", "<=", ">=", "<", ">")


def tokenize(source: str) -> List[Token]:
    tokens: List[Token] = []
    pos = 0
    while pos < len(source):
        match = _TOKEN_RE.match(source, pos)
        if not match:
            raise ConditionSyntaxError(f"unexpected character {source[pos]!r} at {pos}")
        pos = match.end()
        kind = match.lastgroup
        text = match.group()
        if kind == "ws":
            continue
        if kind == "number":
            tokens.append(Token("literal", float(text) if "." in text else int(text)))
        elif kind == "string":
            tokens.append(Token("literal", text[1:-1]))
        elif kind == "word":
            if text not in _KEYWORDS:
                raise ConditionSyntaxError(f"unknown name {text!r}")
            tokens.append(Token("literal", _KEYWORDS[text]))
        else:
            tokens.append(Token("op", text))
    return tokens


class _Parser:
    def __init__(self, tokens: List[Token]):
        self.tokens = tokens
        self.pos = 0

    def peek(self) -> Optional[Token]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def take_op(self, *ops: str) -> Optional[str]:
        token = self.peek()
        if token is not None and token.kind == "op" and token.value in ops:
            self.pos += 1
            return token.value
        return None

    def parse(self) -> Any:
        if not self.tokens:
            raise ConditionSyntaxError("empty condition")
        value = self.parse_or()
        if self.peek() is not None:
            raise ConditionSyntaxError(f"unexpected token {self.peek().value!r}")
        return value

    def parse_or(self) -> Any:
        left = self.parse_and()
        while self.take_op("||"):
            right = self.parse_and()
            left = left if _truthy(left) else right
        return left

    def parse_and(self) -> Any:
        left = self.parse_unary()
        while self.take_op("&&"):
            right = self.parse_unary()
            left = right if _truthy(left) else left
        return left

    def parse_unary(self) -> Any:
        if self.take_op("!"):
            return not _truthy(self.parse_unary())
        return self.parse_comparison()

    def parse_comparison(self) -> Any:
        left = self.parse_primary()
        op = self.take_op(*_COMPARISONS)
        if op is None:
            return left
        right = self.parse_primary()
        return compare(op, left, right)

    def parse_primary(self) -> Any:
        token = self.peek()
        if token is None or token.kind != "literal":
            raise ConditionSyntaxError("expected a literal")
        self.pos += 1
        return token.value


def _truthy(value: Any) -> bool:
    if isinstance(value, float) and math.isnan(value):
        return False
    return bool(value)


def _to_number(value: Any) -> float:
    """Numeric coercion for mixed comparisons; NaN when not numeric"""
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    if not text:
        return 0.0
    try:
        return float(text)
    except ValueError:
        return math.nan


def _same_kind(left: Any, right: Any) -> bool:
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool)
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return True
    return type(left) is type(right)


def compare(op: str, left: Any, right: Any) -> bool:
    if op == "===":
        return _same_kind(left, right) and left == right
    if op == "!==":
        return not (_same_kind(left, right) and left == right)

    if op in ("==", "!="):
        if left is None or right is None:
            equal = left is None and right is None
        elif isinstance(left, str) and isinstance(right, str):
            equal = left == right
        else:
            equal = _to_number(left) == _to_number(right)
        return equal if op == "==" else not equal

    if isinstance(left, str) and isinstance(right, str):
        a, b = left, right
    else:
        a, b = _to_number(left), _to_number(right)
        if math.isnan(a) or math.isnan(b):
            return False

    if op == "<":
        return a < b
    if op == "<=":
        return a <= b
    if op == ">":
        return a > b
    return a >= b


def evaluate_expression(source: str) -> bool:
    """Evaluate a substituted condition. Raises ConditionSyntaxError."""
    return _truthy(_Parser(tokenize(source)).parse())
