# matterflow/core/expressions.py
"""
Boolean condition language for stage branching rules.

    expr       := and_expr ("OR" and_expr)*
    and_expr   := term ("AND" term)*
    term       := comparison | "(" expr ")"
    comparison := FIELD OP literal | FIELD "IS" ["NOT"] "EMPTY"
    OP         := == | != | > | >= | < | <= | CONTAINS | IN
    literal    := number | 'string' | "string" | true | false | null | [literal, ...]

FIELD is a dotted path into the evaluation context (``client.type``).
Keywords are case-insensitive. Parsing is a single pass with bounded nesting,
evaluation only reads the context, so any parsed rule terminates.

Missing fields make a comparison false (``IS EMPTY`` is true for them) and
ordering comparisons between mismatched types are false rather than errors.
"""
import re
from dataclasses import dataclass
from typing import Any, List, Mapping, Tuple, Union

MAX_EXPRESSION_LENGTH = 4096
MAX_NESTING_DEPTH = 32

KEYWORDS = {"AND", "OR", "CONTAINS", "IN", "IS", "NOT", "EMPTY", "TRUE", "FALSE", "NULL"}
COMPARATORS = {"==", "!=", ">", ">=", "<", "<=", "CONTAINS", "IN"}

_TOKEN_RE = re.compile(r"""
    (?P<ws>\s+)
  | (?P<op>==|!=|>=|<=|>|<)
  | (?P<number>-?\d+(?:\.\d+)?)
  | (?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
  | (?P<name>[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)*)
  | (?P<punct>[()\[\],])
""", re.VERBOSE)

_MISSING = object()


class ExpressionError(ValueError):
    """Raised when a condition expression cannot be parsed"""

    def __init__(self, message: str, position: int = -1):
        self.position = position
        if position >= 0:
            message = f"{message} (at position {position})"
        super().__init__(message)


@dataclass(frozen=True)
class Token:
    kind: str
    value: Any
    position: int


@dataclass(frozen=True)
class Comparison:
    field: str
    op: str
    value: Any


@dataclass(frozen=True)
class EmptyCheck:
    field: str
    negate: bool


@dataclass(frozen=True)
class BoolOp:
    op: str
    operands: Tuple["Node", ...]


Node = Union[Comparison, EmptyCheck, BoolOp]


def tokenize(text: str) -> List[Token]:
    tokens: List[Token] = []
    pos = 0
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if match is None:
            raise ExpressionError(f"Unexpected character {text[pos]!r}", pos)
        kind = match.lastgroup
        raw = match.group()
        if kind == "number":
            tokens.append(Token("literal", float(raw) if "." in raw else int(raw), pos))
        elif kind == "string":
            body = raw[1:-1]
            tokens.append(Token("literal", re.sub(r"\\(.)", r"\1", body), pos))
        elif kind == "name":
            upper = raw.upper()
            if upper in ("TRUE", "FALSE"):
                tokens.append(Token("literal", upper == "TRUE", pos))
            elif upper == "NULL":
                tokens.append(Token("literal", None, pos))
            elif upper in KEYWORDS:
                tokens.append(Token("keyword", upper, pos))
            else:
                tokens.append(Token("field", raw, pos))
        elif kind in ("op", "punct"):
            tokens.append(Token(kind, raw, pos))
        pos = match.end()
    tokens.append(Token("end", None, len(text)))
    return tokens


class _Parser:
    def __init__(self, tokens: List[Token]):
        self.tokens = tokens
        self.index = 0
        self.depth = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def advance(self) -> Token:
        token = self.tokens[self.index]
        self.index += 1
        return token

    def accept_keyword(self, word: str) -> bool:
        if self.current.kind == "keyword" and self.current.value == word:
            self.index += 1
            return True
        return False

    def expect_punct(self, char: str) -> None:
        if self.current.kind != "punct" or self.current.value != char:
            raise ExpressionError(f"Expected {char!r}", self.current.position)
        self.index += 1

    def parse(self) -> Node:
        node = self.parse_or()
        if self.current.kind != "end":
            raise ExpressionError(f"Unexpected token {self.current.value!r}", self.current.position)
        return node

    def parse_or(self) -> Node:
        operands = [self.parse_and()]
        while self.accept_keyword("OR"):
            operands.append(self.parse_and())
        return operands[0] if len(operands) == 1 else BoolOp("OR", tuple(operands))

    def parse_and(self) -> Node:
        operands = [self.parse_term()]
        while self.accept_keyword("AND"):
            operands.append(self.parse_term())
        return operands[0] if len(operands) == 1 else BoolOp("AND", tuple(operands))

    def parse_term(self) -> Node:
        token = self.current
        if token.kind == "punct" and token.value == "(":
            self.depth += 1
            if self.depth > MAX_NESTING_DEPTH:
                raise ExpressionError("Expression nested too deeply", token.position)
            self.advance()
            node = self.parse_or()
            self.expect_punct(")")
            self.depth -= 1
            return node
        if token.kind == "field":
            return self.parse_comparison()
        raise ExpressionError("Expected a field name or '('", token.position)

    def parse_comparison(self) -> Node:
        field = self.advance().value

        if self.accept_keyword("IS"):
            negate = self.accept_keyword("NOT")
            if not self.accept_keyword("EMPTY"):
                raise ExpressionError("Expected EMPTY after IS", self.current.position)
            return EmptyCheck(field, negate)

        token = self.advance()
        if token.kind == "op" or (token.kind == "keyword" and token.value in ("CONTAINS", "IN")):
            op = token.value
        else:
            raise ExpressionError(f"Expected a comparator after {field!r}", token.position)

        if op == "IN":
            return Comparison(field, op, tuple(self.parse_list()))
        return Comparison(field, op, self.parse_scalar())

    def parse_scalar(self) -> Any:
        token = self.current
        if token.kind != "literal":
            raise ExpressionError("Expected a literal value", token.position)
        self.advance()
        return token.value

    def parse_list(self) -> List[Any]:
        self.expect_punct("[")
        values: List[Any] = []
        if self.current.kind == "punct" and self.current.value == "]":
            self.advance()
            return values
        values.append(self.parse_scalar())
        while self.current.kind == "punct" and self.current.value == ",":
            self.advance()
            values.append(self.parse_scalar())
        self.expect_punct("]")
        return values


def parse_expression(text: str) -> Node:
    """Parse a condition expression into an evaluation tree"""
    if not isinstance(text, str) or not text.strip():
        raise ExpressionError("Expression must be a non-empty string")
    if len(text) > MAX_EXPRESSION_LENGTH:
        raise ExpressionError(f"Expression longer than {MAX_EXPRESSION_LENGTH} characters")
    return _Parser(tokenize(text)).parse()


def resolve_field(context: Mapping[str, Any], path: str) -> Any:
    current: Any = context
    for part in path.split("."):
        if isinstance(current, Mapping) and part in current:
            current = current[part]
        else:
            return _MISSING
    return current


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _compare(left: Any, op: str, right: Any) -> bool:
    if left is _MISSING:
        return False
    if op == "==":
        return left == right
    if op == "!=":
        return left != right
    if op in (">", ">=", "<", "<="):
        if not ((_is_number(left) and _is_number(right)) or (isinstance(left, str) and isinstance(right, str))):
            return False
        if op == ">":
            return left > right
        if op == ">=":
            return left >= right
        if op == "<":
            return left < right
        return left <= right
    if op == "CONTAINS":
        if isinstance(left, str):
            return isinstance(right, str) and right in left
        if isinstance(left, (list, tuple, set, frozenset)):
            return right in left
        return False
    if op == "IN":
        return left in right
    raise ExpressionError(f"Unknown comparator {op!r}")


def evaluate(node: Node, context: Mapping[str, Any]) -> bool:
    """Evaluate a parsed expression against a context map"""
    if isinstance(node, BoolOp):
        if node.op == "AND":
            return all(evaluate(operand, context) for operand in node.operands)
        return any(evaluate(operand, context) for operand in node.operands)
    if isinstance(node, EmptyCheck):
        value = resolve_field(context, node.field)
        empty = value is _MISSING or value is None or value == "" or (
            isinstance(value, (list, tuple, dict, set)) and len(value) == 0
        )
        return not empty if node.negate else empty
    return _compare(resolve_field(context, node.field), node.op, node.value)


def evaluate_expression(text: str, context: Mapping[str, Any]) -> bool:
    return evaluate(parse_expression(text), context)
