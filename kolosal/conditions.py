"""
Safe evaluator for workflow branch conditions.

Conditions are small boolean expressions over node outputs, the execution
input and workflow variables, written with the dashboard's template syntax::

    {{ $node['ai-agent-1'].output.requires_escalation === true }}
    $input.priority >= 3 && !($vars.dry_run)

The text is tokenised, parsed into an AST by recursive descent and then
interpreted. Nothing outside the grammar below is accepted::

    expr    := or
    or      := and ('||' and)*
    and     := not ('&&' not)*
    not     := '!' not | compare
    compare := primary (CMP primary)?
    primary := '-' primary | NUMBER | STRING | true | false | null | reference | '(' expr ')'
    reference := ('$node' '[' STRING ']' | '$input' | '$vars') accessor*
    accessor  := '.' IDENT | '[' (STRING | NUMBER) ']'
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union


class ConditionError(RuntimeError):
    """Raised when a condition cannot be parsed or evaluated."""


COMPARISONS = ("===", "!==", "==", "!=", "<=", ">=", "<", ">")

_TOKEN_PATTERN = re.compile(
    r"""
    (?P<space>\s+)
  | (?P<number>\d+(?:\.\d+)?(?:[eE][+-]?\d+)?)
  | (?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
  | (?P<ref>\$[A-Za-z_]+)
  | (?P<ident>[A-Za-z_][A-Za-z0-9_]*)
  | (?P<op>===|!==|==|!=|<=|>=|&&|\|\||[<>!()\[\].\-])
    """,
    re.VERBOSE,
)

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", "'": "'", '"': '"'}


@dataclass(frozen=True)
class Token:
    kind: str
    value: str
    position: int


def tokenize(text: str) -> List[Token]:
    tokens: List[Token] = []
    position = 0
    while position < len(text):
        match = _TOKEN_PATTERN.match(text, position)
        if match is None:
            raise ConditionError(f"Unexpected character {text[position]!r} at position {position}")
        kind = match.lastgroup or ""
        if kind != "space":
            tokens.append(Token(kind, match.group(), position))
        position = match.end()
    return tokens


def _unquote(literal: str) -> str:
    body = literal[1:-1]
    return re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), m.group(1)), body)


# AST


@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class Reference:
    root: str
    path: Tuple[Union[str, int], ...]


@dataclass(frozen=True)
class Unary:
    op: str
    operand: "Node"


@dataclass(frozen=True)
class Compare:
    op: str
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class Logical:
    op: str
    operands: Tuple["Node", ...]


Node = Union[Literal, Reference, Unary, Compare, Logical]

_KEYWORDS = {"true": True, "false": False, "null": None, "undefined": None}
_ROOTS = {"$node", "$input", "$vars"}


class _Parser:
    def __init__(self, tokens: Sequence[Token]) -> None:
        self.tokens = tokens
        self.index = 0

    def peek(self) -> Optional[Token]:
        return self.tokens[self.index] if self.index < len(self.tokens) else None

    def take(self) -> Token:
        token = self.peek()
        if token is None:
            raise ConditionError("Unexpected end of condition")
        self.index += 1
        return token

    def accept(self, value: str) -> bool:
        token = self.peek()
        if token is not None and token.kind == "op" and token.value == value:
            self.index += 1
            return True
        return False

    def expect(self, value: str) -> None:
        if not self.accept(value):
            token = self.peek()
            found = token.value if token else "end of condition"
            raise ConditionError(f"Expected '{value}' but found '{found}'")

    def parse(self) -> Node:
        node = self.parse_or()
        token = self.peek()
        if token is not None:
            raise ConditionError(f"Unexpected '{token.value}' at position {token.position}")
        return node

    def parse_or(self) -> Node:
        operands = [self.parse_and()]
        while self.accept("||"):
            operands.append(self.parse_and())
        return operands[0] if len(operands) == 1 else Logical("||", tuple(operands))

    def parse_and(self) -> Node:
        operands = [self.parse_not()]
        while self.accept("&&"):
            operands.append(self.parse_not())
        return operands[0] if len(operands) == 1 else Logical("&&", tuple(operands))

    def parse_not(self) -> Node:
        if self.accept("!"):
            return Unary("!", self.parse_not())
        return self.parse_compare()

    def parse_compare(self) -> Node:
        left = self.parse_primary()
        token = self.peek()
        if token is not None and token.kind == "op" and token.value in COMPARISONS:
            self.index += 1
            right = self.parse_primary()
            return Compare(token.value, left, right)
        return left

    def parse_primary(self) -> Node:
        token = self.take()
        if token.kind == "op" and token.value == "-":
            return Unary("-", self.parse_primary())
        if token.kind == "number":
            number = float(token.value)
            return Literal(int(number) if number.is_integer() and "." not in token.value else number)
        if token.kind == "string":
            return Literal(_unquote(token.value))
        if token.kind == "ident":
            if token.value in _KEYWORDS:
                return Literal(_KEYWORDS[token.value])
            raise ConditionError(f"Unknown identifier '{token.value}'")
        if token.kind == "ref":
            return self.parse_reference(token)
        if token.kind == "op" and token.value == "(":
            node = self.parse_or()
            self.expect(")")
            return node
        raise ConditionError(f"Unexpected '{token.value}' at position {token.position}")

    def parse_reference(self, token: Token) -> Node:
        if token.value not in _ROOTS:
            raise ConditionError(f"Unknown reference '{token.value}'")
        path: List[Union[str, int]] = []
        if token.value == "$node":
            self.expect("[")
            node_id = self.take()
            if node_id.kind != "string":
                raise ConditionError("$node[...] expects a quoted node id")
            path.append(_unquote(node_id.value))
            self.expect("]")
        while True:
            if self.accept("."):
                name = self.take()
                if name.kind not in {"ident"}:
                    raise ConditionError(f"Expected a property name after '.', found '{name.value}'")
                path.append(name.value)
            elif self.accept("["):
                key = self.take()
                if key.kind == "string":
                    path.append(_unquote(key.value))
                elif key.kind == "number" and key.value.isdigit():
                    path.append(int(key.value))
                else:
                    raise ConditionError(f"Invalid index '{key.value}'")
                self.expect("]")
            else:
                break
        return Reference(token.value, tuple(path))


def strip_template(text: str) -> str:
    stripped = text.strip()
    if stripped.startswith("{{") and stripped.endswith("}}"):
        return stripped[2:-2].strip()
    return stripped


def parse(text: str) -> Node:
    if not isinstance(text, str):
        raise ConditionError("Condition must be a string")
    body = strip_template(text)
    if not body:
        raise ConditionError("Condition is empty")
    return _Parser(tokenize(body)).parse()


# Interpreter


def _kind(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    return "object"


def truthy(value: Any) -> bool:
    """JavaScript truthiness: containers are truthy even when empty."""
    kind = _kind(value)
    if kind == "null":
        return False
    if kind == "number":
        return value != 0 and not math.isnan(value)
    if kind in {"boolean", "string"}:
        return bool(value)
    return True


def _to_number(value: Any) -> Optional[float]:
    kind = _kind(value)
    if kind in {"number", "boolean"}:
        return float(value)
    if kind == "string":
        try:
            return float(value.strip() or 0)
        except ValueError:
            return None
    return None


def _loose_equal(left: Any, right: Any) -> bool:
    left_kind, right_kind = _kind(left), _kind(right)
    if left_kind == right_kind:
        return left == right
    if "null" in (left_kind, right_kind) or "object" in (left_kind, right_kind):
        return False
    left_number, right_number = _to_number(left), _to_number(right)
    return left_number is not None and left_number == right_number


def _strict_equal(left: Any, right: Any) -> bool:
    return _kind(left) == _kind(right) and left == right


def _order(op: str, left: Any, right: Any) -> bool:
    left_kind, right_kind = _kind(left), _kind(right)
    if left_kind != right_kind or left_kind not in {"number", "string"}:
        raise ConditionError(f"Cannot compare {left_kind} {op} {right_kind}")
    if op == "<":
        return left < right
    if op == "<=":
        return left <= right
    if op == ">":
        return left > right
    return left >= right


def _resolve(reference: Reference, scope: Dict[str, Any]) -> Any:
    current: Any = scope.get(reference.root)
    for key in reference.path:
        if isinstance(current, dict):
            current = current.get(key) if isinstance(key, str) else None
        elif isinstance(current, list) and isinstance(key, int):
            current = current[key] if key < len(current) else None
        else:
            return None
        if current is None:
            return None
    return current


def evaluate(node: Node, scope: Dict[str, Any]) -> Any:
    if isinstance(node, Literal):
        return node.value
    if isinstance(node, Reference):
        return _resolve(node, scope)
    if isinstance(node, Unary):
        value = evaluate(node.operand, scope)
        if node.op == "!":
            return not truthy(value)
        number = _to_number(value)
        if number is None:
            raise ConditionError(f"Cannot negate {_kind(value)}")
        return -number
    if isinstance(node, Logical):
        if node.op == "&&":
            return all(truthy(evaluate(operand, scope)) for operand in node.operands)
        return any(truthy(evaluate(operand, scope)) for operand in node.operands)
    if isinstance(node, Compare):
        left = evaluate(node.left, scope)
        right = evaluate(node.right, scope)
        if node.op == "===":
            return _strict_equal(left, right)
        if node.op == "!==":
            return not _strict_equal(left, right)
        if node.op == "==":
            return _loose_equal(left, right)
        if node.op == "!=":
            return not _loose_equal(left, right)
        return _order(node.op, left, right)
    raise ConditionError(f"Unsupported expression node {type(node).__name__}")


def evaluate_condition(
    text: str,
    node_outputs: Optional[Dict[str, Any]] = None,
    input_data: Optional[Dict[str, Any]] = None,
    variables: Optional[Dict[str, Any]] = None,
) -> bool:
    """
    Parse and evaluate ``text``; ``$node['id'].output`` reads ``node_outputs['id']``.
    """
    scope = {
        "$node": {node_id: {"output": output} for node_id, output in (node_outputs or {}).items()},
        "$input": input_data or {},
        "$vars": variables or {},
    }
    return truthy(evaluate(parse(text), scope))
