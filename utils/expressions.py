"""
A tiny, whitelisted boolean expression language for `depends_on` strings.

Supported:  field, doc.field, 'text', "text", 42, 1.5, true/false/null,
            ==, !=, !, &&, ||, parentheses.
A bare word right of a comparison is a literal (`status==Open`); compare two
fields with `a==doc.b`. Anything else is a ConditionError. Nothing is ever handed to eval().
"""

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable, List, Set, Tuple, Union

from utils.errors import ConditionError

ValueGetter = Callable[[str], Any]

_TOKEN_RE = re.compile(r"""
    (?P<ws>\s+)
  | (?P<op>\|\||&&|==|!=|!|\(|\))
  | (?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
  | (?P<number>-?\d+(?:\.\d+)?)
  | (?P<name>[A-Za-z_]\w*(?:\.[A-Za-z_]\w*)*)
""", re.VERBOSE)

_KEYWORDS = {
    "true": True, "True": True,
    "false": False, "False": False,
    "null": None, "None": None, "undefined": None,
}


def is_truthy(value: Any) -> bool:
    """Form truthiness: None, "", 0, False and empty containers are all falsy."""
    if isinstance(value, str):
        return value.strip() != ""
    return bool(value)


def is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def strict_equal(left: Any, right: Any) -> bool:
    """`===` over form values: no cross-type matches apart from int vs float."""
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return left == right
    return type(left) is type(right) and left == right


def loose_equal(left: Any, right: Any) -> bool:
    """Equality as form values need it: '' and None match, '5' matches 5."""
    if is_empty(left) and is_empty(right):
        return True
    if left == right:
        return True
    if isinstance(left, bool) or isinstance(right, bool):
        return False
    if isinstance(left, (int, float)) and isinstance(right, str):
        left, right = right, left
    if isinstance(left, str) and isinstance(right, (int, float)):
        try:
            return float(left) == float(right)
        except ValueError:
            return False
    return False


# --- AST ---

@dataclass(frozen=True)
class Const:
    value: Any


@dataclass(frozen=True)
class Name:
    field: str


@dataclass(frozen=True)
class Not:
    operand: "Node"


@dataclass(frozen=True)
class Compare:
    op: str
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class BoolOp:
    op: str
    operands: Tuple["Node", ...]


Node = Union[Const, Name, Not, Compare, BoolOp]


# --- Tokenizer / parser ---

def _tokenize(source: str) -> List[Tuple[str, str]]:
    tokens = []
    pos = 0
    while pos < len(source):
        match = _TOKEN_RE.match(source, pos)
        if not match:
            raise ConditionError(f"Unexpected character {source[pos]!r} at {pos} in {source!r}")
        kind = match.lastgroup
        if kind != "ws":
            tokens.append((kind, match.group()))
        pos = match.end()
    return tokens


class _Parser:
    def __init__(self, source: str):
        self.source = source
        self.tokens = _tokenize(source)
        self.pos = 0

    def peek(self) -> Tuple[str, str]:
        if self.pos < len(self.tokens):
            return self.tokens[self.pos]
        return ("end", "")

    def take(self) -> Tuple[str, str]:
        token = self.peek()
        self.pos += 1
        return token

    def expect(self, value: str) -> None:
        kind, text = self.take()
        if text != value:
            raise ConditionError(f"Expected {value!r} but found {text or 'end of input'!r} in {self.source!r}")

    def parse(self) -> Node:
        if not self.tokens:
            raise ConditionError("Empty condition expression")
        node = self.parse_or()
        kind, text = self.peek()
        if kind != "end":
            raise ConditionError(f"Unexpected {text!r} in {self.source!r}")
        return node

    def parse_or(self) -> Node:
        operands = [self.parse_and()]
        while self.peek()[1] == "||":
            self.take()
            operands.append(self.parse_and())
        return operands[0] if len(operands) == 1 else BoolOp("||", tuple(operands))

    def parse_and(self) -> Node:
        operands = [self.parse_compare()]
        while self.peek()[1] == "&&":
            self.take()
            operands.append(self.parse_compare())
        return operands[0] if len(operands) == 1 else BoolOp("&&", tuple(operands))

    def parse_compare(self) -> Node:
        left = self.parse_operand()
        if self.peek()[1] in ("==", "!="):
            op = self.take()[1]
            kind, text = self.peek()
            if kind == "name" and "." not in text and text not in _KEYWORDS:
                # status==Open: a bare word on the right is a literal
                self.take()
                right: Node = Const(text)
            else:
                right = self.parse_operand()
            return Compare(op, left, right)
        return left

    def parse_operand(self) -> Node:
        kind, text = self.take()
        if text == "!":
            return Not(self.parse_operand())
        if text == "(":
            node = self.parse_or()
            self.expect(")")
            return node
        if kind == "string":
            return Const(_unquote(text))
        if kind == "number":
            return Const(float(text) if "." in text else int(text))
        if kind == "name":
            if text in _KEYWORDS:
                return Const(_KEYWORDS[text])
            return Name(_field_name(text, self.source))
        raise ConditionError(f"Unexpected {text or 'end of input'!r} in {self.source!r}")


def _unquote(text: str) -> str:
    body = text[1:-1]
    return re.sub(r"\\(.)", r"\1", body)


def _field_name(text: str, source: str) -> str:
    parts = text.split(".")
    if len(parts) == 1:
        return text
    if len(parts) == 2 and parts[0] == "doc":
        return parts[1]
    raise ConditionError(f"Only 'doc.<field>' references are allowed, got {text!r} in {source!r}")


def _strip_prefix(source: str) -> str:
    source = source.strip()
    if source.startswith("eval:"):
        source = source[len("eval:"):].strip()
    return source


@lru_cache(maxsize=512)
def parse(source: str) -> Node:
    """Parses (and caches) an expression. Raises ConditionError when malformed."""
    return _Parser(_strip_prefix(source)).parse()


# --- Evaluation ---

def _value(node: Node, get_value: ValueGetter) -> Any:
    if isinstance(node, Const):
        return node.value
    if isinstance(node, Name):
        return get_value(node.field)
    return _truth(node, get_value)


def _truth(node: Node, get_value: ValueGetter) -> bool:
    if isinstance(node, Const):
        return is_truthy(node.value)
    if isinstance(node, Name):
        return is_truthy(get_value(node.field))
    if isinstance(node, Not):
        return not _truth(node.operand, get_value)
    if isinstance(node, Compare):
        equal = loose_equal(_value(node.left, get_value), _value(node.right, get_value))
        return equal if node.op == "==" else not equal
    if isinstance(node, BoolOp):
        if node.op == "&&":
            return all(_truth(operand, get_value) for operand in node.operands)
        return any(_truth(operand, get_value) for operand in node.operands)
    raise ConditionError(f"Unknown expression node {node!r}")


def evaluate(source: str, get_value: ValueGetter) -> bool:
    return _truth(parse(source), get_value)


def referenced_fields(source: str) -> Set[str]:
    """Field names an expression reads; used for dependency-graph checks."""
    found: Set[str] = set()

    def walk(node: Node) -> None:
        if isinstance(node, Name):
            found.add(node.field)
        elif isinstance(node, Not):
            walk(node.operand)
        elif isinstance(node, Compare):
            walk(node.left)
            walk(node.right)
        elif isinstance(node, BoolOp):
            for operand in node.operands:
                walk(operand)

    walk(parse(source))
    return found
