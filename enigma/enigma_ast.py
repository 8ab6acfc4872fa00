"""
AST node definitions for Enigma.

Nodes are immutable dataclasses. Every node carries a ``Span`` covering the
source text it was parsed from, and renders to a canonical string via
``str(node)``: fully parenthesized for operators, so tests can assert the
shape the parser produced.
"""

from dataclasses import dataclass, field, fields
from typing import Iterator, Optional, Tuple, Union


@dataclass(frozen=True)
class Span:
    line: int = 0
    column: int = 0
    end_line: int = 0
    end_column: int = 0

    def as_dict(self) -> dict:
        return {
            "line": self.line,
            "column": self.column,
            "end_line": self.end_line,
            "end_column": self.end_column,
        }


NO_SPAN = Span()


def quote_string(value: str) -> str:
    out = value.replace("\\", "\\\\").replace('"', '\\"')
    out = out.replace("\n", "\\n").replace("\t", "\\t").replace("\r", "\\r")
    return f'"{out}"'


def format_float(value: float) -> str:
    text = repr(value)
    if "." in text or "e" in text or "n" in text:
        return text
    return text + ".0"


@dataclass(frozen=True, eq=False)
class Node:
    span: Span = field(default=NO_SPAN, kw_only=True, repr=False)

    @property
    def kind(self) -> str:
        return type(self).__name__

    def children(self) -> Iterator["Node"]:
        """Yields direct child nodes in source order."""
        for f in fields(self):
            if f.name == "span":
                continue
            yield from _iter_nodes(getattr(self, f.name))


def _iter_nodes(value) -> Iterator[Node]:
    if isinstance(value, Node):
        yield value
    elif isinstance(value, tuple):
        for item in value:
            yield from _iter_nodes(item)


def walk(node: Node) -> Iterator[Node]:
    """Pre-order traversal of ``node`` and all of its descendants."""
    yield node
    for child in node.children():
        yield from walk(child)


def count_nodes(node: Node) -> int:
    return sum(1 for _ in walk(node))


class Expression(Node):
    pass


class Statement(Node):
    pass


# =================================================================
# Program and statements
# =================================================================

@dataclass(frozen=True, eq=False)
class Program(Node):
    statements: Tuple[Statement, ...] = ()

    def __str__(self):
        return "".join(str(s) for s in self.statements)


@dataclass(frozen=True, eq=False)
class BlockStatement(Statement):
    statements: Tuple[Statement, ...] = ()

    def __str__(self):
        if not self.statements:
            return "{ }"
        return "{ " + " ".join(str(s) for s in self.statements) + " }"


@dataclass(frozen=True, eq=False)
class ExpressionStatement(Statement):
    expression: Expression

    def __str__(self):
        return str(self.expression)


@dataclass(frozen=True, eq=False)
class LetStatement(Statement):
    name: "Identifier"
    value: Expression

    def children(self) -> Iterator[Node]:
        yield self.value

    def __str__(self):
        return f"let {self.name} = {self.value};"


@dataclass(frozen=True, eq=False)
class ConstStatement(Statement):
    name: "Identifier"
    value: Expression

    def children(self) -> Iterator[Node]:
        yield self.value

    def __str__(self):
        return f"const {self.name} = {self.value};"


@dataclass(frozen=True, eq=False)
class ReturnStatement(Statement):
    value: Optional[Expression] = None

    def __str__(self):
        if self.value is None:
            return "return;"
        return f"return {self.value};"


@dataclass(frozen=True, eq=False)
class BreakStatement(Statement):
    def __str__(self):
        return "break;"


@dataclass(frozen=True, eq=False)
class ContinueStatement(Statement):
    def __str__(self):
        return "continue;"


@dataclass(frozen=True, eq=False)
class WhileStatement(Statement):
    condition: Expression
    body: BlockStatement

    def __str__(self):
        return f"while ({self.condition}) {self.body}"


@dataclass(frozen=True, eq=False)
class ForStatement(Statement):
    init: Optional[Statement]
    condition: Optional[Expression]
    update: Optional[Expression]
    body: BlockStatement

    def __str__(self):
        init = str(self.init).rstrip(";") if self.init is not None else ""
        cond = str(self.condition) if self.condition is not None else ""
        update = str(self.update) if self.update is not None else ""
        return f"for ({init}; {cond}; {update}) {self.body}"


@dataclass(frozen=True, eq=False)
class ClassStatement(Statement):
    name: "Identifier"
    parent: Optional["Identifier"]
    fields: Tuple[LetStatement, ...] = ()
    constructor: Optional["FunctionLiteral"] = None
    methods: Tuple["FunctionLiteral", ...] = ()

    def children(self) -> Iterator[Node]:
        # The class and parent names are resolved by lookup, not visited.
        yield from self.fields
        if self.constructor is not None:
            yield self.constructor
        yield from self.methods

    def __str__(self):
        head = f"class {self.name}"
        if self.parent is not None:
            head += f" extends {self.parent}"
        members = [str(f) for f in self.fields]
        if self.constructor is not None:
            members.append(f"init{self.constructor.signature()}")
        members.extend(f"{m.name}{m.signature()}" for m in self.methods)
        if not members:
            return head + " { }"
        return head + " { " + " ".join(members) + " }"


# =================================================================
# Expressions
# =================================================================

@dataclass(frozen=True, eq=False)
class Identifier(Expression):
    value: str

    def __str__(self):
        return self.value


@dataclass(frozen=True, eq=False)
class IntegerLiteral(Expression):
    value: int

    def __str__(self):
        return str(self.value)


@dataclass(frozen=True, eq=False)
class FloatLiteral(Expression):
    value: float

    def __str__(self):
        return format_float(self.value)


@dataclass(frozen=True, eq=False)
class StringLiteral(Expression):
    value: str

    def __str__(self):
        return quote_string(self.value)


@dataclass(frozen=True, eq=False)
class FStringLiteral(Expression):
    parts: Tuple[Union[str, Expression], ...] = ()

    def __str__(self):
        out = []
        for part in self.parts:
            if isinstance(part, str):
                out.append(quote_string(part)[1:-1].replace("{", "{{").replace("}", "}}"))
            else:
                out.append("{" + str(part) + "}")
        return 'f"' + "".join(out) + '"'


@dataclass(frozen=True, eq=False)
class BooleanLiteral(Expression):
    value: bool

    def __str__(self):
        return "true" if self.value else "false"


@dataclass(frozen=True, eq=False)
class NullLiteral(Expression):
    def __str__(self):
        return "null"


@dataclass(frozen=True, eq=False)
class ArrayLiteral(Expression):
    elements: Tuple[Expression, ...] = ()

    def __str__(self):
        return "[" + ", ".join(str(e) for e in self.elements) + "]"


@dataclass(frozen=True, eq=False)
class HashLiteral(Expression):
    pairs: Tuple[Tuple[Expression, Expression], ...] = ()

    def __str__(self):
        return "{" + ", ".join(f"{k}:{v}" for k, v in self.pairs) + "}"


@dataclass(frozen=True, eq=False)
class PrefixExpression(Expression):
    operator: str
    right: Expression

    def __str__(self):
        return f"({self.operator}{self.right})"


@dataclass(frozen=True, eq=False)
class InfixExpression(Expression):
    left: Expression
    operator: str
    right: Expression

    def __str__(self):
        return f"({self.left} {self.operator} {self.right})"


@dataclass(frozen=True, eq=False)
class AssignmentExpression(Expression):
    target: Expression
    value: Expression

    def children(self) -> Iterator[Node]:
        # Only the parts of the target that locate the slot are evaluated.
        match self.target:
            case IndexExpression(left=left, index=index):
                yield left
                yield index
            case PropertyExpression(object=obj):
                yield obj
        yield self.value

    def __str__(self):
        return f"{self.target} = {self.value}"


@dataclass(frozen=True, eq=False)
class IndexExpression(Expression):
    left: Expression
    index: Expression

    def __str__(self):
        return f"({self.left}[{self.index}])"


@dataclass(frozen=True, eq=False)
class PropertyExpression(Expression):
    object: Expression
    property: Identifier

    def children(self) -> Iterator[Node]:
        yield self.object

    def __str__(self):
        return f"{self.object}.{self.property}"


@dataclass(frozen=True, eq=False)
class CallExpression(Expression):
    function: Expression
    arguments: Tuple[Expression, ...] = ()

    def __str__(self):
        return f"{self.function}(" + ", ".join(str(a) for a in self.arguments) + ")"


@dataclass(frozen=True, eq=False)
class FunctionLiteral(Expression):
    parameters: Tuple[Identifier, ...]
    body: BlockStatement
    name: Optional[str] = None

    def signature(self) -> str:
        return "(" + ", ".join(str(p) for p in self.parameters) + f") {self.body}"

    def children(self) -> Iterator[Node]:
        # Parameters are binding sites, never evaluated.
        yield self.body

    def __str__(self):
        return "fn" + self.signature()


@dataclass(frozen=True, eq=False)
class IfExpression(Expression):
    conditions: Tuple[Expression, ...]
    consequences: Tuple[BlockStatement, ...]
    alternative: Optional[BlockStatement] = None

    def children(self) -> Iterator[Node]:
        for cond, cons in zip(self.conditions, self.consequences):
            yield cond
            yield cons
        if self.alternative is not None:
            yield self.alternative

    def __str__(self):
        parts = []
        for i, (cond, cons) in enumerate(zip(self.conditions, self.consequences)):
            parts.append(f"{'if' if i == 0 else 'elif'} ({cond}) {cons}")
        if self.alternative is not None:
            parts.append(f"else {self.alternative}")
        return " ".join(parts)


@dataclass(frozen=True, eq=False)
class ThisExpression(Expression):
    def __str__(self):
        return "this"


@dataclass(frozen=True, eq=False)
class SuperExpression(Expression):
    method: Optional[Identifier]
    arguments: Tuple[Expression, ...] = ()

    def children(self) -> Iterator[Node]:
        yield from self.arguments

    def __str__(self):
        args = ", ".join(str(a) for a in self.arguments)
        if self.method is None:
            return f"super({args})"
        return f"super.{self.method}({args})"


@dataclass(frozen=True, eq=False)
class NewExpression(Expression):
    class_name: Expression
    arguments: Tuple[Expression, ...] = ()

    def __str__(self):
        return f"new {self.class_name}(" + ", ".join(str(a) for a in self.arguments) + ")"
