"""
Step recording and playback.

``StepRecorder`` observes one full evaluator pass and materializes a trace:
a before-record and an after-record for every node visit, each carrying a
snapshot of the bindings visible at that instant. ``StepNavigator`` then
moves a cursor over the finished trace; stepping never re-runs user code.
"""

import collections.abc
import threading
from dataclasses import dataclass
from typing import Any, List, Literal, Optional, Tuple

from enigma import enigma_ast as ast
from enigma.enigma_datatypes import (
    Environment, EnigmaError, InternalError, PrepareCancelled, ConsoleEntry, ReturnSignal, type_name,
)
from enigma.enigma_interpreter import Evaluator, DEFAULT_MAX_ITERATIONS, DEFAULT_MAX_CALL_DEPTH
from enigma.enigma_printer import Printer
from enigma.enigma_stdlib import builtin_environment

Phase = Literal["before", "after"]


class OutputView(collections.abc.Sequence):
    """Read-only prefix of an append-only console log."""
    __slots__ = ("_backing", "_end")

    def __init__(self, backing: List[ConsoleEntry], end: int):
        self._backing = backing
        self._end = int(end)

    def __len__(self):
        return self._end

    def __getitem__(self, idx):
        if isinstance(idx, slice):
            return [self._backing[k] for k in range(*idx.indices(self._end))]
        if idx < 0:
            idx += self._end
        if idx < 0 or idx >= self._end:
            raise IndexError(idx)
        return self._backing[idx]

    def __eq__(self, other):
        if not isinstance(other, collections.abc.Sequence):
            return NotImplemented
        return list(self) == list(other)

    def lines(self) -> List[str]:
        return [e.text for e in self]

    def __repr__(self):
        return f"OutputView({list(self)!r})"


@dataclass(frozen=True)
class BindingSnapshot:
    name: str
    value: str
    type: str
    constant: bool
    scope: str
    depth: int
    is_new: bool

    def as_dict(self) -> dict:
        return {
            "name": self.name,
            "value": self.value,
            "type": self.type,
            "constant": self.constant,
            "scope": self.scope,
            "depth": self.depth,
            "is_new": self.is_new,
        }


@dataclass(frozen=True)
class CallFrame:
    """One entry of the call stack as it stood when a step was recorded."""
    function_name: str
    args: Tuple[str, ...]
    line: int
    column: int
    is_active: bool

    def as_dict(self) -> dict:
        return {
            "function_name": self.function_name,
            "args": list(self.args),
            "line": self.line,
            "column": self.column,
            "is_active": self.is_active,
        }


@dataclass(frozen=True)
class StepRecord:
    seq: int
    node: ast.Node
    phase: Phase
    span: ast.Span
    depth: int
    node_path: str
    description: str
    bindings: Tuple[BindingSnapshot, ...]
    output: OutputView
    result: Any = None
    result_repr: Optional[str] = None
    error: Optional[str] = None
    # Outermost call first; the last frame is the active one.
    call_stack: Tuple[CallFrame, ...] = ()

    @property
    def kind(self) -> str:
        return self.node.kind

    def binding(self, name: str) -> Optional[BindingSnapshot]:
        """The innermost visible binding called ``name``."""
        for b in self.bindings:
            if b.name == name:
                return b
        return None

    @property
    def new_bindings(self) -> Tuple[BindingSnapshot, ...]:
        return tuple(b for b in self.bindings if b.is_new)


@dataclass(frozen=True)
class ExecutionState:
    cursor: int
    record: Optional[StepRecord]
    is_complete: bool
    output: OutputView
    call_stack: Tuple[CallFrame, ...] = ()


@dataclass(frozen=True)
class Trace:
    """The product of one recording pass."""
    records: Tuple[StepRecord, ...]
    output: Tuple[ConsoleEntry, ...]
    value: Any = None
    error: Optional[EnigmaError] = None

    @property
    def halted(self) -> bool:
        return self.error is not None


# =================================================================
# Descriptions
# =================================================================

def describe_before(node: ast.Node) -> str:
    match node:
        case ast.Program():
            return "Starting program execution"
        case ast.LetStatement(name=name):
            return f'About to declare variable "{name}"'
        case ast.ConstStatement(name=name):
            return f'About to declare constant "{name}"'
        case ast.ReturnStatement():
            return "About to return a value"
        case ast.BreakStatement():
            return "Breaking out of the loop"
        case ast.ContinueStatement():
            return "Skipping to the next iteration"
        case ast.WhileStatement() | ast.ForStatement():
            return "Entering loop"
        case ast.ClassStatement(name=name):
            return f'About to define class "{name}"'
        case ast.BlockStatement():
            return "Entering block"
        case ast.ExpressionStatement():
            return "About to evaluate expression statement"
        case ast.Identifier(value=name):
            return f'Looking up variable "{name}"'
        case ast.IntegerLiteral() | ast.FloatLiteral():
            return f'About to evaluate number "{node}"'
        case ast.StringLiteral() | ast.FStringLiteral():
            return f"About to evaluate string {node}"
        case ast.BooleanLiteral() | ast.NullLiteral():
            return f'About to evaluate "{node}"'
        case ast.ArrayLiteral():
            return "About to evaluate array literal"
        case ast.HashLiteral():
            return "About to evaluate hash literal"
        case ast.PrefixExpression(operator=op, right=right):
            return f'About to apply "{op}" to "{right}"'
        case ast.InfixExpression(left=left, operator=op, right=right):
            return f'About to evaluate: "{left}" {op} "{right}"'
        case ast.AssignmentExpression(target=target):
            return f'About to assign to "{target}"'
        case ast.IndexExpression(left=left, index=index):
            return f'About to index "{left}" with "{index}"'
        case ast.PropertyExpression(object=obj, property=prop):
            return f'About to read property "{prop}" of "{obj}"'
        case ast.CallExpression(function=function):
            return f'About to call function "{function}"'
        case ast.FunctionLiteral():
            return "About to create a function"
        case ast.IfExpression():
            return "About to evaluate conditional"
        case ast.ThisExpression():
            return 'Looking up "this"'
        case ast.SuperExpression():
            return f'About to call parent class through "{node}"'
        case ast.NewExpression(class_name=class_name):
            return f'About to create a new instance of "{class_name}"'
    return f"About to evaluate {node.kind}"


def describe_after(node: ast.Node, result_repr: str, value_repr: Optional[str] = None) -> str:
    match node:
        case ast.Program():
            return f"Program finished with: {result_repr}"
        case ast.LetStatement(name=name):
            return f'Variable "{name}" declared with value: {value_repr}'
        case ast.ConstStatement(name=name):
            return f'Constant "{name}" declared with value: {value_repr}'
        case ast.ReturnStatement():
            return f"Returned: {result_repr}"
        case ast.WhileStatement() | ast.ForStatement():
            return "Loop finished"
        case ast.ClassStatement(name=name):
            return f'Class "{name}" defined'
        case ast.Identifier(value=name):
            return f'Variable "{name}" has value: {result_repr}'
        case ast.AssignmentExpression(target=target):
            return f'Assigned {result_repr} to "{target}"'
        case ast.CallExpression(function=function):
            return f'Function "{function}" returned: {result_repr}'
        case ast.NewExpression():
            return f"Created instance: {result_repr}"
    return f"{node.kind} evaluated to: {result_repr}"


# =================================================================
# Recorder
# =================================================================

class _StampingConsole:
    """Console sink that tags each entry with the step it occurred in."""
    def __init__(self, recorder: 'StepRecorder'):
        self._recorder = recorder
        self.entries: List[ConsoleEntry] = []

    def write(self, severity: str, text: str):
        self.entries.append(ConsoleEntry(severity, text, len(self._recorder.records)))


class StepRecorder:
    """Runs the evaluator once over a program and keeps every step."""

    def __init__(
        self,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        max_call_depth: int = DEFAULT_MAX_CALL_DEPTH,
        cancel_event: Optional[threading.Event] = None,
        seed: Optional[int] = None,
    ):
        self.records: List[StepRecord] = []
        self.console = _StampingConsole(self)
        self.printer = Printer()
        self.evaluator = Evaluator(
            console=self.console,
            max_iterations=max_iterations,
            max_call_depth=max_call_depth,
            cancel_event=cancel_event,
            hooks=self,
            seed=seed,
        )
        self._path: List[str] = []
        self._last_seen: dict = {}

    def record(self, program: ast.Program, env: Optional[Environment] = None) -> Trace:
        """Evaluates ``program`` once. Evaluation errors end the trace; they are not raised."""
        if env is None:
            env = Environment(builtin_environment(self.evaluator), "global")
        value, error = None, None
        try:
            value = self.evaluator.run(program, env)
        except PrepareCancelled:
            raise
        except EnigmaError as e:
            error = e
        except Exception as e:
            error = self._internal_error(e)
        return Trace(tuple(self.records), tuple(self.console.entries), value, error)

    # --- evaluator hooks ---

    def enter(self, node: ast.Node, env: Environment):
        self._path.append(node.kind)
        self._append(node, env, "before", describe_before(node))

    def exit(self, node: ast.Node, env: Environment, result: Any):
        shown = result.value if isinstance(result, ReturnSignal) else result
        result_repr = self.printer.pformat(shown)
        value_repr = None
        if isinstance(node, (ast.LetStatement, ast.ConstStatement)):
            value_repr = self.printer.pformat(env.bindings.get(node.name.value))
        description = describe_after(node, result_repr, value_repr)
        self._append(node, env, "after", description, shown, result_repr)
        self._path.pop()

    def unwind(self, node: ast.Node, env: Environment, signal: Any):
        shown = signal.value if isinstance(signal, ReturnSignal) else None
        description = f"Leaving {node.kind} early: {self.printer.pformat(signal)}"
        self._append(node, env, "after", description, shown, self.printer.pformat(shown))
        self._path.pop()

    def fail(self, node: ast.Node, env: Environment, error: EnigmaError):
        self._append(node, env, "after", f"Error: {error.message}", error=error.message)

    def _internal_error(self, exc: Exception) -> InternalError:
        evaluator = self.evaluator
        error = InternalError.wrap(exc, evaluator.current_node)
        error.stack = [dict(f) for f in evaluator.call_stack]
        error.recorded = True
        if error.node is not None and evaluator.current_env is not None:
            self._append(error.node, evaluator.current_env, "after", f"Error: {error.message}", error=error.message)
        return error

    # --- internals ---

    def _append(self, node, env, phase, description, result=None, result_repr=None, error=None):
        self.records.append(StepRecord(
            seq=len(self.records),
            node=node,
            phase=phase,
            span=node.span,
            depth=len(self._path) - 1,
            node_path=" > ".join(self._path),
            description=description,
            bindings=self._snapshot(env),
            output=OutputView(self.console.entries, len(self.console.entries)),
            result=result,
            result_repr=result_repr,
            error=error,
            call_stack=self._call_stack(),
        ))

    def _call_stack(self) -> Tuple[CallFrame, ...]:
        stack = self.evaluator.call_stack
        return tuple(
            CallFrame(f["name"], tuple(f["args"]), f["line"], f["column"], i == len(stack) - 1)
            for i, f in enumerate(stack)
        )

    def _snapshot(self, env: Environment) -> Tuple[BindingSnapshot, ...]:
        out = []
        depth = 0
        for scope in env.chain():
            if scope.kind == "builtins":
                continue
            for name, value in scope.bindings.items():
                rendered = self.printer.pformat(value)
                key = (scope.serial, name)
                previous = self._last_seen.get(key)
                self._last_seen[key] = rendered
                out.append(BindingSnapshot(
                    name=name,
                    value=rendered,
                    type=type_name(value),
                    constant=scope.is_constant(name),
                    scope=scope.kind,
                    depth=depth,
                    is_new=previous != rendered,
                ))
            depth += 1
        return tuple(out)


# =================================================================
# Navigator
# =================================================================

class StepNavigator:
    """A cursor over a finished trace."""

    def __init__(self, records):
        self._records: Tuple[StepRecord, ...] = tuple(records)
        self.cursor = 0

    @property
    def records(self) -> Tuple[StepRecord, ...]:
        return self._records

    def __len__(self):
        return len(self._records)

    def current_state(self) -> ExecutionState:
        if not self._records:
            return ExecutionState(0, None, True, OutputView([], 0))
        record = self._records[self.cursor]
        return ExecutionState(
            cursor=self.cursor,
            record=record,
            is_complete=self.cursor == len(self._records) - 1,
            output=record.output,
            call_stack=record.call_stack,
        )

    def advance(self) -> ExecutionState:
        return self.seek(self.cursor + 1)

    def retreat(self) -> ExecutionState:
        return self.seek(self.cursor - 1)

    def seek(self, n: int) -> ExecutionState:
        last = max(len(self._records) - 1, 0)
        self.cursor = min(max(n, 0), last)
        return self.current_state()

    def reset(self) -> ExecutionState:
        return self.seek(0)
