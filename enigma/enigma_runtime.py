"""
The embedding surface of the Enigma runtime.

``ScriptRunner.prepare`` turns one source string into a navigable trace: it
parses synchronously, and if that succeeds runs the single recording pass on
a worker thread so the event loop stays responsive. ``handle_script`` runs
code without recording, keeping one global environment across calls, which
is what the REPL uses.
"""

import asyncio
import os
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from enigma.enigma_parser import parse, ParseError
from enigma.enigma_interpreter import Evaluator, DEFAULT_MAX_ITERATIONS, DEFAULT_MAX_CALL_DEPTH
from enigma.enigma_datatypes import Environment, EnigmaError, InternalError, Console, ConsoleEntry
from enigma.enigma_stdlib import builtin_environment
from enigma.enigma_stepper import StepRecorder, StepNavigator, Trace
from enigma.enigma_printer import Printer


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _effects(entries: List[ConsoleEntry]) -> List[Dict]:
    return [{'topics': [e.severity], 'message': e.text} for e in entries]


@dataclass
class ExecutionResult:
    """The structured result of a script execution."""
    status: Literal['success', 'error']
    value: Any = None
    error_message: Optional[str] = None
    error_token: Optional[Dict] = None
    side_effects: List[Dict] = field(default_factory=list)

    def format_error(self) -> str:
        """Formats an error message with line and column if available."""
        if self.status != 'error':
            return ""
        msg = str(self.error_message or "Unknown error")
        if self.error_token and self.error_token.get('line'):
            line = self.error_token.get('line')
            col = self.error_token.get('col')
            if not msg.startswith("Error on line "):
                col_info = f", col {col}" if col is not None else ""
                return f"Error on line {line}{col_info}: {msg}"
        return msg


@dataclass
class PrepareResult:
    """Outcome of ``ScriptRunner.prepare``.

    ``parse_error`` means no trace exists. ``halted`` means evaluation stopped
    at an error and the navigator holds the partial trace up to and including
    the failing step. ``complete`` means the program ran to the end.
    """
    status: Literal['complete', 'halted', 'parse_error']
    navigator: Optional[StepNavigator] = None
    trace: Optional[Trace] = None
    value: Any = None
    errors: List[ParseError] = field(default_factory=list)
    error: Optional[EnigmaError] = None
    error_message: Optional[str] = None

    @property
    def has_trace(self) -> bool:
        return self.navigator is not None

    @property
    def output(self) -> List[ConsoleEntry]:
        return list(self.trace.output) if self.trace is not None else []

    def format_error(self) -> str:
        return self.error_message or ""


class ScriptRunner:
    """Parses and executes Enigma code."""

    def __init__(
        self,
        max_iterations: Optional[int] = None,
        max_call_depth: Optional[int] = None,
        seed: Optional[int] = None,
    ):
        if max_iterations is None:
            max_iterations = _env_int("ENIGMA_MAX_ITERATIONS", DEFAULT_MAX_ITERATIONS)
        if max_call_depth is None:
            max_call_depth = _env_int("ENIGMA_MAX_CALL_DEPTH", DEFAULT_MAX_CALL_DEPTH)
        self.max_iterations = max_iterations
        self.max_call_depth = max_call_depth
        self.seed = seed
        self.evaluator = Evaluator(
            console=Console(),
            max_iterations=self.max_iterations,
            max_call_depth=self.max_call_depth,
            seed=seed,
        )
        self.global_env = Environment(builtin_environment(self.evaluator), "global")
        self.printer = Printer()

    # --- stepping ---

    async def prepare(
        self,
        source: str,
        *,
        max_iterations: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
        seed: Optional[int] = None,
    ) -> PrepareResult:
        """Parses ``source`` and records its full execution trace exactly once."""
        program, errors = parse(source)
        if errors:
            return PrepareResult(
                status='parse_error',
                errors=list(errors),
                error_message=self._format_parse_errors(errors, source),
            )

        cancel = cancel_event or threading.Event()
        recorder = StepRecorder(
            max_iterations=self.max_iterations if max_iterations is None else max_iterations,
            max_call_depth=self.max_call_depth,
            cancel_event=cancel,
            seed=self.seed if seed is None else seed,
        )
        try:
            trace = await asyncio.to_thread(recorder.record, program)
        except asyncio.CancelledError:
            # The worker thread stops at its next node visit.
            cancel.set()
            raise

        navigator = StepNavigator(trace.records)
        if trace.error is not None:
            msg, _ = self._format_runtime_error(trace.error, source)
            return PrepareResult(
                status='halted', navigator=navigator, trace=trace,
                error=trace.error, error_message=msg,
            )
        return PrepareResult(status='complete', navigator=navigator, trace=trace, value=trace.value)

    # --- plain execution ---

    async def handle_script(self, source_code: str) -> ExecutionResult:
        """The main entry point to execute a script."""
        self.evaluator.console = Console()
        self.evaluator.call_stack.clear()

        program, errors = parse(source_code)
        if errors:
            msg = self._format_parse_errors(errors, source_code)
            first = errors[0]
            side_effects = [{'topics': ['stderr'], 'message': msg}]
            return ExecutionResult(
                status='error',
                error_message=msg,
                error_token={'line': first.line, 'col': first.column},
                side_effects=side_effects,
            )

        try:
            value = self.evaluator.run(program, self.global_env)
        except EnigmaError as e:
            msg, token = self._format_runtime_error(e, source_code)
        except Exception as e:
            error = InternalError.wrap(e, self.evaluator.current_node)
            msg, token = self._format_runtime_error(error, source_code)
        else:
            return ExecutionResult(
                status='success',
                value=value,
                side_effects=_effects(self.evaluator.console.entries),
            )

        # Emit consolidated stderr side-effect
        side_effects = _effects(self.evaluator.console.entries)
        side_effects.append({'topics': ['stderr'], 'message': msg})
        return ExecutionResult(status='error', error_message=msg, error_token=token, side_effects=side_effects)

    # --- formatting ---

    def _format_parse_errors(self, errors: List[ParseError], source: str) -> str:
        blocks = []
        for err in errors:
            block = f"ParseError: {err.message} (line {err.line}, col {err.column})"
            context = self._source_context(source, err.line, err.column)
            if context:
                block += "\n" + context
            blocks.append(block)
        return "\n".join(blocks)

    def _format_runtime_error(self, e: EnigmaError, source: str) -> tuple[str, Optional[dict]]:
        kind = "InternalError" if isinstance(e, InternalError) else "RuntimeError"
        msg = f"{kind}: {e.message}"
        token = None
        line, col = e.line, e.column
        if line:
            token = {'line': line, 'col': col, 'text': str(e.node)}
            msg = f"{msg}\n(line {line}, col {col})"
            context = self._source_context(source, line, col)
            if context:
                msg += "\n" + context
        st = self._format_stacktrace(e.stack or [])
        if st:
            msg += "\n" + st
        return msg, token

    def _source_context(self, source: str, line: int, col: Optional[int], radius: int = 2) -> str:
        lines = source.splitlines()
        if not line or line < 1 or line > len(lines):
            return ""
        start = max(1, line - radius)
        end = min(len(lines), line + radius)
        width = len(str(end))
        out = []
        for i in range(start, end + 1):
            prefix = ">" if i == line else " "
            ln = str(i).rjust(width)
            out.append(f"{prefix} {ln} | {lines[i - 1]}")
            if i == line and col is not None:
                caret = " " * max(col - 1, 0)
                out.append(f"  {' ' * width} | {caret}^")
        return "\n".join(out)

    def _format_stacktrace(self, stack: List[dict]) -> str:
        if not stack:
            return ""
        lines = ["Stack (most recent call last):"]
        for frame in stack:
            lines.append(f"  at {frame.get('name')} (line {frame.get('line')}, col {frame.get('column')})")
        return "\n".join(lines)
