"""
Serialization of traces, step records and execution states.

Records hold AST nodes and live runtime values; ``to_builtin`` reduces them
to plain JSON/YAML-safe data first. Human-readable reports are rendered from
Mustache templates.
"""
from __future__ import annotations

import json
from typing import Any, Iterable, Optional

import pystache
import yaml

from enigma.enigma_ast import Node, Span
from enigma.enigma_datatypes import ConsoleEntry
from enigma.enigma_parser import ParseError
from enigma.enigma_stepper import (
    BindingSnapshot, CallFrame, StepRecord, ExecutionState, StepNavigator, Trace, OutputView,
)

__all__ = [
    "to_builtin", "serialize", "deserialize", "render_state", "render_trace",
]

STATE_TEMPLATE = """\
Step {{cursor}}/{{last}} [{{phase}}] {{kind}} at {{line}}:{{column}}{{#is_complete}} (complete){{/is_complete}}
  {{description}}
{{#has_result}}
  result: {{result}}
{{/has_result}}
{{#error}}
  error: {{error}}
{{/error}}
{{#bindings}}
  {{#is_new}}*{{/is_new}}{{^is_new}} {{/is_new}} {{name}} = {{value}} ({{type}}{{#constant}}, const{{/constant}}, {{scope}})
{{/bindings}}
{{#output}}
  > [{{severity}}] {{text}}
{{/output}}
{{#frames}}
  at {{function_name}}({{arguments}}) line {{line}}{{#is_active}} (active){{/is_active}}
{{/frames}}
"""

TRACE_TEMPLATE = """\
{{#records}}
{{seq}}. {{indent}}{{phase}} {{kind}}: {{description}}
{{/records}}
{{#truncated}}
... {{truncated}} more steps
{{/truncated}}
"""


def _record_dict(record: StepRecord) -> dict:
    return {
        "seq": record.seq,
        "phase": record.phase,
        "kind": record.kind,
        "source": str(record.node),
        "span": record.span.as_dict(),
        "depth": record.depth,
        "node_path": record.node_path,
        "description": record.description,
        "result": record.result_repr,
        "error": record.error,
        "bindings": [b.as_dict() for b in record.bindings],
        "output": [e.as_dict() for e in record.output],
        "call_stack": [f.as_dict() for f in record.call_stack],
    }


def to_builtin(obj: Any) -> Any:
    """Converts stepper/runtime objects into plain dicts, lists and scalars."""
    match obj:
        case None | bool() | int() | float() | str():
            return obj
        case StepRecord():
            return _record_dict(obj)
        case ExecutionState():
            return {
                "cursor": obj.cursor,
                "is_complete": obj.is_complete,
                "record": to_builtin(obj.record),
                "output": [e.as_dict() for e in obj.output],
                "call_stack": [f.as_dict() for f in obj.call_stack],
            }
        case StepNavigator():
            return {"cursor": obj.cursor, "records": [_record_dict(r) for r in obj.records]}
        case Trace():
            return {
                "records": [_record_dict(r) for r in obj.records],
                "output": [e.as_dict() for e in obj.output],
                "error": obj.error.message if obj.error is not None else None,
            }
        case BindingSnapshot() | CallFrame() | ConsoleEntry() | ParseError() | Span():
            return obj.as_dict()
        case OutputView():
            return [e.as_dict() for e in obj]
        case Node():
            return str(obj)
        case dict():
            return {str(k): to_builtin(v) for k, v in obj.items()}
        case list() | tuple():
            return [to_builtin(x) for x in obj]
    return repr(obj)


def serialize(value: Any, fmt: str = 'json', *, pretty: bool = True) -> str:
    f = (fmt or 'json').lower()
    data = to_builtin(value)
    if f == 'json':
        return json.dumps(data, indent=2 if pretty else None, ensure_ascii=False)
    if f in ('yaml', 'yml'):
        return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
    raise ValueError(f"Unsupported serialization format: {fmt}")


def deserialize(text: str, fmt: str = 'json') -> Any:
    f = (fmt or 'json').lower()
    if f == 'json':
        return json.loads(text)
    if f in ('yaml', 'yml'):
        return yaml.safe_load(text)
    raise ValueError(f"Unsupported serialization format: {fmt}")


def _render(template: str, context: dict) -> str:
    renderer = pystache.Renderer(escape=lambda u: u)
    return renderer.render(template, context)


def render_state(state: ExecutionState, total: Optional[int] = None) -> str:
    """Renders one execution state as a short text block."""
    record = state.record
    if record is None:
        return "(empty trace)\n"
    context = _record_dict(record)
    context.update({
        "cursor": state.cursor,
        "last": (total - 1) if total is not None else "?",
        "is_complete": state.is_complete,
        "line": record.span.line,
        "column": record.span.column,
        "has_result": record.phase == "after" and record.error is None,
        # Innermost call first.
        "frames": [
            dict(f.as_dict(), arguments=", ".join(f.args))
            for f in reversed(state.call_stack)
        ],
    })
    return _render(STATE_TEMPLATE, context)


def render_trace(records: Iterable[StepRecord] | StepNavigator, limit: Optional[int] = None) -> str:
    """Renders a trace (or a navigator's records) as one indented line per step."""
    if isinstance(records, StepNavigator):
        records = records.records
    records = list(records)
    shown = records if limit is None else records[:limit]
    context = {
        "records": [
            {
                "seq": r.seq,
                "indent": "  " * r.depth,
                "phase": r.phase,
                "kind": r.kind,
                "description": r.description,
            }
            for r in shown
        ],
        "truncated": len(records) - len(shown),
    }
    return _render(TRACE_TEMPLATE, context)
