import pytest

from enigma.enigma_parser import parse
from enigma.enigma_stepper import StepRecorder, StepNavigator
from enigma.enigma_serialize import to_builtin, serialize, deserialize, render_state, render_trace

SRC = "let x = 1 + 2; x * 3;"


@pytest.fixture
def trace():
    program, errors = parse(SRC)
    assert not errors
    return StepRecorder().record(program)


def test_record_to_builtin(trace):
    data = to_builtin(trace.records[8])
    assert data["seq"] == 8
    assert data["kind"] == "LetStatement"
    assert data["phase"] == "after"
    assert data["source"] == "let x = (1 + 2);"
    assert data["span"] == {"line": 1, "column": 1, "end_line": 1, "end_column": 15}
    assert data["bindings"] == [{
        "name": "x", "value": "3", "type": "INTEGER", "constant": False,
        "scope": "global", "depth": 0, "is_new": True,
    }]
    assert data["output"] == []


def test_json_round_trip_of_trace(trace):
    text = serialize(trace, 'json')
    data = deserialize(text, 'json')
    assert len(data["records"]) == 18
    assert data["records"][0]["description"] == "Starting program execution"
    assert data["records"][-1]["result"] == "9"
    assert data["error"] is None


def test_yaml_state(trace):
    nav = StepNavigator(trace.records)
    state = nav.seek(len(nav) - 1)
    data = deserialize(serialize(state, 'yaml'), 'yaml')
    assert data["cursor"] == 17
    assert data["is_complete"] is True
    assert data["record"]["kind"] == "Program"


def test_compact_json(trace):
    assert "\n" not in serialize(trace.records[0], 'json', pretty=False)


def test_unknown_format(trace):
    with pytest.raises(ValueError, match="Unsupported serialization format: xml"):
        serialize(trace, 'xml')
    with pytest.raises(ValueError):
        deserialize("{}", 'toml')


def test_halted_trace_serializes_error():
    program, _ = parse("let a = 1 / 0;")
    trace = StepRecorder().record(program)
    data = to_builtin(trace)
    assert data["error"] == "Division by zero"
    assert data["records"][-1]["error"] == "Division by zero"


def test_render_state(trace):
    nav = StepNavigator(trace.records)
    text = render_state(nav.seek(8), total=len(nav))
    assert "Step 8/17 [after] LetStatement at 1:1" in text
    assert 'Variable "x" declared' in text
    assert "* x = 3 (INTEGER, global)" in text
    assert "(complete)" not in text


def test_render_final_state_marks_completion(trace):
    nav = StepNavigator(trace.records)
    text = render_state(nav.seek(17), total=len(nav))
    assert "(complete)" in text
    assert "result: 9" in text


def test_render_empty_state():
    assert render_state(StepNavigator([]).current_state()) == "(empty trace)\n"


def test_render_trace(trace):
    text = render_trace(trace.records)
    lines = text.splitlines()
    assert len(lines) == 18
    assert lines[0] == "0. before Program: Starting program execution"
    assert lines[3].startswith("3.       before IntegerLiteral")


def test_render_trace_truncated(trace):
    text = render_trace(trace.records, limit=4)
    assert text.splitlines()[-1] == "... 14 more steps"


def test_render_trace_from_navigator(trace):
    nav = StepNavigator(trace.records)
    assert render_trace(nav) == render_trace(trace.records)


def test_call_stack_is_serialized_and_rendered():
    program, _ = parse("let add = fn(a, b) { return a + b; };\nadd(1, 2);")
    records = StepRecorder().record(program).records
    inner = next(r for r in records if r.kind == "InfixExpression")
    data = to_builtin(inner)
    assert data["call_stack"] == [{
        "function_name": "add", "args": ["1", "2"], "line": 2, "column": 1, "is_active": True,
    }]
    assert to_builtin(records[0])["call_stack"] == []

    nav = StepNavigator(records)
    text = render_state(nav.seek(inner.seq), total=len(nav))
    assert "at add(1, 2) line 2 (active)" in text
