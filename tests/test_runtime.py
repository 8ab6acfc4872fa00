import asyncio
import threading

import pytest

from enigma import ScriptRunner
from enigma.enigma_runtime import ExecutionResult, PrepareResult


@pytest.mark.asyncio
async def test_prepare_complete():
    runner = ScriptRunner()
    result = await runner.prepare('let x = 2; print(x * 21); x')
    assert isinstance(result, PrepareResult)
    assert result.status == 'complete'
    assert result.has_trace
    assert result.value == 2
    assert [e.text for e in result.output] == ["42"]
    state = result.navigator.current_state()
    assert state.cursor == 0
    assert state.record.kind == "Program"


@pytest.mark.asyncio
async def test_prepare_parse_error_has_no_trace():
    runner = ScriptRunner()
    result = await runner.prepare("let = 5;")
    assert result.status == 'parse_error'
    assert not result.has_trace
    assert result.errors
    assert result.errors[0].line == 1
    assert "ParseError: Expected next token to be IDENTIFIER" in result.format_error()


@pytest.mark.asyncio
async def test_prepare_halted_keeps_partial_trace():
    runner = ScriptRunner()
    result = await runner.prepare('print("before");\nlet y = 1 / 0;')
    assert result.status == 'halted'
    assert result.has_trace
    assert result.error.message == "Division by zero"
    assert "RuntimeError: Division by zero" in result.error_message
    assert "(line 2, col 9)" in result.error_message
    final = result.navigator.seek(len(result.navigator) - 1)
    assert final.is_complete
    assert final.record.error == "Division by zero"
    assert final.output.lines() == ["before"]


@pytest.mark.asyncio
async def test_prepare_iteration_override():
    runner = ScriptRunner()
    result = await runner.prepare("while (true) {}", max_iterations=3)
    assert result.status == 'halted'
    assert result.error.message == "Maximum iterations (3) reached for loop"


@pytest.mark.asyncio
async def test_prepare_does_not_touch_repl_environment():
    runner = ScriptRunner()
    await runner.prepare("let hidden = 1;")
    res = await runner.handle_script("hidden")
    assert res.status == 'error'
    assert "Identifier not found: hidden" in res.error_message


@pytest.mark.asyncio
async def test_prepare_with_preset_cancel_event():
    from enigma.enigma_datatypes import PrepareCancelled
    runner = ScriptRunner()
    event = threading.Event()
    event.set()
    with pytest.raises(PrepareCancelled):
        await runner.prepare("let x = 1;", cancel_event=event)


@pytest.mark.asyncio
async def test_cancelling_prepare_sets_event():
    runner = ScriptRunner()
    event = threading.Event()
    task = asyncio.create_task(
        runner.prepare("while (true) { }", max_iterations=10**9, cancel_event=event)
    )
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert event.is_set()


def test_limits_from_environment(monkeypatch):
    monkeypatch.setenv("ENIGMA_MAX_ITERATIONS", "77")
    monkeypatch.setenv("ENIGMA_MAX_CALL_DEPTH", "12")
    runner = ScriptRunner()
    assert runner.max_iterations == 77
    assert runner.max_call_depth == 12


def test_explicit_limits_win(monkeypatch):
    monkeypatch.setenv("ENIGMA_MAX_ITERATIONS", "77")
    runner = ScriptRunner(max_iterations=5)
    assert runner.max_iterations == 5


def test_bad_environment_value_falls_back(monkeypatch):
    monkeypatch.setenv("ENIGMA_MAX_ITERATIONS", "lots")
    assert ScriptRunner().max_iterations == 10000


def test_format_error():
    res = ExecutionResult(status='error', error_message="boom", error_token={'line': 3, 'col': 4})
    assert res.format_error() == "Error on line 3, col 4: boom"
    assert ExecutionResult(status='success', value=1).format_error() == ""


def test_debug_output(monkeypatch, capsys):
    monkeypatch.setenv("ENIGMA_DEBUG", "1")
    runner = ScriptRunner()
    asyncio.run(runner.handle_script("let f = fn() { return 1; }; f()"))
    err = capsys.readouterr().err
    assert "[ENIGMA] call f" in err


@pytest.mark.asyncio
async def test_internal_errors_are_reported(monkeypatch):
    runner = ScriptRunner()

    def broken(op, right):
        raise ZeroDivisionError("division by zero")
    monkeypatch.setattr(runner.evaluator, "_eval_prefix", broken)
    res = await runner.handle_script("-1")
    assert res.status == 'error'
    assert res.error_message.startswith("InternalError: ZeroDivisionError: division by zero")
    assert res.side_effects[-1]['topics'] == ['stderr']


@pytest.mark.asyncio
@pytest.mark.parametrize("src", ["1e308 // 0.5", "round(1.5, 400)", 'int("1e400")'])
async def test_prepare_halts_on_numeric_overflow(src):
    result = await ScriptRunner().prepare(src)
    assert result.status == 'halted'
    assert "RuntimeError: Numeric overflow" in result.error_message
    final = result.navigator.seek(len(result.navigator) - 1)
    assert final.record.error.startswith("Numeric overflow")


@pytest.mark.asyncio
async def test_prepare_halts_on_internal_errors(monkeypatch):
    from enigma.enigma_interpreter import Evaluator

    def broken(self, op, right):
        raise ZeroDivisionError("division by zero")
    monkeypatch.setattr(Evaluator, "_eval_prefix", broken)
    result = await ScriptRunner().prepare("let x = 1;\n-x;")
    assert result.status == 'halted'
    assert result.error_message.startswith("InternalError: ZeroDivisionError: division by zero")
    assert "(line 2, col 1)" in result.error_message
    last = result.navigator.records[-1]
    assert last.kind == "PrefixExpression"
    assert last.error == "ZeroDivisionError: division by zero"


@pytest.mark.asyncio
async def test_prepare_reports_oversized_integer_literal():
    result = await ScriptRunner().prepare("1" * 5000)
    assert result.status == 'parse_error'
    assert "ParseError: Integer literal too large" in result.error_message


def test_zero_iteration_limit_is_kept(monkeypatch):
    monkeypatch.setenv("ENIGMA_MAX_ITERATIONS", "77")
    runner = ScriptRunner(max_iterations=0, max_call_depth=0)
    assert runner.max_iterations == 0
    assert runner.max_call_depth == 0


@pytest.mark.asyncio
async def test_prepare_with_zero_iteration_limit():
    result = await ScriptRunner().prepare("let i = 0; while (i < 1) { i += 1; }", max_iterations=0)
    assert result.status == 'halted'
    assert result.error.message == "Maximum iterations (0) reached for loop"


@pytest.mark.asyncio
async def test_prepare_uses_runner_seed():
    src = "[random(100), random(100), random(100)]"
    a = await ScriptRunner(seed=3).prepare(src)
    b = await ScriptRunner(seed=3).prepare(src)
    assert a.value == b.value
