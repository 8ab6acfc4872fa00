import pytest

from enigma import ScriptRunner
from enigma.enigma_datatypes import EnigmaHash


async def run_enigma(src: str, **kwargs):
    runner = ScriptRunner(**kwargs)
    return await runner.handle_script(src)


def assert_ok(res, expected=None):
    assert res.status == 'success', res.error_message
    if expected is not None:
        assert res.value == expected
        assert type(res.value) is type(expected)


def assert_error(res, contains: str | None = None):
    assert res.status == 'error', f"expected error, got success: {res.value!r}"
    if contains is not None:
        assert contains in (res.error_message or ""), f"error did not contain {contains!r}: {res.error_message!r}"


# --- arithmetic and operators ---

@pytest.mark.asyncio
@pytest.mark.parametrize(
    "src,expected",
    [
        ("5 + 5 * 2", 15),
        ("(5 + 5) * 2", 20),
        ("7 / 2", 3.5),
        ("6 / 3", 2.0),
        ("7 // 2", 3),
        ("-7 // 2", -3),
        ("7.5 // 2", 3.0),
        ("7 % 3", 1),
        ("-7 % 3", -1),
        ("7.5 % 2", 1.5),
        ("1 + 2.5", 3.5),
        ("2 * 1.5", 3.0),
        ("-5 + 2", -3),
        ("5 & 3", 1),
        ("5 | 3", 7),
        ("5 ^ 3", 6),
        ("~5", -6),
        ("1 << 4", 16),
        ("256 >> 2", 64),
        ('"foo" + "bar"', "foobar"),
        ('"a" < "b"', True),
        ("1 < 2.5", True),
        ("3 >= 3", True),
    ],
)
async def test_arithmetic(src, expected):
    assert_ok(await run_enigma(src), expected)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "src,message",
    [
        ("1 / 0", "Division by zero"),
        ("1 // 0", "Integer division by zero"),
        ("1 % 0", "Modulo by zero"),
        ('"a" - "b"', "Unknown operator: STRING - STRING"),
        ('"a" + 1', "Type mismatch: STRING + INTEGER"),
        ('"a" * 3', "Type mismatch: STRING * INTEGER"),
        ("[1] + [2]", "Unknown operator: ARRAY + ARRAY"),
        ("true + true", "Unknown operator: BOOLEAN + BOOLEAN"),
        ("null + 1", "Cannot perform '+' operation with null values"),
        ("-true", "Unknown operator: -BOOLEAN"),
        ("1.5 & 1", "Unknown operator: FLOAT & INTEGER"),
        ("1 << -1", "Negative shift count"),
        ("1e308 // 0.5", "Numeric overflow: FLOAT // FLOAT"),
        ("pow(10, 400) / 3", "Numeric overflow: INTEGER / INTEGER"),
    ],
)
async def test_operator_errors(src, message):
    assert_error(await run_enigma(src), message)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "src,expected",
    [
        ('1 == "1"', False),
        ('1 != "1"', True),
        ("1 == 1.0", True),
        ("true == 1", False),
        ("null == null", True),
        ("null == false", False),
        ("null != 0", True),
        ("[1, 2] == [1, 2]", True),
        ('let h = {"a": 1}; h == {"a": 1}', True),
        ('"x" == "x"', True),
    ],
)
async def test_equality(src, expected):
    assert_ok(await run_enigma(src), expected)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "src,expected",
    [
        ("!0", True),
        ("!0.0", True),
        ('!""', True),
        ("![]", True),
        ("!{}", True),
        ("!null", True),
        ("!false", True),
        ('!"a"', False),
        ("![0]", False),
        ("!1", False),
        ("!-1", False),
        ("if (0) { 1 } else { 2 }", 2),
        ('if ("x") { 1 } else { 2 }', 1),
    ],
)
async def test_truthiness(src, expected):
    assert_ok(await run_enigma(src), expected)


@pytest.mark.asyncio
async def test_logical_operators_short_circuit():
    prelude = "let called = false; let f = fn() { called = true; return true; };"
    assert_ok(await run_enigma(prelude + " false && f(); called"), False)
    assert_ok(await run_enigma(prelude + " true || f(); called"), False)
    assert_ok(await run_enigma(prelude + " true && f(); called"), True)
    assert_ok(await run_enigma("1 && 2"), True)
    assert_ok(await run_enigma("0 || null"), False)


# --- bindings ---

@pytest.mark.asyncio
async def test_let_then_assign():
    assert_ok(await run_enigma("let x = 5; x = 6; x"), 6)


@pytest.mark.asyncio
async def test_const_assignment_names_the_constant():
    assert_error(await run_enigma("const x = 5; x = 6;"), "Cannot assign to constant x")


@pytest.mark.asyncio
async def test_redeclaration_in_same_scope():
    assert_error(await run_enigma("let x = 1; let x = 2;"), "Variable 'x' already declared in this scope")


@pytest.mark.asyncio
async def test_assign_to_undeclared():
    assert_error(await run_enigma("y = 3;"), "Cannot assign to undeclared variable y")


@pytest.mark.asyncio
async def test_unknown_identifier():
    assert_error(await run_enigma("foo"), "Identifier not found: foo")


@pytest.mark.asyncio
async def test_block_scopes():
    assert_ok(await run_enigma("let x = 1; if (true) { let x = 2; } x"), 1)
    assert_ok(await run_enigma("let x = 1; if (true) { x = 2; } x"), 2)
    assert_ok(await run_enigma("let x = 1; { let x = 3; } x"), 1)


@pytest.mark.asyncio
async def test_compound_assignment():
    assert_ok(await run_enigma("let x = 10; x -= 3; x *= 2; x /= 7; x"), 2.0)
    assert_ok(await run_enigma("let s = \"ab\"; s += \"c\"; s"), "abc")


# --- functions and closures ---

@pytest.mark.asyncio
async def test_recursive_fibonacci():
    src = "let fib = fn(n) { if (n < 2) { return n; } return fib(n-1) + fib(n-2); }; fib(10);"
    assert_ok(await run_enigma(src), 55)


@pytest.mark.asyncio
async def test_closure_counter():
    src = """
    let make = fn() {
      let count = 0;
      return fn() { count = count + 1; return count; };
    };
    let c = make();
    c(); c();
    c()
    """
    assert_ok(await run_enigma(src), 3)


@pytest.mark.asyncio
async def test_curried_adder():
    assert_ok(await run_enigma("let add = fn(a) { return fn(b) { return a + b; }; }; add(2)(3)"), 5)


@pytest.mark.asyncio
async def test_function_without_return_yields_null():
    res = await run_enigma("let f = fn() { 1; }; f()")
    assert_ok(res)
    assert res.value is None


@pytest.mark.asyncio
async def test_named_function_declaration():
    assert_ok(await run_enigma("fn square(x) { return x * x; } square(7)"), 49)


@pytest.mark.asyncio
async def test_wrong_argument_count():
    assert_error(await run_enigma("let f = fn(a) { return a; }; f(1, 2)"),
                 "Wrong number of arguments. Expected 1, got 2")


@pytest.mark.asyncio
async def test_not_a_function():
    assert_error(await run_enigma("let x = 1; x()"), "Not a function: INTEGER")


@pytest.mark.asyncio
async def test_call_depth_limit():
    res = await run_enigma("let f = fn(n) { return f(n + 1); }; f(0)", max_call_depth=10)
    assert_error(res, "Maximum call depth (10) exceeded")


@pytest.mark.asyncio
async def test_recursion_a_hundred_deep():
    src = "let sum = fn(n) { if (n == 0) { return 0; } return n + sum(n - 1); }; sum(100)"
    assert_ok(await run_enigma(src), 5050)


@pytest.mark.asyncio
async def test_default_call_depth_allows_deep_recursion():
    src = "let down = fn(n) { if (n == 0) { return 0; } return down(n - 1); }; down(900)"
    assert_ok(await run_enigma(src), 0)
    res = await run_enigma("let f = fn(n) { return f(n + 1); }; f(0)")
    assert_error(res, "Maximum call depth (1000) exceeded")


@pytest.mark.asyncio
async def test_return_inside_if_used_as_value_leaves_function():
    src = "let f = fn() { let x = if (true) { return 5; }; return type(x); }; f();"
    assert_ok(await run_enigma(src), 5)


@pytest.mark.asyncio
async def test_break_inside_if_used_as_value_leaves_loop():
    src = """
    let i = 0;
    while (true) {
      i += 1;
      let stop = if (i == 4) { break; } else { false };
    }
    i
    """
    assert_ok(await run_enigma(src), 4)


@pytest.mark.asyncio
async def test_continue_inside_if_argument_skips_iteration():
    src = """
    let s = 0;
    for (let i = 0; i < 5; i += 1) {
      s += if (i % 2 == 0) { continue; } else { i };
    }
    s
    """
    assert_ok(await run_enigma(src), 4)


@pytest.mark.asyncio
async def test_top_level_return_inside_if_value():
    assert_ok(await run_enigma("let x = if (true) { return 7; }; 8"), 7)


@pytest.mark.asyncio
async def test_if_as_value_still_yields_its_block_value():
    assert_ok(await run_enigma("let x = if (1 < 2) { 10 } else { 20 }; x"), 10)


@pytest.mark.asyncio
async def test_top_level_return():
    assert_ok(await run_enigma("return 5; 6"), 5)


# --- loops ---

@pytest.mark.asyncio
async def test_while_loop():
    assert_ok(await run_enigma("let i = 0; let s = 0; while (i < 5) { i += 1; s += i; } s"), 15)


@pytest.mark.asyncio
async def test_break_and_continue():
    src = """
    let i = 0;
    let s = 0;
    while (true) {
      i += 1;
      if (i > 10) { break; }
      if (i % 2 == 0) { continue; }
      s += i;
    }
    s
    """
    assert_ok(await run_enigma(src), 25)


@pytest.mark.asyncio
async def test_for_loop_and_scope():
    assert_ok(await run_enigma("let s = 0; for (let i = 0; i < 4; i += 1) { s += i; } s"), 6)
    assert_error(await run_enigma("for (let i = 0; i < 1; i += 1) {} i"), "Identifier not found: i")


@pytest.mark.asyncio
async def test_each_iteration_gets_a_fresh_environment():
    src = """
    let fs = [];
    let i = 0;
    while (i < 3) {
      let j = i;
      fs = push(fs, fn() { return j; });
      i += 1;
    }
    fs[0]() + fs[1]() + fs[2]()
    """
    assert_ok(await run_enigma(src), 3)


@pytest.mark.asyncio
async def test_return_from_inside_loop():
    src = "let f = fn() { let i = 0; while (true) { i += 1; if (i == 3) { return i; } } }; f()"
    assert_ok(await run_enigma(src), 3)


@pytest.mark.asyncio
async def test_iteration_ceiling():
    res = await run_enigma("while (true) { }", max_iterations=100)
    assert_error(res, "Maximum iterations (100) reached for loop")
    res = await run_enigma("for (;;) { }", max_iterations=100)
    assert_error(res, "Maximum iterations (100) reached for loop")


# --- arrays, hashes, strings ---

@pytest.mark.asyncio
async def test_array_indexing():
    assert_ok(await run_enigma("let a = [1, 2, 3]; a[0] + a[-1]"), 4)
    assert_error(await run_enigma("[1, 2][5]"), "Index out of bounds: 5 for ARRAY of size 2")
    assert_error(await run_enigma('[1, 2]["x"]'), "Array index must be an integer, got: STRING")
    assert_ok(await run_enigma("let a = [1]; a[0] = 9; a"), [9])
    assert_ok(await run_enigma('"abc"[1]'), "b")


@pytest.mark.asyncio
async def test_hash_access_and_assignment():
    assert_ok(await run_enigma('let h = {"a": 1, b: 2}; h["a"] + h["b"]'), 3)
    res = await run_enigma('let h = {"a": 1}; h["zz"]')
    assert_ok(res)
    assert res.value is None
    assert_ok(await run_enigma('let h = {1: "x", true: "y"}; h[1] + h[true]'), "xy")
    assert_ok(await run_enigma('let h = {}; h["k"] = 5; h["k"]'), 5)
    assert_ok(await run_enigma('let h = {name: "Ada"}; h.name'), "Ada")
    assert_error(await run_enigma("let h = {[1]: 2};"), "Hash key must be a string, integer or boolean")


@pytest.mark.asyncio
async def test_hash_value_type():
    res = await run_enigma('let h = {"a": [1, 2]}; h')
    assert_ok(res)
    assert isinstance(res.value, EnigmaHash)
    assert res.value["a"] == [1, 2]


@pytest.mark.asyncio
async def test_fstring_interpolation():
    assert_ok(await run_enigma('let name = "Ada"; f"Hi {name}, {1 + 2}!"'), "Hi Ada, 3!")
    assert_ok(await run_enigma('f"{[1, "a"]} {null} {2.0}"'), '[1, "a"] null 2.0')


# --- runner behaviour ---

@pytest.mark.asyncio
async def test_console_side_effects_with_severities():
    res = await run_enigma('print("a", 1); info("i"); error("e"); success("s"); println("p")')
    assert_ok(res)
    assert res.side_effects == [
        {'topics': ['print'], 'message': 'a 1'},
        {'topics': ['info'], 'message': 'i'},
        {'topics': ['error'], 'message': 'e'},
        {'topics': ['success'], 'message': 's'},
        {'topics': ['print'], 'message': 'p'},
    ]


@pytest.mark.asyncio
async def test_global_environment_persists_between_scripts():
    runner = ScriptRunner()
    assert_ok(await runner.handle_script("let x = 1;"))
    assert_ok(await runner.handle_script("x + 1"), 2)


@pytest.mark.asyncio
async def test_error_reports_position_and_context():
    src = 'let x = 1;\nlet y = x + "a";'
    res = await run_enigma(src)
    assert_error(res, "Type mismatch: INTEGER + STRING")
    assert res.error_token["line"] == 2
    assert "> 2 | let y = x + \"a\";" in res.error_message
    assert "^" in res.error_message
    assert res.format_error().startswith("Error on line 2")


@pytest.mark.asyncio
async def test_error_includes_call_stack():
    res = await run_enigma("let f = fn() { return 1 + null; };\nf()")
    assert_error(res, "Cannot perform '+' operation with null values")
    assert "Stack (most recent call last):" in res.error_message
    assert "at f (line 2, col 1)" in res.error_message


@pytest.mark.asyncio
async def test_parse_errors_prevent_evaluation():
    res = await run_enigma('print("side effect"); let = 1;')
    assert_error(res, "ParseError: Expected next token to be IDENTIFIER")
    assert all(e['topics'] == ['stderr'] for e in res.side_effects)


@pytest.mark.asyncio
async def test_huge_integers_print_without_failing():
    res = await run_enigma('str(pow(10, 5000))')
    assert_ok(res)
    assert res.value.startswith("<") and res.value.endswith("-bit integer>")
    res = await run_enigma('f"{-pow(10, 5000)}"')
    assert res.value.startswith("-<")
