import pytest

from enigma import ScriptRunner
from enigma.enigma_datatypes import Instance


async def run_enigma(src: str, **kwargs):
    runner = ScriptRunner(**kwargs)
    return await runner.handle_script(src)


def assert_ok(res, expected=None):
    assert res.status == 'success', res.error_message
    if expected is not None:
        assert res.value == expected


def assert_error(res, contains: str | None = None):
    assert res.status == 'error', f"expected error, got success: {res.value!r}"
    if contains is not None:
        assert contains in (res.error_message or ""), f"error did not contain {contains!r}: {res.error_message!r}"


ANIMALS = """
class Animal {
  let legs = 4;
  init(name) { this.name = name; }
  describe() { return f"{this.name} has {this.legs} legs"; }
}
class Bird extends Animal {
  let legs = 2;
  init(name) { super(name); }
  describe() { return super.describe() + " and flies"; }
}
"""


@pytest.mark.asyncio
async def test_super_calls_parent_constructor_and_method():
    res = await run_enigma(ANIMALS + 'let b = new Bird("Tweety"); b.describe()')
    assert_ok(res, "Tweety has 2 legs and flies")


@pytest.mark.asyncio
async def test_parent_method_sees_subclass_fields():
    res = await run_enigma(ANIMALS + 'new Animal("Rex").describe()')
    assert_ok(res, "Rex has 4 legs")


@pytest.mark.asyncio
async def test_instance_value_and_display():
    runner = ScriptRunner()
    res = await runner.handle_script(ANIMALS + 'let b = new Bird("Tweety"); b')
    assert_ok(res)
    assert isinstance(res.value, Instance)
    assert res.value.cls.name == "Bird"
    assert runner.printer.pformat(res.value) == 'Bird {legs: 2, name: "Tweety"}'


@pytest.mark.asyncio
async def test_counter_mutates_fields():
    src = """
    class Counter {
      let count = 0;
      increment() { this.count += 1; return this; }
    }
    let c = new Counter();
    c.increment().increment().increment();
    c.count
    """
    assert_ok(await run_enigma(src), 3)


@pytest.mark.asyncio
async def test_inherited_constructor():
    src = "class A { init(x) { this.x = x; } } class B extends A { } new B(5).x"
    assert_ok(await run_enigma(src), 5)


@pytest.mark.asyncio
async def test_bound_method_keeps_instance():
    src = """
    class P { let v = 7; get() { return this.v; } }
    let g = new P().get;
    g()
    """
    assert_ok(await run_enigma(src), 7)


@pytest.mark.asyncio
async def test_method_closures_see_defining_scope():
    src = """
    let base = 10;
    class K { add(n) { return base + n; } }
    new K().add(5)
    """
    assert_ok(await run_enigma(src), 15)


@pytest.mark.asyncio
async def test_missing_property_suggests_close_name():
    src = "class P { let name = 1; } new P().nmae"
    assert_error(await run_enigma(src), "Property 'nmae' not found on instance of P. Did you mean 'name'?")


@pytest.mark.asyncio
async def test_missing_property_without_suggestion():
    res = await run_enigma("class P { let name = 1; } new P().zzzzzz")
    assert_error(res, "Property 'zzzzzz' not found on instance of P")
    assert "Did you mean" not in res.error_message


@pytest.mark.asyncio
async def test_class_redefinition():
    assert_error(await run_enigma("class A {} class A {}"), "Class 'A' already defined")


@pytest.mark.asyncio
async def test_extends_non_class():
    assert_error(await run_enigma("let P = 1; class C extends P {}"), "'P' is not a class")


@pytest.mark.asyncio
async def test_extends_unknown_class():
    assert_error(await run_enigma("class C extends Missing {}"), "Identifier not found: Missing")


@pytest.mark.asyncio
async def test_self_inheritance():
    assert_error(await run_enigma("class A extends A {}"), "Circular inheritance detected: A -> A")


@pytest.mark.asyncio
async def test_this_outside_class():
    assert_error(await run_enigma("this"), "'this' is not available in this context")


@pytest.mark.asyncio
async def test_super_outside_class():
    assert_error(await run_enigma("let f = fn() { return super.m(); }; f()"),
                 "'super' is not available outside a class method")


@pytest.mark.asyncio
async def test_super_method_missing_in_parent():
    src = "class A {} class B extends A { m() { return super.m(); } } new B().m()"
    assert_error(await run_enigma(src), "Method not found: m in parent class: A")


@pytest.mark.asyncio
async def test_new_on_non_class():
    assert_error(await run_enigma("let x = 3; new x()"), "Cannot instantiate non-class object: INTEGER")


@pytest.mark.asyncio
async def test_constructor_arity():
    src = "class A { init(a, b) { } } new A(1)"
    assert_error(await run_enigma(src), "Wrong number of arguments. Expected 2, got 1")
    assert_error(await run_enigma("class Z {} new Z(1)"), "Wrong number of arguments. Expected 0, got 1")


@pytest.mark.asyncio
async def test_class_name_is_constant():
    assert_error(await run_enigma("class A {} A = 1;"), "Cannot assign to constant A")


@pytest.mark.asyncio
async def test_three_level_super_chain():
    src = """
    class A { who() { return "A"; } }
    class B extends A { who() { return "B" + super.who(); } }
    class C extends B { who() { return "C" + super.who(); } }
    new C().who()
    """
    assert_ok(await run_enigma(src), "CBA")


@pytest.mark.asyncio
async def test_return_in_field_initializer_is_an_error():
    src = "class C { let x = if (true) { return 1; }; }\nlet f = fn() { new C(); return 2; };\nf()"
    assert_error(await run_enigma(src), "Control flow statements are not allowed in field initializers: C.x")
