"""
The tree-walking Enigma evaluator.

``Evaluator.evaluate(node, env)`` is the single entry point for every node
visit: it checks for cancellation, notifies the optional step hooks before
and after the visit, and attaches position and call-stack information to
errors. ``_eval`` dispatches on the node type with one exhaustive match.
"""

import math
import os
import random
import sys
import threading
from typing import Any, List, Optional

from enigma import enigma_ast as ast
from enigma.enigma_datatypes import (
    Environment, EnigmaError, InternalError, PrepareCancelled, EnigmaHash, EnigmaFunction, Builtin,
    EnigmaClass, Instance, BoundMethod, ReturnSignal, BreakSignal, ContinueSignal,
    BREAK, CONTINUE, SIGNALS, SignalEscape, Console, type_name, is_number, is_truthy, values_equal,
)
from enigma.enigma_printer import Printer

DEFAULT_MAX_ITERATIONS = 10000
DEFAULT_MAX_CALL_DEPTH = 1000
# Python frames consumed per nested Enigma call, generously rounded up.
FRAMES_PER_CALL = 40

ARITHMETIC_OPERATORS = ("+", "-", "*", "/", "//", "%")
COMPARISON_OPERATORS = ("<", ">", "<=", ">=")
BITWISE_OPERATORS = ("&", "|", "^", "<<", ">>")


def levenshtein(a: str, b: str) -> int:
    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        cur = [i]
        for j, cb in enumerate(b, 1):
            cur.append(min(prev[j] + 1, cur[j - 1] + 1, prev[j - 1] + (ca != cb)))
        prev = cur
    return prev[-1]


def suggest(name: str, candidates: List[str], max_distance: int = 2) -> Optional[str]:
    """Returns the closest candidate within ``max_distance`` edits, if any."""
    best, best_distance = None, max_distance + 1
    for candidate in candidates:
        d = levenshtein(name, candidate)
        if d < best_distance:
            best, best_distance = candidate, d
    return best


def _trunc_div(a: int, b: int) -> int:
    q = abs(a) // abs(b)
    return q if (a < 0) == (b < 0) else -q


class Evaluator:
    def __init__(
        self,
        console=None,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        max_call_depth: int = DEFAULT_MAX_CALL_DEPTH,
        cancel_event: Optional[threading.Event] = None,
        hooks=None,
        seed=None,
    ):
        self.console = console if console is not None else Console()
        self.max_iterations = max_iterations
        self.max_call_depth = max_call_depth
        self.cancel_event = cancel_event
        # Optional observer with enter(node, env), exit(node, env, result),
        # unwind(node, env, signal) and fail(node, env, error).
        self.hooks = hooks
        self.printer = Printer()
        self.rng = random.Random(seed)
        self.call_stack: List[dict] = []
        self.current_node: Optional[ast.Node] = None
        self.current_env: Optional[Environment] = None
        self.depth = 0
        self.debug = os.environ.get("ENIGMA_DEBUG", "").lower() in ("1", "true", "yes", "on")
        needed = max_call_depth * FRAMES_PER_CALL + 1000
        if sys.getrecursionlimit() < needed:
            sys.setrecursionlimit(needed)

    def _dbg(self, *parts):
        if self.debug:
            print("[ENIGMA]", *parts, file=sys.stderr)

    # --- call stack ---

    def _push_frame(self, name: str, node: Optional[ast.Node], args=()):
        span = node.span if node is not None else ast.NO_SPAN
        self.call_stack.append({
            "name": name,
            "args": [self.printer.pformat(a) for a in args],
            "line": span.line,
            "column": span.column,
        })

    def _pop_frame(self):
        if self.call_stack:
            self.call_stack.pop()

    def write(self, severity: str, text: str):
        """Sends one line to the console sink."""
        self.console.write(severity, text)

    # --- entry point ---

    def evaluate(self, node: ast.Node, env: Environment, statement: bool = False) -> Any:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise PrepareCancelled()
        self.current_node = node
        self.current_env = env
        self.depth += 1
        hooks = self.hooks
        if hooks is not None:
            hooks.enter(node, env)
        try:
            result = self._eval(node, env, statement)
        except SignalEscape as e:
            if hooks is not None:
                hooks.unwind(node, env, e.signal)
            raise
        except EnigmaError as e:
            self._attach(e, node, env)
            raise
        except RecursionError:
            e = EnigmaError(f"Maximum call depth ({self.max_call_depth}) exceeded")
            self._attach(e, node, env)
            raise e from None
        except PrepareCancelled:
            raise
        except Exception as exc:
            e = InternalError.wrap(exc)
            self._attach(e, node, env)
            raise e from exc
        finally:
            self.depth -= 1
        if hooks is not None:
            hooks.exit(node, env, result)
        return result

    def _attach(self, e: EnigmaError, node: ast.Node, env: Environment):
        if e.node is None:
            e.node = node
        if e.stack is None:
            e.stack = [dict(f) for f in self.call_stack]
        if not e.recorded:
            e.recorded = True
            self._dbg("error at", node.kind, e.message)
            if self.hooks is not None:
                self.hooks.fail(node, env, e)

    def run(self, program: ast.Program, env: Environment) -> Any:
        """Evaluates a whole program and unwraps any top-level return."""
        result = self.evaluate(program, env)
        if isinstance(result, ReturnSignal):
            return result.value
        return result

    # --- dispatch ---

    def _eval(self, node: ast.Node, env: Environment, statement: bool = False) -> Any:
        match node:
            case ast.Program(statements=statements):
                return self._eval_statements(statements, env, unwrap_return=True)
            case ast.BlockStatement(statements=statements):
                return self._eval_statements(statements, env)
            case ast.ExpressionStatement(expression=ast.IfExpression() as expression):
                # A statement-level if hands its signal straight back to the block.
                return self.evaluate(expression, env, statement=True)
            case ast.ExpressionStatement(expression=expression):
                return self.evaluate(expression, env)
            case ast.LetStatement(name=name, value=value):
                env.declare(name.value, self.evaluate(value, env))
                return None
            case ast.ConstStatement(name=name, value=value):
                env.declare(name.value, self.evaluate(value, env), constant=True)
                return None
            case ast.ReturnStatement(value=value):
                return ReturnSignal(None if value is None else self.evaluate(value, env))
            case ast.BreakStatement():
                return BREAK
            case ast.ContinueStatement():
                return CONTINUE
            case ast.WhileStatement():
                return self._eval_while(node, env)
            case ast.ForStatement():
                return self._eval_for(node, env)
            case ast.ClassStatement():
                return self._eval_class(node, env)
            case ast.Identifier(value=name):
                return env.lookup(name)
            case (ast.IntegerLiteral(value=value) | ast.FloatLiteral(value=value)
                  | ast.StringLiteral(value=value) | ast.BooleanLiteral(value=value)):
                return value
            case ast.NullLiteral():
                return None
            case ast.FStringLiteral(parts=parts):
                return "".join(
                    p if isinstance(p, str) else self.printer.display(self.evaluate(p, env))
                    for p in parts
                )
            case ast.ArrayLiteral(elements=elements):
                return [self.evaluate(e, env) for e in elements]
            case ast.HashLiteral(pairs=pairs):
                result = EnigmaHash()
                for key_node, value_node in pairs:
                    key = self.evaluate(key_node, env)
                    if not isinstance(key, (int, str)):
                        raise EnigmaError(f"Hash key must be a string, integer or boolean, got: {type_name(key)}")
                    result[key] = self.evaluate(value_node, env)
                return result
            case ast.PrefixExpression(operator=op, right=right):
                return self._eval_prefix(op, self.evaluate(right, env))
            case ast.InfixExpression(left=left, operator="&&", right=right):
                return is_truthy(self.evaluate(left, env)) and is_truthy(self.evaluate(right, env))
            case ast.InfixExpression(left=left, operator="||", right=right):
                return is_truthy(self.evaluate(left, env)) or is_truthy(self.evaluate(right, env))
            case ast.InfixExpression(left=left, operator=op, right=right):
                lhs = self.evaluate(left, env)
                rhs = self.evaluate(right, env)
                return self._eval_infix(op, lhs, rhs)
            case ast.AssignmentExpression():
                return self._eval_assignment(node, env)
            case ast.IndexExpression(left=left, index=index):
                return self._eval_index(self.evaluate(left, env), self.evaluate(index, env))
            case ast.PropertyExpression(object=obj, property=prop):
                return self._get_property(self.evaluate(obj, env), prop.value)
            case ast.CallExpression(function=function, arguments=arguments):
                fn = self.evaluate(function, env)
                args = [self.evaluate(a, env) for a in arguments]
                return self.apply(fn, args, node)
            case ast.FunctionLiteral(parameters=params, body=body, name=name):
                return EnigmaFunction(tuple(p.value for p in params), body, env, name)
            case ast.IfExpression():
                return self._eval_if(node, env, statement)
            case ast.ThisExpression():
                if "this" not in env:
                    raise EnigmaError("'this' is not available in this context")
                return env.lookup("this")
            case ast.SuperExpression():
                return self._eval_super(node, env)
            case ast.NewExpression(class_name=class_name, arguments=arguments):
                cls = self.evaluate(class_name, env)
                if not isinstance(cls, EnigmaClass):
                    raise EnigmaError(f"Cannot instantiate non-class object: {type_name(cls)}")
                args = [self.evaluate(a, env) for a in arguments]
                return self.instantiate(cls, args, node)
            case _:
                raise EnigmaError(f"Unknown node type: {type(node).__name__}")

    def _eval_statements(self, statements, env: Environment, unwrap_return: bool = False) -> Any:
        result = None
        for stmt in statements:
            # A nested bare block gets its own scope.
            scope = Environment(env, "block") if isinstance(stmt, ast.BlockStatement) else env
            try:
                result = self.evaluate(stmt, scope)
            except SignalEscape as e:
                result = e.signal
            match result:
                case ReturnSignal(value=value) if unwrap_return:
                    return value
                case ReturnSignal() | BreakSignal() | ContinueSignal():
                    return result
        return result

    # --- operators ---

    def _eval_prefix(self, op: str, right: Any) -> Any:
        match op:
            case "!":
                return not is_truthy(right)
            case "-" if is_number(right):
                return -right
            case "~" if isinstance(right, int) and not isinstance(right, bool):
                return ~right
        if right is None:
            raise EnigmaError(f"Cannot perform '{op}' operation with null values")
        raise EnigmaError(f"Unknown operator: {op}{type_name(right)}")

    def _eval_infix(self, op: str, left: Any, right: Any) -> Any:
        if op == "==":
            return values_equal(left, right)
        if op == "!=":
            return not values_equal(left, right)
        if left is None or right is None:
            raise EnigmaError(f"Cannot perform '{op}' operation with null values")
        if is_number(left) and is_number(right):
            return self._eval_numeric(op, left, right)
        if isinstance(left, str) and isinstance(right, str):
            match op:
                case "+":
                    return left + right
                case "<":
                    return left < right
                case ">":
                    return left > right
                case "<=":
                    return left <= right
                case ">=":
                    return left >= right
        if type_name(left) != type_name(right):
            raise EnigmaError(f"Type mismatch: {type_name(left)} {op} {type_name(right)}")
        raise EnigmaError(f"Unknown operator: {type_name(left)} {op} {type_name(right)}")

    def _eval_numeric(self, op: str, left, right) -> Any:
        try:
            return self._numeric_op(op, left, right)
        except (OverflowError, MemoryError):
            raise EnigmaError(f"Numeric overflow: {type_name(left)} {op} {type_name(right)}") from None
        except ValueError:
            raise EnigmaError(f"Invalid numeric operation: {type_name(left)} {op} {type_name(right)}") from None

    def _numeric_op(self, op: str, left, right) -> Any:
        both_int = isinstance(left, int) and isinstance(right, int)
        match op:
            case "+":
                return left + right
            case "-":
                return left - right
            case "*":
                return left * right
            case "/":
                if right == 0:
                    raise EnigmaError("Division by zero")
                return left / right
            case "//":
                if right == 0:
                    raise EnigmaError("Integer division by zero")
                if both_int:
                    return _trunc_div(left, right)
                return float(math.trunc(left / right))
            case "%":
                if right == 0:
                    raise EnigmaError("Modulo by zero")
                if both_int:
                    return left - right * _trunc_div(left, right)
                return math.fmod(left, right)
            case "<":
                return left < right
            case ">":
                return left > right
            case "<=":
                return left <= right
            case ">=":
                return left >= right
            case "&" | "|" | "^" | "<<" | ">>" if both_int:
                return self._eval_bitwise(op, left, right)
        raise EnigmaError(f"Unknown operator: {type_name(left)} {op} {type_name(right)}")

    def _eval_bitwise(self, op: str, left: int, right: int) -> int:
        match op:
            case "&":
                return left & right
            case "|":
                return left | right
            case "^":
                return left ^ right
        if right < 0:
            raise EnigmaError(f"Negative shift count: {right}")
        return left << right if op == "<<" else left >> right

    # --- indexing and properties ---

    def _eval_index(self, left: Any, index: Any) -> Any:
        match left:
            case list() | str():
                if not isinstance(index, int) or isinstance(index, bool):
                    raise EnigmaError(f"Array index must be an integer, got: {type_name(index)}")
                i = index + len(left) if index < 0 else index
                if i < 0 or i >= len(left):
                    raise EnigmaError(f"Index out of bounds: {index} for {type_name(left)} of size {len(left)}")
                return left[i]
            case EnigmaHash():
                if not isinstance(index, (int, str)):
                    raise EnigmaError(f"Hash key must be a string, integer or boolean, got: {type_name(index)}")
                return left.get(index)
        if left is None:
            raise EnigmaError("Cannot perform '[]' operation with null values")
        raise EnigmaError(f"Index operator not supported: {type_name(left)}")

    def _get_property(self, obj: Any, name: str) -> Any:
        match obj:
            case Instance():
                if name in obj.fields.bindings:
                    return obj.fields.bindings[name]
                found = obj.cls.find_method(name)
                if found is not None:
                    method, owner = found
                    return BoundMethod(obj, method, owner)
                candidates = list(obj.fields.bindings) + obj.cls.method_names()
                message = f"Property '{name}' not found on instance of {obj.cls.name}"
                hint = suggest(name, candidates)
                if hint is not None:
                    message += f". Did you mean '{hint}'?"
                raise EnigmaError(message)
            case EnigmaHash():
                if name in obj:
                    return obj[name]
                raise EnigmaError(f"Property '{name}' not found on HASH")
        if obj is None:
            raise EnigmaError(f"Cannot access property '{name}' of null")
        raise EnigmaError(f"Cannot access property '{name}' on {type_name(obj)}")

    def _eval_assignment(self, node: ast.AssignmentExpression, env: Environment) -> Any:
        target = node.target
        match target:
            case ast.Identifier(value=name):
                value = self.evaluate(node.value, env)
                env.assign(name, value)
                return value
            case ast.IndexExpression(left=left, index=index):
                container = self.evaluate(left, env)
                key = self.evaluate(index, env)
                value = self.evaluate(node.value, env)
                self._set_index(container, key, value)
                return value
            case ast.PropertyExpression(object=obj, property=prop):
                owner = self.evaluate(obj, env)
                value = self.evaluate(node.value, env)
                match owner:
                    case Instance():
                        owner.fields.bindings[prop.value] = value
                    case EnigmaHash():
                        owner[prop.value] = value
                    case _:
                        raise EnigmaError(f"Cannot set property '{prop.value}' on {type_name(owner)}")
                return value
        raise EnigmaError(f"Invalid assignment target: {target}")

    def _set_index(self, container: Any, key: Any, value: Any):
        match container:
            case list():
                if not isinstance(key, int) or isinstance(key, bool):
                    raise EnigmaError(f"Array index must be an integer, got: {type_name(key)}")
                i = key + len(container) if key < 0 else key
                if i < 0 or i >= len(container):
                    raise EnigmaError(f"Index out of bounds: {key} for ARRAY of size {len(container)}")
                container[i] = value
            case EnigmaHash():
                if not isinstance(key, (int, str)):
                    raise EnigmaError(f"Hash key must be a string, integer or boolean, got: {type_name(key)}")
                container[key] = value
            case _:
                raise EnigmaError(f"Index assignment not supported for type: {type_name(container)}")

    # --- control flow ---

    def _eval_if(self, node: ast.IfExpression, env: Environment, statement: bool = False) -> Any:
        result = None
        for condition, consequence in zip(node.conditions, node.consequences):
            if is_truthy(self.evaluate(condition, env)):
                result = self.evaluate(consequence, Environment(env, "block"))
                break
        else:
            if node.alternative is not None:
                result = self.evaluate(node.alternative, Environment(env, "block"))
        if isinstance(result, SIGNALS) and not statement:
            # Signals never become values; the enclosing statement list takes them.
            raise SignalEscape(result)
        return result

    def _check_iterations(self, count: int):
        if count > self.max_iterations:
            raise EnigmaError(f"Maximum iterations ({self.max_iterations}) reached for loop")

    def _eval_while(self, node: ast.WhileStatement, env: Environment) -> Any:
        iterations = 0
        while is_truthy(self.evaluate(node.condition, env)):
            iterations += 1
            self._check_iterations(iterations)
            result = self.evaluate(node.body, Environment(env, "loop"))
            match result:
                case BreakSignal():
                    break
                case ReturnSignal():
                    return result
        return None

    def _eval_for(self, node: ast.ForStatement, env: Environment) -> Any:
        loop_env = Environment(env, "loop")
        if node.init is not None:
            self.evaluate(node.init, loop_env)
        iterations = 0
        while node.condition is None or is_truthy(self.evaluate(node.condition, loop_env)):
            iterations += 1
            self._check_iterations(iterations)
            result = self.evaluate(node.body, Environment(loop_env, "loop"))
            match result:
                case BreakSignal():
                    break
                case ReturnSignal():
                    return result
            if node.update is not None:
                self.evaluate(node.update, loop_env)
        return None

    # --- functions ---

    def apply(self, fn: Any, args: List[Any], node: Optional[ast.Node] = None) -> Any:
        match fn:
            case EnigmaFunction():
                return self.call_function(fn, args, node)
            case BoundMethod(instance=instance, function=function, owner=owner):
                return self.call_function(function, args, node, this=instance, owner=owner)
            case Builtin():
                return self._call_builtin(fn, args, node)
        raise EnigmaError(f"Not a function: {type_name(fn)}")

    def call_function(self, fn: EnigmaFunction, args: List[Any], node=None, this=None, owner=None) -> Any:
        if len(args) != len(fn.parameters):
            raise EnigmaError(f"Wrong number of arguments. Expected {len(fn.parameters)}, got {len(args)}")
        if len(self.call_stack) >= self.max_call_depth:
            raise EnigmaError(f"Maximum call depth ({self.max_call_depth}) exceeded")
        call_env = Environment(fn.closure, "function")
        if this is not None:
            call_env.declare("this", this, constant=True)
            call_env.class_context = (owner, this)
        for param, arg in zip(fn.parameters, args):
            call_env.declare(param, arg)

        self._push_frame(fn.name or "<anonymous>", node, args)
        self._dbg("call", fn.name or "<anonymous>", "argc", len(args), "depth", len(self.call_stack))
        try:
            result = self.evaluate(fn.body, call_env)
        finally:
            self._pop_frame()
        if isinstance(result, ReturnSignal):
            return result.value
        return None

    def _call_builtin(self, fn: Builtin, args: List[Any], node=None) -> Any:
        if fn.signature is not None:
            try:
                fn.signature.bind(*args)
            except TypeError:
                raise EnigmaError(f"Wrong number of arguments to {fn.name}: got {len(args)}") from None
        self._push_frame(fn.name, node, args)
        try:
            return fn.fn(*args)
        except OverflowError:
            raise EnigmaError(f"Numeric overflow in `{fn.name}`") from None
        finally:
            self._pop_frame()

    # --- classes ---

    def _eval_class(self, node: ast.ClassStatement, env: Environment) -> Any:
        name = node.name.value
        if name in env.bindings:
            if isinstance(env.bindings[name], EnigmaClass):
                raise EnigmaError(f"Class '{name}' already defined")
            raise EnigmaError(f"Variable '{name}' already declared in this scope")
        parent = None
        if node.parent is not None:
            if node.parent.value == name:
                raise EnigmaError(f"Circular inheritance detected: {name} -> {name}")
            parent = env.lookup(node.parent.value)
            if not isinstance(parent, EnigmaClass):
                raise EnigmaError(f"'{node.parent.value}' is not a class")
            chain = [c.name for c in parent.lineage()]
            if name in chain:
                path = " -> ".join([name] + chain[:chain.index(name) + 1])
                raise EnigmaError(f"Circular inheritance detected: {path}")

        constructor = None
        if node.constructor is not None:
            constructor = self._method(node.constructor, "init", env)
        methods = {m.name: self._method(m, m.name, env) for m in node.methods}
        cls = EnigmaClass(name, parent, node.fields, constructor, methods, env)
        env.declare(name, cls, constant=True)
        return None

    def _method(self, literal: ast.FunctionLiteral, name: str, env: Environment) -> EnigmaFunction:
        return EnigmaFunction(tuple(p.value for p in literal.parameters), literal.body, env, name)

    def instantiate(self, cls: EnigmaClass, args: List[Any], node=None) -> Instance:
        instance = Instance(cls, Environment(cls.closure, "instance"))
        # Parent fields first so subclasses can override them.
        for klass in reversed(cls.lineage()):
            for field in klass.fields:
                init_env = Environment(klass.closure, "function")
                init_env.declare("this", instance, constant=True)
                try:
                    value = self.evaluate(field.value, init_env)
                except SignalEscape:
                    raise EnigmaError(
                        f"Control flow statements are not allowed in field initializers: {klass.name}.{field.name.value}",
                        field,
                    ) from None
                instance.fields.bindings[field.name.value] = value

        found = cls.find_constructor()
        if found is not None:
            constructor, owner = found
            self.call_function(constructor, args, node, this=instance, owner=owner)
        elif args:
            raise EnigmaError(f"Wrong number of arguments. Expected 0, got {len(args)}")
        return instance

    def _eval_super(self, node: ast.SuperExpression, env: Environment) -> Any:
        context = env.find_class_context()
        if context is None:
            raise EnigmaError("'super' is not available outside a class method")
        owner, instance = context
        parent = owner.parent
        if parent is None:
            raise EnigmaError(f"Class '{owner.name}' has no parent class")
        args = [self.evaluate(a, env) for a in node.arguments]

        if node.method is None:
            found = parent.find_constructor()
            if found is None:
                if args:
                    raise EnigmaError(f"No constructor found for class: {parent.name}")
                return None
            constructor, ctor_owner = found
            self.call_function(constructor, args, node, this=instance, owner=ctor_owner)
            return None

        found = parent.find_method(node.method.value)
        if found is None:
            raise EnigmaError(f"Method not found: {node.method.value} in parent class: {parent.name}")
        method, method_owner = found
        return self.call_function(method, args, node, this=instance, owner=method_owner)
