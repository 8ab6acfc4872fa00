"""
Python implementations of the Enigma builtins.

Every ``StdLib`` method whose name starts with a single underscore is
registered in the builtins environment under its Enigma name
(``_index_of`` becomes ``indexOf``).
"""

import inspect
import math
from typing import Any, List

from enigma.enigma_datatypes import (
    Environment, EnigmaError, EnigmaHash, Builtin, type_name, is_truthy, values_equal,
)


def enigma_name(py_name: str) -> str:
    head, *rest = py_name.lstrip("_").split("_")
    return head + "".join(part.title() for part in rest)


def _expect(value: Any, expected: tuple, fn: str, position: int = 1):
    if type_name(value) not in expected:
        wanted = " or ".join(expected)
        raise EnigmaError(f"Argument {position} to `{fn}` must be {wanted}, got {type_name(value)}")


def _expect_int(value: Any, fn: str, position: int = 1) -> int:
    _expect(value, ("INTEGER",), fn, position)
    return value


class StdLib:
    """Contains Python implementations for all Enigma built-ins."""
    def __init__(self, evaluator):
        self.evaluator = evaluator

    # --- console ---

    def _emit(self, severity: str, args):
        text = " ".join(self.evaluator.printer.display(a) for a in args)
        self.evaluator.write(severity, text)
        return None

    def _print(self, *args):
        return self._emit("print", args)

    def _println(self, *args):
        return self._emit("print", args)

    def _info(self, *args):
        return self._emit("info", args)

    def _error(self, *args):
        return self._emit("error", args)

    def _success(self, *args):
        return self._emit("success", args)

    def _assert(self, condition, message="Assertion failed"):
        if not is_truthy(condition):
            raise EnigmaError(self.evaluator.printer.display(message))
        return None

    # --- types and conversion ---

    def _len(self, value):
        _expect(value, ("STRING", "ARRAY", "HASH"), "len")
        return len(value)

    def _type(self, value):
        return type_name(value)

    def _str(self, value):
        return self.evaluator.printer.display(value)

    def _int(self, value):
        match value:
            case bool():
                return int(value)
            case int():
                return value
            case float():
                if math.isnan(value) or math.isinf(value):
                    raise EnigmaError(f"Cannot convert {value} to INTEGER")
                return math.trunc(value)
            case str():
                try:
                    return int(value.strip())
                except ValueError:
                    pass
                try:
                    parsed = float(value.strip())
                except ValueError:
                    raise EnigmaError(f"Cannot convert \"{value}\" to INTEGER") from None
                if math.isnan(parsed):
                    raise EnigmaError(f"Cannot convert \"{value}\" to INTEGER")
                if math.isinf(parsed):
                    raise EnigmaError("Numeric overflow in `int`")
                return math.trunc(parsed)
        raise EnigmaError(f"Cannot convert {type_name(value)} to INTEGER")

    def _float(self, value):
        match value:
            case bool() | int() | float():
                return float(value)
            case str():
                try:
                    return float(value.strip())
                except ValueError:
                    raise EnigmaError(f"Cannot convert \"{value}\" to FLOAT") from None
        raise EnigmaError(f"Cannot convert {type_name(value)} to FLOAT")

    def _bool(self, value):
        return is_truthy(value)

    # --- arrays ---

    def _first(self, arr):
        _expect(arr, ("ARRAY",), "first")
        return arr[0] if arr else None

    def _last(self, arr):
        _expect(arr, ("ARRAY",), "last")
        return arr[-1] if arr else None

    def _rest(self, arr):
        _expect(arr, ("ARRAY",), "rest")
        return list(arr[1:]) if arr else None

    def _push(self, arr, value):
        _expect(arr, ("ARRAY",), "push")
        return list(arr) + [value]

    def _pop(self, arr):
        _expect(arr, ("ARRAY",), "pop")
        if not arr:
            raise EnigmaError("Cannot pop from empty array")
        return list(arr[:-1])

    def _concat(self, a, b):
        _expect(a, ("ARRAY",), "concat")
        _expect(b, ("ARRAY",), "concat", 2)
        return list(a) + list(b)

    def _reverse(self, seq):
        _expect(seq, ("ARRAY", "STRING"), "reverse")
        return seq[::-1]

    def _slice(self, seq, start, end=None):
        _expect(seq, ("ARRAY", "STRING"), "slice")
        _expect_int(start, "slice", 2)
        if end is not None:
            _expect_int(end, "slice", 3)
        out = seq[start:end]
        return list(out) if isinstance(seq, list) else out

    def _range(self, start, stop=None, step=None):
        _expect_int(start, "range", 1)
        if stop is None:
            start, stop = 0, start
        _expect_int(stop, "range", 2)
        if step is None:
            step = 1
        _expect_int(step, "range", 3)
        if step == 0:
            raise EnigmaError("range() step must not be zero")
        return list(range(start, stop, step))

    # --- strings ---

    def _split(self, s, separator=""):
        _expect(s, ("STRING",), "split")
        _expect(separator, ("STRING",), "split", 2)
        if separator == "":
            return list(s)
        return s.split(separator)

    def _join(self, arr, separator=""):
        _expect(arr, ("ARRAY",), "join")
        _expect(separator, ("STRING",), "join", 2)
        return separator.join(self.evaluator.printer.display(x) for x in arr)

    def _replace(self, s, old, new):
        _expect(s, ("STRING",), "replace")
        _expect(old, ("STRING",), "replace", 2)
        _expect(new, ("STRING",), "replace", 3)
        return s.replace(old, new)

    def _trim(self, s):
        _expect(s, ("STRING",), "trim")
        return s.strip()

    def _upper(self, s):
        _expect(s, ("STRING",), "upper")
        return s.upper()

    def _lower(self, s):
        _expect(s, ("STRING",), "lower")
        return s.lower()

    def _substr(self, s, start, length=None):
        _expect(s, ("STRING",), "substr")
        _expect_int(start, "substr", 2)
        if length is None:
            return s[start:]
        _expect_int(length, "substr", 3)
        return s[start:start + max(length, 0)]

    def _index_of(self, haystack, needle):
        match haystack:
            case str():
                _expect(needle, ("STRING",), "indexOf", 2)
                return haystack.find(needle)
            case list():
                for i, item in enumerate(haystack):
                    if values_equal(item, needle):
                        return i
                return -1
        _expect(haystack, ("STRING", "ARRAY"), "indexOf")

    def _contains(self, haystack, needle):
        match haystack:
            case str():
                _expect(needle, ("STRING",), "contains", 2)
                return needle in haystack
            case list():
                return self._index_of(haystack, needle) >= 0
            case EnigmaHash():
                return needle in haystack
        _expect(haystack, ("STRING", "ARRAY", "HASH"), "contains")

    # --- hashes ---

    def _keys(self, h):
        _expect(h, ("HASH",), "keys")
        return h.keys()

    def _values(self, h):
        _expect(h, ("HASH",), "values")
        return h.values()

    # --- math ---

    def _numbers(self, fn: str, args) -> List[Any]:
        if len(args) == 1 and isinstance(args[0], list):
            args = args[0]
        if not args:
            raise EnigmaError(f"`{fn}` expects at least one number")
        for i, a in enumerate(args, 1):
            _expect(a, ("INTEGER", "FLOAT"), fn, i)
        return list(args)

    def _abs(self, x):
        _expect(x, ("INTEGER", "FLOAT"), "abs")
        return abs(x)

    def _max(self, *args):
        return max(self._numbers("max", args))

    def _min(self, *args):
        return min(self._numbers("min", args))

    def _round(self, x, digits=0):
        _expect(x, ("INTEGER", "FLOAT"), "round")
        _expect_int(digits, "round", 2)
        scale = 10 ** digits
        rounded = math.floor(x * scale + 0.5) / scale
        return int(rounded) if digits == 0 else rounded

    def _floor(self, x):
        _expect(x, ("INTEGER", "FLOAT"), "floor")
        return math.floor(x)

    def _ceil(self, x):
        _expect(x, ("INTEGER", "FLOAT"), "ceil")
        return math.ceil(x)

    def _pow(self, base, exponent):
        _expect(base, ("INTEGER", "FLOAT"), "pow")
        _expect(exponent, ("INTEGER", "FLOAT"), "pow", 2)
        if isinstance(base, int) and isinstance(exponent, int) and exponent >= 0:
            return base ** exponent
        if base == 0 and exponent < 0:
            raise EnigmaError("Division by zero")
        try:
            return float(base) ** exponent
        except OverflowError:
            raise EnigmaError("Numeric overflow in `pow`") from None

    def _sqrt(self, x):
        _expect(x, ("INTEGER", "FLOAT"), "sqrt")
        if x < 0:
            raise EnigmaError("Cannot take the square root of a negative number")
        return math.sqrt(x)

    def _random(self, limit=None):
        """A random integer in [0, limit). Draws from the evaluator's seeded generator."""
        if limit is None:
            return self.evaluator.rng.randrange(2)
        _expect_int(limit, "random")
        if limit <= 0:
            raise EnigmaError("Argument 1 to `random` must be positive")
        return self.evaluator.rng.randrange(limit)


def builtin_environment(evaluator) -> Environment:
    """Builds the outermost, read-only environment holding every builtin."""
    env = Environment(None, "builtins")
    stdlib = StdLib(evaluator)
    for name, member in inspect.getmembers(stdlib):
        if name.startswith('_') and not name.startswith('__') and callable(member):
            if name in ("_emit", "_numbers"):
                continue
            ename = enigma_name(name)
            env.declare(ename, Builtin(ename, member, inspect.signature(member)), constant=True)
    return env
