"""
A pretty-printer for Enigma runtime values.

``pformat`` produces the inspect form used in step snapshots, the REPL and
error messages (strings quoted). ``display`` is what print-family builtins
and f-strings show (top-level strings unquoted).
"""

from enigma.enigma_ast import format_float, quote_string
from enigma.enigma_datatypes import (
    EnigmaHash, EnigmaFunction, Builtin, EnigmaClass, Instance, BoundMethod,
    ReturnSignal, BreakSignal, ContinueSignal,
)


def format_int(value: int) -> str:
    try:
        return str(value)
    except ValueError:
        # Past Python's int-to-str digit limit.
        sign = "-" if value < 0 else ""
        return f"{sign}<{value.bit_length()}-bit integer>"


class Printer:
    """Formats Enigma values into readable strings."""

    def __init__(self, max_items: int = 100):
        self.max_items = max_items
        self._handlers = self._create_handlers()

    def pformat(self, obj) -> str:
        """Public entry point to format a value."""
        return self._format(obj, set())

    def display(self, obj) -> str:
        if isinstance(obj, str):
            return obj
        return self.pformat(obj)

    def _format(self, obj, seen: set) -> str:
        handler = self._handlers.get(type(obj))
        if handler is None:
            return repr(obj)
        return handler(obj, seen)

    def _create_handlers(self):
        return {
            type(None): lambda o, s: "null",
            bool: lambda o, s: "true" if o else "false",
            int: lambda o, s: format_int(o),
            float: lambda o, s: format_float(o),
            str: lambda o, s: quote_string(o),
            list: self._pformat_array,
            EnigmaHash: self._pformat_hash,
            EnigmaFunction: self._pformat_function,
            BoundMethod: self._pformat_bound_method,
            Builtin: lambda o, s: f"builtin {o.name}",
            EnigmaClass: self._pformat_class,
            Instance: self._pformat_instance,
            ReturnSignal: lambda o, s: f"return {self._format(o.value, s)}",
            BreakSignal: lambda o, s: "break",
            ContinueSignal: lambda o, s: "continue",
        }

    def _guarded(self, obj, seen: set, render, placeholder: str) -> str:
        # Containers may hold themselves through mutation.
        if id(obj) in seen:
            return placeholder
        seen.add(id(obj))
        try:
            return render()
        finally:
            seen.discard(id(obj))

    def _pformat_array(self, obj, seen):
        def render():
            items = [self._format(x, seen) for x in obj[:self.max_items]]
            if len(obj) > self.max_items:
                items.append(f"... {len(obj) - self.max_items} more")
            return "[" + ", ".join(items) + "]"
        return self._guarded(obj, seen, render, "[...]")

    def _pformat_hash(self, obj, seen):
        def render():
            pairs = [f"{self._format(k, seen)}: {self._format(v, seen)}" for k, v in obj.items()]
            return "{" + ", ".join(pairs) + "}"
        return self._guarded(obj, seen, render, "{...}")

    def _pformat_function(self, obj, seen):
        params = ", ".join(obj.parameters)
        if obj.name:
            return f"fn {obj.name}({params})"
        return f"fn({params})"

    def _pformat_bound_method(self, obj, seen):
        return f"method {obj.owner.name}.{obj.function.name}({', '.join(obj.function.parameters)})"

    def _pformat_class(self, obj, seen):
        if obj.parent is not None:
            return f"class {obj.name} extends {obj.parent.name}"
        return f"class {obj.name}"

    def _pformat_instance(self, obj, seen):
        def render():
            fields = ", ".join(
                f"{name}: {self._format(value, seen)}" for name, value in obj.fields.bindings.items()
            )
            return f"{obj.cls.name} {{{fields}}}"
        return self._guarded(obj, seen, render, f"{obj.cls.name} {{...}}")
