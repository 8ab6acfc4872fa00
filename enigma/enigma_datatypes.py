"""
Runtime data types for the Enigma interpreter.

Enigma's primitive values map directly onto Python values: INTEGER is
``int``, FLOAT is ``float``, STRING is ``str``, BOOLEAN is ``bool``, NULL is
``None`` and ARRAY is ``list``. Everything else (hashes, functions, classes,
instances and the internal control signals) is defined here, together with
the ``Environment`` chain used for lexical scoping.
"""

import itertools
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Set, Tuple


class EnigmaError(Exception):
    """An evaluation error. Propagates to the top-level caller unintercepted.

    ``node`` is the innermost AST node being evaluated when the error was
    raised; ``stack`` is a copy of the call stack at that moment. Both are
    filled in by the evaluator when missing.
    """
    def __init__(self, message: str, node=None):
        super().__init__(message)
        self.message = message
        self.node = node
        self.stack: Optional[List[dict]] = None
        self.recorded = False

    @property
    def line(self) -> Optional[int]:
        return self.node.span.line if self.node is not None else None

    @property
    def column(self) -> Optional[int]:
        return self.node.span.column if self.node is not None else None


class InternalError(EnigmaError):
    """A Python exception from inside the interpreter, reported like an evaluation error."""
    @classmethod
    def wrap(cls, exc: Exception, node=None) -> 'InternalError':
        return cls(f"{type(exc).__name__}: {exc}", node)


class PrepareCancelled(Exception):
    """Raised inside a recording pass when its cancel event is set."""
    pass


# =================================================================
# Control signals (never escape into user-visible values)
# =================================================================

@dataclass(frozen=True)
class ReturnSignal:
    value: Any = None


class BreakSignal:
    def __repr__(self):
        return "<break>"


class ContinueSignal:
    def __repr__(self):
        return "<continue>"


BREAK = BreakSignal()
CONTINUE = ContinueSignal()

SIGNALS = (ReturnSignal, BreakSignal, ContinueSignal)


class SignalEscape(Exception):
    """Carries a signal produced inside an expression out to the enclosing statement list."""
    def __init__(self, signal):
        super().__init__(signal)
        self.signal = signal


# =================================================================
# Environment
# =================================================================

_env_serials = itertools.count(1)


class Environment:
    """Name→value bindings plus a link to the enclosing environment.

    Each binding is either mutable (``let``) or frozen (``const``). A name
    may be declared at most once per environment; assignment walks outward
    to the declaring environment.
    """
    def __init__(self, outer: Optional['Environment'] = None, kind: str = "block"):
        self.bindings: Dict[str, Any] = {}
        self.constants: Set[str] = set()
        self.outer = outer
        self.kind = kind
        # Stable identity for step snapshots; id() may be reused after collection.
        self.serial = next(_env_serials)
        # (class, instance) while running a method or constructor body.
        self.class_context: Optional[Tuple['EnigmaClass', 'Instance']] = None

    def declare(self, name: str, value: Any, constant: bool = False):
        if name in self.bindings:
            raise EnigmaError(f"Variable '{name}' already declared in this scope")
        self.bindings[name] = value
        if constant:
            self.constants.add(name)

    def find_owner(self, name: str) -> Optional['Environment']:
        """Returns the environment in the chain that declares ``name``."""
        env = self
        while env is not None:
            if name in env.bindings:
                return env
            env = env.outer
        return None

    def lookup(self, name: str) -> Any:
        owner = self.find_owner(name)
        if owner is None:
            raise EnigmaError(f"Identifier not found: {name}")
        return owner.bindings[name]

    def assign(self, name: str, value: Any):
        owner = self.find_owner(name)
        if owner is None:
            raise EnigmaError(f"Cannot assign to undeclared variable {name}")
        if name in owner.constants:
            raise EnigmaError(f"Cannot assign to constant {name}")
        owner.bindings[name] = value

    def is_constant(self, name: str) -> bool:
        return name in self.constants

    def find_class_context(self) -> Optional[Tuple['EnigmaClass', 'Instance']]:
        env = self
        while env is not None:
            if env.class_context is not None:
                return env.class_context
            env = env.outer
        return None

    def chain(self) -> Iterator['Environment']:
        """Yields this environment and its enclosing ones, innermost first."""
        env = self
        while env is not None:
            yield env
            env = env.outer

    def __contains__(self, name: str) -> bool:
        return self.find_owner(name) is not None

    def __repr__(self):
        return f"<Environment #{self.serial} {self.kind} {sorted(self.bindings)}>"


# =================================================================
# Compound values
# =================================================================

def hash_key(key: Any) -> Tuple[str, Any]:
    """Key used to store a value in an EnigmaHash. Keeps 1 and true distinct."""
    match key:
        case bool():
            return ("BOOLEAN", key)
        case int():
            return ("INTEGER", key)
        case str():
            return ("STRING", key)
    raise EnigmaError(f"Unusable as hash key: {type_name(key)}")


class EnigmaHash:
    """Value→value mapping. Insertion order is kept for display only."""
    def __init__(self, pairs: Optional[List[Tuple[Any, Any]]] = None):
        self._data: Dict[Tuple[str, Any], Tuple[Any, Any]] = {}
        for k, v in pairs or []:
            self[k] = v

    def __getitem__(self, key):
        return self._data[hash_key(key)][1]

    def __setitem__(self, key, value):
        self._data[hash_key(key)] = (key, value)

    def __delitem__(self, key):
        del self._data[hash_key(key)]

    def __contains__(self, key) -> bool:
        try:
            return hash_key(key) in self._data
        except EnigmaError:
            return False

    def __len__(self) -> int:
        return len(self._data)

    def get(self, key, default=None):
        entry = self._data.get(hash_key(key))
        return default if entry is None else entry[1]

    def keys(self) -> List[Any]:
        return [k for k, _ in self._data.values()]

    def values(self) -> List[Any]:
        return [v for _, v in self._data.values()]

    def items(self) -> List[Tuple[Any, Any]]:
        return list(self._data.values())

    def __eq__(self, other):
        if not isinstance(other, EnigmaHash):
            return NotImplemented
        if self._data.keys() != other._data.keys():
            return False
        return all(values_equal(self._data[k][1], other._data[k][1]) for k in self._data)

    __hash__ = None

    def __repr__(self):
        from enigma.enigma_printer import Printer
        return Printer().pformat(self)


@dataclass(eq=False)
class EnigmaFunction:
    parameters: Tuple[str, ...]
    body: Any  # BlockStatement
    closure: Environment
    name: Optional[str] = None

    def __repr__(self):
        return f"<fn {self.name or 'anonymous'}({', '.join(self.parameters)})>"


@dataclass(eq=False)
class Builtin:
    name: str
    fn: Callable
    signature: Any = None

    def __repr__(self):
        return f"<builtin {self.name}>"


@dataclass(eq=False)
class EnigmaClass:
    name: str
    parent: Optional['EnigmaClass']
    fields: Tuple[Any, ...]  # LetStatement nodes, evaluated per instance
    constructor: Optional[EnigmaFunction]
    methods: Dict[str, EnigmaFunction]
    closure: Environment

    def lineage(self) -> List['EnigmaClass']:
        """This class and its ancestors, most derived first."""
        out, cls = [], self
        while cls is not None:
            out.append(cls)
            cls = cls.parent
        return out

    def find_method(self, name: str) -> Optional[Tuple[EnigmaFunction, 'EnigmaClass']]:
        for cls in self.lineage():
            if name in cls.methods:
                return cls.methods[name], cls
        return None

    def find_constructor(self) -> Optional[Tuple[EnigmaFunction, 'EnigmaClass']]:
        for cls in self.lineage():
            if cls.constructor is not None:
                return cls.constructor, cls
        return None

    def method_names(self) -> List[str]:
        names: List[str] = []
        for cls in self.lineage():
            names.extend(n for n in cls.methods if n not in names)
        return names

    def __repr__(self):
        return f"<class {self.name}>"


@dataclass(eq=False)
class Instance:
    cls: EnigmaClass
    fields: Environment

    def __repr__(self):
        return f"<{self.cls.name} instance>"


@dataclass(eq=False)
class BoundMethod:
    instance: Instance
    function: EnigmaFunction
    owner: EnigmaClass

    def __repr__(self):
        return f"<method {self.owner.name}.{self.function.name}>"


# =================================================================
# Console
# =================================================================

SEVERITIES = ("print", "info", "error", "success")


@dataclass(frozen=True)
class ConsoleEntry:
    severity: str
    text: str
    seq: Optional[int] = None

    def as_dict(self) -> dict:
        return {"severity": self.severity, "text": self.text, "seq": self.seq}


class Console:
    """Append-only console log that print-family builtins write to."""
    def __init__(self):
        self.entries: List[ConsoleEntry] = []

    def write(self, severity: str, text: str):
        self.entries.append(ConsoleEntry(severity, text))

    def lines(self) -> List[str]:
        return [e.text for e in self.entries]


# =================================================================
# Value helpers
# =================================================================

def type_name(value: Any) -> str:
    match value:
        case None:
            return "NULL"
        case bool():
            return "BOOLEAN"
        case int():
            return "INTEGER"
        case float():
            return "FLOAT"
        case str():
            return "STRING"
        case list():
            return "ARRAY"
        case EnigmaHash():
            return "HASH"
        case EnigmaFunction() | BoundMethod():
            return "FUNCTION"
        case Builtin():
            return "BUILTIN"
        case EnigmaClass():
            return "CLASS"
        case Instance():
            return "INSTANCE"
    return type(value).__name__.upper()


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_truthy(value: Any) -> bool:
    match value:
        case None | False:
            return False
        case bool():
            return True
        case int() | float():
            return value != 0
        case str() | list() | EnigmaHash():
            return len(value) > 0
    return True


def values_equal(left: Any, right: Any) -> bool:
    """Value equality; values of incompatible types are never equal."""
    if is_number(left) and is_number(right):
        return left == right
    if type_name(left) != type_name(right):
        return False
    match left:
        case None:
            return True
        case bool() | str():
            return left == right
        case list():
            return len(left) == len(right) and all(values_equal(a, b) for a, b in zip(left, right))
        case EnigmaHash():
            return left == right
    return left is right
