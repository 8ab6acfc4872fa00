"""
Enigma: a small teaching language with a step-recording interpreter.
"""

from enigma.enigma_tokens import Token, TokenType
from enigma.enigma_lexer import Lexer
from enigma.enigma_parser import Parser, ParseError, Precedence, parse
from enigma.enigma_datatypes import Environment, EnigmaError, InternalError, PrepareCancelled, Console, ConsoleEntry
from enigma.enigma_interpreter import Evaluator
from enigma.enigma_printer import Printer
from enigma.enigma_stepper import StepRecorder, StepNavigator, StepRecord, CallFrame, ExecutionState, Trace
from enigma.enigma_runtime import ScriptRunner, ExecutionResult, PrepareResult

__all__ = [
    "Token", "TokenType", "Lexer", "Parser", "ParseError", "Precedence", "parse",
    "Environment", "EnigmaError", "InternalError", "PrepareCancelled", "Console", "ConsoleEntry",
    "Evaluator", "Printer", "StepRecorder", "StepNavigator", "StepRecord", "CallFrame",
    "ExecutionState", "Trace", "ScriptRunner", "ExecutionResult", "PrepareResult",
]
