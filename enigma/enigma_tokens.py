"""
Token kinds and the token record produced by the Enigma lexer.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Tuple, Union


class TokenType(str, Enum):
    ILLEGAL = "ILLEGAL"
    EOF = "EOF"

    # Identifiers and literals
    IDENTIFIER = "IDENTIFIER"
    INT = "INT"
    FLOAT = "FLOAT"
    STRING = "STRING"
    F_STRING = "F_STRING"

    # Operators
    ASSIGN = "="
    PLUS = "+"
    MINUS = "-"
    BANG = "!"
    ASTERISK = "*"
    SLASH = "/"
    INT_DIVISION = "//"
    MODULUS = "%"

    LT = "<"
    GT = ">"
    LT_EQ = "<="
    GT_EQ = ">="
    EQ = "=="
    NOT_EQ = "!="

    PLUS_ASSIGN = "+="
    MINUS_ASSIGN = "-="
    ASTERISK_ASSIGN = "*="
    SLASH_ASSIGN = "/="
    MODULUS_ASSIGN = "%="

    AND = "&&"
    OR = "||"

    BITWISE_AND = "&"
    BITWISE_OR = "|"
    BITWISE_XOR = "^"
    BITWISE_NOT = "~"
    SHIFT_LEFT = "<<"
    SHIFT_RIGHT = ">>"

    # Delimiters
    COMMA = ","
    SEMICOLON = ";"
    COLON = ":"
    DOT = "."
    LPAREN = "("
    RPAREN = ")"
    LBRACE = "{"
    RBRACE = "}"
    LBRACKET = "["
    RBRACKET = "]"

    # Keywords
    FUNCTION = "FUNCTION"
    LET = "LET"
    CONST = "CONST"
    TRUE = "TRUE"
    FALSE = "FALSE"
    IF = "IF"
    ELIF = "ELIF"
    ELSE = "ELSE"
    RETURN = "RETURN"
    WHILE = "WHILE"
    FOR = "FOR"
    BREAK = "BREAK"
    CONTINUE = "CONTINUE"
    CLASS = "CLASS"
    EXTENDS = "EXTENDS"
    SUPER = "SUPER"
    THIS = "THIS"
    NEW = "NEW"
    NULL = "NULL"

    def __str__(self) -> str:
        return self.value


KEYWORDS = {
    "fn": TokenType.FUNCTION,
    "let": TokenType.LET,
    "const": TokenType.CONST,
    "true": TokenType.TRUE,
    "false": TokenType.FALSE,
    "if": TokenType.IF,
    "elif": TokenType.ELIF,
    "else": TokenType.ELSE,
    "return": TokenType.RETURN,
    "while": TokenType.WHILE,
    "for": TokenType.FOR,
    "break": TokenType.BREAK,
    "continue": TokenType.CONTINUE,
    "class": TokenType.CLASS,
    "extends": TokenType.EXTENDS,
    "super": TokenType.SUPER,
    "this": TokenType.THIS,
    "new": TokenType.NEW,
    "null": TokenType.NULL,
}

# Operators that can be followed by '=' to form a two-character token.
TWO_CHAR_OPERATORS = {
    "==": TokenType.EQ,
    "!=": TokenType.NOT_EQ,
    "<=": TokenType.LT_EQ,
    ">=": TokenType.GT_EQ,
    "+=": TokenType.PLUS_ASSIGN,
    "-=": TokenType.MINUS_ASSIGN,
    "*=": TokenType.ASTERISK_ASSIGN,
    "/=": TokenType.SLASH_ASSIGN,
    "%=": TokenType.MODULUS_ASSIGN,
    "&&": TokenType.AND,
    "||": TokenType.OR,
    "<<": TokenType.SHIFT_LEFT,
    ">>": TokenType.SHIFT_RIGHT,
    "//": TokenType.INT_DIVISION,
}

SINGLE_CHAR_OPERATORS = {
    "=": TokenType.ASSIGN,
    "+": TokenType.PLUS,
    "-": TokenType.MINUS,
    "!": TokenType.BANG,
    "*": TokenType.ASTERISK,
    "/": TokenType.SLASH,
    "%": TokenType.MODULUS,
    "<": TokenType.LT,
    ">": TokenType.GT,
    "&": TokenType.BITWISE_AND,
    "|": TokenType.BITWISE_OR,
    "^": TokenType.BITWISE_XOR,
    "~": TokenType.BITWISE_NOT,
    ",": TokenType.COMMA,
    ";": TokenType.SEMICOLON,
    ":": TokenType.COLON,
    ".": TokenType.DOT,
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
    "{": TokenType.LBRACE,
    "}": TokenType.RBRACE,
    "[": TokenType.LBRACKET,
    "]": TokenType.RBRACKET,
}


@dataclass(frozen=True)
class Token:
    """A lexeme with its kind and 1-based source position.

    F_STRING tokens additionally carry ``segments``: a tuple whose items are
    either literal text (str) or the token stream of an embedded expression.
    """
    type: TokenType
    literal: str
    line: int
    column: int
    segments: Tuple[Union[str, Tuple["Token", ...]], ...] = ()

    def __repr__(self):
        return f"Token({self.type.name}, {self.literal!r}, {self.line}:{self.column})"


def lookup_ident(ident: str) -> TokenType:
    return KEYWORDS.get(ident, TokenType.IDENTIFIER)
