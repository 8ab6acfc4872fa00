"""
Hand-written lexer for Enigma source text.

The lexer never raises on bad input: unrecognized characters, unterminated
strings and unterminated block comments become ILLEGAL tokens and the parser
reports them.
"""

from typing import Iterator, List, Optional, Tuple, Union

from enigma.enigma_tokens import (
    Token, TokenType, lookup_ident, TWO_CHAR_OPERATORS, SINGLE_CHAR_OPERATORS,
)

ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "b": "\b",
    "f": "\f",
    "v": "\v",
    "0": "\0",
}


def _is_letter(ch: str) -> bool:
    return ch.isalpha() or ch == "_"


def _is_digit(ch: str) -> bool:
    return "0" <= ch <= "9"


class Lexer:
    def __init__(self, source: str, line: int = 1, column: int = 1):
        self.source = source
        self.pos = 0
        self.line = line
        self.column = column

    # --- character cursor ---

    def _peek(self, offset: int = 0) -> str:
        i = self.pos + offset
        return self.source[i] if i < len(self.source) else ""

    def _advance(self) -> str:
        ch = self._peek()
        if not ch:
            return ""
        self.pos += 1
        if ch == "\n":
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        return ch

    # --- public API ---

    def next_token(self) -> Token:
        illegal = self._skip_trivia()
        if illegal is not None:
            return illegal

        line, column = self.line, self.column
        ch = self._peek()
        if not ch:
            return Token(TokenType.EOF, "", line, column)

        if ch == "f" and self._peek(1) in ('"', "'"):
            return self._read_fstring(line, column)
        if _is_letter(ch):
            ident = self._read_while(lambda c: _is_letter(c) or _is_digit(c))
            return Token(lookup_ident(ident), ident, line, column)
        if _is_digit(ch) or (ch == "." and _is_digit(self._peek(1))):
            return self._read_number(line, column)
        if ch in ('"', "'"):
            return self._read_string(line, column)

        pair = ch + self._peek(1)
        if pair in TWO_CHAR_OPERATORS:
            self._advance()
            self._advance()
            return Token(TWO_CHAR_OPERATORS[pair], pair, line, column)
        if ch in SINGLE_CHAR_OPERATORS:
            self._advance()
            return Token(SINGLE_CHAR_OPERATORS[ch], ch, line, column)

        self._advance()
        return Token(TokenType.ILLEGAL, ch, line, column)

    def tokenize(self) -> List[Token]:
        """Returns every token up to and including EOF."""
        return list(self)

    def __iter__(self) -> Iterator[Token]:
        while True:
            tok = self.next_token()
            yield tok
            if tok.type == TokenType.EOF:
                return

    # --- scanners ---

    def _read_while(self, pred) -> str:
        start = self.pos
        while self._peek() and pred(self._peek()):
            self._advance()
        return self.source[start:self.pos]

    def _skip_trivia(self) -> Optional[Token]:
        """Skips whitespace and comments; returns ILLEGAL for an unterminated block comment."""
        while True:
            ch = self._peek()
            if ch and ch.isspace():
                self._advance()
            elif ch == "#":
                while self._peek() and self._peek() != "\n":
                    self._advance()
            elif ch == "/" and self._peek(1) == "*":
                line, column = self.line, self.column
                if not self._skip_block_comment():
                    return Token(TokenType.ILLEGAL, "/*", line, column)
            else:
                return None

    def _skip_block_comment(self) -> bool:
        depth = 0
        while self._peek():
            if self._peek() == "/" and self._peek(1) == "*":
                depth += 1
                self._advance()
                self._advance()
            elif self._peek() == "*" and self._peek(1) == "/":
                depth -= 1
                self._advance()
                self._advance()
                if depth == 0:
                    return True
            else:
                self._advance()
        return False

    def _read_number(self, line: int, column: int) -> Token:
        start = self.pos
        is_float = False
        self._read_while(_is_digit)
        if self._peek() == "." and _is_digit(self._peek(1)):
            is_float = True
            self._advance()
            self._read_while(_is_digit)
        if self._peek() in ("e", "E"):
            sign = 1 if self._peek(1) in ("+", "-") else 0
            if _is_digit(self._peek(1 + sign)):
                is_float = True
                self._advance()
                if sign:
                    self._advance()
                self._read_while(_is_digit)
        text = self.source[start:self.pos]
        return Token(TokenType.FLOAT if is_float else TokenType.INT, text, line, column)

    def _read_escape(self) -> str:
        # Called with the cursor on the backslash.
        self._advance()
        ch = self._advance()
        return ESCAPES.get(ch, ch)

    def _read_string(self, line: int, column: int) -> Token:
        quote = self._advance()
        chars = []
        while True:
            ch = self._peek()
            if not ch:
                return Token(TokenType.ILLEGAL, quote + "".join(chars), line, column)
            if ch == quote:
                self._advance()
                return Token(TokenType.STRING, "".join(chars), line, column)
            if ch == "\\":
                chars.append(self._read_escape())
            else:
                chars.append(self._advance())

    def _read_fstring(self, line: int, column: int) -> Token:
        self._advance()  # f
        quote = self._advance()
        raw_start = self.pos
        segments: List[Union[str, Tuple[Token, ...]]] = []
        text: List[str] = []

        def flush():
            if text:
                segments.append("".join(text))
                text.clear()

        while True:
            ch = self._peek()
            if not ch:
                return Token(TokenType.ILLEGAL, "f" + quote + self.source[raw_start:self.pos], line, column)
            if ch == quote:
                raw = self.source[raw_start:self.pos]
                self._advance()
                flush()
                return Token(TokenType.F_STRING, raw, line, column, tuple(segments))
            if ch == "\\":
                text.append(self._read_escape())
            elif ch == "{" and self._peek(1) == "{":
                self._advance()
                self._advance()
                text.append("{")
            elif ch == "}" and self._peek(1) == "}":
                self._advance()
                self._advance()
                text.append("}")
            elif ch == "{":
                self._advance()
                expr_line, expr_column = self.line, self.column
                expr_source = self._read_interpolation(quote)
                if expr_source is None:
                    return Token(TokenType.ILLEGAL, "f" + quote + self.source[raw_start:self.pos], line, column)
                flush()
                nested = Lexer(expr_source, expr_line, expr_column)
                segments.append(tuple(nested.tokenize()))
            else:
                text.append(self._advance())

    def _read_interpolation(self, quote: str) -> Optional[str]:
        """Reads an embedded expression up to its closing brace; None if unterminated."""
        start = self.pos
        depth = 0
        while True:
            ch = self._peek()
            if not ch or ch == quote:
                return None
            if ch == "{":
                depth += 1
            elif ch == "}":
                if depth == 0:
                    expr = self.source[start:self.pos]
                    self._advance()
                    return expr
                depth -= 1
            elif ch in ('"', "'"):
                # Nested string literal of the other quote style.
                inner = self._advance()
                while self._peek() and self._peek() != inner:
                    if self._peek() == "\\":
                        self._advance()
                    self._advance()
                if not self._peek():
                    return None
            self._advance()
