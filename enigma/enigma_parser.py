"""
Pratt parser for Enigma.

Each token type may register a prefix handler and an infix handler.
``parse_expression`` keeps folding infix handlers into the left operand while
the lookahead binds tighter than the caller's precedence, which is all that is
needed for correct precedence and associativity. Errors are collected rather
than raised so one run can report several of them.
"""

import dataclasses
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

from enigma.enigma_tokens import Token, TokenType
from enigma.enigma_lexer import Lexer
from enigma import enigma_ast as ast


class Precedence(IntEnum):
    LOWEST = 1
    ASSIGN = 2
    LOGICAL_OR = 3
    LOGICAL_AND = 4
    BIT_OR = 5
    BIT_XOR = 6
    BIT_AND = 7
    EQUALS = 8
    LESS_GREATER = 9
    SHIFT = 10
    SUM = 11
    PRODUCT = 12
    PREFIX = 13
    CALL = 14
    INDEX = 15


PRECEDENCES: Dict[TokenType, Precedence] = {
    TokenType.ASSIGN: Precedence.ASSIGN,
    TokenType.PLUS_ASSIGN: Precedence.ASSIGN,
    TokenType.MINUS_ASSIGN: Precedence.ASSIGN,
    TokenType.ASTERISK_ASSIGN: Precedence.ASSIGN,
    TokenType.SLASH_ASSIGN: Precedence.ASSIGN,
    TokenType.MODULUS_ASSIGN: Precedence.ASSIGN,
    TokenType.OR: Precedence.LOGICAL_OR,
    TokenType.AND: Precedence.LOGICAL_AND,
    TokenType.BITWISE_OR: Precedence.BIT_OR,
    TokenType.BITWISE_XOR: Precedence.BIT_XOR,
    TokenType.BITWISE_AND: Precedence.BIT_AND,
    TokenType.EQ: Precedence.EQUALS,
    TokenType.NOT_EQ: Precedence.EQUALS,
    TokenType.LT: Precedence.LESS_GREATER,
    TokenType.GT: Precedence.LESS_GREATER,
    TokenType.LT_EQ: Precedence.LESS_GREATER,
    TokenType.GT_EQ: Precedence.LESS_GREATER,
    TokenType.SHIFT_LEFT: Precedence.SHIFT,
    TokenType.SHIFT_RIGHT: Precedence.SHIFT,
    TokenType.PLUS: Precedence.SUM,
    TokenType.MINUS: Precedence.SUM,
    TokenType.ASTERISK: Precedence.PRODUCT,
    TokenType.SLASH: Precedence.PRODUCT,
    TokenType.INT_DIVISION: Precedence.PRODUCT,
    TokenType.MODULUS: Precedence.PRODUCT,
    TokenType.LPAREN: Precedence.CALL,
    TokenType.LBRACKET: Precedence.INDEX,
    TokenType.DOT: Precedence.INDEX,
}

COMPOUND_ASSIGNMENTS = {
    TokenType.PLUS_ASSIGN: "+",
    TokenType.MINUS_ASSIGN: "-",
    TokenType.ASTERISK_ASSIGN: "*",
    TokenType.SLASH_ASSIGN: "/",
    TokenType.MODULUS_ASSIGN: "%",
}

# Tokens at which error recovery resumes parsing.
STATEMENT_STARTS = {
    TokenType.LET, TokenType.CONST, TokenType.FUNCTION, TokenType.CLASS,
    TokenType.IF, TokenType.WHILE, TokenType.FOR, TokenType.RETURN,
}


@dataclass(frozen=True)
class ParseError:
    message: str
    line: int
    column: int

    def __str__(self):
        return f"{self.message} (line {self.line}, column {self.column})"

    def as_dict(self) -> dict:
        return {"message": self.message, "line": self.line, "column": self.column}


def _token_width(tok: Token) -> int:
    match tok.type:
        case TokenType.STRING:
            return len(tok.literal) + 2
        case TokenType.F_STRING:
            return len(tok.literal) + 3
        case _:
            return max(len(tok.literal), 1)


class Parser:
    def __init__(self, source: Union[Lexer, Iterable[Token]]):
        self._tokens = iter(source)
        self._eof: Optional[Token] = None
        self.errors: List[ParseError] = []
        self.loop_depth = 0

        self.prefix_fns: Dict[TokenType, Callable[[], Optional[ast.Expression]]] = {
            TokenType.IDENTIFIER: self._parse_identifier,
            TokenType.INT: self._parse_integer,
            TokenType.FLOAT: self._parse_float,
            TokenType.STRING: self._parse_string,
            TokenType.F_STRING: self._parse_fstring,
            TokenType.TRUE: self._parse_boolean,
            TokenType.FALSE: self._parse_boolean,
            TokenType.NULL: self._parse_null,
            TokenType.BANG: self._parse_prefix,
            TokenType.MINUS: self._parse_prefix,
            TokenType.BITWISE_NOT: self._parse_prefix,
            TokenType.LPAREN: self._parse_grouped,
            TokenType.IF: self._parse_if,
            TokenType.FUNCTION: self._parse_function_literal,
            TokenType.LBRACKET: self._parse_array,
            TokenType.LBRACE: self._parse_hash,
            TokenType.THIS: self._parse_this,
            TokenType.SUPER: self._parse_super,
            TokenType.NEW: self._parse_new,
            TokenType.ILLEGAL: self._parse_illegal,
        }
        self.infix_fns: Dict[TokenType, Callable[[ast.Expression], Optional[ast.Expression]]] = {
            tt: self._parse_infix
            for tt in (
                TokenType.PLUS, TokenType.MINUS, TokenType.ASTERISK, TokenType.SLASH,
                TokenType.INT_DIVISION, TokenType.MODULUS,
                TokenType.EQ, TokenType.NOT_EQ, TokenType.LT, TokenType.GT,
                TokenType.LT_EQ, TokenType.GT_EQ, TokenType.AND, TokenType.OR,
                TokenType.BITWISE_AND, TokenType.BITWISE_OR, TokenType.BITWISE_XOR,
                TokenType.SHIFT_LEFT, TokenType.SHIFT_RIGHT,
            )
        }
        self.infix_fns[TokenType.LPAREN] = self._parse_call
        self.infix_fns[TokenType.LBRACKET] = self._parse_index
        self.infix_fns[TokenType.DOT] = self._parse_property
        self.infix_fns[TokenType.ASSIGN] = self._parse_assignment
        for tt in COMPOUND_ASSIGNMENTS:
            self.infix_fns[tt] = self._parse_assignment

        self.cur_token = self._pull()
        self.peek_token = self._pull()

    # --- token cursor ---

    def _pull(self) -> Token:
        if self._eof is not None:
            return self._eof
        tok = next(self._tokens, None)
        if tok is None:
            tok = Token(TokenType.EOF, "", 0, 0)
        if tok.type == TokenType.EOF:
            self._eof = tok
        return tok

    def next_token(self):
        self.cur_token = self.peek_token
        self.peek_token = self._pull()

    def cur_is(self, tt: TokenType) -> bool:
        return self.cur_token.type == tt

    def peek_is(self, tt: TokenType) -> bool:
        return self.peek_token.type == tt

    def expect_peek(self, tt: TokenType) -> bool:
        if self.peek_is(tt):
            self.next_token()
            return True
        self._peek_error(tt)
        return False

    def peek_precedence(self) -> Precedence:
        return PRECEDENCES.get(self.peek_token.type, Precedence.LOWEST)

    def cur_precedence(self) -> Precedence:
        return PRECEDENCES.get(self.cur_token.type, Precedence.LOWEST)

    # --- diagnostics ---

    def _error(self, message: str, tok: Optional[Token] = None):
        tok = tok or self.cur_token
        self.errors.append(ParseError(message, tok.line, tok.column))

    def _peek_error(self, tt: TokenType):
        self._error(f"Expected next token to be {tt}, got {self.peek_token.type} instead", self.peek_token)

    def _span(self, start: Union[Token, ast.Span]) -> ast.Span:
        end = self.cur_token
        return ast.Span(start.line, start.column, end.line, end.column + _token_width(end))

    # --- program and statements ---

    def parse_program(self) -> ast.Program:
        start = self.cur_token
        statements = self._parse_statements(until=None)
        return ast.Program(tuple(statements), span=ast.Span(start.line, start.column, self.cur_token.line, self.cur_token.column))

    def _parse_statements(self, until: Optional[TokenType]) -> List[ast.Statement]:
        statements = []
        while not self.cur_is(TokenType.EOF) and (until is None or not self.cur_is(until)):
            before = len(self.errors)
            stmt = self.parse_statement()
            if stmt is not None and len(self.errors) == before:
                statements.append(stmt)
            elif len(self.errors) > before:
                self._synchronize(until)
                if until is not None and self.cur_is(until):
                    break
            self.next_token()
        return statements

    def _synchronize(self, until: Optional[TokenType]):
        """Skips tokens until a plausible statement boundary."""
        while not self.cur_is(TokenType.EOF):
            if self.cur_is(TokenType.SEMICOLON):
                return
            if until is not None and self.cur_is(until):
                return
            if self.peek_token.type in STATEMENT_STARTS:
                return
            if until is not None and self.peek_is(until):
                return
            self.next_token()

    def parse_statement(self) -> Optional[ast.Statement]:
        match self.cur_token.type:
            case TokenType.LET:
                return self._parse_binding(ast.LetStatement)
            case TokenType.CONST:
                return self._parse_binding(ast.ConstStatement)
            case TokenType.RETURN:
                return self._parse_return()
            case TokenType.BREAK | TokenType.CONTINUE:
                return self._parse_loop_control()
            case TokenType.WHILE:
                return self._parse_while()
            case TokenType.FOR:
                return self._parse_for()
            case TokenType.CLASS:
                return self._parse_class()
            case TokenType.LBRACE:
                return self._parse_block()
            case TokenType.FUNCTION if self.peek_is(TokenType.IDENTIFIER):
                return self._parse_function_declaration()
            case _:
                return self._parse_expression_statement()

    def _parse_binding(self, node_type):
        start = self.cur_token
        if not self.expect_peek(TokenType.IDENTIFIER):
            return None
        name = ast.Identifier(self.cur_token.literal, span=self._span(self.cur_token))
        if not self.expect_peek(TokenType.ASSIGN):
            return None
        self.next_token()
        value = self.parse_expression(Precedence.LOWEST)
        if value is None:
            return None
        if isinstance(value, ast.FunctionLiteral) and value.name is None:
            value = dataclasses.replace(value, name=name.value)
        if self.peek_is(TokenType.SEMICOLON):
            self.next_token()
        return node_type(name, value, span=self._span(start))

    def _parse_function_declaration(self):
        start = self.cur_token
        self.next_token()
        name = ast.Identifier(self.cur_token.literal, span=self._span(self.cur_token))
        fn = self._parse_function_rest(start, name.value)
        if fn is None:
            return None
        return ast.LetStatement(name, fn, span=self._span(start))

    def _parse_return(self):
        start = self.cur_token
        if self.peek_is(TokenType.SEMICOLON) or self.peek_is(TokenType.RBRACE):
            if self.peek_is(TokenType.SEMICOLON):
                self.next_token()
            return ast.ReturnStatement(None, span=self._span(start))
        self.next_token()
        value = self.parse_expression(Precedence.LOWEST)
        if value is None:
            return None
        if self.peek_is(TokenType.SEMICOLON):
            self.next_token()
        return ast.ReturnStatement(value, span=self._span(start))

    def _parse_loop_control(self):
        start = self.cur_token
        is_break = self.cur_is(TokenType.BREAK)
        if self.loop_depth == 0:
            word = "Break" if is_break else "Continue"
            self._error(f"{word} statement must be inside a loop.")
            return None
        if self.peek_is(TokenType.SEMICOLON):
            self.next_token()
        node_type = ast.BreakStatement if is_break else ast.ContinueStatement
        return node_type(span=self._span(start))

    def _parse_block(self) -> Optional[ast.BlockStatement]:
        start = self.cur_token
        self.next_token()
        statements = self._parse_statements(until=TokenType.RBRACE)
        if not self.cur_is(TokenType.RBRACE):
            self._error(f"Expected next token to be {TokenType.RBRACE}, got {self.cur_token.type} instead")
            return None
        return ast.BlockStatement(tuple(statements), span=self._span(start))

    def _parse_loop_body(self) -> Optional[ast.BlockStatement]:
        if not self.expect_peek(TokenType.LBRACE):
            return None
        self.loop_depth += 1
        try:
            return self._parse_block()
        finally:
            self.loop_depth -= 1

    def _parse_while(self):
        start = self.cur_token
        if not self.expect_peek(TokenType.LPAREN):
            return None
        self.next_token()
        condition = self.parse_expression(Precedence.LOWEST)
        if condition is None or not self.expect_peek(TokenType.RPAREN):
            return None
        body = self._parse_loop_body()
        if body is None:
            return None
        return ast.WhileStatement(condition, body, span=self._span(start))

    def _parse_for(self):
        start = self.cur_token
        if not self.expect_peek(TokenType.LPAREN):
            return None
        self.next_token()

        init = None
        if not self.cur_is(TokenType.SEMICOLON):
            if self.cur_is(TokenType.LET) or self.cur_is(TokenType.CONST):
                init = self.parse_statement()
            else:
                init = self._parse_expression_statement()
            if init is None:
                return None
            if not self.cur_is(TokenType.SEMICOLON) and not self.expect_peek(TokenType.SEMICOLON):
                return None

        condition = None
        if self.peek_is(TokenType.SEMICOLON):
            self.next_token()
        else:
            self.next_token()
            condition = self.parse_expression(Precedence.LOWEST)
            if condition is None or not self.expect_peek(TokenType.SEMICOLON):
                return None

        update = None
        if self.peek_is(TokenType.RPAREN):
            self.next_token()
        else:
            self.next_token()
            update = self.parse_expression(Precedence.LOWEST)
            if update is None or not self.expect_peek(TokenType.RPAREN):
                return None

        body = self._parse_loop_body()
        if body is None:
            return None
        return ast.ForStatement(init, condition, update, body, span=self._span(start))

    def _parse_class(self):
        start = self.cur_token
        if not self.expect_peek(TokenType.IDENTIFIER):
            return None
        name = ast.Identifier(self.cur_token.literal, span=self._span(self.cur_token))
        parent = None
        if self.peek_is(TokenType.EXTENDS):
            self.next_token()
            if not self.expect_peek(TokenType.IDENTIFIER):
                return None
            parent = ast.Identifier(self.cur_token.literal, span=self._span(self.cur_token))
        if not self.expect_peek(TokenType.LBRACE):
            return None
        self.next_token()

        fields: List[ast.LetStatement] = []
        methods: List[ast.FunctionLiteral] = []
        constructor = None
        while not self.cur_is(TokenType.RBRACE):
            if self.cur_is(TokenType.EOF):
                self._error(f"Expected next token to be {TokenType.RBRACE}, got {TokenType.EOF} instead")
                return None
            if self.cur_is(TokenType.LET):
                field = self._parse_binding(ast.LetStatement)
                if field is None:
                    return None
                fields.append(field)
            elif self.cur_is(TokenType.IDENTIFIER) and self.peek_is(TokenType.LPAREN):
                member_start = self.cur_token
                member_name = self.cur_token.literal
                method = self._parse_function_rest(member_start, member_name)
                if method is None:
                    return None
                if member_name == "init":
                    if constructor is not None:
                        self._error("Class can only have one constructor", member_start)
                        return None
                    constructor = method
                else:
                    methods.append(method)
            else:
                self._error(f"Unexpected token in class body: {self.cur_token.type}")
                return None
            self.next_token()

        return ast.ClassStatement(
            name, parent, tuple(fields), constructor, tuple(methods), span=self._span(start)
        )

    def _parse_expression_statement(self):
        start = self.cur_token
        expression = self.parse_expression(Precedence.LOWEST)
        if expression is None:
            return None
        if self.peek_is(TokenType.SEMICOLON):
            self.next_token()
        return ast.ExpressionStatement(expression, span=self._span(start))

    # --- expressions ---

    def parse_expression(self, precedence: Precedence) -> Optional[ast.Expression]:
        prefix = self.prefix_fns.get(self.cur_token.type)
        if prefix is None:
            self._error(f"No prefix parse function for {self.cur_token.type} found")
            return None
        left = prefix()
        while left is not None and not self.peek_is(TokenType.SEMICOLON) and precedence < self.peek_precedence():
            infix = self.infix_fns.get(self.peek_token.type)
            if infix is None:
                return left
            self.next_token()
            left = infix(left)
        return left

    def _parse_identifier(self):
        return ast.Identifier(self.cur_token.literal, span=self._span(self.cur_token))

    def _parse_integer(self):
        tok = self.cur_token
        try:
            value = int(tok.literal)
        except ValueError:
            self._error("Integer literal too large", tok)
            return None
        return ast.IntegerLiteral(value, span=self._span(tok))

    def _parse_float(self):
        tok = self.cur_token
        return ast.FloatLiteral(float(tok.literal), span=self._span(tok))

    def _parse_string(self):
        tok = self.cur_token
        return ast.StringLiteral(tok.literal, span=self._span(tok))

    def _parse_fstring(self):
        tok = self.cur_token
        parts: List[Union[str, ast.Expression]] = []
        for segment in tok.segments:
            if isinstance(segment, str):
                parts.append(segment)
                continue
            if len(segment) == 0 or segment[0].type == TokenType.EOF:
                self._error("Empty expression in f-string", tok)
                return None
            sub = Parser(segment)
            expr = sub.parse_expression(Precedence.LOWEST)
            if expr is not None and not sub.peek_is(TokenType.EOF):
                sub._error(f"Unexpected token in f-string expression: {sub.peek_token.type}", sub.peek_token)
            self.errors.extend(sub.errors)
            if sub.errors:
                return None
            parts.append(expr)
        return ast.FStringLiteral(tuple(parts), span=self._span(tok))

    def _parse_boolean(self):
        tok = self.cur_token
        return ast.BooleanLiteral(tok.type == TokenType.TRUE, span=self._span(tok))

    def _parse_null(self):
        return ast.NullLiteral(span=self._span(self.cur_token))

    def _parse_this(self):
        return ast.ThisExpression(span=self._span(self.cur_token))

    def _parse_illegal(self):
        self._error(f"Illegal token '{self.cur_token.literal}'")
        return None

    def _parse_prefix(self):
        start = self.cur_token
        self.next_token()
        right = self.parse_expression(Precedence.PREFIX)
        if right is None:
            return None
        return ast.PrefixExpression(start.literal, right, span=self._span(start))

    def _parse_infix(self, left):
        operator = self.cur_token.literal
        precedence = self.cur_precedence()
        self.next_token()
        right = self.parse_expression(precedence)
        if right is None:
            return None
        return ast.InfixExpression(left, operator, right, span=self._span(left.span))

    def _parse_assignment(self, target):
        op_token = self.cur_token
        if not isinstance(target, (ast.Identifier, ast.IndexExpression, ast.PropertyExpression)):
            self._error(f"Invalid assignment target: {target}", op_token)
            return None
        self.next_token()
        # Parsing the right side at LOWEST makes assignment right-associative.
        value = self.parse_expression(Precedence.LOWEST)
        if value is None:
            return None
        if op_token.type in COMPOUND_ASSIGNMENTS:
            value = ast.InfixExpression(
                target, COMPOUND_ASSIGNMENTS[op_token.type], value, span=self._span(target.span)
            )
        return ast.AssignmentExpression(target, value, span=self._span(target.span))

    def _parse_grouped(self):
        self.next_token()
        expr = self.parse_expression(Precedence.LOWEST)
        if expr is None or not self.expect_peek(TokenType.RPAREN):
            return None
        return expr

    def _parse_if(self):
        start = self.cur_token
        conditions: List[ast.Expression] = []
        consequences: List[ast.BlockStatement] = []
        branch = self._parse_conditional_branch()
        if branch is None:
            return None
        conditions.append(branch[0])
        consequences.append(branch[1])

        alternative = None
        while self.peek_is(TokenType.ELIF) or self.peek_is(TokenType.ELSE):
            self.next_token()
            if self.cur_is(TokenType.ELSE) and not self.peek_is(TokenType.IF):
                if not self.expect_peek(TokenType.LBRACE):
                    return None
                alternative = self._parse_block()
                if alternative is None:
                    return None
                break
            if self.cur_is(TokenType.ELSE):
                # 'else if' reads the same as 'elif'.
                self.next_token()
            branch = self._parse_conditional_branch()
            if branch is None:
                return None
            conditions.append(branch[0])
            consequences.append(branch[1])

        return ast.IfExpression(tuple(conditions), tuple(consequences), alternative, span=self._span(start))

    def _parse_conditional_branch(self) -> Optional[Tuple[ast.Expression, ast.BlockStatement]]:
        if not self.expect_peek(TokenType.LPAREN):
            return None
        self.next_token()
        condition = self.parse_expression(Precedence.LOWEST)
        if condition is None or not self.expect_peek(TokenType.RPAREN):
            return None
        if not self.expect_peek(TokenType.LBRACE):
            return None
        block = self._parse_block()
        if block is None:
            return None
        return condition, block

    def _parse_function_literal(self):
        return self._parse_function_rest(self.cur_token, None)

    def _parse_function_rest(self, start: Token, name: Optional[str]):
        """Parses '(params) { body }' following the current token."""
        if not self.expect_peek(TokenType.LPAREN):
            return None
        parameters = self._parse_parameters()
        if parameters is None or not self.expect_peek(TokenType.LBRACE):
            return None
        saved_depth, self.loop_depth = self.loop_depth, 0
        try:
            body = self._parse_block()
        finally:
            self.loop_depth = saved_depth
        if body is None:
            return None
        return ast.FunctionLiteral(tuple(parameters), body, name, span=self._span(start))

    def _parse_parameters(self) -> Optional[List[ast.Identifier]]:
        params: List[ast.Identifier] = []
        if self.peek_is(TokenType.RPAREN):
            self.next_token()
            return params
        if not self.expect_peek(TokenType.IDENTIFIER):
            return None
        params.append(ast.Identifier(self.cur_token.literal, span=self._span(self.cur_token)))
        while self.peek_is(TokenType.COMMA):
            self.next_token()
            if not self.expect_peek(TokenType.IDENTIFIER):
                return None
            params.append(ast.Identifier(self.cur_token.literal, span=self._span(self.cur_token)))
        if not self.expect_peek(TokenType.RPAREN):
            return None
        return params

    def _parse_expression_list(self, end: TokenType) -> Optional[List[ast.Expression]]:
        items: List[ast.Expression] = []
        if self.peek_is(end):
            self.next_token()
            return items
        self.next_token()
        item = self.parse_expression(Precedence.LOWEST)
        if item is None:
            return None
        items.append(item)
        while self.peek_is(TokenType.COMMA):
            self.next_token()
            if self.peek_is(end):
                # Trailing comma.
                break
            self.next_token()
            item = self.parse_expression(Precedence.LOWEST)
            if item is None:
                return None
            items.append(item)
        if not self.expect_peek(end):
            return None
        return items

    def _parse_array(self):
        start = self.cur_token
        elements = self._parse_expression_list(TokenType.RBRACKET)
        if elements is None:
            return None
        return ast.ArrayLiteral(tuple(elements), span=self._span(start))

    def _parse_hash(self):
        start = self.cur_token
        pairs: List[Tuple[ast.Expression, ast.Expression]] = []
        while not self.peek_is(TokenType.RBRACE):
            self.next_token()
            key = self.parse_expression(Precedence.LOWEST)
            if key is None:
                return None
            if isinstance(key, ast.Identifier):
                # Bare identifiers name string keys: {name: 1}.
                key = ast.StringLiteral(key.value, span=key.span)
            if not self.expect_peek(TokenType.COLON):
                return None
            self.next_token()
            value = self.parse_expression(Precedence.LOWEST)
            if value is None:
                return None
            pairs.append((key, value))
            if not self.peek_is(TokenType.RBRACE) and not self.expect_peek(TokenType.COMMA):
                return None
        self.next_token()
        return ast.HashLiteral(tuple(pairs), span=self._span(start))

    def _parse_call(self, function):
        arguments = self._parse_expression_list(TokenType.RPAREN)
        if arguments is None:
            return None
        return ast.CallExpression(function, tuple(arguments), span=self._span(function.span))

    def _parse_index(self, left):
        self.next_token()
        index = self.parse_expression(Precedence.LOWEST)
        if index is None or not self.expect_peek(TokenType.RBRACKET):
            return None
        return ast.IndexExpression(left, index, span=self._span(left.span))

    def _parse_property(self, obj):
        if not self.expect_peek(TokenType.IDENTIFIER):
            return None
        prop = ast.Identifier(self.cur_token.literal, span=self._span(self.cur_token))
        return ast.PropertyExpression(obj, prop, span=self._span(obj.span))

    def _parse_super(self):
        start = self.cur_token
        method = None
        if self.peek_is(TokenType.DOT):
            self.next_token()
            if not self.expect_peek(TokenType.IDENTIFIER):
                return None
            method = ast.Identifier(self.cur_token.literal, span=self._span(self.cur_token))
        if not self.expect_peek(TokenType.LPAREN):
            return None
        arguments = self._parse_expression_list(TokenType.RPAREN)
        if arguments is None:
            return None
        return ast.SuperExpression(method, tuple(arguments), span=self._span(start))

    def _parse_new(self):
        start = self.cur_token
        self.next_token()
        # CALL precedence stops before '(' so the argument list belongs to 'new'.
        class_expr = self.parse_expression(Precedence.CALL)
        if class_expr is None or not self.expect_peek(TokenType.LPAREN):
            return None
        arguments = self._parse_expression_list(TokenType.RPAREN)
        if arguments is None:
            return None
        return ast.NewExpression(class_expr, tuple(arguments), span=self._span(start))


def parse(source: str) -> Tuple[ast.Program, List[ParseError]]:
    """Lexes and parses ``source``; returns the program and any parse errors."""
    parser = Parser(Lexer(source))
    program = parser.parse_program()
    return program, parser.errors
