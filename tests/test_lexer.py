import pytest

from enigma.enigma_lexer import Lexer
from enigma.enigma_tokens import TokenType, lookup_ident


def kinds(src):
    return [t.type for t in Lexer(src).tokenize()]


def test_simple_statement_positions():
    toks = Lexer("let five = 5;").tokenize()
    assert [(t.type, t.literal, t.line, t.column) for t in toks] == [
        (TokenType.LET, "let", 1, 1),
        (TokenType.IDENTIFIER, "five", 1, 5),
        (TokenType.ASSIGN, "=", 1, 10),
        (TokenType.INT, "5", 1, 12),
        (TokenType.SEMICOLON, ";", 1, 13),
        (TokenType.EOF, "", 1, 14),
    ]


def test_line_and_column_tracking():
    toks = Lexer("let x = 1;\n  x").tokenize()
    last_ident = [t for t in toks if t.type == TokenType.IDENTIFIER][-1]
    assert (last_ident.line, last_ident.column) == (2, 3)


@pytest.mark.parametrize(
    "src,expected",
    [
        ("==", TokenType.EQ),
        ("!=", TokenType.NOT_EQ),
        ("<=", TokenType.LT_EQ),
        (">=", TokenType.GT_EQ),
        ("+=", TokenType.PLUS_ASSIGN),
        ("-=", TokenType.MINUS_ASSIGN),
        ("*=", TokenType.ASTERISK_ASSIGN),
        ("/=", TokenType.SLASH_ASSIGN),
        ("%=", TokenType.MODULUS_ASSIGN),
        ("&&", TokenType.AND),
        ("||", TokenType.OR),
        ("<<", TokenType.SHIFT_LEFT),
        (">>", TokenType.SHIFT_RIGHT),
        ("//", TokenType.INT_DIVISION),
        ("&", TokenType.BITWISE_AND),
        ("|", TokenType.BITWISE_OR),
        ("^", TokenType.BITWISE_XOR),
        ("~", TokenType.BITWISE_NOT),
        ("!", TokenType.BANG),
        ("=", TokenType.ASSIGN),
        (".", TokenType.DOT),
        (":", TokenType.COLON),
    ],
)
def test_operators(src, expected):
    assert kinds(src) == [expected, TokenType.EOF]


def test_keywords_and_identifiers():
    src = "fn let const true false if elif else return while for break continue class extends super this new null name_1"
    toks = Lexer(src).tokenize()
    assert toks[0].type == TokenType.FUNCTION
    assert toks[-2].type == TokenType.IDENTIFIER
    assert toks[-2].literal == "name_1"
    assert lookup_ident("elif") == TokenType.ELIF
    assert lookup_ident("elsewhere") == TokenType.IDENTIFIER


def test_numbers():
    toks = Lexer("1.5 .5 1e3 2.5E-2 42").tokenize()
    assert [(t.type, t.literal) for t in toks[:-1]] == [
        (TokenType.FLOAT, "1.5"),
        (TokenType.FLOAT, ".5"),
        (TokenType.FLOAT, "1e3"),
        (TokenType.FLOAT, "2.5E-2"),
        (TokenType.INT, "42"),
    ]


def test_exponent_requires_digits():
    toks = Lexer("1e").tokenize()
    assert [(t.type, t.literal) for t in toks[:-1]] == [
        (TokenType.INT, "1"),
        (TokenType.IDENTIFIER, "e"),
    ]


def test_integer_division_is_not_a_comment():
    assert kinds("7 // 2") == [TokenType.INT, TokenType.INT_DIVISION, TokenType.INT, TokenType.EOF]


@pytest.mark.parametrize(
    "src,expected",
    [
        ('"a\\nb"', "a\nb"),
        ("'it\\'s'", "it's"),
        ('"tab\\there"', "tab\there"),
        ('"\\q"', "q"),
        ('""', ""),
    ],
)
def test_string_escapes(src, expected):
    tok = Lexer(src).next_token()
    assert tok.type == TokenType.STRING
    assert tok.literal == expected


def test_unterminated_string_is_illegal():
    assert kinds('"abc') == [TokenType.ILLEGAL, TokenType.EOF]


def test_unknown_character_is_illegal_and_lexing_continues():
    toks = Lexer("a @ b").tokenize()
    assert [t.type for t in toks] == [
        TokenType.IDENTIFIER, TokenType.ILLEGAL, TokenType.IDENTIFIER, TokenType.EOF,
    ]
    assert toks[1].literal == "@"


def test_comments_are_skipped():
    toks = Lexer("# line comment\nx /* outer /* inner */ still outer */ y").tokenize()
    assert [(t.literal, t.line) for t in toks[:-1]] == [("x", 2), ("y", 2)]


def test_unterminated_block_comment_is_illegal():
    assert kinds("x /* never closed") == [TokenType.IDENTIFIER, TokenType.ILLEGAL, TokenType.EOF]


def test_fstring_segments_are_nested_token_streams():
    tok = Lexer('f"sum: {a + b}!"').next_token()
    assert tok.type == TokenType.F_STRING
    assert tok.segments[0] == "sum: "
    assert tok.segments[2] == "!"
    inner = tok.segments[1]
    assert [t.type for t in inner] == [
        TokenType.IDENTIFIER, TokenType.PLUS, TokenType.IDENTIFIER, TokenType.EOF,
    ]
    assert (inner[0].literal, inner[0].line, inner[0].column) == ("a", 1, 9)


def test_fstring_escaped_braces():
    tok = Lexer('f"{{x}}"').next_token()
    assert tok.segments == ("{x}",)


def test_fstring_with_nested_string():
    tok = Lexer("f\"{upper('hi')}\"").next_token()
    inner = tok.segments[0]
    assert [t.type for t in inner] == [
        TokenType.IDENTIFIER, TokenType.LPAREN, TokenType.STRING, TokenType.RPAREN, TokenType.EOF,
    ]


def test_unterminated_fstring_is_illegal():
    assert kinds('f"abc {x')[0] == TokenType.ILLEGAL


def test_lexer_is_iterable():
    assert [t.literal for t in Lexer("a b")] == ["a", "b", ""]
