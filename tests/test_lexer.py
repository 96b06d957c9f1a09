import pytest

from caddyfile_syntax import classifiers as cls
from caddyfile_syntax.errors import CaddyfileSyntaxError, ErrorKind
from caddyfile_syntax.lexer import PRIORITY_TABLES, LexContext, Lexer, select
from caddyfile_syntax.tokens import START_POSITION, Position, TokenKind, advance_position


def test_advance_position_counts_lines_and_bytes():
    end = advance_position(START_POSITION, "é\n")
    assert end == Position(offset=2, byte_offset=3, line=2, column=1)

    end = advance_position(START_POSITION, "a\r\nb\rc")
    assert (end.line, end.column) == (3, 2)


def test_every_context_has_a_table():
    assert set(PRIORITY_TABLES) == set(LexContext)


def test_select_prefers_precedence_over_length():
    table = (cls.ARGUMENT, cls.PATH_MATCHER)
    classifier, length = select(table, "/api/*.json", 0)
    assert classifier is cls.PATH_MATCHER
    assert length == len("/api/*")


def test_select_prefers_longest_match():
    table = (cls.MATCHER_IDENTIFIER, cls.ARGUMENT)
    classifier, length = select(table, "@a@b rest", 0)
    assert classifier is cls.ARGUMENT
    assert length == 4


def test_select_breaks_ties_by_table_order():
    classifier, _ = select((cls.INTEGER, cls.ARGUMENT), "42", 0)
    assert classifier is cls.INTEGER
    classifier, _ = select((cls.ARGUMENT, cls.INTEGER), "42", 0)
    assert classifier is cls.ARGUMENT


def test_select_without_match():
    assert select((cls.INTEGER,), "abc", 0) is None


def test_quoted_cel_outranks_bare_cel():
    text = '`{path}.startsWith("/x")` && true'
    classifier, length = select(PRIORITY_TABLES[LexContext.CEL_EXPRESSION], text, 0)
    assert classifier is cls.QUOTED_CEL_EXPRESSION
    assert length == len('`{path}.startsWith("/x")`')


def test_skip_space_emits_trivia_and_comment():
    lexer = Lexer("  # note\nnext")
    lexer.skip_space()
    assert [token.kind for token in lexer.tokens] == [TokenKind.WHITESPACE, TokenKind.COMMENT]
    assert lexer.at_line_end()
    assert lexer.newline().text == "\n"
    assert lexer.position.line == 2


def test_skip_blank_handles_crlf():
    lexer = Lexer("\r\n\r\nword")
    lexer.skip_blank()
    assert [token.text for token in lexer.tokens] == ["\r\n", "\r\n"]
    assert lexer.peek() == "w"
    assert lexer.position.line == 3


def test_take_emits_token_with_positions():
    lexer = Lexer("example.com {")
    token = lexer.take(cls.SITE_ADDRESS)
    assert token.kind is TokenKind.SITE_ADDRESS
    assert token.text == "example.com"
    assert str(token.start) == "1:1"
    assert str(token.end) == "1:12"
    assert lexer.take(cls.SITE_ADDRESS) is None


def test_lexical_errors_become_syntax_errors():
    lexer = Lexer('x "unterminated')
    lexer.pos = 2
    lexer.position = advance_position(START_POSITION, "x ")
    with pytest.raises(CaddyfileSyntaxError) as excinfo:
        lexer.select(LexContext.DIRECTIVE_FIELD)
    assert excinfo.value.kind is ErrorKind.UNTERMINATED_STRING
    assert str(excinfo.value.diagnostic.position) == "1:3"


def test_unexpected_reports_the_offending_word():
    lexer = Lexer("} trailing")
    error = lexer.unexpected("directive")
    assert error.kind is ErrorKind.UNEXPECTED_TOKEN
    assert "'}'" in error.diagnostic.message
    assert error.diagnostic.expected == "directive"


def test_unexpected_points_out_invalid_addresses():
    assert Lexer("[::zz]:80").unexpected("site address").kind is ErrorKind.INVALID_ADDRESS_LITERAL
    assert Lexer("10.0.0.300 {").unexpected("site address").kind is ErrorKind.INVALID_ADDRESS_LITERAL


def test_unexpected_at_end_of_input():
    error = Lexer("").unexpected("'}'")
    assert error.diagnostic.message == "unexpected end of input"


def test_skip_line_emits_error_token():
    lexer = Lexer("bad stuff\nok")
    token = lexer.skip_line()
    assert token.kind is TokenKind.ERROR
    assert token.text == "bad stuff"
    assert lexer.skip_line() is None


def test_heredoc_tokens():
    lexer = Lexer("<<EOF\n  hi\n  EOF")
    lexer.heredoc_open()
    assert lexer.heredoc_tag().text == "EOF"
    assert lexer.heredoc_line().kind is TokenKind.HEREDOC_BODY
    end = lexer.heredoc_line()
    assert end.kind is TokenKind.HEREDOC_END
    assert [token.kind for token in lexer.tokens] == [
        TokenKind.PUNCTUATION,
        TokenKind.HEREDOC_START,
        TokenKind.NEWLINE,
        TokenKind.HEREDOC_BODY,
        TokenKind.WHITESPACE,
        TokenKind.HEREDOC_END,
    ]
    assert "".join(token.text for token in lexer.tokens) == lexer.text
