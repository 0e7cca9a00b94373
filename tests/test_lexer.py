"""Tests for the query tokenizer."""

import pytest

from tagsearch.errors import LexError, QueryError
from tagsearch.lexer import TokenKind, tokenize


def kinds(text):
    return [token.kind for token in tokenize(text)]


class TestTokenKinds:
    """Each token kind is recognized with its source offsets."""

    def test_simple_comparison(self):
        """tag = "a b" gives identifier, operator, string, EOF."""
        tokens = tokenize('tag = "a b"')
        assert [t.kind for t in tokens] == [
            TokenKind.IDENT, TokenKind.OP, TokenKind.STRING, TokenKind.EOF,
        ]
        string = tokens[2]
        assert string.text == "a b"
        assert string.position == 6
        assert string.end == 11

    def test_operators_longest_match(self):
        """Two-character operators win over their one-character prefixes."""
        tokens = tokenize("a>=1 b<=2 c!=3 d>4 e<5 f=6 g~7")
        ops = [t.text for t in tokens if t.kind is TokenKind.OP]
        assert ops == [">=", "<=", "!=", ">", "<", "=", "~"]

    def test_number_with_unit_suffix(self):
        """Unit suffixes stay glued to the number; validity is decided later."""
        tokens = tokenize("size >= 1.5MB OR size < 10XB")
        numbers = [t.text for t in tokens if t.kind is TokenKind.NUMBER]
        assert numbers == ["1.5MB", "10XB"]

    def test_no_whitespace_needed(self):
        """size>=10MB tokenizes the same as with spaces."""
        assert kinds("size>=10MB") == kinds("size >= 10MB")

    def test_structural_tokens(self):
        """Parentheses and commas are their own tokens."""
        assert kinds('tag IN ("a","b")') == [
            TokenKind.IDENT, TokenKind.IDENT, TokenKind.LPAREN, TokenKind.STRING,
            TokenKind.COMMA, TokenKind.STRING, TokenKind.RPAREN, TokenKind.EOF,
        ]

    def test_keywords_any_case(self):
        """AND/OR/NOT/IN are identifiers recognized case-insensitively."""
        tokens = tokenize("and Or nOT in tag")
        assert [t.keyword for t in tokens[:-1]] == ["AND", "OR", "NOT", "IN", ""]

    def test_eof_position(self):
        """EOF sits at the end of the last token, ignoring trailing spaces."""
        tokens = tokenize("tag =   ")
        assert tokens[-1].kind is TokenKind.EOF
        assert tokens[-1].position == 5

    def test_empty_input(self):
        """Empty text yields only EOF at offset 0."""
        tokens = tokenize("")
        assert len(tokens) == 1
        assert tokens[0].kind is TokenKind.EOF
        assert tokens[0].position == 0


class TestStringEscapes:
    """Backslash escapes inside quoted strings."""

    def test_escaped_quote(self):
        """\\" embeds a double quote."""
        tokens = tokenize(r'"say \"hi\""')
        assert tokens[0].text == 'say "hi"'
        assert tokens[0].end == 12

    def test_escaped_backslash(self):
        """\\\\ is one literal backslash."""
        tokens = tokenize(r'"a\\b"')
        assert tokens[0].text == "a\\b"

    def test_other_backslash_kept(self):
        """A backslash before anything else is kept verbatim."""
        tokens = tokenize(r'"C:\docs"')
        assert tokens[0].text == "C:\\docs"


class TestLexErrors:
    """Lexing failures carry the offending offset."""

    def test_unterminated_string(self):
        """Position is the opening quote."""
        with pytest.raises(LexError) as exc_info:
            tokenize('tag = "work')
        assert exc_info.value.position == 6

    def test_escaped_quote_does_not_terminate(self):
        """A string ending in \\" is still unterminated."""
        with pytest.raises(LexError) as exc_info:
            tokenize(r'name ~ "abc\"')
        assert exc_info.value.position == 7

    def test_unexpected_character(self):
        """Unknown characters are rejected where they appear."""
        with pytest.raises(LexError) as exc_info:
            tokenize('tag = "a" # comment')
        assert exc_info.value.position == 10
        assert "'#'" in exc_info.value.message

    def test_lone_bang(self):
        """! is only valid as part of !=."""
        with pytest.raises(LexError) as exc_info:
            tokenize('tag ! "a"')
        assert exc_info.value.position == 4

    def test_lex_error_is_query_error(self):
        """LexError is a QueryError and renders its position."""
        with pytest.raises(QueryError) as exc_info:
            tokenize("tag @ x")
        assert str(exc_info.value).endswith("at position 4")
