"""
Tokenizer for the structured query language.

    tag = "vacation" AND (size >= 10MB OR name ~ "*.jpg")

Tokens: identifiers (fields and the keywords AND/OR/NOT/IN, any case),
double-quoted strings (\\" embeds a quote, \\\\ a backslash), numbers with an
optional unit suffix glued on (10, 1.5MB), comparison operators, and the
structural characters ( ) ,.
"""

from dataclasses import dataclass
from enum import Enum

from .errors import LexError


class TokenKind(str, Enum):
    IDENT = "identifier"
    STRING = "string"
    NUMBER = "number"
    OP = "operator"
    LPAREN = "'('"
    RPAREN = "')'"
    COMMA = "','"
    EOF = "end of query"


KEYWORDS = frozenset({"AND", "OR", "NOT", "IN"})

# Longest first so ">=" wins over ">"
_OPERATORS = (">=", "<=", "!=", "=", "~", ">", "<")

_STRUCTURAL = {
    "(": TokenKind.LPAREN,
    ")": TokenKind.RPAREN,
    ",": TokenKind.COMMA,
}


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    text: str
    position: int
    end: int

    def is_keyword(self, word: str) -> bool:
        return self.kind is TokenKind.IDENT and self.text.upper() == word

    @property
    def keyword(self) -> str:
        """Uppercased keyword, or empty string if this isn't one."""
        if self.kind is TokenKind.IDENT and self.text.upper() in KEYWORDS:
            return self.text.upper()
        return ""

    def describe(self) -> str:
        if self.kind is TokenKind.EOF:
            return "end of query"
        if self.kind is TokenKind.STRING:
            return f"string {self.text!r}"
        return f"'{self.text}'"


def _is_ident_start(ch: str) -> bool:
    return ch.isalpha() or ch == "_"


def _is_ident_char(ch: str) -> bool:
    return ch.isalnum() or ch == "_"


def tokenize(text: str) -> list[Token]:
    """
    Split query text into tokens, ending with an EOF token.

    STRING tokens carry the unescaped contents; every other token carries
    its source text. The EOF token sits at the end of the last real token
    so that "missing value" errors point just past it.

    Raises:
        LexError: unterminated string (at the opening quote) or an
            unrecognized character (at that character)
    """
    tokens: list[Token] = []
    i = 0
    n = len(text)

    while i < n:
        ch = text[i]

        if ch.isspace():
            i += 1
            continue

        if ch == '"':
            start = i
            i += 1
            chars: list[str] = []
            while True:
                if i >= n:
                    raise LexError("Unterminated string literal", start)
                c = text[i]
                if c == "\\" and i + 1 < n and text[i + 1] in ('"', "\\"):
                    chars.append(text[i + 1])
                    i += 2
                    continue
                if c == '"':
                    i += 1
                    break
                chars.append(c)
                i += 1
            tokens.append(Token(TokenKind.STRING, "".join(chars), start, i))
            continue

        if ch.isdigit() or (ch == "." and i + 1 < n and text[i + 1].isdigit()):
            start = i
            while i < n and (text[i].isdigit() or text[i] == "."):
                i += 1
            # Unit suffix is glued on; the parser decides whether it's valid
            while i < n and _is_ident_char(text[i]):
                i += 1
            tokens.append(Token(TokenKind.NUMBER, text[start:i], start, i))
            continue

        if _is_ident_start(ch):
            start = i
            while i < n and _is_ident_char(text[i]):
                i += 1
            tokens.append(Token(TokenKind.IDENT, text[start:i], start, i))
            continue

        if ch in _STRUCTURAL:
            tokens.append(Token(_STRUCTURAL[ch], ch, i, i + 1))
            i += 1
            continue

        for op in _OPERATORS:
            if text.startswith(op, i):
                tokens.append(Token(TokenKind.OP, op, i, i + len(op)))
                i += len(op)
                break
        else:
            raise LexError(f"Unexpected character {ch!r}", i)

    eof_position = tokens[-1].end if tokens else 0
    tokens.append(Token(TokenKind.EOF, "", eof_position, eof_position))
    return tokens
