"""
Recursive-descent parser for the structured query language.

Grammar (NOT binds tighter than AND, AND tighter than OR):

    Expr       := OrExpr
    OrExpr     := AndExpr ( OR AndExpr )*
    AndExpr    := NotExpr ( AND NotExpr )*
    NotExpr    := NOT NotExpr | Atom
    Atom       := "(" Expr ")" | Comparison | InClause
    Comparison := Field Operator Value
    InClause   := Field IN "(" Value ( "," Value )* ")"

IN lists are desugared here into an OR of equality comparisons, so the
evaluator never sees them. parse_query() then runs validate(), which
checks fields, operators and literals and converts values to their
typed form.
"""

import re
from datetime import datetime, timezone
from typing import Optional

from .errors import ParseError, SemanticError
from .lexer import Token, TokenKind, tokenize
from .predicate import (
    ALLOWED_OPERATORS,
    Comparison,
    Connective,
    Field,
    Literal,
    Logical,
    Operator,
    Predicate,
    field_name,
)


# 1024-based size units; a bare number is bytes
SIZE_UNITS = {
    "": 1,
    "B": 1,
    "KB": 1024,
    "MB": 1024 ** 2,
    "GB": 1024 ** 3,
}

TYPE_CATEGORIES = ("image", "video", "document", "audio", "archive", "directory")

_SIZE_RE = re.compile(r'^(?P<magnitude>[0-9]*\.?[0-9]+)\s*(?P<unit>[A-Za-z]*)$')

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
)

# Combined depth of parentheses and NOTs
MAX_NESTING = 100


class _Parser:
    """Single-use parser over one token list."""

    def __init__(self, text: str, tokens: list[Token]):
        self._text = text
        self._tokens = tokens
        self._pos = 0
        self._depth = 0

    # -- token helpers --

    def _peek(self) -> Token:
        return self._tokens[self._pos]

    def _advance(self) -> Token:
        token = self._tokens[self._pos]
        if token.kind is not TokenKind.EOF:
            self._pos += 1
        return token

    def _previous_end(self) -> int:
        """Offset just past the most recently consumed token."""
        if self._pos == 0:
            return 0
        return self._tokens[self._pos - 1].end

    def _expect(self, kind: TokenKind, what: str) -> Token:
        token = self._peek()
        if token.kind is not kind:
            raise self._error(f"Expected {what}", token)
        return self._advance()

    def _error(self, message: str, token: Token) -> ParseError:
        if token.kind is TokenKind.EOF:
            return ParseError(f"{message}, found end of query", self._previous_end())
        return ParseError(f"{message}, found {token.describe()}", token.position)

    def _enter(self, token: Token) -> None:
        self._depth += 1
        if self._depth > MAX_NESTING:
            raise ParseError(
                f"Query nested too deeply (more than {MAX_NESTING} levels)",
                token.position,
            )

    # -- grammar --

    def parse(self) -> Predicate:
        expr = self._or_expr()
        token = self._peek()
        if token.kind is TokenKind.RPAREN:
            raise ParseError("Unbalanced ')'", token.position)
        if token.kind is not TokenKind.EOF:
            raise ParseError(f"Unexpected {token.describe()} after complete expression", token.position)
        return expr

    def _or_expr(self) -> Predicate:
        operands = [self._and_expr()]
        while self._peek().is_keyword("OR"):
            self._advance()
            operands.append(self._and_expr())
        if len(operands) == 1:
            return operands[0]
        return Logical(Connective.OR, tuple(operands))

    def _and_expr(self) -> Predicate:
        operands = [self._not_expr()]
        while self._peek().is_keyword("AND"):
            self._advance()
            operands.append(self._not_expr())
        if len(operands) == 1:
            return operands[0]
        return Logical(Connective.AND, tuple(operands))

    def _not_expr(self) -> Predicate:
        if self._peek().is_keyword("NOT"):
            self._enter(self._advance())
            operand = self._not_expr()
            self._depth -= 1
            return Logical(Connective.NOT, (operand,))
        return self._atom()

    def _atom(self) -> Predicate:
        token = self._peek()
        if token.kind is TokenKind.LPAREN:
            self._enter(self._advance())
            expr = self._or_expr()
            closing = self._peek()
            if closing.kind is not TokenKind.RPAREN:
                if closing.kind is TokenKind.EOF:
                    raise ParseError("Unbalanced '(': missing ')'", token.position)
                raise self._error("Expected ')'", closing)
            self._advance()
            self._depth -= 1
            return expr

        if token.kind is not TokenKind.IDENT or token.keyword in ("AND", "OR", "IN"):
            raise self._error("Expected a field name or '('", token)
        field_token = self._advance()

        following = self._peek()
        if following.is_keyword("IN"):
            self._advance()
            return self._in_clause(field_token)
        if following.kind is not TokenKind.OP:
            raise self._error(f"Expected an operator after '{field_token.text}'", following)
        op_token = self._advance()
        value = self._value()
        return Comparison(
            field=field_token.text,
            operator=Operator(op_token.text),
            value=value,
            clause=self._text[field_token.position:self._previous_end()],
            position=field_token.position,
        )

    def _in_clause(self, field_token: Token) -> Predicate:
        self._expect(TokenKind.LPAREN, "'(' after IN")
        values = [self._value()]
        while self._peek().kind is TokenKind.COMMA:
            self._advance()
            values.append(self._value())
        closing = self._peek()
        if closing.kind is not TokenKind.RPAREN:
            raise self._error("Expected ',' or ')' in IN list", closing)
        self._advance()
        clause = self._text[field_token.position:self._previous_end()]
        return Logical(Connective.OR, tuple(
            Comparison(
                field=field_token.text,
                operator=Operator.EQ,
                value=value,
                clause=clause,
                position=field_token.position,
                spelled="IN",
            )
            for value in values
        ))

    def _value(self) -> Literal:
        token = self._peek()
        if token.kind is TokenKind.STRING:
            self._advance()
            return Literal(token.text, quoted=True, position=token.position)
        if token.kind is TokenKind.NUMBER:
            self._advance()
            return Literal(token.text, quoted=False, position=token.position)
        raise self._error("Expected a value (quoted string or number)", token)


def parse_syntax(text: str) -> Predicate:
    """
    Lex and parse a query into an unvalidated tree.

    Raises:
        LexError: bad characters or unterminated strings
        ParseError: empty query or structural problems
    """
    if not text or not text.strip():
        raise ParseError("Query is empty", 0)
    return _Parser(text, tokenize(text)).parse()


def parse_query(text: str) -> Predicate:
    """
    Parse and validate a structured query.

    Returns a typed predicate tree ready for evaluation.

    Raises:
        LexError, ParseError, SemanticError (all QueryError)
    """
    return validate(parse_syntax(text))


# -----------------------------------------------------------------------------
# Semantic pass
# -----------------------------------------------------------------------------

def parse_size(text: str) -> Optional[int]:
    """
    Parse a size literal like 10MB, 1.5 kb or 2048 into bytes.

    Returns None when the magnitude isn't numeric or the unit is unknown.
    """
    match = _SIZE_RE.match(text.strip())
    if not match:
        return None
    multiplier = SIZE_UNITS.get(match.group("unit").upper())
    if multiplier is None:
        return None
    return int(float(match.group("magnitude")) * multiplier)


def parse_date(text: str) -> Optional[int]:
    """
    Parse an ISO-like date into unix seconds (UTC).

    Accepts YYYY-MM-DD, YYYY/MM/DD and full ISO datetimes. Naive values are
    taken as UTC. Returns None if the text isn't a date.
    """
    candidate = text.strip()
    if not candidate:
        return None
    for fmt in _DATE_FORMATS:
        try:
            parsed = datetime.strptime(candidate, fmt)
        except ValueError:
            continue
        return int(parsed.replace(tzinfo=timezone.utc).timestamp())
    try:
        parsed = datetime.fromisoformat(candidate.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp())


def validate(node: Predicate) -> Predicate:
    """
    Check a parsed tree and convert its values to typed form.

    Typed leaves are returned unchanged, so validating twice is harmless.

    Raises:
        SemanticError: naming the offending clause and why it was rejected
    """
    if isinstance(node, Logical):
        return Logical(node.op, tuple(validate(operand) for operand in node.operands))
    return _validate_comparison(node)


def _clause_of(leaf: Comparison) -> str:
    if leaf.clause:
        return leaf.clause
    value = leaf.value.text if isinstance(leaf.value, Literal) else leaf.value
    return f"{field_name(leaf.field)} {leaf.written_operator} {value}"


def _validate_comparison(leaf: Comparison) -> Comparison:
    clause = _clause_of(leaf)
    try:
        field = Field(field_name(leaf.field).lower())
    except ValueError:
        known = ", ".join(f.value for f in Field)
        raise SemanticError(
            f"Unknown field '{leaf.field}' (expected one of: {known})",
            clause, leaf.position,
        ) from None

    if leaf.operator not in ALLOWED_OPERATORS[field]:
        allowed = sorted(op.value for op in ALLOWED_OPERATORS[field])
        if Operator.EQ in ALLOWED_OPERATORS[field]:
            allowed.append("IN")
        raise SemanticError(
            f"Operator '{leaf.written_operator}' is not supported for field "
            f"'{field.value}' (allowed: {' '.join(allowed)})",
            clause, leaf.position,
        )

    value = _convert_value(field, leaf, clause)
    return Comparison(
        field=field,
        operator=leaf.operator,
        value=value,
        clause=leaf.clause,
        position=leaf.position,
        spelled=leaf.spelled,
    )


def _convert_value(field: Field, leaf: Comparison, clause: str):
    raw = leaf.value
    if not isinstance(raw, Literal):
        # Already typed (built programmatically or validated before)
        return _check_typed_value(field, raw, leaf, clause)

    position = raw.position or leaf.position

    if field is Field.SIZE:
        size = parse_size(raw.text)
        if size is None:
            raise SemanticError(
                f"Malformed size literal '{raw.text}' (expected a number with "
                "optional unit B, KB, MB or GB)",
                clause, position,
            )
        return size

    if field is Field.MODIFIED:
        if not raw.quoted:
            if raw.text.isdigit():
                return int(raw.text)
            raise SemanticError(
                f"Malformed date literal '{raw.text}' (expected a quoted date "
                "like \"2024-01-31\")",
                clause, position,
            )
        ts = parse_date(raw.text)
        if ts is None:
            raise SemanticError(
                f"Malformed date literal '{raw.text}' (expected YYYY-MM-DD)",
                clause, position,
            )
        return ts

    if field is Field.TYPE:
        category = raw.text.strip().lower()
        if category not in TYPE_CATEGORIES:
            raise SemanticError(
                f"Unknown type category '{raw.text}' (expected one of: "
                f"{', '.join(TYPE_CATEGORIES)})",
                clause, position,
            )
        return category

    # tag / name: plain text; numeric literals are taken verbatim
    text = raw.text.strip() if field is Field.TAG else raw.text
    if not text:
        what = "tag value" if field is Field.TAG else "name pattern"
        raise SemanticError(f"Empty {what}", clause, position)
    return text


def _check_typed_value(field: Field, value, leaf: Comparison, clause: str):
    if field in (Field.SIZE, Field.MODIFIED):
        if isinstance(value, bool) or not isinstance(value, int):
            raise SemanticError(f"Expected an integer {field.value} value", clause, leaf.position)
        return value
    if not isinstance(value, str) or not value.strip():
        raise SemanticError(f"Expected a non-empty {field.value} value", clause, leaf.position)
    if field is Field.TYPE:
        category = value.strip().lower()
        if category not in TYPE_CATEGORIES:
            raise SemanticError(f"Unknown type category '{value}'", clause, leaf.position)
        return category
    return value
