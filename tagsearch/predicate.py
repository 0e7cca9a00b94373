"""
Predicate model shared by both search front ends.

A predicate is a small immutable tree: Comparison leaves (field, operator,
value) joined by Logical nodes (AND / OR / NOT). The checkbox filter
builder and the query parser both produce this shape; the evaluator is
the only consumer.

Comparisons straight out of the parser hold raw Literal values and may
name unknown fields. parser.validate() turns them into typed leaves:

    tag       str          (= !=)
    name      glob str     (~)
    size      int bytes    (> < >= <=)
    modified  int unix s   (> < >= <=)
    type      category     (= !=)
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Iterator, Union


class Field(str, Enum):
    TAG = "tag"
    NAME = "name"
    SIZE = "size"
    MODIFIED = "modified"
    TYPE = "type"


class Operator(str, Enum):
    EQ = "="
    NE = "!="
    MATCH = "~"
    GT = ">"
    LT = "<"
    GE = ">="
    LE = "<="


class Connective(str, Enum):
    AND = "AND"
    OR = "OR"
    NOT = "NOT"


ORDERING_OPERATORS = frozenset({Operator.GT, Operator.LT, Operator.GE, Operator.LE})

# Operators allowed per field; IN is allowed wherever = is
ALLOWED_OPERATORS: dict[Field, frozenset[Operator]] = {
    Field.TAG: frozenset({Operator.EQ, Operator.NE}),
    Field.TYPE: frozenset({Operator.EQ, Operator.NE}),
    Field.NAME: frozenset({Operator.MATCH}),
    Field.SIZE: ORDERING_OPERATORS,
    Field.MODIFIED: ORDERING_OPERATORS,
}


@dataclass(frozen=True)
class Literal:
    """An unvalidated value as written in the query."""
    text: str
    quoted: bool = True
    position: int = field(default=0, compare=False)


@dataclass(frozen=True)
class Comparison:
    """
    A single field-operator-value test.

    `clause` and `position` record where the comparison came from for error
    messages; `spelled` is the operator as the user wrote it (IN for
    desugared IN lists). None of them take part in equality.
    """
    field: str
    operator: Operator
    value: Any
    clause: str = field(default="", compare=False)
    position: int = field(default=0, compare=False)
    spelled: str = field(default="", compare=False)

    @property
    def written_operator(self) -> str:
        return self.spelled or self.operator.value


@dataclass(frozen=True)
class Logical:
    """AND / OR over one or more operands, or NOT over exactly one."""
    op: Connective
    operands: tuple["Predicate", ...]

    def __post_init__(self):
        object.__setattr__(self, "operands", tuple(self.operands))
        if not self.operands:
            raise ValueError(f"{self.op.value} node needs at least one operand")
        if self.op is Connective.NOT and len(self.operands) != 1:
            raise ValueError("NOT node takes exactly one operand")


Predicate = Union[Comparison, Logical]


def and_(*operands: Predicate) -> Logical:
    return Logical(Connective.AND, operands)


def or_(*operands: Predicate) -> Logical:
    return Logical(Connective.OR, operands)


def not_(operand: Predicate) -> Logical:
    return Logical(Connective.NOT, (operand,))


def field_name(value) -> str:
    """Plain field name for a Field member or a raw identifier."""
    return value.value if isinstance(value, Field) else str(value)


def iter_leaves(node: Predicate) -> Iterator[Comparison]:
    """Yield every Comparison in the tree, depth first."""
    if isinstance(node, Comparison):
        yield node
        return
    for operand in node.operands:
        yield from iter_leaves(operand)


def mentions_field(node: Predicate, name: Field) -> bool:
    """True if any leaf in the tree tests the given field."""
    return any(leaf.field == name for leaf in iter_leaves(node))


# -----------------------------------------------------------------------------
# Rendering back to query text
# -----------------------------------------------------------------------------

_PRECEDENCE = {Connective.OR: 1, Connective.AND: 2, Connective.NOT: 3}

_EPOCH = datetime(1970, 1, 1)


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _render_value(leaf: Comparison) -> str:
    if isinstance(leaf.value, Literal):
        return _quote(leaf.value.text) if leaf.value.quoted else leaf.value.text
    if leaf.field == Field.SIZE:
        return str(leaf.value)
    if leaf.field == Field.MODIFIED:
        # Quoted naive ISO reads back as UTC; bare ints can't be negative
        when = _EPOCH + timedelta(seconds=leaf.value)
        return _quote(when.isoformat())
    return _quote(str(leaf.value))


def to_query_text(node: Predicate) -> str:
    """
    Render a predicate tree as structured query text.

    Sizes render as plain byte counts and dates as quoted UTC datetimes
    ("2024-01-01T00:00:00"), both of which the parser accepts. Parsing the
    output gives an equivalent tree; it is equal unless the tree holds
    single-operand AND/OR nodes, which render as their operand.
    """
    return _render(node, 0)


def _render(node: Predicate, parent_precedence: int) -> str:
    if isinstance(node, Comparison):
        return f"{field_name(node.field)} {node.operator.value} {_render_value(node)}"

    precedence = _PRECEDENCE[node.op]
    if node.op is Connective.NOT:
        text = f"NOT {_render(node.operands[0], precedence)}"
    elif len(node.operands) == 1:
        # Single-operand AND/OR is transparent
        return _render(node.operands[0], parent_precedence)
    else:
        # Nested same-op nodes are parenthesized so the tree shape survives a round trip
        text = f" {node.op.value} ".join(
            _render(operand, precedence + 1 if isinstance(operand, Logical) and operand.op is node.op else precedence)
            for operand in node.operands
        )
    if precedence < parent_precedence:
        return f"({text})"
    return text


def to_dict(node: Predicate) -> dict:
    """JSON-friendly representation of a tree (for --json output)."""
    if isinstance(node, Comparison):
        value = node.value
        if isinstance(value, Literal):
            value = value.text
        return {"field": field_name(node.field), "operator": node.operator.value, "value": value}
    return {"op": node.op.value, "operands": [to_dict(o) for o in node.operands]}


def to_json(node: Predicate) -> str:
    return json.dumps(to_dict(node), ensure_ascii=False)
