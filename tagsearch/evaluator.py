"""
Query evaluator.

Compiles a validated predicate tree into a test function, runs it over
the repository's candidate items, and returns the matches sorted.

Every leaf reduces to a boolean test on one candidate: the Item plus its
resolved set of tag values. Tag leaves test set membership; name, size,
modified and type leaves test item attributes. Logical nodes combine
child results with plain AND / OR / NOT. Nothing here has side effects,
so evaluation order is irrelevant and concurrent evaluations are safe.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .predicate import (
    Comparison,
    Connective,
    Field,
    Logical,
    Operator,
    Predicate,
    field_name,
    mentions_field,
)
from .protocol import ItemRepositoryProtocol
from .types import Item

logger = logging.getLogger(__name__)


# Extension table per type category ("directory" is the is_directory flag)
TYPE_EXTENSIONS: dict[str, frozenset[str]] = {
    "image": frozenset({
        ".jpg", ".jpeg", ".png", ".gif", ".bmp", ".webp", ".svg", ".ico", ".tiff", ".tif",
    }),
    "video": frozenset({".mp4", ".avi", ".mkv", ".mov", ".wmv", ".flv", ".webm", ".m4v"}),
    "document": frozenset({
        ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx", ".txt", ".csv", ".rtf",
    }),
    "audio": frozenset({".mp3", ".wav", ".flac", ".aac", ".ogg", ".wma", ".m4a"}),
    "archive": frozenset({".zip", ".rar", ".7z", ".tar", ".gz", ".bz2", ".xz"}),
}

_EXTENSION_CATEGORY = {
    ext: category
    for category, extensions in TYPE_EXTENSIONS.items()
    for ext in extensions
}


class SortKey(str, Enum):
    NAME = "name"
    DATE = "date"
    SIZE = "size"
    PATH = "path"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class Candidate:
    """One item under test, with its tag values casefolded."""
    item: Item
    tags: frozenset[str]


Test = Callable[[Candidate], bool]


def classify(item: Item) -> Optional[str]:
    """Type category of an item, or None if its extension is unknown."""
    if item.is_directory:
        return "directory"
    return _EXTENSION_CATEGORY.get(item.extension)


def glob_to_regex(pattern: str) -> re.Pattern:
    """
    Compile a filename glob to a case-insensitive, fully anchored regex.

    Only * (any run) and ? (one character) are special.
    """
    parts = []
    for ch in pattern:
        if ch == "*":
            parts.append(".*")
        elif ch == "?":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    return re.compile("".join(parts), re.IGNORECASE | re.DOTALL)


_ORDERING: dict[Operator, Callable[[int, int], bool]] = {
    Operator.GT: lambda a, b: a > b,
    Operator.LT: lambda a, b: a < b,
    Operator.GE: lambda a, b: a >= b,
    Operator.LE: lambda a, b: a <= b,
}


# -----------------------------------------------------------------------------
# Compilation
# -----------------------------------------------------------------------------

def _compile_tag(leaf: Comparison) -> Test:
    value = leaf.value.casefold()
    if leaf.operator is Operator.EQ:
        return lambda c: value in c.tags
    return lambda c: value not in c.tags


def _compile_name(leaf: Comparison) -> Test:
    regex = glob_to_regex(leaf.value)
    return lambda c: regex.fullmatch(c.item.name) is not None


def _compile_ordering(leaf: Comparison, attribute: str) -> Test:
    compare = _ORDERING[leaf.operator]
    bound = leaf.value

    def test(c: Candidate) -> bool:
        actual = getattr(c.item, attribute)
        # Missing attribute (directory size, unknown mtime) fails every comparison
        if actual is None:
            return False
        return compare(actual, bound)

    return test


def _compile_type(leaf: Comparison) -> Test:
    category = leaf.value
    if leaf.operator is Operator.EQ:
        return lambda c: classify(c.item) == category
    return lambda c: classify(c.item) != category


def _compile_leaf(leaf: Comparison) -> Test:
    if leaf.field == Field.TAG:
        return _compile_tag(leaf)
    if leaf.field == Field.NAME:
        return _compile_name(leaf)
    if leaf.field == Field.SIZE:
        return _compile_ordering(leaf, "size")
    if leaf.field == Field.MODIFIED:
        return _compile_ordering(leaf, "modified_time")
    if leaf.field == Field.TYPE:
        return _compile_type(leaf)
    raise ValueError(f"Unvalidated field in predicate: {field_name(leaf.field)!r}")


def compile_predicate(node: Predicate) -> Test:
    """Turn a validated tree into a single test function."""
    if isinstance(node, Comparison):
        return _compile_leaf(node)

    tests = [compile_predicate(operand) for operand in node.operands]
    if node.op is Connective.NOT:
        inner = tests[0]
        return lambda c: not inner(c)
    if node.op is Connective.AND:
        return lambda c: all(t(c) for t in tests)
    return lambda c: any(t(c) for t in tests)


# -----------------------------------------------------------------------------
# Sorting
# -----------------------------------------------------------------------------

def _sort_value(item: Item, key: SortKey):
    if key is SortKey.NAME:
        return item.name.casefold()
    if key is SortKey.PATH:
        return item.path.casefold()
    if key is SortKey.DATE:
        return item.modified_time
    return item.size


def sort_items(
    items: list[Item],
    sort_key: "SortKey | str" = SortKey.NAME,
    sort_order: "SortOrder | str" = SortOrder.ASC,
) -> list[Item]:
    """
    Stable sort by the chosen key, ties broken by ascending item id.

    Missing values (directory sizes, unknown dates) sort first ascending,
    last descending.
    """
    key = SortKey(sort_key)
    order = SortOrder(sort_order)
    by_id = sorted(items, key=lambda i: i.id)

    def sort_value(item: Item):
        value = _sort_value(item, key)
        return (value is not None, value if value is not None else 0)

    # sorted() stays stable with reverse=True, so id order survives ties
    return sorted(by_id, key=sort_value, reverse=order is SortOrder.DESC)


# -----------------------------------------------------------------------------
# Evaluation
# -----------------------------------------------------------------------------

def evaluate(
    predicate: Predicate,
    repository: ItemRepositoryProtocol,
    sort_key: "SortKey | str" = SortKey.NAME,
    sort_order: "SortOrder | str" = SortOrder.ASC,
) -> list[Item]:
    """
    Run a validated predicate against the repository.

    Soft-deleted items are dropped before any leaf runs. Directories have
    no size, so any tree that mentions size excludes them outright, even
    when the size leaf sits under OR or NOT.

    Args:
        predicate: Tree from build_boolean_filter() or parse_query()
        repository: Read-only item/tag source
        sort_key: name, date, size or path
        sort_order: asc or desc

    Returns:
        Matching items in sorted order
    """
    key = SortKey(sort_key)
    order = SortOrder(sort_order)
    test = compile_predicate(predicate)

    # One read for both candidates and tags so they agree with each other
    items, tag_map = repository.read_snapshot(with_tags=mentions_field(predicate, Field.TAG))
    candidates = [item for item in items if not item.is_deleted]
    if mentions_field(predicate, Field.SIZE):
        candidates = [item for item in candidates if not item.is_directory]

    matches = []
    for item in candidates:
        values = frozenset(v.casefold() for v in tag_map.get(item.id, ()))
        if test(Candidate(item, values)):
            matches.append(item)

    logger.debug("Evaluated %d candidates, %d matched", len(candidates), len(matches))
    return sort_items(matches, key, order)
