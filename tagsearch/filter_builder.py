"""
Boolean tag filter builder (checkbox mode).

Compiles a tag selection plus combinator into the same predicate tree the
query parser produces, so both surfaces share one evaluator:

    ids {1, 2}, AND           ->  tag = "work" AND tag = "2024"
    ids {1, 2}, OR, "report"  ->  (tag = "work" OR tag = "2024") AND name ~ "*report*"
"""

from typing import Iterable, Mapping, Optional

from .predicate import Comparison, Connective, Field, Logical, Operator, Predicate
from .types import Combinator, SearchCriteria


def name_contains(substring: str) -> Comparison:
    """Filename-substring leaf: name ~ "*substring*"."""
    return Comparison(Field.NAME, Operator.MATCH, f"*{substring}*")


def build_boolean_filter(
    tag_ids: Iterable[int],
    mode: "Combinator | str",
    name_substring: Optional[str] = None,
    *,
    tag_values: Mapping[int, str],
) -> Logical:
    """
    Build a predicate from a checkbox tag selection.

    Args:
        tag_ids: Selected tag ids (must be non-empty). Order is kept,
            duplicates are dropped.
        mode: AND (item must carry every selected tag) or OR (any of them)
        name_substring: Optional filename substring. Always AND-ed with the
            tag part, whatever the combinator.
        tag_values: Tag id -> tag value lookup

    Returns:
        A Logical node over one tag = "value" leaf per selected tag

    Raises:
        ValueError: empty selection or an id missing from tag_values.
            Callers are expected to special-case an empty selection.
    """
    combinator = Combinator.parse(mode)
    ids = list(dict.fromkeys(tag_ids))
    if not ids:
        raise ValueError("Tag selection is empty; handle this before building a filter")

    leaves = []
    for tag_id in ids:
        try:
            value = tag_values[tag_id]
        except KeyError:
            raise ValueError(f"Unknown tag id: {tag_id}") from None
        leaves.append(Comparison(Field.TAG, Operator.EQ, value))

    tag_node = Logical(Connective(combinator.value), tuple(leaves))

    name = name_substring.strip() if name_substring else ""
    if not name:
        return tag_node
    return Logical(Connective.AND, (tag_node, name_contains(name)))


def build_criteria_predicate(
    criteria: SearchCriteria,
    tag_values: Mapping[int, str],
) -> Optional[Predicate]:
    """
    Compile SearchCriteria into a predicate.

    A name-only selection gives just the name leaf. Returns None when the
    criteria select nothing (no tags, no name); the caller shows no results.
    """
    if criteria.tag_ids:
        return build_boolean_filter(
            criteria.tag_ids,
            criteria.mode,
            criteria.name_substring,
            tag_values=tag_values,
        )
    if criteria.name_substring:
        return name_contains(criteria.name_substring)
    return None
