"""
Tag search: find tagged files by checkbox selection or structured query.

Quick start:
    from tagsearch import TagSearch, SearchCriteria

    ts = TagSearch()
    ts.search(SearchCriteria(tag_ids=(1, 2), mode="AND"))
    ts.query('tag = "work" AND size >= 10MB')
"""

__version__ = "0.1.0"

from .api import TagSearch
from .errors import LexError, ParseError, QueryError, SemanticError
from .evaluator import SortKey, SortOrder, evaluate
from .filter_builder import build_boolean_filter
from .history_store import SearchHistoryStore
from .item_store import ItemStore
from .parser import parse_query
from .predicate import Comparison, Connective, Field, Logical, Operator, Predicate, to_query_text
from .session import SearchSession
from .types import (
    Combinator,
    Item,
    SearchCriteria,
    SearchHistoryEntry,
    SearchOutcome,
    Tag,
    TagGroup,
)

__all__ = [
    "TagSearch",
    "ItemStore",
    "SearchHistoryStore",
    "SearchSession",
    "build_boolean_filter",
    "parse_query",
    "evaluate",
    "to_query_text",
    "Predicate",
    "Comparison",
    "Logical",
    "Connective",
    "Field",
    "Operator",
    "SortKey",
    "SortOrder",
    "Combinator",
    "Item",
    "Tag",
    "TagGroup",
    "SearchCriteria",
    "SearchHistoryEntry",
    "SearchOutcome",
    "QueryError",
    "LexError",
    "ParseError",
    "SemanticError",
]
