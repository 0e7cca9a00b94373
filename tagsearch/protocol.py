"""
Protocol definitions for the stores the search engine consumes.

Defines interface contracts at two levels:
- ItemRepositoryProtocol: read-only items, tags and tag groups
  (SQLite ItemStore locally; anything else that can hand out a
  consistent snapshot per evaluation)
- SearchHistoryProtocol: persisted recent searches, for replay only
"""

from typing import Iterable, Optional, Protocol, runtime_checkable

from .types import Item, SearchCriteria, SearchHistoryEntry, Tag, TagGroup


@runtime_checkable
class ItemRepositoryProtocol(Protocol):
    """
    Read-only access to items and their tags.

    The engine never writes through this interface. Soft-deleted items
    must not be returned by list_candidate_items() or read_snapshot(),
    which is what the evaluator calls once per search.
    """

    def list_tag_groups(self) -> list[TagGroup]: ...

    def list_tags(self) -> list[Tag]: ...

    def resolve_item_tag_values(self, item_id: int) -> set[str]: ...

    def resolve_tag_values_many(self, item_ids: Iterable[int]) -> dict[int, set[str]]: ...

    def list_candidate_items(self) -> list[Item]: ...

    def read_snapshot(self, with_tags: bool = True) -> tuple[list[Item], dict[int, set[str]]]:
        """Candidates plus their tag values, read consistently in one go."""
        ...


@runtime_checkable
class SearchHistoryProtocol(Protocol):
    """Append-on-search history. Never affects evaluation."""

    def append(
        self,
        *,
        criteria: Optional[SearchCriteria] = None,
        query: Optional[str] = None,
    ) -> SearchHistoryEntry: ...

    def list_recent(self, limit: int = 10) -> list[SearchHistoryEntry]: ...

    def delete(self, entry_id: int) -> bool: ...

    def clear(self) -> int: ...
