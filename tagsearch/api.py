"""
Core API for tag search.

This is the minimal working implementation focused on:
- search(): checkbox-style tag selection plus optional name substring
- query(): structured query text
- explain(): show how a query was understood
- history: list, delete and clear recent searches
"""

import logging
from pathlib import Path
from typing import Callable, Iterable, Optional

from .config import StoreConfig, get_default_store_path, load_or_create_config
from .errors import QueryError
from .evaluator import SortKey, SortOrder, evaluate
from .filter_builder import build_boolean_filter
from .history_store import SearchHistoryStore
from .item_store import ItemStore
from .logging_config import configure_ops_log, remove_ops_log
from .parser import parse_query
from .predicate import Logical, Predicate, to_query_text
from .protocol import ItemRepositoryProtocol, SearchHistoryProtocol
from .session import SearchSession
from .types import Combinator, Item, SearchCriteria, SearchHistoryEntry, SearchOutcome, Tag, TagGroup

logger = logging.getLogger(__name__)

ITEMS_DB = "items.db"
HISTORY_DB = "history.db"


class TagSearch:
    """
    Tag search over a local store.

    Example:
        ts = TagSearch()
        ts.search(SearchCriteria(tag_ids=(1, 2), mode="OR"))
        ts.query('tag = "work" AND size >= 10MB')
    """

    def __init__(
        self,
        store_path: Optional[str | Path] = None,
        *,
        config: Optional[StoreConfig] = None,
        item_store: Optional[ItemRepositoryProtocol] = None,
        history: Optional[SearchHistoryProtocol] = None,
    ) -> None:
        """
        Open (or create) a store.

        Args:
            store_path: Store directory. Uses TAGSEARCH_STORE_PATH or
                ~/.tagsearch if not specified.
            config: Pre-loaded StoreConfig (skips filesystem config discovery).
            item_store: Injected item repository (skips the SQLite store).
            history: Injected history store (skips the SQLite history).
        """
        # --- Config resolution ---
        if config is not None:
            self._config = config
            self._store_path = config.path
        else:
            if store_path is not None:
                self._store_path = Path(store_path).resolve()
            else:
                self._store_path = get_default_store_path()
            self._config = load_or_create_config(self._store_path)

        # --- Persistent operations log ---
        self._store_path.mkdir(parents=True, exist_ok=True)
        self._ops_log_handler = configure_ops_log(self._store_path)

        # --- Storage backends (injected or created here) ---
        self._items = item_store if item_store is not None else ItemStore(self._store_path / ITEMS_DB)
        self._history = history if history is not None else SearchHistoryStore(self._store_path / HISTORY_DB)

    @property
    def store_path(self) -> Path:
        return self._store_path

    @property
    def config(self) -> StoreConfig:
        return self._config

    @property
    def items(self) -> ItemRepositoryProtocol:
        """The underlying item repository."""
        return self._items

    # -------------------------------------------------------------------------
    # Tags
    # -------------------------------------------------------------------------

    def list_tag_groups(self) -> list[TagGroup]:
        return self._items.list_tag_groups()

    def list_tags(self) -> list[Tag]:
        return self._items.list_tags()

    def _tag_values(self) -> dict[int, str]:
        return {tag.id: tag.value for tag in self._items.list_tags()}

    def resolve_tag_ids(self, refs: Iterable[str | int]) -> list[int]:
        """
        Map tag references to tag ids.

        A reference is a tag id, or a tag value matched case-insensitively
        in any group (a value present in several groups yields every id).

        Raises:
            ValueError: a reference that matches no tag
        """
        tags = self._items.list_tags()
        by_id = {tag.id: tag for tag in tags}
        ids: list[int] = []
        for ref in refs:
            text = str(ref).strip()
            if text.isdigit() and int(text) in by_id:
                ids.append(int(text))
                continue
            matches = [tag.id for tag in tags if tag.value.casefold() == text.casefold()]
            if not matches:
                raise ValueError(f"Unknown tag: {text!r}")
            ids.extend(matches)
        return list(dict.fromkeys(ids))

    def build_filter(
        self,
        tag_ids: Iterable[int],
        mode: "Combinator | str" = Combinator.AND,
        name_substring: Optional[str] = None,
    ) -> Logical:
        """Checkbox selection -> predicate, with tag values from the store."""
        return build_boolean_filter(
            tag_ids, mode, name_substring, tag_values=self._tag_values(),
        )

    # -------------------------------------------------------------------------
    # Search
    # -------------------------------------------------------------------------

    def _sorting(self, sort_key, sort_order) -> tuple[SortKey, SortOrder]:
        key = SortKey(sort_key if sort_key is not None else self._config.search.default_sort)
        order = SortOrder(sort_order if sort_order is not None else self._config.search.default_order)
        return key, order

    def search(
        self,
        criteria: SearchCriteria,
        sort_key: "SortKey | str | None" = None,
        sort_order: "SortOrder | str | None" = None,
        *,
        record: bool = True,
    ) -> list[Item]:
        """
        Simple-mode search.

        An empty selection (no tags, no name) returns an empty list.

        Raises:
            ValueError: unknown tag id in the criteria
        """
        key, order = self._sorting(sort_key, sort_order)
        predicate = criteria.to_predicate(self._tag_values())
        if predicate is None:
            return []
        items = evaluate(predicate, self._items, key, order)
        logger.info("search %s -> %d items", to_query_text(predicate), len(items))
        if record:
            self._record(criteria=criteria)
        return items

    def query(
        self,
        text: str,
        sort_key: "SortKey | str | None" = None,
        sort_order: "SortOrder | str | None" = None,
        *,
        record: bool = True,
    ) -> list[Item]:
        """
        Structured-mode search.

        Raises:
            QueryError: LexError, ParseError or SemanticError for bad input
        """
        key, order = self._sorting(sort_key, sort_order)
        try:
            predicate = parse_query(text)
        except QueryError as e:
            logger.info("query rejected: %s", e)
            raise
        items = evaluate(predicate, self._items, key, order)
        logger.info("query %r -> %d items", text, len(items))
        if record:
            self._record(query=text)
        return items

    def parse(self, text: str) -> Predicate:
        """Validated predicate tree for query text."""
        return parse_query(text)

    def explain(self, text: str) -> str:
        """Render the validated query back to canonical query text."""
        return to_query_text(parse_query(text))

    def session(
        self,
        on_result: Optional[Callable[[SearchOutcome], None]] = None,
        on_error: Optional[Callable[[int, QueryError], None]] = None,
        max_workers: int = 2,
    ) -> SearchSession:
        """Background search session over this store, recording history."""
        history = self._history if self._config.search.history_limit > 0 else None
        return SearchSession(
            self._items,
            history=history,
            on_result=on_result,
            on_error=on_error,
            sort_key=self._config.search.default_sort,
            sort_order=self._config.search.default_order,
            max_workers=max_workers,
        )

    # -------------------------------------------------------------------------
    # History
    # -------------------------------------------------------------------------

    def _record(self, **search) -> None:
        limit = self._config.search.history_limit
        if limit <= 0:
            return
        try:
            self._history.append(**search)
            prune = getattr(self._history, "prune", None)
            if prune is not None:
                prune(limit)
        except Exception as e:
            logger.warning("Failed to record search history: %s", e)

    def list_history(self, limit: int = 10) -> list[SearchHistoryEntry]:
        return self._history.list_recent(limit)

    def delete_history(self, entry_id: int) -> bool:
        return self._history.delete(entry_id)

    def clear_history(self) -> int:
        return self._history.clear()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close stores and detach the operations log."""
        for store in (self._items, self._history):
            close = getattr(store, "close", None)
            if close is not None:
                close()
        remove_ops_log(self._ops_log_handler)
        self._ops_log_handler = None

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - close resources."""
        self.close()
        return False
