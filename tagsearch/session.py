"""
Search session: runs searches in the background and drops stale results.

Every search gets a sequence number from a single counter at dispatch
time. A completion is applied only if its number is still the highest
dispatched; anything older is discarded. Nothing is cancelled, and
evaluations share no mutable state. Applying a result and running its
callback happen under one apply lock, so callbacks are delivered in
dispatch order and the last one delivered is always the newest search.

    session = SearchSession(store, on_result=show, on_error=report)
    session.submit_query('tag = "work"')
    session.submit_query('tag = "work" AND size > 1MB')   # supersedes the first
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Optional

from .errors import QueryError
from .evaluator import SortKey, SortOrder, evaluate
from .parser import parse_query
from .protocol import ItemRepositoryProtocol, SearchHistoryProtocol
from .types import Item, SearchCriteria, SearchOutcome

logger = logging.getLogger(__name__)

SOURCE_QUERY = "query"
SOURCE_CRITERIA = "criteria"

ResultCallback = Callable[[SearchOutcome], None]
ErrorCallback = Callable[[int, QueryError], None]


class SearchSession:
    """
    Owns the sequence counter, the highest-dispatched watermark and the
    currently visible result for one search surface.
    """

    def __init__(
        self,
        repository: ItemRepositoryProtocol,
        *,
        history: Optional[SearchHistoryProtocol] = None,
        on_result: Optional[ResultCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        sort_key: "SortKey | str" = SortKey.NAME,
        sort_order: "SortOrder | str" = SortOrder.ASC,
        max_workers: int = 2,
    ):
        self._repository = repository
        self._history = history
        self._on_result = on_result
        self._on_error = on_error
        self._sort_key = SortKey(sort_key)
        self._sort_order = SortOrder(sort_order)

        self._lock = threading.Lock()
        # Serializes apply+callback; dispatch() only takes _lock
        self._apply_lock = threading.RLock()
        self._counter = 0
        self._highest = 0
        self._current: Optional[SearchOutcome] = None
        self._last_error: Optional[QueryError] = None

        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="tagsearch",
        )

    @property
    def current(self) -> Optional[SearchOutcome]:
        """The most recently applied result, if any."""
        return self._current

    @property
    def last_error(self) -> Optional[QueryError]:
        """Error from the most recently applied search, None after a success."""
        return self._last_error

    @property
    def highest_dispatched(self) -> int:
        return self._highest

    # -------------------------------------------------------------------------
    # Sequencing
    # -------------------------------------------------------------------------

    def dispatch(self) -> int:
        """Reserve the next sequence number and make it the watermark."""
        with self._lock:
            self._counter += 1
            self._highest = self._counter
            return self._counter

    def complete(
        self,
        seq: int,
        result: Optional[SearchOutcome] = None,
        error: Optional[QueryError] = None,
    ) -> bool:
        """
        Apply a finished search if it is still the newest one.

        Args:
            seq: Number returned by dispatch()
            result: Outcome of a successful search, or
            error: Query error of a failed one

        Returns:
            True if applied, False if discarded as stale
        """
        if (result is None) == (error is None):
            raise ValueError("complete() needs exactly one of result or error")

        # Held through the callbacks so an older result can't be shown last
        with self._apply_lock:
            with self._lock:
                if seq != self._highest:
                    logger.debug("Discarding stale search %d (latest is %d)", seq, self._highest)
                    return False
                if result is not None:
                    self._current = result
                    self._last_error = None
                else:
                    self._last_error = error

            if result is not None:
                if self._on_result is not None:
                    self._on_result(result)
            elif self._on_error is not None:
                self._on_error(seq, error)
        return True

    # -------------------------------------------------------------------------
    # Background searches
    # -------------------------------------------------------------------------

    def submit_query(
        self,
        text: str,
        sort_key: "SortKey | str | None" = None,
        sort_order: "SortOrder | str | None" = None,
    ) -> "Future[Optional[SearchOutcome]]":
        """
        Parse, validate and evaluate a structured query in the background.

        The future resolves to the applied outcome, or None when the
        search failed with a QueryError or was superseded.
        """
        seq = self.dispatch()
        key, order = self._sorting(sort_key, sort_order)

        def search() -> list[Item]:
            return evaluate(parse_query(text), self._repository, key, order)

        return self._executor.submit(
            self._run, seq, search, SOURCE_QUERY, {"query": text},
        )

    def submit_criteria(
        self,
        criteria: SearchCriteria,
        sort_key: "SortKey | str | None" = None,
        sort_order: "SortOrder | str | None" = None,
    ) -> "Future[Optional[SearchOutcome]]":
        """Evaluate a checkbox selection in the background."""
        seq = self.dispatch()
        key, order = self._sorting(sort_key, sort_order)

        def search() -> list[Item]:
            tag_values = {tag.id: tag.value for tag in self._repository.list_tags()}
            predicate = criteria.to_predicate(tag_values)
            if predicate is None:
                return []
            return evaluate(predicate, self._repository, key, order)

        # Empty selections show an empty list but are not worth remembering
        record = None if criteria.is_empty else {"criteria": criteria}
        return self._executor.submit(self._run, seq, search, SOURCE_CRITERIA, record)

    def _sorting(self, sort_key, sort_order) -> tuple[SortKey, SortOrder]:
        key = SortKey(sort_key) if sort_key is not None else self._sort_key
        order = SortOrder(sort_order) if sort_order is not None else self._sort_order
        return key, order

    def _run(
        self,
        seq: int,
        search: Callable[[], list[Item]],
        source: str,
        record: Optional[dict],
    ) -> Optional[SearchOutcome]:
        try:
            items = search()
        except QueryError as e:
            self.complete(seq, error=e)
            return None

        outcome = SearchOutcome(sequence=seq, items=items, source=source)
        if not self.complete(seq, result=outcome):
            return None
        if record is not None:
            self._record_history(record)
        return outcome

    def _record_history(self, record: dict) -> None:
        if self._history is None:
            return
        try:
            self._history.append(**record)
        except Exception as e:
            logger.warning("Failed to record search history: %s", e)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self, wait: bool = True) -> None:
        """Stop accepting searches; optionally wait for running ones."""
        self._executor.shutdown(wait=wait)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
