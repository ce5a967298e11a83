"""
Reading lists: user-named, ordered collections of books.

Every mutation replaces the affected ``ReadingList`` with an updated copy and
then writes the complete list-of-lists back to the store. Lookups and no-op
mutations (unknown id, duplicate title, missing title) never touch storage.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Optional

from core.errors import ValidationError
from core.events import Observable
from core.models import BookRecommendation, ReadingList
from core.store import READING_LISTS_ADAPTER, PersistentStore, StoreKey

logger = logging.getLogger(__name__)


def _new_list_id() -> str:
    return uuid.uuid4().hex


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _dedupe_books(reading_list: ReadingList) -> ReadingList:
    seen: set[str] = set()
    books: list[BookRecommendation] = []
    for book in reading_list.books:
        if book.title not in seen:
            seen.add(book.title)
            books.append(book)
    if len(books) == len(reading_list.books):
        return reading_list
    return reading_list.model_copy(update={"books": tuple(books)})


class ReadingListManager(Observable):
    """Owns the ordered collection of reading lists.

    Args:
        store: Persistent store the lists are loaded from and saved to.
        id_factory: Produces a new unique list id (defaults to a uuid4 hex).
        clock: Returns the creation timestamp for new lists.
    """

    def __init__(
        self,
        store: PersistentStore,
        id_factory: Callable[[], str] = _new_list_id,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        super().__init__()
        self._store = store
        self._id_factory = id_factory
        self._clock = clock
        loaded = store.load(StoreKey.READING_LISTS, READING_LISTS_ADAPTER, [])
        self._lists: list[ReadingList] = [_dedupe_books(rl) for rl in loaded]
        logger.info("Loaded %d reading lists", len(self._lists))

    # ── Queries ────────────────────────────────────────────────────────────

    @property
    def lists(self) -> list[ReadingList]:
        return list(self._lists)

    def __len__(self) -> int:
        return len(self._lists)

    def get_list(self, list_id: str) -> Optional[ReadingList]:
        for reading_list in self._lists:
            if reading_list.id == list_id:
                return reading_list
        return None

    def lists_containing(self, title: str) -> list[ReadingList]:
        """Return every list that already holds a book called *title*."""
        return [rl for rl in self._lists if rl.has_book(title)]

    # ── Commands ───────────────────────────────────────────────────────────

    def create_list(self, name: str) -> str:
        """Append a new empty list and return its id.

        Raises:
            ValidationError: If *name* is blank.
        """
        name = name.strip()
        if not name:
            raise ValidationError("Reading list name must not be empty.")

        new_list = ReadingList(id=self._id_factory(), name=name, created_at=self._clock())
        self._commit([*self._lists, new_list])
        logger.info("Created reading list id=%s name=%r", new_list.id, name)
        return new_list.id

    def delete_list(self, list_id: str) -> bool:
        """Remove the list with *list_id*. Returns False if there was none."""
        remaining = [rl for rl in self._lists if rl.id != list_id]
        if len(remaining) == len(self._lists):
            return False
        self._commit(remaining)
        logger.info("Deleted reading list id=%s", list_id)
        return True

    def rename_list(self, list_id: str, name: str) -> bool:
        """Give an existing list a new name; its id never changes."""
        name = name.strip()
        if not name:
            raise ValidationError("Reading list name must not be empty.")
        return self._update(list_id, lambda rl: rl.model_copy(update={"name": name}))

    def add_book_to_list(self, list_id: str, book: BookRecommendation) -> bool:
        """Append *book* unless the list already has a book with that title."""

        def add(reading_list: ReadingList) -> Optional[ReadingList]:
            if reading_list.has_book(book.title):
                return None
            return reading_list.model_copy(update={"books": (*reading_list.books, book)})

        changed = self._update(list_id, add)
        if changed:
            logger.info("Added %r to reading list id=%s", book.title, list_id)
        return changed

    def remove_book_from_list(self, list_id: str, title: str) -> bool:
        """Drop the book called *title* from the list, if both exist."""

        def remove(reading_list: ReadingList) -> Optional[ReadingList]:
            if not reading_list.has_book(title):
                return None
            books = tuple(b for b in reading_list.books if b.title != title)
            return reading_list.model_copy(update={"books": books})

        changed = self._update(list_id, remove)
        if changed:
            logger.info("Removed %r from reading list id=%s", title, list_id)
        return changed

    # ── Internals ──────────────────────────────────────────────────────────

    def _update(
        self,
        list_id: str,
        change: Callable[[ReadingList], Optional[ReadingList]],
    ) -> bool:
        """Apply *change* to the matching list; ``None`` from *change* means no-op."""
        for index, reading_list in enumerate(self._lists):
            if reading_list.id != list_id:
                continue
            updated = change(reading_list)
            if updated is None:
                return False
            new_lists = list(self._lists)
            new_lists[index] = updated
            self._commit(new_lists)
            return True
        logger.debug("No reading list with id=%s", list_id)
        return False

    def _commit(self, new_lists: list[ReadingList]) -> None:
        self._lists = new_lists
        self._store.save(StoreKey.READING_LISTS, self._lists, READING_LISTS_ADAPTER)
        self._notify(self.lists)
