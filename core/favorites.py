"""Favorites: a de-duplicated set of saved books, persisted on every change."""

from __future__ import annotations

import logging

from core.events import Observable
from core.models import BookRecommendation
from core.store import FAVORITES_ADAPTER, PersistentStore, StoreKey

logger = logging.getLogger(__name__)


def _unique_by_title(books: list[BookRecommendation]) -> list[BookRecommendation]:
    """Keep the first book for each title, preserving order."""
    seen: set[str] = set()
    unique: list[BookRecommendation] = []
    for book in books:
        if book.title not in seen:
            seen.add(book.title)
            unique.append(book)
    return unique


class FavoritesManager(Observable):
    """Owns the favorites set.

    Listeners receive a fresh ``list[BookRecommendation]`` after each toggle.
    """

    def __init__(self, store: PersistentStore) -> None:
        super().__init__()
        self._store = store
        self._favorites = _unique_by_title(store.load(StoreKey.FAVORITES, FAVORITES_ADAPTER, []))
        logger.info("Loaded %d favorites", len(self._favorites))

    @property
    def favorites(self) -> list[BookRecommendation]:
        return list(self._favorites)

    def __len__(self) -> int:
        return len(self._favorites)

    def __contains__(self, title: object) -> bool:
        return isinstance(title, str) and self.is_favorite(title)

    def is_favorite(self, title: str) -> bool:
        return any(fav.title == title for fav in self._favorites)

    def toggle_favorite(self, book: BookRecommendation) -> bool:
        """Remove *book* if a book with its title is saved, otherwise append it.

        Returns:
            True if the book is a favorite after the call.
        """
        if self.is_favorite(book.title):
            self._favorites = [fav for fav in self._favorites if fav.title != book.title]
            now_favorite = False
        else:
            self._favorites = [*self._favorites, book]
            now_favorite = True

        logger.info("Favorite %s: %r", "added" if now_favorite else "removed", book.title)
        self._store.save(StoreKey.FAVORITES, self._favorites, FAVORITES_ADAPTER)
        self._notify(self.favorites)
        return now_favorite
