"""
Bookshelf: the single object a rendering layer talks to.

Wires the store, recommendation client, favorites, reading lists and search
session together, and owns the one piece of view state that crosses them:
the currently selected reading list. Deleting the selected list clears the
selection.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional

from core.favorites import FavoritesManager
from core.models import BookRecommendation, ReadingList
from core.reading_lists import ReadingListManager
from core.recommender import RecommendationClient
from core.session import SearchSessionController
from core.store import PersistentStore, open_store

if TYPE_CHECKING:
    from config.settings import Settings

logger = logging.getLogger(__name__)


class Bookshelf:
    """Facade over all state-owning managers for one local user session."""

    def __init__(
        self,
        favorites: FavoritesManager,
        reading_lists: ReadingListManager,
        session: SearchSessionController,
    ) -> None:
        self.favorites = favorites
        self.reading_lists = reading_lists
        self.session = session
        self.selected_list_id: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: Settings, store: Optional[PersistentStore] = None) -> Bookshelf:
        """Build a bookshelf from configuration.

        Raises:
            ConfigurationError: If required settings are missing.
        """
        settings.validate()
        store = store or open_store(settings)
        client = RecommendationClient(settings)
        return cls(
            favorites=FavoritesManager(store),
            reading_lists=ReadingListManager(store),
            session=SearchSessionController(client),
        )

    # ── Selection ──────────────────────────────────────────────────────────

    def select_list(self, list_id: Optional[str]) -> bool:
        """Select an existing list (``None`` clears). Returns False if unknown."""
        if list_id is None:
            self.clear_selection()
            return True
        if self.reading_lists.get_list(list_id) is None:
            return False
        self.selected_list_id = list_id
        return True

    def clear_selection(self) -> None:
        self.selected_list_id = None

    def selected_list(self) -> Optional[ReadingList]:
        if self.selected_list_id is None:
            return None
        return self.reading_lists.get_list(self.selected_list_id)

    # ── List commands that touch the selection ─────────────────────────────

    def delete_list(self, list_id: str) -> bool:
        deleted = self.reading_lists.delete_list(list_id)
        if self.selected_list_id == list_id:
            self.clear_selection()
        return deleted

    def create_list_with_book(self, name: str, book: BookRecommendation) -> str:
        """Create a list and put *book* in it as one user action."""
        list_id = self.reading_lists.create_list(name)
        self.reading_lists.add_book_to_list(list_id, book)
        return list_id

    # ── View model ─────────────────────────────────────────────────────────

    def snapshot(self) -> dict[str, Any]:
        """Return a JSON-ready view of everything the UI renders."""
        state = self.session.state
        recommendations = None
        if state.recommendations is not None:
            recommendations = [self._book_view(book) for book in state.recommendations]

        return {
            "search": {
                "topic": state.topic,
                "query": state.query,
                "status": state.status.value,
                "is_loading": state.is_loading,
                "audience_level": state.audience_level.value,
                "recommendations": recommendations,
                "related_topics": list(state.related_topics),
                "error": state.error,
                "validation_message": state.validation_message,
            },
            "favorites": [self._book_view(book) for book in self.favorites.favorites],
            "reading_lists": [_list_view(rl) for rl in self.reading_lists.lists],
            "selected_list_id": self.selected_list_id,
        }

    def _book_view(self, book: BookRecommendation) -> dict[str, Any]:
        view = book.model_dump(by_alias=True)
        view["isFavorite"] = self.favorites.is_favorite(book.title)
        view["inLists"] = [rl.id for rl in self.reading_lists.lists_containing(book.title)]
        return view


def _list_view(reading_list: ReadingList) -> dict[str, Any]:
    return reading_list.model_dump(mode="json", by_alias=True)
