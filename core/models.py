"""
Pydantic models shared across the Historian's Bookshelf core.

Persisted records are dumped ``by_alias`` so stored JSON keeps the camelCase
keys (``purchaseLink``, ``coverImageURL``, ``createdAt``) used by the browser
client; both spellings are accepted on input.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class AudienceLevel(str, Enum):
    """Reader level used to condition the style and depth of recommendations."""

    GENERAL = "general"
    UNDERGRADUATE = "undergraduate"
    GRADUATE = "graduate"


class BookRecommendation(BaseModel):
    """A single book suggestion. Two books with the same title are the same book."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    title: str = Field(min_length=1)
    author: str
    summary: str
    purchase_link: str = Field(alias="purchaseLink")
    cover_image_url: str = Field(alias="coverImageURL")


class ReadingList(BaseModel):
    """A user-named, ordered collection of books, unique by title."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    name: str
    books: tuple[BookRecommendation, ...] = ()
    created_at: datetime = Field(alias="createdAt")

    def has_book(self, title: str) -> bool:
        return any(book.title == title for book in self.books)


class RecommendationResult(BaseModel):
    """Validated provider output for one search."""

    model_config = ConfigDict(populate_by_name=True)

    recommendations: list[BookRecommendation] = Field(default_factory=list)
    related_topics: list[str] = Field(default_factory=list, alias="relatedTopics")
