"""
Search session state machine.

States
──────
IDLE     no query committed yet
LOADING  a query was submitted and its provider call is outstanding
SUCCESS  results available (possibly an empty list)
ERROR    the last provider call failed

Every submission takes a ticket from a monotonic counter. Only the holder of
the latest ticket may move the session out of LOADING; a response that
arrives after a newer submission is discarded.

Audience-level policy: changing the level while a query is committed re-runs
that query immediately with the new level. Before the first search it only
affects the next submission.
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass, replace
from enum import Enum
from typing import TYPE_CHECKING, Optional, Union

from core.errors import RecommendationFetchError, ValidationError
from core.events import Observable
from core.models import AudienceLevel, BookRecommendation, RecommendationResult
from core.recommender import coerce_level, validate_topic

if TYPE_CHECKING:
    from core.recommender import RecommendationClient

logger = logging.getLogger(__name__)

#: Shown to the user whenever a provider call fails.
FETCH_ERROR_MESSAGE = (
    "Failed to get recommendations. Please check your connection or API key and try again."
)


class SearchStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class SessionState:
    """Immutable snapshot of the search session published to listeners."""

    topic: str = ""
    query: str = ""
    status: SearchStatus = SearchStatus.IDLE
    recommendations: Optional[tuple[BookRecommendation, ...]] = None
    """``None`` until a search succeeds; ``()`` means the search found nothing."""
    related_topics: tuple[str, ...] = ()
    error: Optional[str] = None
    validation_message: Optional[str] = None
    audience_level: AudienceLevel = AudienceLevel.GENERAL

    @property
    def is_loading(self) -> bool:
        return self.status is SearchStatus.LOADING


class SearchSessionController(Observable):
    """Coordinates topic submission and the recommendation call.

    Transitions are serialised by a lock; the provider call itself runs
    outside the lock so a newer submission can supersede it.
    """

    def __init__(
        self,
        client: RecommendationClient,
        audience_level: Union[AudienceLevel, str] = AudienceLevel.GENERAL,
    ) -> None:
        super().__init__()
        self._client = client
        self._lock = threading.RLock()
        self._tickets = itertools.count(1)
        self._current_ticket = 0
        self._state = SessionState(audience_level=coerce_level(audience_level))

    @property
    def state(self) -> SessionState:
        return self._state

    # ── Transitions ────────────────────────────────────────────────────────

    def set_topic(self, topic: str) -> None:
        """Update the pending topic text without submitting it."""
        self._transition(topic=topic)

    def submit(self, topic: Optional[str] = None) -> Optional[int]:
        """Commit *topic* (or the pending topic) and enter LOADING.

        A blank topic records a validation message and leaves the session
        otherwise untouched.

        Returns:
            The ticket to pass to ``complete``/``fail``, or ``None`` if the
            topic was rejected.
        """
        with self._lock:
            raw = self._state.topic if topic is None else topic
            try:
                query = validate_topic(raw)
            except ValidationError as exc:
                logger.debug("Rejected blank topic submission")
                self._transition(validation_message=str(exc))
                return None

            ticket = next(self._tickets)
            self._current_ticket = ticket
            self._transition(
                topic=raw,
                query=query,
                status=SearchStatus.LOADING,
                recommendations=None,
                related_topics=(),
                error=None,
                validation_message=None,
            )
            logger.info("Search #%d started query=%r level=%s",
                        ticket, query, self._state.audience_level.value)
            return ticket

    def complete(self, ticket: int, result: RecommendationResult) -> bool:
        """Apply a successful result if *ticket* is still the latest."""
        with self._lock:
            if not self._is_current(ticket):
                return False
            self._transition(
                status=SearchStatus.SUCCESS,
                recommendations=tuple(result.recommendations),
                related_topics=tuple(result.related_topics),
                error=None,
            )
            logger.info("Search #%d succeeded with %d books", ticket, len(result.recommendations))
            return True

    def fail(self, ticket: int, exc: Exception) -> bool:
        """Record a failed fetch if *ticket* is still the latest."""
        with self._lock:
            if not self._is_current(ticket):
                return False
            self._transition(
                status=SearchStatus.ERROR,
                recommendations=None,
                related_topics=(),
                error=FETCH_ERROR_MESSAGE,
            )
            logger.warning("Search #%d failed: %s", ticket, exc)
            return True

    def reset(self) -> None:
        """Return to IDLE, keeping the audience level."""
        with self._lock:
            # Invalidate any outstanding ticket.
            self._current_ticket = next(self._tickets)
            self._transition(
                query="",
                status=SearchStatus.IDLE,
                recommendations=None,
                related_topics=(),
                error=None,
                validation_message=None,
            )

    # ── Drivers ────────────────────────────────────────────────────────────

    def search(self, topic: Optional[str] = None) -> SessionState:
        """Submit *topic* and block until its result has been applied."""
        job = self._start(topic)
        if job is not None:
            self._run(*job)
        return self._state

    def search_in_background(self, topic: Optional[str] = None) -> Optional[threading.Thread]:
        """Submit *topic* and fetch on a daemon thread; returns the thread."""
        job = self._start(topic)
        if job is None:
            return None
        worker = threading.Thread(target=self._run, args=job, name=f"search-{job[0]}", daemon=True)
        worker.start()
        return worker

    def select_related_topic(self, topic: str) -> SessionState:
        """Make a related topic the new query and search it."""
        return self.search(topic)

    def retry(self) -> SessionState:
        """Re-run the committed query, e.g. after an ERROR."""
        if not self._state.query:
            return self._state
        return self.search(self._state.query)

    def set_audience_level(
        self,
        level: Union[AudienceLevel, str],
        refetch: bool = True,
    ) -> SessionState:
        """Change the audience level.

        Args:
            level: The new audience level.
            refetch: Re-run a committed query with the new level. Pass False
                when a new submission follows immediately.

        Raises:
            ValidationError: If *level* is unknown.
        """
        level = coerce_level(level)
        with self._lock:
            changed = level is not self._state.audience_level
            self._transition(audience_level=level)
            committed = self._state.query
        if refetch and changed and committed:
            logger.info("Audience level changed to %s; refetching %r", level.value, committed)
            return self.search(committed)
        return self._state

    # ── Internals ──────────────────────────────────────────────────────────

    def _start(self, topic: Optional[str]) -> Optional[tuple[int, str, AudienceLevel]]:
        with self._lock:
            ticket = self.submit(topic)
            if ticket is None:
                return None
            return ticket, self._state.query, self._state.audience_level

    def _run(self, ticket: int, query: str, level: AudienceLevel) -> None:
        try:
            result = self._client.fetch_recommendations(query, level)
        except RecommendationFetchError as exc:
            self.fail(ticket, exc)
        except Exception as exc:
            logger.exception("Unexpected error during search #%d for query=%r", ticket, query)
            self.fail(ticket, exc)
        else:
            self.complete(ticket, result)

    def _is_current(self, ticket: int) -> bool:
        if ticket != self._current_ticket:
            logger.info("Discarding stale response for search #%d (latest #%d)",
                        ticket, self._current_ticket)
            return False
        return True

    def _transition(self, **changes) -> None:
        with self._lock:
            self._state = replace(self._state, **changes)
            snapshot = self._state
        self._notify(snapshot)
