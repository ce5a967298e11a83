"""Minimal observer helper used by the state-owning managers.

The rendering layer subscribes to snapshots; it never mutates manager state
directly and re-renders on every notification.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

Listener = Callable[[Any], None]


class Observable:
    """Mixin that keeps a list of listeners and publishes snapshots to them."""

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener* and return a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, snapshot: Any) -> None:
        for listener in list(self._listeners):
            listener(snapshot)
