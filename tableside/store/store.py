"""
State Store

Holds the current ``AppState`` and is the only place it is replaced. Each
dispatch applies one action, swaps in the new state as a whole, writes one
snapshot and notifies subscribers.
"""

import logging
from typing import Callable, Optional

from tableside.store.persistence import PersistenceLayer
from tableside.store.state import Action, AppState, reduce

logger = logging.getLogger(__name__)

Listener = Callable[[AppState, Action], None]


class Store:
    def __init__(
        self,
        persistence: Optional[PersistenceLayer] = None,
        initial: Optional[AppState] = None,
    ):
        self._persistence = persistence
        if initial is not None:
            self._state = initial
        elif persistence is not None:
            self._state = persistence.load()
        else:
            self._state = AppState()
        self._listeners: list[Listener] = []

    @property
    def state(self) -> AppState:
        return self._state

    def dispatch(self, action: Action) -> AppState:
        """Apply ``action``; no-op actions neither persist nor notify."""
        new_state = reduce(self._state, action)
        if new_state is self._state:
            return new_state

        self._state = new_state
        if self._persistence is not None:
            self._persistence.save(new_state)

        for listener in list(self._listeners):
            try:
                listener(new_state, action)
            except Exception:
                logger.exception(f"State listener failed on {type(action).__name__}")
        return new_state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
