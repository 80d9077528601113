"""
Menu Cache

Read-mostly copy of the backend catalog. A failed fetch degrades to an empty
menu instead of raising, so the ordering screens stay usable.
"""

import logging
from typing import Optional

from tableside.services.backend.base import BackendError, BaseOrderBackend
from tableside.schemas import MenuItem
from tableside.store.polling import RequestSequence
from tableside.store.state import MenuLoaded
from tableside.store.store import Store

logger = logging.getLogger(__name__)


class MenuCache:
    def __init__(self, store: Store, backend: BaseOrderBackend):
        self._store = store
        self._backend = backend
        self._sequence = RequestSequence()

    @property
    def items(self) -> tuple[MenuItem, ...]:
        return self._store.state.menu

    def get(self, item_id: str) -> Optional[MenuItem]:
        return next((m for m in self.items if m.id == item_id), None)

    async def fetch_menu(self) -> bool:
        """
        Replace the menu with the backend catalog.

        Returns:
            bool: True if the catalog was loaded
        """
        seq = self._sequence.issue()
        try:
            items = await self._backend.fetch_menu()
        except BackendError as e:
            logger.warning(f"Menu fetch failed: {e.message}")
            if self._sequence.is_current(seq):
                self._store.dispatch(MenuLoaded(items=()))
            return False

        if not self._sequence.is_current(seq):
            logger.debug("Discarding stale menu response")
            return False
        self._store.dispatch(MenuLoaded(items=tuple(items)))
        logger.info(f"Menu loaded ({len(items)} items)")
        return True
