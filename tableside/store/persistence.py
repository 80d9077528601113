"""
State File Persistence with Concurrency Control

Writes the whole engine snapshot under one versioned key after every state
change, and rehydrates it at start-up. The file lock keeps two engine
processes sharing a state file from interleaving writes.

Loading fails soft: a missing, unparsable or schema-invalid file yields the
default guest state instead of raising.

Version: 1.0.0
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional, Union

from filelock import FileLock, Timeout
from pydantic import ValidationError

from tableside.core.config import get_settings
from tableside.store.state import AppState

logger = logging.getLogger(__name__)


class PersistenceLayer:
    """
    JSON snapshot store for ``AppState``.

    Unless PERSIST_TOKEN is enabled the auth token is redacted on save, and a
    rehydrated non-guest session without a token falls back to guest.

    Example:
        >>> layer = PersistenceLayer("data/state.json")
        >>> layer.save(AppState())
        >>> layer.load() == AppState()
        True
    """

    def __init__(
        self,
        path: Optional[Union[str, Path]] = None,
        key: Optional[str] = None,
        persist_token: Optional[bool] = None,
        lock_timeout: Optional[int] = None,
    ):
        settings = get_settings()
        self.path = Path(path or settings.state_file)
        self.key = key or settings.state_key
        self.persist_token = settings.persist_token if persist_token is None else persist_token
        self.lock_timeout = settings.state_lock_timeout if lock_timeout is None else lock_timeout
        self._lock_path = self.path.with_name(self.path.name + ".lock")

        if self.persist_token and settings.is_production:
            logger.warning("PERSIST_TOKEN is enabled; auth tokens are stored in clear text")

    def _lock(self) -> FileLock:
        return FileLock(str(self._lock_path), timeout=self.lock_timeout)

    def _snapshot(self, state: AppState) -> dict[str, Any]:
        snapshot = state.model_dump(mode="json", by_alias=True)
        if not self.persist_token:
            snapshot["session"]["token"] = None
        return snapshot

    def save(self, state: AppState) -> bool:
        """
        Write ``state`` to disk atomically.

        Returns:
            bool: True if the snapshot was written
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            payload = json.dumps({self.key: self._snapshot(state)})
            tmp_path = self.path.with_name(self.path.name + ".tmp")

            with self._lock():
                fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                os.replace(tmp_path, self.path)
            return True

        except Timeout:
            logger.error(f"State lock timeout ({self.lock_timeout}s), snapshot not saved")
        except OSError as e:
            logger.exception(f"Error saving state to {self.path}: {e}")
        return False

    def load(self) -> AppState:
        """
        Load the last saved snapshot.

        Returns:
            AppState: The snapshot, or the default state if absent or corrupt
        """
        if not self.path.exists():
            return AppState()

        try:
            with self._lock():
                raw = self.path.read_text(encoding="utf-8")
            data = json.loads(raw)
        except Timeout:
            logger.error(f"State lock timeout ({self.lock_timeout}s), starting fresh")
            return AppState()
        except (OSError, ValueError) as e:
            logger.warning(f"Unreadable state file {self.path}: {e}")
            return AppState()

        snapshot = data.get(self.key) if isinstance(data, dict) else None
        if not isinstance(snapshot, dict):
            logger.warning(f"No '{self.key}' snapshot in {self.path}, starting fresh")
            return AppState()

        if not isinstance(snapshot.get("orders"), list):
            snapshot["orders"] = []

        session = snapshot.get("session")
        if isinstance(session, dict) and session.get("role", "guest") != "guest" and not session.get("token"):
            logger.info("Persisted session has no token, continuing as guest")
            snapshot["session"] = {"role": "guest"}
            snapshot["orders"] = []

        try:
            return AppState.model_validate(snapshot)
        except ValidationError as e:
            logger.warning(f"Invalid state snapshot in {self.path}: {e.error_count()} error(s)")
            return AppState()

    def clear(self) -> bool:
        """Delete the state file and its lock."""
        try:
            for f in (self.path, self._lock_path):
                if f.exists():
                    f.unlink()
            logger.info("State file cleared")
            return True
        except OSError as e:
            logger.error(f"Error clearing state file: {e}")
            return False
