"""Purchase history persistence.

The engine treats storage as an opaque key-value store: one ordered list of
PurchaseRecord per user id.
"""

import logging
import re
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List

import joblib

from adaptrec.recommender.catalog import PurchaseRecord

# Configure module logger
logger = logging.getLogger(__name__)

HISTORY_FILENAME_TEMPLATE = "history_{user_id}.joblib"
_SAFE_USER_ID = re.compile(r"^[A-Za-z0-9_.-]+$")


class HistoryStore(ABC):
    """Key-value store of purchase histories."""

    @abstractmethod
    def load(self, user_id: str) -> List[PurchaseRecord]:
        """Return the stored history, or an empty list."""

    @abstractmethod
    def save(self, user_id: str, history: List[PurchaseRecord]) -> None:
        """Replace the stored history."""

    @abstractmethod
    def delete(self, user_id: str) -> None:
        """Forget a user's history."""


class InMemoryHistoryStore(HistoryStore):
    """Process-local store, mostly for tests and demos."""

    def __init__(self):
        self._lock = threading.Lock()
        self._histories: Dict[str, List[PurchaseRecord]] = {}

    def load(self, user_id: str) -> List[PurchaseRecord]:
        with self._lock:
            return list(self._histories.get(str(user_id), []))

    def save(self, user_id: str, history: List[PurchaseRecord]) -> None:
        with self._lock:
            self._histories[str(user_id)] = list(history)

    def delete(self, user_id: str) -> None:
        with self._lock:
            self._histories.pop(str(user_id), None)


class JoblibHistoryStore(HistoryStore):
    """Stores each user's history as a joblib file in a directory."""

    def __init__(self, history_dir: str):
        self.history_dir = Path(history_dir)
        self.history_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Using history directory {self.history_dir}")

    def _path(self, user_id: str) -> Path:
        user_id = str(user_id)
        if not _SAFE_USER_ID.match(user_id):
            raise ValueError(f"Invalid user id for file storage: {user_id!r}")
        return self.history_dir / HISTORY_FILENAME_TEMPLATE.format(user_id=user_id)

    def load(self, user_id: str) -> List[PurchaseRecord]:
        path = self._path(user_id)
        if not path.exists():
            logger.debug(f"No stored history for user {user_id}")
            return []
        history = joblib.load(path)
        logger.info(f"Loaded {len(history)} purchases for user {user_id} from {path}")
        return list(history)

    def save(self, user_id: str, history: List[PurchaseRecord]) -> None:
        path = self._path(user_id)
        joblib.dump(list(history), path)
        logger.debug(f"Saved {len(history)} purchases for user {user_id} to {path}")

    def delete(self, user_id: str) -> None:
        path = self._path(user_id)
        if path.exists():
            path.unlink()
            logger.info(f"Deleted stored history for user {user_id}")
