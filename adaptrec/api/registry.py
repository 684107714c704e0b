"""Session registry for the HTTP service.

Each logged-in user owns one Session: a RecommendationService plus the
purchase history of that session. Nothing mutable is shared between
sessions; only the read-only catalog is.
"""

import logging
import os
import threading
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from adaptrec.exceptions import CatalogNotFoundError, SessionNotFoundError
from adaptrec.recommender.catalog import Catalog, ProductId, PurchaseRecord, load_catalog_csv
from adaptrec.recommender.ranking import RankingConfig, Recommendation
from adaptrec.recommender.service import RecommendationResult, RecommendationService
from adaptrec.recommender.store import HistoryStore, InMemoryHistoryStore, JoblibHistoryStore
from adaptrec.recommender.train import DEFAULT_SCORER, TrainingConfig

# Configure module logger
logger = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = "data/catalog.csv"
CATALOG_PATH_ENV = "ADAPTREC_CATALOG_PATH"
HISTORY_DIR_ENV = "ADAPTREC_HISTORY_DIR"
SCORER_ENV = "ADAPTREC_SCORER"


class Session:
    """One user's engine handle and purchase history."""

    def __init__(self, user_id: str, service: RecommendationService, store: HistoryStore):
        self.user_id = user_id
        self.service = service
        self.store = store
        self.history: List[PurchaseRecord] = store.load(user_id)
        self._lock = threading.RLock()

    def refresh(self) -> RecommendationResult:
        """Retrain on the current history and recommend."""
        with self._lock:
            return self.service.update(self.history)

    def purchase(self, product_ids: Sequence[ProductId]) -> RecommendationResult:
        """Record completed purchases, persist them, then retrain.

        Raises:
            UnknownProductError: If any id is not in the catalog. Nothing is
                recorded in that case.
            OSError: If the store cannot persist the new history. Nothing is
                recorded in that case either.
            TrainingError: If retraining fails. The purchases stay recorded.
        """
        records = [self.service.catalog.purchase(pid) for pid in product_ids]
        with self._lock:
            history = self.history + records
            self.store.save(self.user_id, history)
            self.history = history
            return self.service.update(self.history)

    def recommend(self, n: Optional[int] = None) -> List[Recommendation]:
        with self._lock:
            return self.service.recommend(self.history, n)

    def get_stats(self) -> Dict:
        return self.service.get_stats()

    def reset(self) -> None:
        """Clear the history and return the engine to its untrained prior."""
        with self._lock:
            self.history = []
            self.store.delete(self.user_id)
            self.service.reset()


class SessionRegistry:
    """Creates a session at login and drops it at logout."""

    def __init__(
        self,
        catalog: Catalog,
        store: Optional[HistoryStore] = None,
        training_config: Optional[TrainingConfig] = None,
        ranking_config: Optional[RankingConfig] = None,
    ):
        self.catalog = catalog
        self.store = store or InMemoryHistoryStore()
        self.training_config = training_config or TrainingConfig()
        self.ranking_config = ranking_config
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def login(self, user_id: str) -> Session:
        """Return the user's session, creating it if needed.

        A new session loads the stored history and, if it is not empty,
        trains on it once.
        """
        with self._lock:
            session = self._sessions.get(user_id)
            if session is not None:
                return session
            service = RecommendationService(
                self.catalog, self.training_config, self.ranking_config
            )
            session = Session(user_id, service, self.store)
            self._sessions[user_id] = session

        logger.info(
            "Session opened",
            extra={"user_id": user_id, "num_purchases": len(session.history)},
        )
        if session.history:
            session.refresh()
        return session

    def logout(self, user_id: str) -> None:
        with self._lock:
            if self._sessions.pop(user_id, None) is None:
                raise SessionNotFoundError(user_id)
        logger.info("Session closed", extra={"user_id": user_id})

    def get(self, user_id: str) -> Session:
        with self._lock:
            session = self._sessions.get(user_id)
        if session is None:
            raise SessionNotFoundError(user_id)
        return session

    @property
    def active_sessions(self) -> int:
        with self._lock:
            return len(self._sessions)


# Registry shared by the route modules, built on first use
_registry: Optional[SessionRegistry] = None
_registry_lock = threading.Lock()


def create_registry_from_env() -> SessionRegistry:
    """Build a registry from ``ADAPTREC_*`` environment variables.

    Raises:
        CatalogNotFoundError: If the catalog CSV does not exist.
    """
    catalog_path = os.getenv(CATALOG_PATH_ENV, DEFAULT_CATALOG_PATH)
    if not Path(catalog_path).exists():
        logger.error(f"Catalog not found at {catalog_path}")
        raise CatalogNotFoundError(catalog_path)

    catalog = load_catalog_csv(catalog_path)
    history_dir = os.getenv(HISTORY_DIR_ENV)
    store = JoblibHistoryStore(history_dir) if history_dir else InMemoryHistoryStore()
    config = TrainingConfig(scorer=os.getenv(SCORER_ENV, DEFAULT_SCORER))
    return SessionRegistry(catalog, store=store, training_config=config)


def get_registry() -> SessionRegistry:
    """Return the shared registry, building it from the environment if needed."""
    global _registry

    if _registry is None:
        with _registry_lock:
            if _registry is None:
                _registry = create_registry_from_env()
    return _registry


def set_registry(registry: Optional[SessionRegistry]) -> None:
    """Install a registry (or clear it with None)."""
    global _registry
    _registry = registry
