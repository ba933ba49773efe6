"""
Histories service: one reconciliation manager per session over a shared store.

A session is a (user id, token) pair. Each session gets its own manager, so a
request never runs with another request's credential; all managers read and
write the same injected store. Sessions are only kept once the starter API has
accepted a fetch with their token, and the least recently used ones are
dropped beyond ``MAX_SESSIONS``.
"""

import logging
from collections import OrderedDict
from typing import Optional, Tuple

from histories_cache.core.cache import HistoriesStore
from histories_cache.core.config import settings
from histories_cache.exceptions import AuthenticationError
from histories_cache.services.client import HistoriesClient
from histories_cache.services.manager import HistoriesGateway, HistoriesManager

logger = logging.getLogger(__name__)

SessionKey = Tuple[str, str]


class HistoriesService:
    """Service handing out per-session managers that share one cache."""

    def __init__(
        self,
        store: Optional[HistoriesStore] = None,
        gateway: Optional[HistoriesGateway] = None,
        auto_fetch: Optional[bool] = None,
        max_sessions: Optional[int] = None,
    ):
        self.store = store if store is not None else HistoriesStore()
        self.gateway = gateway if gateway is not None else HistoriesClient()
        self.auto_fetch = settings.AUTO_FETCH if auto_fetch is None else auto_fetch
        self.max_sessions = settings.MAX_SESSIONS if max_sessions is None else max_sessions
        self._managers: "OrderedDict[SessionKey, HistoriesManager]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._managers)

    async def session(self, user_id: str, token: Optional[str]) -> HistoriesManager:
        """Return the manager for ``(user_id, token)`` after an observation cycle.

        Raises:
            AuthenticationError: without a token, or when the starter API does
                not accept a fetch for this user with it
        """
        if not token:
            raise AuthenticationError()

        key = (user_id, token)
        manager = self._managers.get(key)
        if manager is None:
            manager = HistoriesManager(
                self.store,
                self.gateway,
                user_id=user_id,
                token=token,
                auto_fetch=self.auto_fetch,
            )
        await manager.observe()

        # The auto-fetch is skipped when the cache already has records
        if not manager.confirmed:
            await manager.refresh()
        if not manager.confirmed:
            self._managers.pop(key, None)
            logger.warning(f"Token not accepted for user {user_id}: {manager.error}")
            raise AuthenticationError(manager.error or "Token not accepted by the starter API")

        self._remember(key, manager)
        return manager

    def _remember(self, key: SessionKey, manager: HistoriesManager) -> None:
        if key not in self._managers:
            logger.info(f"Opened histories session for user {key[0]}")
        self._managers[key] = manager
        self._managers.move_to_end(key)
        while len(self._managers) > self.max_sessions:
            (user_id, _), _ = self._managers.popitem(last=False)
            logger.info(f"Evicted least recently used session for user {user_id}")

    def clear_cache(self) -> int:
        """Reset the whole store and drop every session; returns how many users were cached."""
        cleared = len(self.store)
        self.store.clear_all()
        self._managers = OrderedDict()
        logger.info(f"[Cache] Cleared cached histories for {cleared} users")
        return cleared


histories_service = HistoriesService()
