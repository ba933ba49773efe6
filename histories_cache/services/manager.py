"""
Reconciliation between live starter API data and the local histories cache.

A ``HistoriesManager`` owns the view of one session (user id + token). Live
records win whenever they are non-empty; otherwise the cached records for the
user are shown. Successful fetches are mirrored into the cache and confirmed
mutations are applied to it, always after the remote call has succeeded.

Every fetch and mutation is tagged with the (user id, token) pair active when
it was issued. A completion whose tag no longer matches is logged and dropped.
"""

import asyncio
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional, Protocol, Tuple

from histories_cache.core.cache import HistoriesStore
from histories_cache.exceptions import APIException
from histories_cache.schemas import (
    History,
    HistoriesView,
    HistoryCreateRequest,
    HistoryListResponse,
    HistoryResponse,
    HistoryTotalResponse,
    HistoryUpdateRequest,
    MutationResult,
)

logger = logging.getLogger(__name__)

Listener = Callable[[HistoriesView], None]
SessionTag = Tuple[Optional[str], Optional[str]]


class HistoriesGateway(Protocol):
    """Remote operations the manager depends on."""

    async def fetch_histories(self, user_id: str, token: Optional[str]) -> HistoryListResponse:
        ...

    async def fetch_total(self) -> HistoryTotalResponse:
        ...

    async def create_history(
        self, user_id: str, token: Optional[str], request: HistoryCreateRequest
    ) -> HistoryResponse:
        ...

    async def update_history(
        self, user_id: str, token: Optional[str], history_id: str, request: HistoryUpdateRequest
    ) -> HistoryResponse:
        ...

    async def delete_history(
        self, user_id: str, token: Optional[str], history_id: str
    ) -> HistoryResponse:
        ...


class HistoriesManager:
    """Reconciles one user's live histories with the shared store."""

    def __init__(
        self,
        store: HistoriesStore,
        gateway: HistoriesGateway,
        user_id: Optional[str] = None,
        token: Optional[str] = None,
        auto_fetch: bool = True,
    ):
        self.store = store
        self.gateway = gateway
        self.user_id = user_id
        self.token = token
        self.auto_fetch = auto_fetch

        self._live: List[History] = []
        self._total: float = 0
        self._histories_error: Optional[str] = None
        self._total_error: Optional[str] = None
        self._mutation_error: Optional[str] = None

        self._pending: Dict[str, int] = {
            "histories": 0,
            "total": 0,
            "create": 0,
            "update": 0,
            "delete": 0,
        }
        self._total_requested = False
        # Set once the starter API accepted a fetch under the current session
        self._confirmed = False

        # Auto-fetch guard: Idle while False, Attempted while True
        self._fetch_attempted = False
        self._guard_token = token

        self._listeners: List[Listener] = []

    # -----------------------------
    # Derived outputs
    # -----------------------------
    @property
    def histories(self) -> List[History]:
        if self._live:
            return self._live
        return self._cached_histories() or []

    @property
    def is_cached(self) -> bool:
        return not self._live and bool(self._cached_histories())

    @property
    def cached_at(self) -> Optional[datetime]:
        if not self.user_id:
            return None
        entry = self.store.get_cache_entry(self.user_id)
        return entry.cached_at if entry is not None else None

    @property
    def total(self) -> float:
        return self._total

    @property
    def percentage(self) -> float:
        if self._total <= 0:
            return 0.0
        user_sum = sum(history.value for history in self.histories)
        return user_sum / self._total * 100

    @property
    def is_loading(self) -> bool:
        return any(count > 0 for count in self._pending.values())

    @property
    def error(self) -> Optional[str]:
        for error in (self._histories_error, self._total_error, self._mutation_error):
            if error is not None:
                return error
        return None

    @property
    def fetch_attempted(self) -> bool:
        return self._fetch_attempted

    @property
    def confirmed(self) -> bool:
        return self._confirmed

    def snapshot(self) -> HistoriesView:
        return HistoriesView(
            user_id=self.user_id,
            histories=list(self.histories),
            total=self._total,
            percentage=self.percentage,
            is_loading=self.is_loading,
            error=self.error,
            is_cached=self.is_cached,
            cached_at=self.cached_at,
        )

    # -----------------------------
    # Observation
    # -----------------------------
    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for every change; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def set_session(self, user_id: Optional[str], token: Optional[str]) -> HistoriesView:
        """Switch the active user and/or token, then run an observation cycle."""
        changed = user_id != self.user_id or token != self.token
        if user_id != self.user_id:
            logger.info(f"[Histories] Session user changed: {self.user_id} -> {user_id}")
            self._live = []
            self._histories_error = None
        self.user_id = user_id
        self.token = token
        if changed:
            self._confirmed = False
            self._changed()
        return await self.observe()

    async def observe(self) -> HistoriesView:
        """Run one observation cycle over the current inputs.

        Resets the auto-fetch guard when the token changed since the last
        cycle, loads the total on the first cycle, and fires the single
        automatic fetch allowed per token when there is nothing to show.
        """
        if self.token != self._guard_token:
            self._guard_token = self.token
            self._fetch_attempted = False

        pending: List[Awaitable[None]] = []
        if not self._total_requested:
            self._total_requested = True
            pending.append(self.refresh_total())

        if (
            self.auto_fetch
            and self.token
            and self.user_id
            and not self.histories
            and not self._fetch_attempted
        ):
            self._fetch_attempted = True
            logger.info(f"[Histories] Auto-fetching histories for user {self.user_id}")
            pending.append(self.refresh())

        if pending:
            await asyncio.gather(*pending)
        return self.snapshot()

    async def refresh(self) -> None:
        """Re-issue the histories fetch. Never touches the auto-fetch guard."""
        tag = self._tag()
        user_id, token = tag
        if not user_id:
            logger.debug("[Histories] Refresh skipped: no user")
            return

        with self._in_flight("histories"):
            try:
                response = await self.gateway.fetch_histories(user_id, token)
            except APIException as e:
                response = HistoryListResponse(success=False, error=e.message)

        if not self._is_current(tag):
            logger.info(f"[Histories] Discarding stale fetch for user {user_id}")
            self._changed()
            return

        if response.success:
            self._histories_error = None
            self._confirmed = True
            self._live = list(response.data)
            if self._live:
                self.store.set_histories(user_id, self._live)
                logger.info(f"[Histories] Cached {len(self._live)} histories for user {user_id}")
        else:
            self._histories_error = response.error or "Failed to fetch histories"
            logger.warning(f"[Histories] Fetch failed for user {user_id}: {self._histories_error}")
        self._changed()

    async def refresh_total(self) -> None:
        with self._in_flight("total"):
            try:
                response = await self.gateway.fetch_total()
            except APIException as e:
                response = HistoryTotalResponse(success=False, error=e.message)

        if response.success and response.data is not None:
            self._total_error = None
            self._total = response.data.total
        else:
            self._total_error = response.error or "Failed to fetch total"
            logger.warning(f"[Histories] Total fetch failed: {self._total_error}")
        self._changed()

    # -----------------------------
    # Mutations
    # -----------------------------
    async def create_history(self, request: HistoryCreateRequest) -> MutationResult:
        tag = self._tag()
        user_id, token = tag
        if not user_id:
            return self._reject("No user selected")

        self._mutation_error = None
        with self._in_flight("create"):
            response = await self._call(self.gateway.create_history(user_id, token, request))

        if not response.success or response.data is None:
            return self._reject(response.error or "Failed to create history")

        applied = False
        if self._is_current(tag):
            self.store.add_history(user_id, response.data)
            applied = True
        else:
            logger.info(f"[Histories] Created history {response.data.id} after session change; cache untouched")
        self._changed()
        return MutationResult(success=True, data=response.data, applied=applied)

    async def update_history(self, history_id: str, request: HistoryUpdateRequest) -> MutationResult:
        tag = self._tag()
        user_id, token = tag
        if not user_id:
            return self._reject("No user selected")

        self._mutation_error = None
        with self._in_flight("update"):
            response = await self._call(
                self.gateway.update_history(user_id, token, history_id, request)
            )

        if not response.success or response.data is None:
            return self._reject(response.error or "Failed to update history")

        applied = False
        if self._is_current(tag):
            applied = self.store.update_history(user_id, history_id, response.data)
            if not applied:
                logger.debug(f"[Histories] Updated history {history_id} is not cached for user {user_id}")
        else:
            logger.info(f"[Histories] Updated history {history_id} after session change; cache untouched")
        self._changed()
        return MutationResult(success=True, data=response.data, applied=applied)

    async def delete_history(self, history_id: str) -> MutationResult:
        tag = self._tag()
        user_id, token = tag
        if not user_id:
            return self._reject("No user selected")

        self._mutation_error = None
        with self._in_flight("delete"):
            response = await self._call(self.gateway.delete_history(user_id, token, history_id))

        if not response.success:
            return self._reject(response.error or "Failed to delete history")

        applied = False
        if self._is_current(tag):
            applied = self.store.remove_history(user_id, history_id)
        else:
            logger.info(f"[Histories] Deleted history {history_id} after session change; cache untouched")
        self._changed()
        return MutationResult(success=True, data=response.data, applied=applied)

    # -----------------------------
    # Internals
    # -----------------------------
    def _cached_histories(self) -> Optional[List[History]]:
        if not self.user_id:
            return None
        return self.store.get_histories(self.user_id)

    def _tag(self) -> SessionTag:
        return self.user_id, self.token

    def _is_current(self, tag: SessionTag) -> bool:
        return tag == self._tag()

    async def _call(self, call: Awaitable[HistoryResponse]) -> HistoryResponse:
        try:
            return await call
        except APIException as e:
            return HistoryResponse(success=False, error=e.message)

    def _reject(self, message: str) -> MutationResult:
        self._mutation_error = message
        logger.warning(f"[Histories] Mutation failed: {message}")
        self._changed()
        return MutationResult(success=False, error=message)

    @contextmanager
    def _in_flight(self, kind: str):
        self._pending[kind] += 1
        self._changed()
        try:
            yield
        finally:
            self._pending[kind] -= 1

    def _changed(self) -> None:
        if not self._listeners:
            return
        view = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(view)
            except Exception as e:
                logger.error(f"[Histories] Listener failed: {str(e)}")
