"""Shared fixtures for the histories cache test suite."""

import asyncio
import os

# Keep test runs from writing rotating log files
os.environ.setdefault("LOG_FILE", "")

from typing import Dict, List, Optional

import pytest

from histories_cache.core.cache import HistoriesStore
from histories_cache.exceptions import APIException
from histories_cache.schemas import (
    History,
    HistoryListResponse,
    HistoryResponse,
    HistoryTotal,
    HistoryTotalResponse,
)


def build_history(**overrides) -> History:
    data = {
        "id": "hist-1",
        "user_id": "user-1",
        "datetime": "2024-01-01T00:00:00Z",
        "value": 100,
        "created_at": "2024-01-01T00:00:00Z",
        "updated_at": "2024-01-01T00:00:00Z",
    }
    data.update(overrides)
    return History.model_validate(data)


class FakeGateway:
    """In-memory stand-in for the starter API client.

    ``histories`` maps user ids to what a fetch returns. Setting ``gate`` to an
    ``asyncio.Event`` holds every call until the event is set.
    """

    def __init__(self):
        self.histories: Dict[str, List[History]] = {}
        self.total: float = 0
        self.fetch_calls: List[tuple] = []
        self.total_calls = 0
        self.mutation_calls: List[tuple] = []
        self.fetch_response: Optional[HistoryListResponse] = None
        self.total_response: Optional[HistoryTotalResponse] = None
        self.mutation_response: Optional[HistoryResponse] = None
        self.raise_error: Optional[APIException] = None
        self.rejected_tokens: set = set()
        self.gate: Optional[asyncio.Event] = None

    async def _wait(self):
        if self.gate is not None:
            await self.gate.wait()

    async def fetch_histories(self, user_id, token):
        self.fetch_calls.append((user_id, token))
        await self._wait()
        if self.raise_error is not None:
            raise self.raise_error
        if token in self.rejected_tokens:
            return HistoryListResponse(success=False, error="Invalid token")
        if self.fetch_response is not None:
            return self.fetch_response
        return HistoryListResponse(success=True, data=list(self.histories.get(user_id, [])))

    async def fetch_total(self):
        self.total_calls += 1
        if self.total_response is not None:
            return self.total_response
        return HistoryTotalResponse(success=True, data=HistoryTotal(total=self.total))

    async def _mutate(self, kind, user_id, token, history):
        self.mutation_calls.append((kind, user_id, token))
        await self._wait()
        if self.raise_error is not None:
            raise self.raise_error
        if self.mutation_response is not None:
            return self.mutation_response
        return HistoryResponse(success=True, data=history)

    async def create_history(self, user_id, token, request):
        history = build_history(id="hist-new", user_id=user_id, value=request.value, datetime=request.timestamp)
        return await self._mutate("create", user_id, token, history)

    async def update_history(self, user_id, token, history_id, request):
        history = build_history(id=history_id, user_id=user_id, value=request.value)
        return await self._mutate("update", user_id, token, history)

    async def delete_history(self, user_id, token, history_id):
        return await self._mutate("delete", user_id, token, None)


@pytest.fixture
def make_history():
    """Factory for History records with sensible defaults."""
    return build_history


@pytest.fixture
def store():
    return HistoriesStore()


@pytest.fixture
def gateway():
    return FakeGateway()
