"""
Starter API client: fetches and mutates history records over HTTP.
"""

import logging
from typing import Any, Dict, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from histories_cache.core.config import settings
from histories_cache.exceptions import ExternalAPIError
from histories_cache.schemas import (
    HistoryCreateRequest,
    HistoryListResponse,
    HistoryResponse,
    HistoryTotalResponse,
    HistoryUpdateRequest,
)

logger = logging.getLogger(__name__)

Envelope = TypeVar("Envelope", bound=BaseModel)


class HistoriesClient:
    """Async client for the starter API history endpoints."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.histories_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.EXTERNAL_API_TIMEOUT
        self.transport = transport

    def _histories_path(self, user_id: str, history_id: Optional[str] = None) -> str:
        path = f"/api/v1/users/{user_id}/histories"
        if history_id is not None:
            path = f"{path}/{history_id}"
        return path

    async def _request(
        self,
        method: str,
        path: str,
        token: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self.transport,
                follow_redirects=True,
            ) as client:
                response = await client.request(method, path, headers=headers, json=payload)
                response.raise_for_status()
                return response.json() if response.content else {"success": True}
        except httpx.HTTPStatusError as e:
            logger.error(f"{method} {path} returned {e.response.status_code}")
            raise ExternalAPIError(f"Starter API returned {e.response.status_code}")
        except httpx.HTTPError as e:
            logger.error(f"{method} {path} failed: {str(e)}")
            raise ExternalAPIError(f"Starter API request failed: {str(e)}")
        except ValueError as e:
            logger.error(f"{method} {path} returned invalid JSON: {str(e)}")
            raise ExternalAPIError("Starter API returned an invalid response")

    def _parse(self, model: Type[Envelope], data: Dict[str, Any]) -> Envelope:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.error(f"Starter API returned a malformed {model.__name__}: {e.error_count()} errors")
            raise ExternalAPIError("Starter API returned an invalid response")

    async def fetch_histories(self, user_id: str, token: Optional[str]) -> HistoryListResponse:
        data = await self._request("GET", self._histories_path(user_id), token)
        return self._parse(HistoryListResponse, data)

    async def fetch_total(self) -> HistoryTotalResponse:
        data = await self._request("GET", "/api/v1/histories/total")
        return self._parse(HistoryTotalResponse, data)

    async def create_history(
        self, user_id: str, token: Optional[str], request: HistoryCreateRequest
    ) -> HistoryResponse:
        data = await self._request(
            "POST",
            self._histories_path(user_id),
            token,
            request.model_dump(by_alias=True),
        )
        return self._parse(HistoryResponse, data)

    async def update_history(
        self, user_id: str, token: Optional[str], history_id: str, request: HistoryUpdateRequest
    ) -> HistoryResponse:
        data = await self._request(
            "PUT",
            self._histories_path(user_id, history_id),
            token,
            request.model_dump(by_alias=True, exclude_none=True),
        )
        return self._parse(HistoryResponse, data)

    async def delete_history(
        self, user_id: str, token: Optional[str], history_id: str
    ) -> HistoryResponse:
        data = await self._request("DELETE", self._histories_path(user_id, history_id), token)
        return self._parse(HistoryResponse, data)
