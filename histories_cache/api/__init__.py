"""
API routes exposing each user's reconciled histories.
"""

from typing import Optional

from fastapi import APIRouter, Header, HTTPException
from histories_cache.core.config import settings
from histories_cache.core.logging import logger
from histories_cache.exceptions import APIException, AuthenticationError, MutationFailedError
from histories_cache.schemas import (
    HealthCheckResponse,
    HistoriesView,
    HistoryCreateRequest,
    HistoryUpdateRequest,
    MutationResult,
)
from histories_cache.services import histories_service

router = APIRouter(prefix=settings.API_V1_STR, tags=["histories"])


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from an ``Authorization: Bearer`` header value."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def require_token(authorization: Optional[str]) -> str:
    token = bearer_token(authorization)
    if token is None:
        raise AuthenticationError()
    return token


def ensure_success(result: MutationResult) -> MutationResult:
    if not result.success:
        raise MutationFailedError(result.error or "History mutation failed")
    return result


@router.get("/health", response_model=HealthCheckResponse)
async def health_check() -> HealthCheckResponse:
    """
    Health check endpoint.

    Returns:
        Health check response with status, version and cached user count
    """
    logger.info("Health check requested")
    return HealthCheckResponse(
        status="healthy",
        version=settings.APP_VERSION,
        cached_users=len(histories_service.store),
    )


@router.get("/users/{user_id}/histories", response_model=HistoriesView)
async def get_histories(
    user_id: str,
    authorization: Optional[str] = Header(None),
) -> HistoriesView:
    """
    Return the reconciled histories view for a user.

    Runs an observation cycle first, which may trigger the single automatic
    fetch allowed for the presented token. Cached records are only served to
    a token the starter API has accepted for this user.

    Raises:
        HTTPException: 401 without a bearer token or when the token is rejected
    """
    try:
        manager = await histories_service.session(user_id, require_token(authorization))
        return manager.snapshot()

    except APIException as e:
        logger.error(f"Get histories error: {e.message}")
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/users/{user_id}/histories/refresh", response_model=HistoriesView)
async def refresh_histories(
    user_id: str,
    authorization: Optional[str] = Header(None),
) -> HistoriesView:
    """Force a refetch from the starter API, bypassing the auto-fetch guard."""
    try:
        manager = await histories_service.session(user_id, require_token(authorization))
        await manager.refresh()
        return manager.snapshot()

    except APIException as e:
        logger.error(f"Refresh histories error: {e.message}")
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/users/{user_id}/histories", response_model=MutationResult)
async def create_history(
    user_id: str,
    request: HistoryCreateRequest,
    authorization: Optional[str] = Header(None),
) -> MutationResult:
    """
    Create a history record upstream and append it to the cache on success.

    Raises:
        HTTPException: 401 without a bearer token, 502 if the starter API rejects it
    """
    try:
        token = require_token(authorization)
        manager = await histories_service.session(user_id, token)
        logger.info(f"Create history request for user {user_id}")
        return ensure_success(await manager.create_history(request))

    except APIException as e:
        logger.error(f"Create history error: {e.message}")
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put("/users/{user_id}/histories/{history_id}", response_model=MutationResult)
async def update_history(
    user_id: str,
    history_id: str,
    request: HistoryUpdateRequest,
    authorization: Optional[str] = Header(None),
) -> MutationResult:
    """Update a history record upstream and replace it in the cache on success."""
    try:
        token = require_token(authorization)
        manager = await histories_service.session(user_id, token)
        logger.info(f"Update history request: user={user_id}, history={history_id}")
        return ensure_success(await manager.update_history(history_id, request))

    except APIException as e:
        logger.error(f"Update history error: {e.message}")
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/users/{user_id}/histories/{history_id}", response_model=MutationResult)
async def delete_history(
    user_id: str,
    history_id: str,
    authorization: Optional[str] = Header(None),
) -> MutationResult:
    """Delete a history record upstream and drop it from the cache on success."""
    try:
        token = require_token(authorization)
        manager = await histories_service.session(user_id, token)
        logger.info(f"Delete history request: user={user_id}, history={history_id}")
        return ensure_success(await manager.delete_history(history_id))

    except APIException as e:
        logger.error(f"Delete history error: {e.message}")
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/cache")
async def clear_cache() -> dict:
    """Reset the whole histories cache."""
    cleared = histories_service.clear_cache()
    return {"cleared_users": cleared}
