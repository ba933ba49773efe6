"""
Pydantic schemas for history records, starter API envelopes and views.
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class History(BaseModel):
    """A single time-stamped history record as stored by the starter API.

    Only ``id`` is inspected by the cache; every other field passes through
    unmodified. The wire names ``user_id`` and ``datetime`` are accepted and
    emitted as aliases.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    owner_id: str = Field(..., alias="user_id")
    timestamp: str = Field(..., alias="datetime")
    value: float
    created_at: str
    updated_at: str


class HistoryCreateRequest(BaseModel):
    """Payload for creating a history record."""

    model_config = ConfigDict(populate_by_name=True)

    timestamp: str = Field(..., alias="datetime", description="ISO timestamp of the entry")
    value: float = Field(..., description="Numeric value of the entry")


class HistoryUpdateRequest(BaseModel):
    """Payload for updating a history record; omitted fields stay unchanged."""

    model_config = ConfigDict(populate_by_name=True)

    timestamp: Optional[str] = Field(None, alias="datetime")
    value: Optional[float] = None


class HistoryTotal(BaseModel):
    total: float = 0


class HistoryResponse(BaseModel):
    """Starter API envelope carrying one record."""

    success: bool
    data: Optional[History] = None
    error: Optional[str] = None
    timestamp: Optional[str] = None


class HistoryListResponse(BaseModel):
    """Starter API envelope carrying a user's records."""

    success: bool
    data: List[History] = Field(default_factory=list)
    error: Optional[str] = None
    timestamp: Optional[str] = None


class HistoryTotalResponse(BaseModel):
    """Starter API envelope carrying the global total."""

    success: bool
    data: Optional[HistoryTotal] = None
    error: Optional[str] = None
    timestamp: Optional[str] = None


class MutationResult(BaseModel):
    """Outcome of a create/update/delete issued through the manager."""

    success: bool = Field(..., description="Whether the starter API confirmed the mutation")
    data: Optional[History] = Field(None, description="Record returned by the starter API")
    applied: bool = Field(False, description="Whether the local cache was changed")
    error: Optional[str] = Field(None, description="Surfaced error, if any")


class HistoriesView(BaseModel):
    """Snapshot of a manager's reconciled outputs."""

    user_id: Optional[str] = Field(None, description="User the view belongs to")
    histories: List[History] = Field(..., description="Effective record set")
    total: float = Field(..., description="Global aggregate total")
    percentage: float = Field(..., description="Share of the total held by this user")
    is_loading: bool
    error: Optional[str] = None
    is_cached: bool = Field(..., description="True when histories come from the cache")
    cached_at: Optional[datetime] = None


class HealthCheckResponse(BaseModel):
    """Health check response schema."""

    status: str = Field(..., description="Health status")
    version: str = Field(..., description="Application version")
    cached_users: int = Field(0, ge=0, description="Number of users held in the cache")
