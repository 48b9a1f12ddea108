"""Pydantic response models (DTOs) for FastAPI endpoints."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class RefreshResponseDTO(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    data: Any = None
    source: str | None = None
    confidence: str
    refreshed_at: str = Field(alias="refreshedAt")
    remaining_refreshes: int = Field(alias="remainingRefreshes")

    @classmethod
    def from_refresh_result(cls, result):
        """Convert RefreshResult to DTO."""
        return cls(
            data=result.data,
            source=result.source,
            confidence=result.confidence,
            refreshed_at=result.refreshed_at,
            remaining_refreshes=result.remaining_refreshes,
        )


class RateLimitErrorDTO(BaseModel):
    error: str
    message: str
    paused: bool = False


class HealthResponseDTO(BaseModel):
    status: str
    timestamp: str
    version: str = "1.0.0"
