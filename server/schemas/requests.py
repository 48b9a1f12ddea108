"""Pydantic request models for FastAPI endpoints."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

DATA_MODE_PATTERN = "^(internal-database|web-search|synthetic-example|mock-database|example-data)$"


class StreamRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(..., min_length=1)
    model: Optional[str] = None
    data_mode: Optional[str] = Field(None, alias="dataMode", pattern=DATA_MODE_PATTERN)


class RefreshRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    plan: dict[str, Any]
    query: str = Field(..., min_length=1)
    data_mode: Optional[str] = Field(None, alias="dataMode", pattern=DATA_MODE_PATTERN)
    widget_id: str = Field(..., alias="widgetId", min_length=1)
    session_id: Optional[str] = Field(None, alias="sessionId")
