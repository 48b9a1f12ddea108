"""Data-only refresh endpoint for live widgets."""

import asyncio

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse

from orchestrator.core import WidgetOrchestrator
from orchestrator.errors import SchemaValidationError
from server.dependencies import get_orchestrator
from server.schemas.requests import RefreshRequest
from server.schemas.responses import RateLimitErrorDTO, RefreshResponseDTO
from server.utils import get_client_ip
from utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["Refresh"])

LIMIT_ERRORS = {
    "ip": "Rate limit exceeded",
    "session": "Rate limit exceeded",
    "widget": "Widget refresh limit exceeded",
}


@router.post("/refresh", response_model=RefreshResponseDTO)
async def refresh(
    request: RefreshRequest,
    http_request: Request,
    orchestrator: WidgetOrchestrator = Depends(get_orchestrator),
):
    client_ip = get_client_ip(http_request)

    try:
        result = await asyncio.to_thread(
            orchestrator.refresh_data,
            request.plan,
            request.query,
            request.data_mode,
            request.widget_id,
            client_ip=client_ip,
            session_id=request.session_id,
        )
    except SchemaValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid plan: {e}")

    if not result.allowed:
        logger.warning(
            "Refresh rejected",
            extra={
                "extra_fields": {
                    "widget_id": request.widget_id,
                    "client_ip": client_ip,
                    "limit": result.limit,
                    "reason": result.reason,
                }
            },
        )
        body = RateLimitErrorDTO(
            error=LIMIT_ERRORS.get(result.limit, "Rate limit exceeded"),
            message=result.reason or "Too many refresh requests",
            paused=result.paused,
        )
        return JSONResponse(status_code=status.HTTP_429_TOO_MANY_REQUESTS, content=body.model_dump())

    return RefreshResponseDTO.from_refresh_result(result)
