"""Outbound message endpoints."""

import structlog
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from src.api.dependencies import DispatchDep
from src.models import OutboundSendRequest, SendResult
from src.services.dispatch import PROVIDER_NOT_CONFIGURED

logger = structlog.get_logger()

router = APIRouter(prefix="/messages", tags=["Messages"])


def _status_code(result: SendResult) -> int:
    if result.ok:
        return status.HTTP_200_OK
    if result.error == PROVIDER_NOT_CONFIGURED:
        return status.HTTP_400_BAD_REQUEST
    return status.HTTP_502_BAD_GATEWAY


@router.post("/send", response_model=SendResult, response_model_by_alias=True)
async def send_message(request: OutboundSendRequest, dispatcher: DispatchDep) -> JSONResponse:
    """Send a text or media message through the workspace's active provider.

    Returns the SendResult; ``failoverFrom`` is set when the fallback
    provider served the request.
    """
    result = await dispatcher.dispatch(request)

    logger.info(
        "Dispatch finished",
        workspace_id=request.workspace_id,
        ok=result.ok,
        provider=result.provider.value if result.provider else None,
        failover_from=result.failover_from.value if result.failover_from else None,
    )
    return JSONResponse(
        status_code=_status_code(result),
        content=result.model_dump(mode="json", by_alias=True, exclude_none=True),
    )
