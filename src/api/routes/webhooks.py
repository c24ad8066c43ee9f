"""Webhook endpoints for WhatsApp provider integrations."""

from typing import Any

import structlog
from fastapi import APIRouter, BackgroundTasks, Request, status
from fastapi.responses import JSONResponse

from src.api.dependencies import NormalizerDep
from src.core.exceptions import AppException, InvalidWebhookPayload
from src.models import ProviderName
from src.services.webhooks import WebhookNormalizer

logger = structlog.get_logger()

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


async def _handle_webhook(
    provider: ProviderName,
    request: Request,
    normalizer: WebhookNormalizer,
    background_tasks: BackgroundTasks,
) -> JSONResponse:
    """Acknowledge a provider webhook and schedule the downstream forward.

    Once the connection is resolved the provider always gets a 200, whatever
    happens downstream; providers retry aggressively on errors.
    """
    try:
        try:
            payload: Any = await request.json()
        except ValueError:
            raise InvalidWebhookPayload("Webhook body is not valid JSON")

        outcome = await normalizer.process(provider, payload)

    except AppException as e:
        logger.warning("Webhook rejected", provider=provider.value, code=e.code, message=e.message)
        return JSONResponse(
            status_code=e.status_code,
            content={"success": False, "error": e.code, "message": e.message},
        )

    except Exception as e:
        logger.error("Error processing webhook", provider=provider.value, error=str(e), exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": str(e) or "Unknown error"},
        )

    if outcome.ignored:
        return JSONResponse(
            content={
                "success": True,
                "ignored": True,
                "reason": outcome.ignored_reason,
                "id": outcome.request_id,
            }
        )

    background_tasks.add_task(normalizer.forward, outcome)

    logger.info(
        "Webhook accepted",
        provider=provider.value,
        request_id=outcome.request_id,
        kind=outcome.event.kind.value,
        status_updated=outcome.status_updated,
        forward_url=outcome.forward_url,
    )
    return JSONResponse(content={"success": True, "id": outcome.request_id})


@router.post("/zapi")
async def zapi_webhook(
    request: Request,
    normalizer: NormalizerDep,
    background_tasks: BackgroundTasks,
) -> JSONResponse:
    """Handle Z-API webhooks (messages, status callbacks, connection callbacks)."""
    return await _handle_webhook(ProviderName.ZAPI, request, normalizer, background_tasks)


@router.post("/evolution")
async def evolution_webhook(
    request: Request,
    normalizer: NormalizerDep,
    background_tasks: BackgroundTasks,
) -> JSONResponse:
    """Handle Evolution API webhooks (MESSAGES_UPSERT, MESSAGES_UPDATE, CONNECTION_UPDATE, ...)."""
    return await _handle_webhook(ProviderName.EVOLUTION, request, normalizer, background_tasks)
