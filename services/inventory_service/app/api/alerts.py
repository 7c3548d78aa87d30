"""HTTP routes for alert history and manual alerts."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from ..alerts import AlertDispatcher, AlertSendResult
from ..dependencies import get_alert_repository, get_dispatcher
from ..errors import InventoryError
from ..models import AlertChannel, AlertLevel
from ..repository import AlertRepository
from ..schemas import (
    AlertListResponse,
    AlertResponse,
    AlertSendResponse,
    AlertTestRequest,
    CustomAlertRequest,
)
from .errors import to_http_exception

router = APIRouter(prefix="/alerts", tags=["alerts"])


def _serialize_result(result: AlertSendResult) -> AlertSendResponse:
    return AlertSendResponse(
        can_send=result.decision.can_send,
        reason=result.decision.reason,
        next_attempt_at=result.decision.next_attempt_at,
        alert=AlertResponse.model_validate(result.alert) if result.alert is not None else None,
    )


@router.get("", response_model=AlertListResponse)
async def list_alerts(
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    product_id: str | None = Query(default=None, alias="productId"),
    level: AlertLevel | None = None,
    channel: AlertChannel | None = None,
    repository: AlertRepository = Depends(get_alert_repository),
) -> AlertListResponse:
    alerts, total = await repository.list_alerts(
        product_id=product_id,
        level=level,
        channel=channel,
        limit=limit,
        offset=offset,
    )
    return AlertListResponse(items=[AlertResponse.model_validate(alert) for alert in alerts], total=total)


@router.post("/test", response_model=AlertSendResponse)
async def send_test_alert(
    payload: AlertTestRequest | None = None,
    dispatcher: AlertDispatcher = Depends(get_dispatcher),
) -> AlertSendResponse:
    request = payload or AlertTestRequest()
    try:
        result = await dispatcher.send_test_alert(request.requested_by)
    except InventoryError as exc:
        raise to_http_exception(exc) from exc
    return _serialize_result(result)


@router.post("/custom", response_model=AlertSendResponse)
async def send_custom_alert(
    payload: CustomAlertRequest,
    dispatcher: AlertDispatcher = Depends(get_dispatcher),
) -> AlertSendResponse:
    try:
        result = await dispatcher.send_custom_alert(payload.requested_by, payload.message)
    except InventoryError as exc:
        raise to_http_exception(exc) from exc
    return _serialize_result(result)
