"""ARGUS — Failed Entity Routes."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from argus.api.deps import (
    GatewayFactory,
    get_credentials,
    get_gateway_factory,
    get_tracker,
    get_user_id,
    require_access_token,
)
from argus.connectors.gateway import CredentialProvider
from argus.core.logging import get_logger
from argus.models.failure_models import FailureRead
from argus.tracker.failure_tracker import FailureTracker
from argus.tracker.retry_executor import GatewayRetryExecutor

logger = get_logger("api.failures")

router = APIRouter(prefix="/failures", tags=["Failures"])


def _serialize(tracker: FailureTracker, records) -> list:
    return [
        FailureRead.from_record(r, tracker.max_attempts).model_dump(mode="json")
        for r in records
    ]


@router.get("")
def list_failures(
    status: Optional[str] = None,
    entity_type: Optional[str] = None,
    campaign_id: Optional[str] = None,
    limit: int = Query(default=100, ge=1, le=500),
    user_id: str = Depends(get_user_id),
    tracker: FailureTracker = Depends(get_tracker),
):
    """All failures for the user, newest first."""
    records = tracker.get_failures_by_user(
        user_id,
        status=status,
        entity_type=entity_type,
        campaign_id=campaign_id,
        limit=limit,
    )
    return {"success": True, "failures": _serialize(tracker, records), "count": len(records)}


@router.get("/campaign/{campaign_id}")
def campaign_failures(
    campaign_id: str,
    user_id: str = Depends(get_user_id),
    tracker: FailureTracker = Depends(get_tracker),
):
    """Failures for one campaign, with its stats."""
    records = tracker.get_campaign_failures(user_id, campaign_id)
    stats = tracker.get_failure_stats(user_id, campaign_id)
    return {
        "success": True,
        "failures": _serialize(tracker, records),
        "stats": stats.model_dump(),
    }


@router.get("/pending")
def pending_failures(
    campaign_id: Optional[str] = None,
    user_id: str = Depends(get_user_id),
    tracker: FailureTracker = Depends(get_tracker),
):
    records = tracker.get_pending_failures(user_id, campaign_id)
    return {"success": True, "failures": _serialize(tracker, records), "count": len(records)}


@router.get("/stats")
def failure_stats(
    campaign_id: Optional[str] = None,
    user_id: str = Depends(get_user_id),
    tracker: FailureTracker = Depends(get_tracker),
):
    return {"success": True, "stats": tracker.get_failure_stats(user_id, campaign_id).model_dump()}


@router.get("/{failure_id}")
def get_failure(
    failure_id: int,
    user_id: str = Depends(get_user_id),
    tracker: FailureTracker = Depends(get_tracker),
):
    record = tracker.get_failure(failure_id, user_id)
    return {"success": True, "failure": _serialize(tracker, [record])[0]}


@router.post("/{failure_id}/retry")
async def retry_failure(
    failure_id: int,
    user_id: str = Depends(get_user_id),
    tracker: FailureTracker = Depends(get_tracker),
    credentials: CredentialProvider = Depends(get_credentials),
    factory: GatewayFactory = Depends(get_gateway_factory),
):
    """Retry one failed entity.

    Guard violations come back as 404 / 409 / 400 through the error handler,
    before credentials are looked at. A failed remote call comes back as 502
    with `can_retry_again`.
    """
    tracker.check_retryable(failure_id, user_id)
    gateway = factory(require_access_token(credentials, user_id))
    try:
        outcome = await tracker.retry(failure_id, user_id, GatewayRetryExecutor(gateway, tracker))
    finally:
        await gateway.close()

    if not outcome.success:
        return JSONResponse(
            status_code=409 if outcome.error_kind == "claim_lost" else 502,
            content={
                "success": False,
                "error": outcome.error,
                "retry_count": outcome.retry_count,
                "can_retry_again": outcome.can_retry_again,
                "permanent_failure": outcome.permanent_failure,
            },
        )

    body = {
        "success": True,
        "message": "Entity recreated successfully",
        "status": outcome.status,
        "retry_count": outcome.retry_count,
        "result": outcome.result,
    }
    if outcome.warning:
        body["warning"] = outcome.warning
    if outcome.cascaded_failure_id:
        body["cascaded_failure_id"] = outcome.cascaded_failure_id
    return body


@router.post("/{failure_id}/resolve")
def resolve_failure(
    failure_id: int,
    user_id: str = Depends(get_user_id),
    tracker: FailureTracker = Depends(get_tracker),
):
    """Mark a failure as handled by the user."""
    record = tracker.resolve(failure_id, user_id)
    return {"success": True, "failure": _serialize(tracker, [record])[0]}


@router.delete("/{failure_id}")
def delete_failure(
    failure_id: int,
    user_id: str = Depends(get_user_id),
    tracker: FailureTracker = Depends(get_tracker),
):
    tracker.delete_failure(failure_id, user_id)
    return {"success": True, "message": "Failure record deleted"}
