"""ARGUS — Post-Creation Verification Routes."""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from argus.api.deps import get_gateway, get_tracker, get_user_id
from argus.connectors.gateway import EntityGateway
from argus.models.verification_models import CreatedEntities, OriginalRequest
from argus.tracker.failure_tracker import FailureTracker
from argus.verification.engine import ReconciliationEngine

router = APIRouter(prefix="/verification", tags=["Verification"])


class VerifyBody(BaseModel):
    original_request: OriginalRequest
    created_entities: CreatedEntities
    auto_correct: bool = False
    strategy_type: Optional[str] = None
    campaign_name: Optional[str] = None


@router.post("")
async def verify_creation(
    body: VerifyBody,
    user_id: str = Depends(get_user_id),
    tracker: FailureTracker = Depends(get_tracker),
    gateway: EntityGateway = Depends(get_gateway),
):
    """Compare created entities against the request and optionally fix them."""
    engine = ReconciliationEngine(gateway, tracker)
    result = await engine.verify(
        user_id,
        body.original_request,
        body.created_entities,
        auto_correct=body.auto_correct,
        strategy_type=body.strategy_type,
        campaign_name=body.campaign_name,
    )
    return {"success": True, **result.model_dump(mode="json")}
