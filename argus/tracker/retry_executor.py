"""ARGUS — Gateway Retry Executor.

Re-attempts the remote operation for one FailedEntity, dispatching on its
payload variant. An ad set retry also creates the dependent ad; if only the
ad fails, the ad set still counts as recovered and the ad becomes a new,
independent failure record.
"""

from typing import Any, Dict, Optional

from argus.connectors.gateway import EntityGateway
from argus.core.logging import get_logger
from argus.models.failure_models import (
    AdCreationPayload,
    AdSetCreationPayload,
    CampaignCreationPayload,
    EntityType,
    FailedEntity,
    FailureContext,
    VerificationMismatchPayload,
)
from argus.tracker.failure_tracker import FailureTracker
from argus.verification.comparison import CORRECTABLE_FIELDS

logger = get_logger("tracker.executor")

CASCADE_WARNING = (
    "Ad set created successfully, but ad creation failed. A new failure "
    "entry has been created for the ad."
)


class UnsupportedRetry(Exception):
    """The payload describes something this executor cannot re-create."""


class GatewayRetryExecutor:
    """Callable passed to `FailureTracker.retry`."""

    def __init__(self, gateway: EntityGateway, tracker: FailureTracker):
        self.gateway = gateway
        self.tracker = tracker

    async def __call__(self, entity: FailedEntity) -> Dict[str, Any]:
        payload = entity.payload()
        if isinstance(payload, AdSetCreationPayload):
            return await self._retry_adset(entity, payload)
        if isinstance(payload, AdCreationPayload):
            return await self._retry_ad(entity, payload)
        if isinstance(payload, VerificationMismatchPayload):
            return await self._reapply_correction(entity, payload)
        if isinstance(payload, CampaignCreationPayload):
            raise UnsupportedRetry(
                "Campaign creation cannot be retried; recreate the campaign instead"
            )
        raise UnsupportedRetry(f"Unsupported payload type for retry: {payload.type}")

    async def _retry_adset(
        self, entity: FailedEntity, payload: AdSetCreationPayload
    ) -> Dict[str, Any]:
        params = {**payload.params, "campaign_id": entity.campaign_id, "name": entity.adset_name}
        new_adset = await self.gateway.create_adset(params)
        adset_id = new_adset["id"]

        if not payload.ad_params:
            return {"adset_id": adset_id}

        ad_params = {**payload.ad_params, "adset_id": adset_id}
        try:
            new_ad = await self.gateway.create_ad(ad_params)
        except Exception as ad_error:
            logger.warning(
                f"⚠️ Ad set {adset_id} created but ad creation failed: {ad_error}",
                extra={"failure_id": entity.id, "entity_id": adset_id},
            )
            return {
                "adset_id": adset_id,
                "ad_id": None,
                "warning": CASCADE_WARNING,
                "cascaded_failure_id": self._record_cascaded_ad(
                    entity, adset_id, payload.ad_params, ad_error
                ),
            }

        return {"adset_id": adset_id, "ad_id": new_ad.get("id")}

    def _record_cascaded_ad(
        self,
        entity: FailedEntity,
        adset_id: str,
        ad_params: Dict[str, Any],
        ad_error: Exception,
    ) -> Optional[int]:
        """Track the ad as its own failure. Never raises: the ad set exists."""
        try:
            context = FailureContext(
                user_id=entity.user_id,
                entity_type=EntityType.AD,
                campaign_id=entity.campaign_id,
                campaign_name=entity.campaign_name or f"Campaign {entity.campaign_id}",
                strategy_type=entity.strategy_type,
                adset_id=adset_id,
                adset_name=entity.adset_name,
                ad_name=ad_params.get("name"),
                payload=AdCreationPayload(params=ad_params),
            )
        except Exception as e:
            logger.error(
                f"❌ Could not track cascaded ad failure for ad set {adset_id}: {e}",
                extra={"failure_id": entity.id, "entity_id": adset_id},
                exc_info=True,
            )
            return None
        cascaded = self.tracker.record_failure(context, ad_error)
        return cascaded.id if cascaded else None

    async def _retry_ad(self, entity: FailedEntity, payload: AdCreationPayload) -> Dict[str, Any]:
        params = {**payload.params, "adset_id": entity.adset_id}
        if entity.ad_name:
            params["name"] = entity.ad_name
        new_ad = await self.gateway.create_ad(params)
        return {"ad_id": new_ad["id"]}

    async def _reapply_correction(
        self, entity: FailedEntity, payload: VerificationMismatchPayload
    ) -> Dict[str, Any]:
        correctable = CORRECTABLE_FIELDS.get(entity.entity_type, set())
        updates = {
            m.field: m.expected for m in payload.mismatches if m.field in correctable
        }
        if not updates:
            raise UnsupportedRetry(
                "None of the mismatched fields can be updated after creation"
            )
        await self.gateway.update_entity(payload.entity_id, updates)

        result: Dict[str, Any] = {
            "entity_id": payload.entity_id,
            "corrected_fields": sorted(updates),
        }
        skipped = sorted(m.field for m in payload.mismatches if m.field not in correctable)
        if skipped:
            result["warning"] = (
                f"Fields that cannot be changed after creation were left as-is: {', '.join(skipped)}"
            )
        return result
