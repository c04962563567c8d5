"""ARGUS — Reconciliation Engine.

Compares what the user asked for against what Meta actually created,
optionally pushes corrections, and hands every mismatch it could not fix to
the failure tracker as a `verification_mismatch` record.
"""

import time
from typing import Callable, Dict, List, Optional, Tuple

from argus.config import settings
from argus.connectors.gateway import EntityGateway
from argus.connectors.meta.client import AD_FIELDS, ADSET_FIELDS, CAMPAIGN_FIELDS
from argus.core.errors import ReconciliationFetchError
from argus.core.logging import get_logger
from argus.models.failure_models import (
    EntityType,
    FailureContext,
    FieldMismatch,
    VerificationMismatchPayload,
)
from argus.models.verification_models import (
    CorrectionTally,
    CreatedEntities,
    EntityRequest,
    FetchFailure,
    MismatchItem,
    OriginalRequest,
    VerificationResult,
)
from argus.tracker.failure_tracker import FailureTracker
from argus.verification.comparison import (
    CORRECTABLE_FIELDS,
    FieldSpec,
    ad_fields,
    adset_fields,
    campaign_fields,
    compare_all,
)

logger = get_logger("verification.engine")

FieldBuilder = Callable[[EntityRequest, Dict], List[FieldSpec]]

_FETCH_FIELDS = {
    EntityType.CAMPAIGN: CAMPAIGN_FIELDS,
    EntityType.ADSET: ADSET_FIELDS,
    EntityType.AD: AD_FIELDS,
}

_BUILDERS: Dict[EntityType, FieldBuilder] = {
    EntityType.CAMPAIGN: campaign_fields,
    EntityType.ADSET: adset_fields,
    EntityType.AD: ad_fields,
}


class ReconciliationEngine:
    """Verifies created entities against the original creation request."""

    def __init__(
        self,
        gateway: EntityGateway,
        tracker: FailureTracker,
        budget_tolerance: int | None = None,
    ):
        self.gateway = gateway
        self.tracker = tracker
        self.budget_tolerance = (
            budget_tolerance if budget_tolerance is not None else settings.budget_tolerance_cents
        )

    async def verify(
        self,
        user_id: str,
        original_request: OriginalRequest,
        created_entities: CreatedEntities,
        auto_correct: bool = False,
        strategy_type: Optional[str] = None,
        campaign_name: Optional[str] = None,
    ) -> VerificationResult:
        started = time.monotonic()
        result = VerificationResult()
        campaign_name = campaign_name or original_request.campaign_name or original_request.name or ""

        # Campaign first, then ad sets, then ads
        targets: List[Tuple[EntityType, str, EntityRequest]] = []
        if created_entities.campaign_id:
            targets.append((EntityType.CAMPAIGN, created_entities.campaign_id, original_request))
        for i, adset_id in enumerate(created_entities.adset_ids):
            targets.append((EntityType.ADSET, adset_id, original_request.for_adset(i)))
        for i, ad_id in enumerate(created_entities.ad_ids):
            targets.append((EntityType.AD, ad_id, original_request.for_ad(i)))

        for entity_type, entity_id, request in targets:
            try:
                actual = await self._fetch(entity_type, entity_id)
            except ReconciliationFetchError as e:
                logger.warning(
                    f"⚠️ {e.message}",
                    extra={"entity_type": entity_type.value, "entity_id": entity_id},
                )
                result.fetch_failures.append(
                    FetchFailure(
                        entity_type=entity_type.value, entity_id=entity_id, error=str(e.cause)
                    )
                )
                continue

            result.entities_checked += 1
            mismatches = compare_all(_BUILDERS[entity_type](request, actual), self.budget_tolerance)
            if not mismatches:
                continue

            result.total_mismatches += len(mismatches)
            item = MismatchItem(
                entity_type=entity_type.value,
                entity_id=entity_id,
                entity_name=actual.get("name") or "",
                mismatches=mismatches,
            )
            item.uncorrected = list(mismatches)

            if auto_correct:
                tally, item.uncorrected, error = await self._correct(entity_type, entity_id, mismatches)
                result.corrections.add(tally)
                if error:
                    item.failure_reason = error
                if tally.succeeded and not item.uncorrected:
                    item.status = "corrected"

            if item.uncorrected:
                self._record_mismatch(
                    user_id,
                    entity_type,
                    entity_id,
                    item,
                    created_entities,
                    auto_correct,
                    strategy_type,
                    campaign_name,
                    result,
                )
            result.items.append(item)

        result.passed = not result.fetch_failures and (
            result.total_mismatches == 0 or (auto_correct and result.corrections.failed == 0)
        )
        result.summary = self._summarize(result, auto_correct)

        logger.info(
            f"🔍 Verification {'passed' if result.passed else 'failed'}: {result.summary}",
            extra={
                "user_id": user_id,
                "entity_id": created_entities.campaign_id,
                "duration_ms": round((time.monotonic() - started) * 1000),
            },
        )
        return result

    async def _fetch(self, entity_type: EntityType, entity_id: str) -> Dict:
        try:
            return await self.gateway.fetch_entity(entity_id, _FETCH_FIELDS[entity_type])
        except Exception as e:
            raise ReconciliationFetchError(entity_type.value, entity_id, e) from e

    async def _correct(
        self, entity_type: EntityType, entity_id: str, mismatches: List[FieldMismatch]
    ) -> Tuple[CorrectionTally, List[FieldMismatch], Optional[str]]:
        """Push one update covering every correctable field of the entity.

        Returns the field tally, the mismatches still wrong afterwards, and
        the update error if there was one.
        """
        correctable = CORRECTABLE_FIELDS[entity_type.value]
        fixable = [m for m in mismatches if m.field in correctable]
        stuck = [m for m in mismatches if m.field not in correctable]
        tally = CorrectionTally()
        if not fixable:
            return tally, stuck, None

        tally.attempted = len(fixable)
        try:
            await self.gateway.update_entity(entity_id, {m.field: m.expected for m in fixable})
        except Exception as e:
            tally.failed = len(fixable)
            logger.warning(
                f"Auto-correct failed for {entity_type.value} {entity_id}: {e}",
                extra={"entity_type": entity_type.value, "entity_id": entity_id},
            )
            return tally, fixable + stuck, str(e)

        tally.succeeded = len(fixable)
        logger.info(
            f"🔧 Corrected {len(fixable)} field(s) on {entity_type.value} {entity_id}",
            extra={"entity_type": entity_type.value, "entity_id": entity_id},
        )
        return tally, stuck, None

    def _record_mismatch(
        self,
        user_id: str,
        entity_type: EntityType,
        entity_id: str,
        item: MismatchItem,
        created: CreatedEntities,
        auto_correct: bool,
        strategy_type: Optional[str],
        campaign_name: str,
        result: VerificationResult,
    ) -> None:
        fields = ", ".join(m.field for m in item.uncorrected)
        reason = f"Verification mismatch on {entity_type.value} {entity_id}: {fields}"
        if item.failure_reason:
            reason = f"{reason} (auto-correct failed: {item.failure_reason})"

        record = self.tracker.record_failure(
            FailureContext(
                user_id=user_id,
                entity_type=entity_type,
                campaign_id=created.campaign_id,
                campaign_name=campaign_name,
                strategy_type=strategy_type,
                adset_id=entity_id if entity_type == EntityType.ADSET else None,
                adset_name=item.entity_name if entity_type == EntityType.ADSET else None,
                ad_id=entity_id if entity_type == EntityType.AD else None,
                ad_name=item.entity_name if entity_type == EntityType.AD else None,
                payload=VerificationMismatchPayload(
                    entity_id=entity_id,
                    mismatches=item.uncorrected,
                    auto_correct_attempted=auto_correct,
                ),
            ),
            reason,
        )
        if record is not None:
            result.failure_ids.append(record.id)

    @staticmethod
    def _summarize(result: VerificationResult, auto_correct: bool) -> str:
        if result.total_mismatches == 0 and not result.fetch_failures:
            return f"All {result.entities_checked} entities match the request"

        parts = []
        if result.total_mismatches:
            counts = ", ".join(f"{n} {t}" for t, n in result.counts_by_type().items())
            parts.append(f"{result.total_mismatches} mismatch(es) ({counts})")
        if auto_correct and result.corrections.attempted:
            c = result.corrections
            parts.append(f"{c.succeeded}/{c.attempted} field(s) corrected")
        if result.fetch_failures:
            parts.append(f"{len(result.fetch_failures)} entit(y/ies) could not be fetched")
        return "; ".join(parts)
