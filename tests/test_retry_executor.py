"""Tests for re-applying verification corrections through the retry executor."""

import pytest

from argus.models.failure_models import (
    EntityType,
    FailureContext,
    FieldMismatch,
    VerificationMismatchPayload,
)
from argus.tracker.retry_executor import GatewayRetryExecutor, UnsupportedRetry


def _mismatch_record(tracker, mismatches):
    return tracker.record_failure(
        FailureContext(
            user_id="user-1",
            entity_type=EntityType.ADSET,
            campaign_id="cmp_1",
            campaign_name="Spring Sale",
            adset_id="adset_9",
            adset_name="AdSet 9",
            payload=VerificationMismatchPayload(
                entity_id="adset_9", mismatches=mismatches, auto_correct_attempted=False
            ),
        ),
        "Verification mismatch on adset adset_9",
    )


class TestReapplyCorrection:
    @pytest.mark.asyncio
    async def test_correctable_fields_are_pushed(self, tracker, gateway):
        record = _mismatch_record(
            tracker,
            [
                FieldMismatch(field="daily_budget", expected=5000, actual=4000),
                FieldMismatch(field="optimization_goal", expected="LINK_CLICKS", actual="REACH"),
            ],
        )
        executor = GatewayRetryExecutor(gateway, tracker)

        result = await executor(tracker.get_failure(record.id, "user-1"))

        gateway.update_entity.assert_awaited_once_with("adset_9", {"daily_budget": 5000})
        assert result["corrected_fields"] == ["daily_budget"]
        assert "optimization_goal" in result["warning"]

    @pytest.mark.asyncio
    async def test_nothing_correctable_raises(self, tracker, gateway):
        record = _mismatch_record(
            tracker,
            [FieldMismatch(field="billing_event", expected="IMPRESSIONS", actual="LINK_CLICKS")],
        )
        executor = GatewayRetryExecutor(gateway, tracker)

        with pytest.raises(UnsupportedRetry):
            await executor(tracker.get_failure(record.id, "user-1"))
        gateway.update_entity.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retry_through_tracker_recovers(self, tracker, gateway):
        record = _mismatch_record(
            tracker, [FieldMismatch(field="status", expected="PAUSED", actual="ACTIVE")]
        )

        result = await tracker.retry(record.id, "user-1", GatewayRetryExecutor(gateway, tracker))

        assert result.success is True
        assert tracker.get_failure(record.id, "user-1").status == "recovered"
