"""ARGUS — Failure Tracker.

Records failed creations, serves them back by scope, aggregates statistics,
and drives the bounded retry protocol:

    failed ──claim──▶ retrying ──ok──▶ recovered
      ▲                  │
      └──executor error──┘
    failed (retry_count == max) ──next attempt──▶ permanent_failure

The claim is a conditional UPDATE in the store, so only one request can hold
a record in `retrying` at a time. Nothing else writes status or retry_count.
"""

import math
import time
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional

from argus.config import settings
from argus.connectors.meta.client import worst_case_request_seconds
from argus.core.error_translator import translate_error
from argus.core.errors import Conflict, ExecutorError, MaxRetriesExceeded, NotFound
from argus.core.logging import get_logger
from argus.models.failure_models import (
    FailedEntity,
    FailureContext,
    FailureStats,
    FailureStatus,
    RetryResult,
    dump_payload,
    utcnow,
)
from argus.repositories.failure_store import FailureStore

logger = get_logger("tracker.failures")

RetryExecutor = Callable[[FailedEntity], Awaitable[Dict[str, Any]]]

PENDING_STATUSES = (FailureStatus.FAILED.value, FailureStatus.RETRYING.value)

# An ad set retry makes two remote calls (ad set, then its ad)
REMOTE_CALLS_PER_RETRY = 2


def min_stale_retry_minutes() -> int:
    """Shortest age at which a `retrying` claim can no longer be live."""
    return math.ceil(REMOTE_CALLS_PER_RETRY * worst_case_request_seconds() / 60) + 1


def compute_recovery_rate(recovered: int, total: int) -> str | int:
    """Percentage of recovered records as "25.00"; 0 when there are none."""
    if total <= 0:
        return 0
    return f"{recovered / total * 100:.2f}"


class FailureTracker:
    """Tracks, serves and retries failed campaign entities."""

    def __init__(self, store: FailureStore, max_attempts: int | None = None):
        self.store = store
        self.max_attempts = max_attempts or settings.max_retry_attempts

    # ── Recording ──

    def record_failure(
        self, context: FailureContext, error: BaseException | str
    ) -> Optional[FailedEntity]:
        """Persist a new failure. Never raises.

        Returns the created record, or None if it could not be stored: this
        is called from inside other error paths and must not mask the error
        they are reporting.
        """
        try:
            if isinstance(error, BaseException):
                translated = translate_error(error)
                reason = str(error) or error.__class__.__name__
                friendly, code = translated.user_friendly_message, translated.error_code
            else:
                reason = friendly = error
                code = None

            record = self.store.create(
                FailedEntity(
                    user_id=context.user_id,
                    campaign_id=context.campaign_id,
                    campaign_name=context.campaign_name,
                    strategy_type=context.strategy_type,
                    entity_type=context.entity_type.value,
                    adset_id=context.adset_id,
                    adset_name=context.adset_name,
                    ad_id=context.ad_id,
                    ad_name=context.ad_name,
                    status=FailureStatus.FAILED.value,
                    retry_count=0,
                    failure_reason=reason,
                    user_friendly_reason=friendly,
                    error_code=code,
                    payload_json=dump_payload(context.payload),
                )
            )
            logger.info(
                f"📝 Tracked failed {record.entity_type}: {record.display_name} — {friendly}",
                extra={
                    "failure_id": record.id,
                    "user_id": record.user_id,
                    "entity_type": record.entity_type,
                },
            )
            return record
        except Exception as e:
            logger.error(f"❌ Error tracking failure: {e}", exc_info=True)
            return None

    # ── Reads ──

    def get_failure(self, failure_id: int, user_id: str) -> FailedEntity:
        record = self.store.get(failure_id, user_id)
        if record is None:
            raise NotFound("Failed entity not found")
        return record

    def get_campaign_failures(self, user_id: str, campaign_id: str) -> List[FailedEntity]:
        return self.store.find_many(user_id, campaign_id=campaign_id)

    def get_failures_by_user(
        self,
        user_id: str,
        status: Optional[str] = None,
        entity_type: Optional[str] = None,
        campaign_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[FailedEntity]:
        return self.store.find_many(
            user_id,
            campaign_id=campaign_id,
            statuses=[status] if status else None,
            entity_type=entity_type,
            limit=limit,
        )

    def get_pending_failures(
        self, user_id: str, campaign_id: Optional[str] = None
    ) -> List[FailedEntity]:
        """Failed or retrying records, oldest first."""
        return self.store.find_many(
            user_id, campaign_id=campaign_id, statuses=PENDING_STATUSES, oldest_first=True
        )

    def get_failure_stats(
        self, user_id: str, campaign_id: Optional[str] = None
    ) -> FailureStats:
        by_status = self.store.count_grouped(user_id, "status", campaign_id)
        by_entity_type = self.store.count_grouped(user_id, "entity_type", campaign_id)
        by_strategy = self.store.count_grouped(user_id, "strategy_type", campaign_id)
        total = sum(by_status.values())

        return FailureStats(
            total=total,
            by_status={s.value: by_status.get(s.value, 0) for s in FailureStatus},
            by_entity_type={
                "campaign": by_entity_type.get("campaign", 0),
                "adset": by_entity_type.get("adset", 0),
                "ad": by_entity_type.get("ad", 0),
            },
            by_strategy=by_strategy,
            recovery_rate=compute_recovery_rate(
                by_status.get(FailureStatus.RECOVERED.value, 0), total
            ),
        )

    # ── Retry Protocol ──

    def _check_guards(self, record: FailedEntity) -> None:
        """Raise the outcome for a record that must not be retried."""
        if record.status == FailureStatus.RETRYING.value:
            raise Conflict(
                "This entity is already being retried. Please wait for the "
                "current retry to complete.",
                current_status=record.status,
            )
        if record.status == FailureStatus.RESOLVED.value:
            raise Conflict(
                "This entity has already been resolved.", current_status=record.status
            )
        if record.status == FailureStatus.RECOVERED.value:
            raise Conflict(
                "This entity has already been recovered.", current_status=record.status
            )
        if (
            record.retry_count >= self.max_attempts
            or record.status == FailureStatus.PERMANENT_FAILURE.value
        ):
            self.store.transition(
                record.id,
                [FailureStatus.FAILED.value, FailureStatus.PERMANENT_FAILURE.value],
                status=FailureStatus.PERMANENT_FAILURE.value,
                last_error=f"Maximum retry attempts ({self.max_attempts}) exceeded",
            )
            logger.warning(
                f"⛔ Marked as permanent failure: {record.entity_type} - {record.display_name}",
                extra={"failure_id": record.id, "retry_count": record.retry_count},
            )
            raise MaxRetriesExceeded(
                f"Maximum retry attempts ({self.max_attempts}) exceeded. This has "
                "been marked as a permanent failure.",
                retry_count=record.retry_count,
            )

    def check_retryable(self, failure_id: int, user_id: str) -> FailedEntity:
        """Run the retry guards without claiming; callers use this before
        acquiring anything a retry needs (credentials, a gateway)."""
        record = self.get_failure(failure_id, user_id)
        self._check_guards(record)
        return record

    def claim(self, failure_id: int, user_id: str) -> FailedEntity:
        """Apply the guards and move the record to `retrying`.

        Returns the claimed record with its incremented retry_count.
        """
        self.check_retryable(failure_id, user_id)

        if not self.store.claim_for_retry(
            failure_id, user_id, self.max_attempts, utcnow()
        ):
            # Lost a race against another request; report what it left behind
            record = self.get_failure(failure_id, user_id)
            self._check_guards(record)
            raise Conflict(
                "Entity state changed during retry; please try again.",
                current_status=record.status,
            )

        claimed = self.get_failure(failure_id, user_id)
        logger.info(
            f"🔄 Retry attempt {claimed.retry_count} for {claimed.entity_type}: {claimed.display_name}",
            extra={"failure_id": claimed.id, "retry_count": claimed.retry_count},
        )
        return claimed

    async def retry(
        self, failure_id: int, user_id: str, executor: RetryExecutor
    ) -> RetryResult:
        """Run one guarded retry attempt.

        Guard violations raise NotFound / Conflict / MaxRetriesExceeded before
        any remote call. Once claimed, an executor failure (of any kind) puts
        the record back to `failed` and is reported in the returned result.
        """
        claimed = self.claim(failure_id, user_id)
        started = time.monotonic()

        try:
            result = await executor(claimed)
        except Exception as e:
            error = ExecutorError(e)
            if not self.store.transition(
                failure_id,
                [FailureStatus.RETRYING.value],
                expected_retry_count=claimed.retry_count,
                status=FailureStatus.FAILED.value,
                last_error=error.message,
            ):
                self._log_lost_claim(claimed)
            logger.warning(
                f"Retry failed for {claimed.entity_type} {claimed.display_name}: {error.message}",
                extra={
                    "failure_id": failure_id,
                    "retry_count": claimed.retry_count,
                    "duration_ms": round((time.monotonic() - started) * 1000),
                },
            )
            return RetryResult(
                success=False,
                failure_id=failure_id,
                status=FailureStatus.FAILED.value,
                retry_count=claimed.retry_count,
                error=error.message,
                error_kind="executor_error",
                can_retry_again=claimed.retry_count < self.max_attempts,
                permanent_failure=False,
            )

        recovered = self.mark_recovered(
            claimed, adset_id=result.get("adset_id"), ad_id=result.get("ad_id")
        )
        if recovered is None:
            # The claim was released while the executor ran; the remote work
            # happened but this attempt no longer owns the record.
            self._log_lost_claim(claimed)
            current = self.store.get(failure_id)
            return RetryResult(
                success=False,
                failure_id=failure_id,
                status=current.status if current else claimed.status,
                retry_count=claimed.retry_count,
                result=result,
                error="The retry finished after its claim was released; "
                "the outcome was not recorded on this entity.",
                error_kind="claim_lost",
                can_retry_again=False,
                permanent_failure=False,
            )
        logger.info(
            f"✅ Marked {claimed.entity_type} as recovered: {claimed.display_name}",
            extra={
                "failure_id": failure_id,
                "retry_count": claimed.retry_count,
                "duration_ms": round((time.monotonic() - started) * 1000),
            },
        )
        return RetryResult(
            success=True,
            failure_id=failure_id,
            status=recovered.status,
            retry_count=claimed.retry_count,
            result=result,
            warning=result.get("warning"),
            cascaded_failure_id=result.get("cascaded_failure_id"),
        )

    def mark_recovered(
        self,
        claimed: FailedEntity,
        adset_id: Optional[str] = None,
        ad_id: Optional[str] = None,
    ) -> Optional[FailedEntity]:
        """Finish a claimed retry successfully, storing any new remote ids.

        Returns None when the record no longer holds this claim.
        """
        changes: Dict[str, Any] = {
            "status": FailureStatus.RECOVERED.value,
            "recovered_at": utcnow(),
            "last_error": None,
        }
        if adset_id:
            changes["adset_id"] = adset_id
        if ad_id:
            changes["ad_id"] = ad_id
        if not self.store.transition(
            claimed.id,
            [FailureStatus.RETRYING.value],
            expected_retry_count=claimed.retry_count,
            **changes,
        ):
            return None
        return self.store.get(claimed.id)

    def _log_lost_claim(self, claimed: FailedEntity) -> None:
        logger.error(
            f"Retry attempt {claimed.retry_count} for {claimed.entity_type} "
            f"{claimed.display_name} finished after its claim was released",
            extra={"failure_id": claimed.id, "retry_count": claimed.retry_count},
        )

    # ── User Actions ──

    def resolve(self, failure_id: int, user_id: str) -> FailedEntity:
        """Dismiss a record the user has handled outside the retry flow."""
        record = self.get_failure(failure_id, user_id)
        if not self.store.transition(
            failure_id,
            [FailureStatus.FAILED.value, FailureStatus.PERMANENT_FAILURE.value],
            status=FailureStatus.RESOLVED.value,
        ):
            raise Conflict(
                f"Cannot resolve an entity in status '{record.status}'.",
                current_status=record.status,
            )
        return self.get_failure(failure_id, user_id)

    def delete_failure(self, failure_id: int, user_id: str) -> None:
        record = self.get_failure(failure_id, user_id)
        if record.status == FailureStatus.RETRYING.value:
            raise Conflict(
                "Cannot delete an entity while it is being retried.",
                current_status=record.status,
            )
        self.store.delete(failure_id, user_id)

    # ── Housekeeping ──

    def release_stale_retries(self, older_than_minutes: int | None = None) -> int:
        """Return records stuck in `retrying` (crashed mid-retry) to `failed`.

        The age is never below `min_stale_retry_minutes()`, the longest a live
        retry can take, so a running attempt is not released under itself.
        """
        minutes = max(
            older_than_minutes or settings.stale_retry_minutes, min_stale_retry_minutes()
        )
        released = self.store.release_stale_retries(utcnow() - timedelta(minutes=minutes))
        if released:
            logger.warning(f"Released {released} stale retrying record(s)")
        return released

    def cleanup_old_failures(self, days_old: int | None = None, now: datetime | None = None) -> int:
        """Delete recovered records older than `days_old` days."""
        days = days_old or settings.failure_cleanup_days
        cutoff = (now or utcnow()) - timedelta(days=days)
        deleted = self.store.delete_recovered_before(cutoff)
        logger.info(f"🧹 Cleaned up {deleted} old recovered failures")
        return deleted
