"""ARGUS — FailedEntity Repository.

All reads filter by owning user. Each operation opens its own short-lived
session and commits before returning, so a write is visible to every later
read, including reads from concurrent requests.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import delete, func, update
from sqlalchemy.engine import Engine
from sqlmodel import Session, col, select

from argus.models.failure_models import FailedEntity, FailureStatus, utcnow
from argus.core.logging import get_logger

logger = get_logger("repositories.failures")

GROUPABLE_COLUMNS = {
    "status": FailedEntity.status,
    "entity_type": FailedEntity.entity_type,
    "strategy_type": FailedEntity.strategy_type,
}


class FailureStore:
    """Repository over the `failed_entities` table."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def _session(self) -> Session:
        return Session(self.engine, expire_on_commit=False)

    # ── CRUD ──

    def create(self, record: FailedEntity) -> FailedEntity:
        with self._session() as session:
            session.add(record)
            session.commit()
            session.refresh(record)
            return record

    def get(self, failure_id: int, user_id: Optional[str] = None) -> Optional[FailedEntity]:
        """Fetch one record; with `user_id`, only if that user owns it."""
        with self._session() as session:
            query = select(FailedEntity).where(FailedEntity.id == failure_id)
            if user_id is not None:
                query = query.where(FailedEntity.user_id == user_id)
            return session.exec(query).first()

    def find_many(
        self,
        user_id: str,
        campaign_id: Optional[str] = None,
        statuses: Optional[Iterable[str]] = None,
        entity_type: Optional[str] = None,
        limit: Optional[int] = None,
        oldest_first: bool = False,
    ) -> List[FailedEntity]:
        with self._session() as session:
            query = select(FailedEntity).where(FailedEntity.user_id == user_id)
            if campaign_id:
                query = query.where(FailedEntity.campaign_id == campaign_id)
            if statuses:
                query = query.where(col(FailedEntity.status).in_(list(statuses)))
            if entity_type:
                query = query.where(FailedEntity.entity_type == entity_type)
            order = col(FailedEntity.created_at)
            query = query.order_by(order.asc() if oldest_first else order.desc())
            if limit:
                query = query.limit(limit)
            return list(session.exec(query).all())

    def delete(self, failure_id: int, user_id: str) -> bool:
        with self._session() as session:
            result = session.execute(
                delete(FailedEntity).where(
                    col(FailedEntity.id) == failure_id,
                    col(FailedEntity.user_id) == user_id,
                )
            )
            session.commit()
            return result.rowcount > 0

    def count_grouped(
        self, user_id: str, column: str, campaign_id: Optional[str] = None
    ) -> Dict[str, int]:
        """COUNT(*) grouped by one of status / entity_type / strategy_type."""
        group_col = GROUPABLE_COLUMNS[column]
        with self._session() as session:
            query = (
                select(group_col, func.count(col(FailedEntity.id)))
                .where(FailedEntity.user_id == user_id)
                .group_by(group_col)
            )
            if campaign_id:
                query = query.where(FailedEntity.campaign_id == campaign_id)
            rows = session.exec(query).all()
        return {key: count for key, count in rows if key is not None}

    # ── Conditional transitions ──

    def claim_for_retry(
        self, failure_id: int, user_id: str, max_attempts: int, now: datetime
    ) -> bool:
        """Atomically flip failed → retrying and count the attempt.

        Single UPDATE guarded on the current status and attempt count, so
        of two concurrent claims at most one matches a row.
        """
        with self._session() as session:
            result = session.execute(
                update(FailedEntity)
                .where(
                    col(FailedEntity.id) == failure_id,
                    col(FailedEntity.user_id) == user_id,
                    col(FailedEntity.status) == FailureStatus.FAILED.value,
                    col(FailedEntity.retry_count) < max_attempts,
                )
                .values(
                    status=FailureStatus.RETRYING.value,
                    retry_count=FailedEntity.retry_count + 1,
                    last_attempt_at=now,
                    updated_at=now,
                )
            )
            session.commit()
            return result.rowcount == 1

    def transition(
        self,
        failure_id: int,
        from_statuses: Iterable[str],
        *,
        expected_retry_count: Optional[int] = None,
        **changes: Any,
    ) -> bool:
        """Update only if the current status is one of `from_statuses`.

        With `expected_retry_count`, the row must also still carry that
        attempt number, so an attempt can only finish its own claim.
        """
        changes.setdefault("updated_at", utcnow())
        conditions = [
            col(FailedEntity.id) == failure_id,
            col(FailedEntity.status).in_(list(from_statuses)),
        ]
        if expected_retry_count is not None:
            conditions.append(col(FailedEntity.retry_count) == expected_retry_count)
        with self._session() as session:
            result = session.execute(
                update(FailedEntity).where(*conditions).values(**changes)
            )
            session.commit()
            return result.rowcount == 1

    # ── Housekeeping ──

    def release_stale_retries(self, cutoff: datetime) -> int:
        """Return rows stuck in `retrying` since before `cutoff` to `failed`."""
        with self._session() as session:
            result = session.execute(
                update(FailedEntity)
                .where(
                    col(FailedEntity.status) == FailureStatus.RETRYING.value,
                    col(FailedEntity.last_attempt_at) < cutoff,
                )
                .values(
                    status=FailureStatus.FAILED.value,
                    last_error="Retry did not complete; released for another attempt",
                    updated_at=utcnow(),
                )
            )
            session.commit()
            return result.rowcount

    def delete_recovered_before(self, cutoff: datetime) -> int:
        with self._session() as session:
            result = session.execute(
                delete(FailedEntity).where(
                    col(FailedEntity.status) == FailureStatus.RECOVERED.value,
                    col(FailedEntity.recovered_at) < cutoff,
                )
            )
            session.commit()
            return result.rowcount
