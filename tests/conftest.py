"""Shared fixtures: a throwaway SQLite database per test and a fake gateway."""

from unittest.mock import AsyncMock

import pytest

from argus.database import build_engine, init_db
from argus.models.failure_models import (
    AdCreationPayload,
    AdSetCreationPayload,
    EntityType,
    FailureContext,
)
from argus.repositories.failure_store import FailureStore
from argus.tracker.failure_tracker import FailureTracker


class FakeGateway:
    """EntityGateway double; every remote call is an AsyncMock."""

    def __init__(self):
        self.create_adset = AsyncMock(return_value={"id": "adset_new"})
        self.create_ad = AsyncMock(return_value={"id": "ad_new"})
        self.fetch_entity = AsyncMock(return_value={})
        self.update_entity = AsyncMock(return_value={"success": True})
        self.close = AsyncMock()


@pytest.fixture
def engine(tmp_path):
    eng = build_engine(f"sqlite:///{tmp_path / 'argus-test.db'}")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def store(engine):
    return FailureStore(engine)


@pytest.fixture
def tracker(store):
    return FailureTracker(store, max_attempts=3)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def adset_failure(tracker):
    """Factory: record a failed ad set (with a dependent ad) and return it."""

    def _make(user_id="user-1", campaign_id="cmp_1", with_ad=True, strategy_type="strategy_150"):
        return tracker.record_failure(
            FailureContext(
                user_id=user_id,
                entity_type=EntityType.ADSET,
                campaign_id=campaign_id,
                campaign_name="Spring Sale",
                strategy_type=strategy_type,
                adset_name="Spring Sale - AdSet 2",
                payload=AdSetCreationPayload(
                    params={"daily_budget": 5000, "optimization_goal": "OFFSITE_CONVERSIONS"},
                    ad_params={"name": "Spring Sale - Ad 2", "creative": {"object_story_id": "p_1"}}
                    if with_ad
                    else None,
                ),
            ),
            "Invalid parameter",
        )

    return _make


@pytest.fixture
def ad_failure(tracker):
    """Factory: record a failed ad under an existing ad set."""

    def _make(user_id="user-1", campaign_id="cmp_1", adset_id="adset_1"):
        return tracker.record_failure(
            FailureContext(
                user_id=user_id,
                entity_type=EntityType.AD,
                campaign_id=campaign_id,
                campaign_name="Spring Sale",
                strategy_type="strategy_150",
                adset_id=adset_id,
                ad_name="Spring Sale - Ad 1",
                payload=AdCreationPayload(params={"creative": {"object_story_id": "p_1"}}),
            ),
            "Connection failed after 1 attempt(s): timed out",
        )

    return _make
