"""Tests for the FailedEntity repository's conditional writes."""

from argus.models.failure_models import FailureStatus, utcnow


class TestClaimForRetry:
    def test_claim_increments_and_marks_retrying(self, store, adset_failure):
        record = adset_failure()

        assert store.claim_for_retry(record.id, "user-1", 3, utcnow()) is True

        claimed = store.get(record.id)
        assert claimed.status == FailureStatus.RETRYING.value
        assert claimed.retry_count == 1
        assert claimed.last_attempt_at is not None

    def test_second_claim_loses(self, store, adset_failure):
        record = adset_failure()
        assert store.claim_for_retry(record.id, "user-1", 3, utcnow()) is True
        assert store.claim_for_retry(record.id, "user-1", 3, utcnow()) is False
        assert store.get(record.id).retry_count == 1

    def test_claim_refused_at_cap(self, store, adset_failure):
        record = adset_failure()
        store.transition(record.id, ["failed"], retry_count=3)
        assert store.claim_for_retry(record.id, "user-1", 3, utcnow()) is False
        assert store.get(record.id).status == "failed"

    def test_claim_requires_owner(self, store, adset_failure):
        record = adset_failure(user_id="owner")
        assert store.claim_for_retry(record.id, "someone-else", 3, utcnow()) is False


class TestTransition:
    def test_only_from_listed_statuses(self, store, adset_failure):
        record = adset_failure()
        assert store.transition(record.id, ["retrying"], status="recovered") is False
        assert store.transition(record.id, ["failed"], status="resolved") is True
        assert store.get(record.id).status == "resolved"

    def test_expected_retry_count_fences_the_write(self, store, adset_failure):
        record = adset_failure()
        store.transition(record.id, ["failed"], status="retrying", retry_count=2)

        assert store.transition(
            record.id, ["retrying"], expected_retry_count=1, status="recovered"
        ) is False
        assert store.get(record.id).status == "retrying"
        assert store.transition(
            record.id, ["retrying"], expected_retry_count=2, status="recovered"
        ) is True
        assert store.get(record.id).status == "recovered"


class TestQueries:
    def test_get_scoped_by_user(self, store, adset_failure):
        record = adset_failure(user_id="owner")
        assert store.get(record.id, "owner") is not None
        assert store.get(record.id, "other") is None

    def test_count_grouped(self, store, adset_failure, ad_failure):
        adset_failure()
        adset_failure()
        ad_failure()
        assert store.count_grouped("user-1", "entity_type") == {"adset": 2, "ad": 1}

    def test_delete_requires_owner(self, store, adset_failure):
        record = adset_failure(user_id="owner")
        assert store.delete(record.id, "other") is False
        assert store.delete(record.id, "owner") is True
        assert store.get(record.id) is None
