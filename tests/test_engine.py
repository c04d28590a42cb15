"""Tests for the single-record retry engine."""

import random
from datetime import timedelta
from unittest.mock import Mock

import pytest

from email_retry.domain.models import EmailType
from email_retry.persistence.exceptions import PersistenceError, RecordNotFoundError, StaleRecordError
from email_retry.retry.engine import RetryEngine
from email_retry.retry.models import RetryStatus, SendResult
from email_retry.retry.policy import RetryPolicy
from tests.helpers import FIXED_NOW


class TestSuccessfulRetry:
    """A transient failure that succeeds on retry."""

    def test_reminder_timeout_then_success(self, engine, memory_store, make_record, sleep_calls):
        record = memory_store.insert(
            make_record(email_type=EmailType.REMINDER, error_message="timeout", retry_count=0)
        )
        send = Mock(return_value=SendResult.ok())

        outcome = engine.retry_failure(record.id, send)

        assert outcome.status == RetryStatus.SUCCEEDED
        assert outcome.succeeded
        assert outcome.attempted
        send.assert_called_once_with()

        assert len(sleep_calls) == 1
        assert 1.0 <= sleep_calls[0] <= 1.5

        stored = memory_store.get(record.id)
        assert stored.resolved_at == FIXED_NOW
        assert stored.retry_count == 0

    def test_success_after_previous_retries_sleeps_longer(self, engine, memory_store, make_record, sleep_calls):
        record = memory_store.insert(make_record(email_type=EmailType.DISCLOSURE, retry_count=3))

        engine.retry_failure(record.id, lambda: SendResult.ok())

        # 4th retry: 2^3 * 1s base
        assert 8.0 <= sleep_calls[0] <= 8.5


class TestFailedRetry:
    """A transient failure that fails again."""

    def test_failure_increments_retry_count_and_stores_error(self, engine, memory_store, make_record):
        record = memory_store.insert(make_record(email_type=EmailType.REMINDER, retry_count=1))

        outcome = engine.retry_failure(record.id, lambda: SendResult.failed("503 service unavailable"))

        assert outcome.status == RetryStatus.FAILED_WILL_RETRY
        assert outcome.retry_count == 2
        assert outcome.error == "503 service unavailable"

        stored = memory_store.get(record.id)
        assert stored.retry_count == 2
        assert stored.error_message == "503 service unavailable"
        assert stored.resolved_at is None

    def test_next_retry_at_uses_following_attempt_backoff(self, engine, memory_store, make_record):
        record = memory_store.insert(make_record(retry_count=0))

        outcome = engine.retry_failure(record.id, lambda: SendResult.failed("timeout"))

        # Attempt 1 failed, attempt 2 waits between 2.0s and 2.5s
        assert FIXED_NOW + timedelta(seconds=2.0) <= outcome.next_retry_at
        assert outcome.next_retry_at <= FIXED_NOW + timedelta(seconds=2.5)

    def test_failure_on_last_budgeted_attempt_still_reports_will_retry(self, engine, memory_store, make_record):
        record = memory_store.insert(make_record(email_type=EmailType.VERIFICATION, retry_count=1))

        outcome = engine.retry_failure(record.id, lambda: SendResult.failed("timeout"))

        assert outcome.status == RetryStatus.FAILED_WILL_RETRY
        assert memory_store.get(record.id).retry_count == 2
        # Next call finds the budget used up
        assert engine.retry_failure(record.id, Mock()).status == RetryStatus.EXHAUSTED

    def test_send_exception_is_treated_as_failure(self, engine, memory_store, make_record):
        record = memory_store.insert(make_record(retry_count=0))

        def boom():
            raise ConnectionResetError("connection reset by peer")

        outcome = engine.retry_failure(record.id, boom)

        assert outcome.status == RetryStatus.FAILED_WILL_RETRY
        assert "connection reset" in outcome.error
        assert memory_store.get(record.id).retry_count == 1

    def test_send_returning_none_is_treated_as_failure(self, engine, memory_store, make_record):
        record = memory_store.insert(make_record(retry_count=0))

        outcome = engine.retry_failure(record.id, lambda: None)

        assert outcome.status == RetryStatus.FAILED_WILL_RETRY
        assert outcome.error == "Send operation returned no result"

    def test_failure_without_error_text_keeps_previous_message(self, engine, memory_store, make_record):
        record = memory_store.insert(make_record(retry_count=0, error_message="rate limit"))

        outcome = engine.retry_failure(record.id, lambda: SendResult(success=False))

        assert outcome.error == "Retry failed"
        assert memory_store.get(record.id).error_message == "rate limit"


class TestTerminalRecords:
    """Records the engine must not send."""

    def test_verification_at_limit_is_exhausted(self, engine, memory_store, make_record, sleep_calls):
        record = memory_store.insert(make_record(email_type=EmailType.VERIFICATION, retry_count=2))
        send = Mock()

        outcome = engine.retry_failure(record.id, send)

        assert outcome.status == RetryStatus.EXHAUSTED
        assert outcome.error == "Retry limit exceeded (2 attempts)"
        send.assert_not_called()
        assert sleep_calls == []
        assert memory_store.update_calls == 0

    def test_disclosure_with_five_retries_is_exhausted(self, engine, memory_store, make_record):
        record = memory_store.insert(make_record(email_type=EmailType.DISCLOSURE, retry_count=5))
        send = Mock()

        assert engine.retry_failure(record.id, send).status == RetryStatus.EXHAUSTED
        send.assert_not_called()

    def test_permanent_error_is_not_retried(self, engine, memory_store, make_record, sleep_calls):
        record = memory_store.insert(make_record(error_message="Invalid email address", retry_count=1))
        send = Mock()

        outcome = engine.retry_failure(record.id, send)

        assert outcome.status == RetryStatus.PERMANENTLY_FAILED
        assert outcome.error == "Permanent failure - not retrying"
        send.assert_not_called()
        assert sleep_calls == []
        assert memory_store.get(record.id).retry_count == 1

    def test_permanent_checked_before_budget(self, engine, memory_store, make_record):
        record = memory_store.insert(
            make_record(email_type=EmailType.VERIFICATION, retry_count=2, error_message="user unknown")
        )

        assert engine.retry_failure(record.id, Mock()).status == RetryStatus.PERMANENTLY_FAILED

    def test_resolved_record_is_skipped(self, engine, memory_store, make_record):
        record = memory_store.insert(make_record(resolved_at=FIXED_NOW))
        send = Mock()

        outcome = engine.retry_failure(record.id, send)

        assert outcome.status == RetryStatus.SKIPPED
        assert outcome.reason == "already_resolved"
        send.assert_not_called()

    def test_second_call_after_success_does_not_resend(self, engine, memory_store, make_record):
        record = memory_store.insert(make_record())
        send = Mock(return_value=SendResult.ok())

        engine.retry_failure(record.id, send)
        engine.retry_failure(record.id, send)

        assert send.call_count == 1

    def test_zero_budget_never_sends(self, memory_store, make_record, sleep_calls):
        engine = RetryEngine(
            store=memory_store,
            policy=RetryPolicy({"reminder": 0}),
            sleep=sleep_calls.append,
        )
        record = memory_store.insert(make_record(email_type=EmailType.REMINDER, retry_count=0))
        send = Mock()

        assert engine.retry_failure(record.id, send).status == RetryStatus.EXHAUSTED
        send.assert_not_called()


class TestStoreInteraction:
    def test_missing_record_raises(self, engine):
        with pytest.raises(RecordNotFoundError):
            engine.retry_failure("does-not-exist", Mock())

    def test_concurrent_resolution_is_reported_as_skipped(self, engine, memory_store, make_record):
        record = memory_store.insert(make_record(retry_count=0))

        def send_and_race():
            # Another worker resolves the record while this send is in flight
            memory_store.put(record.model_copy(update={"resolved_at": FIXED_NOW}))
            return SendResult.failed("timeout")

        outcome = engine.retry_failure(record.id, send_and_race)

        assert outcome.status == RetryStatus.SKIPPED
        assert outcome.reason == "concurrent_update"
        assert outcome.attempted
        stored = memory_store.get(record.id)
        assert stored.retry_count == 0
        assert stored.is_resolved

    def test_concurrent_retry_count_change_is_reported_as_skipped(self, engine, memory_store, make_record):
        record = memory_store.insert(make_record(retry_count=0))

        def send_and_race():
            memory_store.put(record.model_copy(update={"retry_count": 1}))
            return SendResult.ok()

        outcome = engine.retry_failure(record.id, send_and_race)

        assert outcome.status == RetryStatus.SKIPPED
        assert memory_store.get(record.id).resolved_at is None

    def test_persistence_errors_propagate(self, make_record):
        store = Mock()
        store.get.return_value = make_record()
        store.update.side_effect = PersistenceError("disk full")
        engine = RetryEngine(store=store, sleep=lambda _: None)

        with pytest.raises(PersistenceError):
            engine.retry_failure("abc", lambda: SendResult.ok())

    def test_stale_error_from_store_is_not_raised(self, make_record):
        store = Mock()
        store.get.return_value = make_record()
        store.update.side_effect = StaleRecordError("changed")
        engine = RetryEngine(store=store, sleep=lambda _: None)

        outcome = engine.retry_failure("abc", lambda: SendResult.ok())

        assert outcome.status == RetryStatus.SKIPPED


class TestBackoffSettings:
    def test_engine_uses_configured_backoff(self, memory_store, make_record, sleep_calls):
        engine = RetryEngine(
            store=memory_store,
            base_delay=0.5,
            max_delay=1.0,
            jitter_factor=0,
            sleep=sleep_calls.append,
            rng=random.Random(1),
        )
        record = memory_store.insert(make_record(email_type=EmailType.DISCLOSURE, retry_count=4))

        engine.retry_failure(record.id, lambda: SendResult.ok())

        assert sleep_calls == [1.0]

    def test_backoff_delay_helper(self, engine):
        assert 4.0 <= engine.backoff_delay(3) <= 4.5
