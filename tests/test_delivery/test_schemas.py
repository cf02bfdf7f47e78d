"""Tests for the delivery attempt state machine."""

from datetime import datetime, timedelta, timezone

import pytest

from msgbot.delivery.errors import DeliveryValidationError, InvalidTransitionError
from msgbot.delivery.schemas import (
    BatchInfo,
    DeliveryAttempt,
    DeliveryContent,
    DeliveryStatus,
    cancel_for_subscription,
)
from msgbot.subscriptions.schemas import Channel

T0 = datetime(2026, 3, 2, 10, 0, 0, tzinfo=timezone.utc)


def _attempt(**overrides) -> DeliveryAttempt:
    fields = {
        "item_id": "item_1",
        "subscription_id": "sub_1",
        "owner_id": "owner_1",
        "channel": Channel.TELEGRAM,
        "content": DeliveryContent(title="AI news", body="New AI breakthrough"),
        "created_at": T0,
    }
    fields.update(overrides)
    return DeliveryAttempt(**fields)


def _fail(attempt: DeliveryAttempt, at: datetime, error: str = "HTTP 502") -> None:
    attempt.mark_started(at)
    attempt.mark_failed("provider_error", error, now=at + timedelta(seconds=1))
    attempt.add_retry_attempt(error, 1000.0, now=at + timedelta(seconds=1))


class TestDeliveryAttemptValidation:

    def test_defaults(self):
        attempt = _attempt()
        assert attempt.status == DeliveryStatus.PENDING
        assert attempt.attempt_id.startswith("push_")
        assert attempt.priority == "normal"
        assert attempt.max_retries == 3
        assert attempt.retry_delay_seconds == 300.0
        assert attempt.timeout_seconds == 30.0
        assert attempt.retry_count == 0
        assert attempt.timing.scheduled_at == T0

    def test_channel_string_coerced(self):
        assert _attempt(channel="wechat").channel == Channel.WECHAT

    @pytest.mark.parametrize("field", ["item_id", "subscription_id", "owner_id"])
    def test_missing_reference_raises(self, field):
        with pytest.raises(DeliveryValidationError, match=field):
            _attempt(**{field: ""})

    def test_missing_channel_raises(self):
        with pytest.raises(DeliveryValidationError, match="channel"):
            _attempt(channel=None)

    def test_unknown_channel_raises(self):
        with pytest.raises(DeliveryValidationError, match="Invalid channel"):
            _attempt(channel="email")

    def test_invalid_priority_raises(self):
        with pytest.raises(ValueError, match="Invalid priority"):
            _attempt(priority="critical")

    def test_content_bounds(self):
        with pytest.raises(DeliveryValidationError, match="title"):
            DeliveryContent(title="x" * 201)
        with pytest.raises(DeliveryValidationError, match="body"):
            DeliveryContent(body="x" * 2001)
        with pytest.raises(DeliveryValidationError, match="summary"):
            DeliveryContent(summary="x" * 501)

    def test_invalid_batch_position(self):
        with pytest.raises(DeliveryValidationError):
            BatchInfo(batch_id="b", batch_size=2, batch_index=2)


class TestTransitions:

    def test_happy_path(self):
        attempt = _attempt()
        attempt.mark_started(T0 + timedelta(seconds=2))
        assert attempt.status == DeliveryStatus.SENDING
        assert attempt.timing.queue_time_ms == pytest.approx(2000.0)

        attempt.mark_success("msg_1", 150.0, now=T0 + timedelta(seconds=3))
        assert attempt.status == DeliveryStatus.SUCCESS
        assert attempt.result.message_id == "msg_1"
        assert attempt.result.delivery_time == T0 + timedelta(seconds=3)
        assert attempt.timing.duration_ms == pytest.approx(1000.0)
        assert attempt.is_terminal is True

    def test_second_success_raises_and_keeps_timing(self):
        attempt = _attempt()
        attempt.mark_started(T0)
        attempt.mark_success("msg_1", now=T0 + timedelta(seconds=1))

        with pytest.raises(InvalidTransitionError):
            attempt.mark_success("msg_2", now=T0 + timedelta(seconds=9))

        assert attempt.result.message_id == "msg_1"
        assert attempt.timing.completed_at == T0 + timedelta(seconds=1)

    def test_cannot_send_twice(self):
        attempt = _attempt()
        attempt.mark_started(T0)
        with pytest.raises(InvalidTransitionError):
            attempt.mark_started(T0)

    def test_success_requires_sending(self):
        with pytest.raises(InvalidTransitionError, match="'pending' to 'success'"):
            _attempt().mark_success("msg_1")

    def test_negative_queue_time_is_logged(self, caplog):
        attempt = _attempt()
        attempt.mark_started(T0 - timedelta(seconds=5))
        assert attempt.timing.queue_time_ms == pytest.approx(-5000.0)
        assert "before its scheduled time" in caplog.text

    def test_failure_records_error(self):
        attempt = _attempt()
        _fail(attempt, T0, "HTTP 502")
        assert attempt.status == DeliveryStatus.FAILED
        assert attempt.result.error_code == "provider_error"
        assert attempt.result.error_message == "HTTP 502"
        assert attempt.retry_count == 1
        assert attempt.retry_history[0].attempt == 1
        assert attempt.is_terminal is False

    def test_retry_history_only_when_failed(self):
        with pytest.raises(InvalidTransitionError):
            _attempt().add_retry_attempt("boom")


class TestRetries:

    def test_retry_cycles_until_exhausted(self):
        attempt = _attempt(max_retries=3)
        at = T0
        for cycle in range(1, 4):
            _fail(attempt, at)
            assert attempt.retry_count == cycle
            if cycle < 3:
                assert attempt.can_retry() is True
                retry_at = attempt.next_retry_time(at)
                assert retry_at is not None
                attempt.requeue(scheduled_at=retry_at)
                assert attempt.status == DeliveryStatus.PENDING
                assert attempt.timing.scheduled_at == retry_at
                at = retry_at

        assert attempt.can_retry() is False
        assert attempt.next_retry_time(at) is None
        assert attempt.is_terminal is True
        with pytest.raises(InvalidTransitionError):
            attempt.requeue(now=at)

    def test_zero_retries(self):
        attempt = _attempt(max_retries=0)
        _fail(attempt, T0)
        assert attempt.can_retry() is False

    def test_exhaust_retries_for_permanent_error(self):
        attempt = _attempt()
        _fail(attempt, T0)
        attempt.exhaust_retries()
        assert attempt.can_retry() is False
        assert attempt.next_retry_time(T0) is None

    def test_pending_attempt_cannot_retry(self):
        assert _attempt().can_retry() is False

    def test_requeue_resets_timing(self):
        attempt = _attempt()
        _fail(attempt, T0)
        attempt.requeue(scheduled_at=T0 + timedelta(minutes=5))
        assert attempt.timing.started_at is None
        assert attempt.timing.completed_at is None


class TestCancel:

    def test_cancel_pending(self):
        attempt = _attempt()
        attempt.cancel("user request", now=T0)
        assert attempt.status == DeliveryStatus.CANCELLED
        assert attempt.cancel_reason == "user request"
        assert attempt.is_terminal is True

    def test_cancel_sending(self):
        attempt = _attempt()
        attempt.mark_started(T0)
        attempt.cancel(now=T0)
        assert attempt.status == DeliveryStatus.CANCELLED

    def test_cannot_cancel_success(self):
        attempt = _attempt()
        attempt.mark_started(T0)
        attempt.mark_success("msg_1", now=T0)
        with pytest.raises(InvalidTransitionError):
            attempt.cancel()

    def test_cancel_for_subscription(self):
        pending = _attempt()
        sending = _attempt()
        sending.mark_started(T0)
        done = _attempt()
        done.mark_started(T0)
        done.mark_success("msg_1", now=T0)
        other = _attempt(subscription_id="sub_2")

        cancelled = cancel_for_subscription([pending, sending, done, other], "sub_1", now=T0)

        assert cancelled == [pending, sending]
        assert done.status == DeliveryStatus.SUCCESS
        assert other.status == DeliveryStatus.PENDING


class TestInteraction:

    def test_read_click_feedback(self):
        attempt = _attempt()
        attempt.mark_started(T0)
        attempt.mark_success("msg_1", now=T0)

        attempt.update_interaction("read", now=T0)
        attempt.update_interaction("click", now=T0)
        attempt.update_interaction("click", now=T0)
        attempt.update_interaction("feedback", feedback="like", now=T0)

        assert attempt.interaction.is_read is True
        assert attempt.interaction.click_count == 2
        assert attempt.interaction.feedback == "like"
        assert attempt.status == DeliveryStatus.SUCCESS

    def test_invalid_feedback(self):
        with pytest.raises(DeliveryValidationError, match="Invalid feedback"):
            _attempt().update_interaction("feedback", feedback="love")

    def test_invalid_kind(self):
        with pytest.raises(DeliveryValidationError, match="Invalid interaction"):
            _attempt().update_interaction("share")


class TestSerialization:

    def test_round_trip_preserves_state(self):
        attempt = _attempt(batch=BatchInfo(batch_id="batch_1", batch_size=2, batch_index=1))
        _fail(attempt, T0)
        attempt.update_interaction("feedback", feedback="dislike", now=T0)

        restored = DeliveryAttempt.from_dict(attempt.to_dict())

        assert restored.attempt_id == attempt.attempt_id
        assert restored.status == DeliveryStatus.FAILED
        assert restored.retry_count == 1
        assert restored.retry_history[0].timestamp == attempt.retry_history[0].timestamp
        assert restored.batch == attempt.batch
        assert restored.interaction.feedback == "dislike"
        assert restored.can_retry() is True

    def test_summary(self):
        summary = _attempt().summary()
        assert summary["channel"] == "telegram"
        assert summary["status"] == "pending"
        assert summary["retry_count"] == 0
