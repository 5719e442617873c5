"""Unit tests for CancellationPolicyEngine."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from app.services.cancellation_policy import (
    CancellationDecision,
    CancellationPolicy,
    CancellationPolicyEngine,
)

CLASS_START = datetime(2026, 3, 10, 18, 0, tzinfo=timezone.utc)


@pytest.fixture
def engine() -> CancellationPolicyEngine:
    return CancellationPolicyEngine()


@pytest.fixture
def full_refund_policy() -> CancellationPolicy:
    return CancellationPolicy(hours_before_class=24, refund_percentage=100)


class TestEvaluate:
    def test_outside_window_gets_policy_percentage(self, engine, full_refund_policy):
        decision = engine.evaluate(
            CLASS_START - timedelta(hours=25), CLASS_START, full_refund_policy
        )

        assert decision == CancellationDecision(within_window=True, refund_percentage=100)

    def test_inside_window_gets_nothing(self, engine, full_refund_policy):
        decision = engine.evaluate(
            CLASS_START - timedelta(hours=23), CLASS_START, full_refund_policy
        )

        assert decision.within_window is False
        assert decision.refund_percentage == 0

    def test_exact_boundary_is_eligible(self, engine, full_refund_policy):
        decision = engine.evaluate(
            CLASS_START - timedelta(hours=24), CLASS_START, full_refund_policy
        )

        assert decision.within_window is True
        assert decision.refund_percentage == 100

    def test_one_second_past_boundary_is_not_eligible(self, engine, full_refund_policy):
        decision = engine.evaluate(
            CLASS_START - timedelta(hours=24) + timedelta(seconds=1),
            CLASS_START,
            full_refund_policy,
        )

        assert decision.within_window is False

    def test_after_class_start_is_never_eligible(self, engine):
        policy = CancellationPolicy(hours_before_class=0, refund_percentage=50)

        decision = engine.evaluate(CLASS_START + timedelta(minutes=5), CLASS_START, policy)

        assert decision.refund_percentage == 0

    def test_zero_hour_policy_allows_refund_up_to_start(self, engine):
        policy = CancellationPolicy(hours_before_class=0, refund_percentage=50)

        decision = engine.evaluate(CLASS_START, CLASS_START, policy)

        assert decision.to_payload() == {"within_window": True, "refund_percentage": 50}

    def test_naive_timestamps_are_treated_as_utc(self, engine, full_refund_policy):
        naive_start = CLASS_START.replace(tzinfo=None)
        naive_now = (CLASS_START - timedelta(hours=30)).replace(tzinfo=None)

        decision = engine.evaluate(naive_now, naive_start, full_refund_policy)

        assert decision.within_window is True

    def test_other_timezones_compare_by_instant(self, engine, full_refund_policy):
        plus_five = timezone(timedelta(hours=5))
        # 25 hours before start, written in UTC+5
        now = (CLASS_START - timedelta(hours=25)).astimezone(plus_five)

        decision = engine.evaluate(now, CLASS_START, full_refund_policy)

        assert decision.within_window is True


class TestRefundAmount:
    @pytest.mark.parametrize(
        "price,percentage,expected",
        [
            (Decimal("20.00"), 100, Decimal("20.00")),
            (Decimal("20.00"), 0, Decimal("0.00")),
            (Decimal("19.99"), 50, Decimal("10.00")),
            ("33.33", 33, Decimal("11.00")),
            (15, 75, Decimal("11.25")),
        ],
    )
    def test_rounds_half_up_to_cents(self, price, percentage, expected):
        assert CancellationPolicyEngine.refund_amount(price, percentage) == expected


class TestPolicyConstruction:
    def test_from_template_reads_policy_columns(self):
        template = SimpleNamespace(
            cancellation_hours_before_class=12.5, cancellation_refund_percentage=80
        )

        policy = CancellationPolicy.from_template(template)

        assert policy == CancellationPolicy(hours_before_class=12.5, refund_percentage=80)

    def test_from_mapping(self):
        policy = CancellationPolicy.from_mapping({"hours_before_class": 6, "refund_percentage": 25})

        assert policy.hours_before_class == 6.0
        assert policy.refund_percentage == 25


def test_hours_until():
    assert CancellationPolicyEngine.hours_until(
        CLASS_START - timedelta(hours=2, minutes=30), CLASS_START
    ) == pytest.approx(2.5)
