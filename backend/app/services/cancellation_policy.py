"""Cancellation policy evaluation for class bookings."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Mapping, Union

from app.core.timezone_utils import ensure_utc

CENTS = Decimal("0.01")


@dataclass(frozen=True)
class CancellationPolicy:
    hours_before_class: float
    refund_percentage: int

    @classmethod
    def from_template(cls, template: Any) -> "CancellationPolicy":
        return cls(
            hours_before_class=float(template.cancellation_hours_before_class),
            refund_percentage=int(template.cancellation_refund_percentage),
        )

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "CancellationPolicy":
        return cls(
            hours_before_class=float(payload["hours_before_class"]),
            refund_percentage=int(payload["refund_percentage"]),
        )


@dataclass(frozen=True)
class CancellationDecision:
    within_window: bool
    refund_percentage: int

    def to_payload(self) -> dict[str, object]:
        return {
            "within_window": self.within_window,
            "refund_percentage": self.refund_percentage,
        }


class CancellationPolicyEngine:
    """
    Decides refund eligibility from how far ahead of class start a
    cancellation happens.

    Pure and deterministic: ``now`` is always supplied by the caller.
    """

    def evaluate(
        self,
        now: datetime,
        class_start_time: datetime,
        policy: CancellationPolicy,
    ) -> CancellationDecision:
        # Naive timestamps are treated as UTC
        lead_time = ensure_utc(class_start_time) - ensure_utc(now)
        within_window = lead_time >= timedelta(hours=policy.hours_before_class)
        return CancellationDecision(
            within_window=within_window,
            refund_percentage=policy.refund_percentage if within_window else 0,
        )

    @staticmethod
    def refund_amount(price: Union[Decimal, float, int, str], percentage: int) -> Decimal:
        """``price * percentage / 100`` rounded half-up to cents."""
        amount = Decimal(str(price)) * Decimal(int(percentage)) / Decimal(100)
        return amount.quantize(CENTS, rounding=ROUND_HALF_UP)

    @staticmethod
    def hours_until(now: datetime, class_start_time: datetime) -> float:
        return (ensure_utc(class_start_time) - ensure_utc(now)).total_seconds() / 3600
