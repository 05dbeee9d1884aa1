from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Tuple

from drafting.errors import InputValidationError
from drafting.models import PaymentSchedule, PaymentTerms


# (upper bound exclusive, (down, middle, final)) ordered by amount
DEFAULT_RATE_TABLE: Tuple[Tuple[Optional[int], Tuple[int, int, int]], ...] = (
    (1_000_000, (0, 0, 100)),
    (5_000_000, (30, 0, 70)),
    (None, (30, 40, 30)),
)


def round_half_up(value: float) -> int:
    """
    Commercial rounding (0.5 always rounds up), unlike Python's round().
    """
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def default_rates(amount: float) -> Tuple[int, int, int]:
    for upper, rates in DEFAULT_RATE_TABLE:
        if upper is None or amount < upper:
            return rates
    return DEFAULT_RATE_TABLE[-1][1]


def calculate_payment_schedule(
    amount: float,
    terms: Optional[PaymentTerms] = None,
) -> PaymentSchedule:
    """
    Compute the installment schedule for a contract amount.

    - Explicit quote terms are used verbatim; each installment is rounded
      independently and no re-normalisation happens.
    - Without terms the default table applies and the rounding remainder is
      absorbed by the final installment.

    Pure and idempotent.

    Example:
        >>> calculate_payment_schedule(800_000).final_amount
        800000
    """
    if amount is None or amount < 0:
        raise InputValidationError([f"invalid contract amount: {amount!r}"])

    if terms is not None and not terms.is_empty:
        if abs(terms.total_percentage - 100) > 1e-9:
            raise InputValidationError(
                [f"payment percentages must sum to 100, got {terms.total_percentage:g}"]
            )

        return PaymentSchedule(
            down_rate=terms.contract_percentage,
            middle_rate=terms.progress_percentage,
            final_rate=terms.final_percentage,
            down_amount=round_half_up(amount * terms.contract_percentage / 100),
            middle_amount=round_half_up(amount * terms.progress_percentage / 100),
            final_amount=round_half_up(amount * terms.final_percentage / 100),
            is_from_quote=True,
            down_timing=terms.contract_timing,
            middle_timing=terms.progress_timing,
            final_timing=terms.final_timing,
        )

    down_rate, middle_rate, final_rate = default_rates(amount)
    total = round_half_up(amount)
    down_amount = round_half_up(amount * down_rate / 100)
    middle_amount = round_half_up(amount * middle_rate / 100)

    return PaymentSchedule(
        down_rate=down_rate,
        middle_rate=middle_rate,
        final_rate=final_rate,
        down_amount=down_amount,
        middle_amount=middle_amount,
        final_amount=total - down_amount - middle_amount,
        is_from_quote=False,
    )


def describe_payment_terms(schedule: PaymentSchedule, amount: float) -> str:
    """
    One-line payment summary used in generation prompts.
    """
    total = f"{round_half_up(amount):,}원"
    parts = [
        f"{row['label']} {row['rate']:g}% ({row['amount']:,}원, {row['timing']})"
        for row in schedule.installments()
    ]
    if not parts or (len(parts) == 1 and schedule.final_rate == 100):
        return f"지급조건: 총 {total}, 서비스 완료 후 일괄 지급"
    prefix = "견적서 지급조건" if schedule.is_from_quote else "지급조건"
    return f"{prefix}: 총 {total}, " + ", ".join(parts)
