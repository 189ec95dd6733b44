"""Amortization arithmetic for installment loans.

Pure functions over ``Decimal``. Currency results are rounded to cents;
nothing in here touches the database.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Mapping

from lendpool.core.exceptions import InvalidArgumentError

CENT = Decimal("0.01")
RATE_PLACES = Decimal("0.0001")
MONTHS_PER_YEAR = 12


def _to_decimal(value: Any, name: str) -> Decimal:
    """Convert a numeric input to a finite Decimal or raise InvalidArgumentError."""
    if isinstance(value, bool) or value is None:
        raise InvalidArgumentError(f"{name} must be numeric, got {value!r}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise InvalidArgumentError(f"{name} must be numeric, got {value!r}")
    if not result.is_finite():
        raise InvalidArgumentError(f"{name} must be finite, got {value!r}")
    return result


def to_money(value: Any, name: str = "amount") -> Decimal:
    """Round a numeric value half-up to cents."""
    return _to_decimal(value, name).quantize(CENT, rounding=ROUND_HALF_UP)


def to_rate(value: Any, name: str = "interest_rate") -> Decimal:
    """Round an annual rate fraction half-up to four decimal places."""
    return _to_decimal(value, name).quantize(RATE_PLACES, rounding=ROUND_HALF_UP)


def monthly_rate(annual_rate: Any) -> Decimal:
    """Periodic rate for monthly installments."""
    return _to_decimal(annual_rate, "annual_rate") / MONTHS_PER_YEAR


def calculate_payment(principal: Any, periodic_rate: Any, num_periods: Any) -> Decimal:
    """
    Level payment that retires principal over num_periods.

    payment = principal * r / (1 - (1 + r) ** -n), rounded to cents.
    A zero rate degenerates to principal / n.

    Args:
        principal: Amount borrowed, > 0
        periodic_rate: Interest rate per period, >= 0
        num_periods: Number of payments, a positive integer

    Returns:
        Payment per period

    Raises:
        InvalidArgumentError: If any input is non-numeric or out of domain
    """
    pv = _to_decimal(principal, "principal")
    r = _to_decimal(periodic_rate, "periodic_rate")
    n = _to_decimal(num_periods, "num_periods")

    if pv <= 0:
        raise InvalidArgumentError("principal must be greater than 0")
    if r < 0:
        raise InvalidArgumentError("periodic_rate must not be negative")
    if n <= 0 or n != n.to_integral_value():
        raise InvalidArgumentError("num_periods must be a positive integer")

    periods = int(n)
    if r == 0:
        payment = pv / periods
    else:
        payment = pv * r / (1 - (1 + r) ** -periods)
    return payment.quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_installment(principal: Any, annual_rate: Any, term_months: Any) -> Decimal:
    """Monthly installment for an annual rate and a term in months."""
    return calculate_payment(principal, monthly_rate(annual_rate), term_months)


def compute_funding_deadline(approval_timestamp: datetime, window_days: int) -> datetime:
    """Close of the funding window, window_days calendar days after approval."""
    if window_days < 0:
        raise InvalidArgumentError("window_days must not be negative")
    return approval_timestamp + timedelta(days=window_days)


@dataclass(frozen=True)
class InstallmentSplit:
    """Interest and principal components of one installment."""

    interest: Decimal
    principal: Decimal


def split_installment(
    remaining_balance: Decimal,
    annual_rate: Decimal,
    installment_amt: Decimal,
) -> InstallmentSplit:
    """
    Split an installment into the month's interest and the principal it retires.

    Args:
        remaining_balance: Outstanding principal before the payment
        annual_rate: Annual interest rate as a fraction
        installment_amt: Scheduled installment

    Returns:
        InstallmentSplit with interest rounded to cents
    """
    interest = (
        _to_decimal(remaining_balance, "remaining_balance") * monthly_rate(annual_rate)
    ).quantize(CENT, rounding=ROUND_HALF_UP)
    return InstallmentSplit(
        interest=interest,
        principal=_to_decimal(installment_amt, "installment_amt") - interest,
    )


def allocate_pro_rata(total: Decimal, shares: Mapping[int, Decimal]) -> dict[int, Decimal]:
    """
    Split total across holders in proportion to their shares.

    Each cut is truncated to cents and the leftover cents go to the holder
    with the lowest key, so the cuts always add up to total exactly.

    Args:
        total: Amount to distribute, in cents
        shares: Holder key mapped to the size of its share

    Returns:
        Holder key mapped to its cut
    """
    if not shares:
        raise InvalidArgumentError("cannot allocate across an empty set of shares")
    amount = to_money(total, "total")
    if amount < 0:
        raise InvalidArgumentError("total must not be negative")
    pool = sum(shares.values(), Decimal("0"))
    if pool <= 0:
        raise InvalidArgumentError("shares must sum to a positive amount")

    cuts = {
        holder: (amount * share / pool).quantize(CENT, rounding=ROUND_DOWN)
        for holder, share in shares.items()
    }
    residue = amount - sum(cuts.values(), Decimal("0"))
    cuts[min(cuts)] += residue
    return cuts


def amortization_schedule(
    remaining_balance: Decimal,
    annual_rate: Decimal,
    installment_amt: Decimal,
) -> list[dict[str, Decimal]]:
    """
    Project the remaining installments of a loan.

    Uses the same interest rounding and final-payment rule as installment
    processing: the last payment is the remaining balance plus its interest.

    Returns:
        One entry per remaining installment with payment, interest,
        principal and the balance left afterwards
    """
    balance = to_money(remaining_balance, "remaining_balance")
    installment = to_money(installment_amt, "installment_amt")
    schedule = []
    while balance > 0:
        split = split_installment(balance, annual_rate, installment)
        if split.principal <= 0:
            raise InvalidArgumentError("installment does not cover the monthly interest")
        if balance <= split.principal:
            schedule.append({
                "payment": balance + split.interest,
                "interest": split.interest,
                "principal": balance,
                "remaining_balance": Decimal("0.00"),
            })
            break
        balance -= split.principal
        schedule.append({
            "payment": installment,
            "interest": split.interest,
            "principal": split.principal,
            "remaining_balance": balance,
        })
    return schedule
