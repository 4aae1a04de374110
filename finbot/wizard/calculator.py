"""
Derived money and date values of the movement wizard.

Everything here is pure: the same inputs always give the same outputs and
nothing reads the clock on its own, callers pass "now" in.
"""
import calendar
from dataclasses import dataclass
from datetime import date, datetime, time, timezone

from finbot.wizard.state import InputMode, InstallmentCalc


@dataclass(frozen=True)
class InstallmentBreakdown:
    total_amount: float | None
    installments: int
    remaining: int
    valid: bool = True
    error: str | None = None


def round_money(value: float) -> float:
    return round(value, 2)


def per_installment_amount(total_amount: float | None, installments: int) -> float | None:
    """Display-only share of each installment when the total was typed in."""
    if not total_amount or installments <= 0:
        return None
    return round_money(total_amount / installments)


def clamp_paid_installments(paid: int, total_installments: int | None) -> int:
    paid = max(0, paid)
    if total_installments is not None:
        paid = min(paid, max(0, total_installments))
    return paid


def reconcile_installments(calc: InstallmentCalc, total_amount: float | None, installments: int) -> InstallmentBreakdown:
    """
    Keeps total amount, per-installment amount and installment count consistent.

    - total mode: the typed total wins, nothing is derived.
    - per-installment mode: total = amount x installments.
    - per-installment mode on a debt already in progress:
      remaining = total_installments - paid_installments must be positive,
      total = amount x remaining and the installment count becomes remaining.
    """
    if calc.mode == InputMode.TOTAL:
        return InstallmentBreakdown(total_amount=total_amount, installments=installments, remaining=installments)

    if calc.is_in_progress:
        if calc.total_installments is None:
            return InstallmentBreakdown(
                total_amount=total_amount,
                installments=installments,
                remaining=0,
                valid=False,
                error="Enter the total number of installments.",
            )
        remaining = calc.total_installments - calc.paid_installments
        if remaining <= 0:
            return InstallmentBreakdown(
                total_amount=total_amount,
                installments=installments,
                remaining=max(remaining, 0),
                valid=False,
                error="Paid installments must be fewer than the total number of installments.",
            )
        if calc.installment_amount is None:
            return InstallmentBreakdown(total_amount=total_amount, installments=remaining, remaining=remaining)
        return InstallmentBreakdown(
            total_amount=round_money(calc.installment_amount * remaining),
            installments=remaining,
            remaining=remaining,
        )

    if calc.installment_amount is None or installments <= 0:
        return InstallmentBreakdown(total_amount=total_amount, installments=installments, remaining=installments)
    return InstallmentBreakdown(
        total_amount=round_money(calc.installment_amount * installments),
        installments=installments,
        remaining=installments,
    )


def _clamped_date(year: int, month: int, day: int) -> date:
    # Days past the end of the month land on its last day (31 -> Apr 30, Feb 28/29)
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last_day))


def next_recurring_due_date(day_of_month: int, now: datetime) -> datetime:
    """
    First charge of a monthly recurring movement.

    The charge falls on day_of_month of the current month at local midnight;
    if that day is already behind today it moves to the next month. Today
    itself is not in the past.
    """
    due = _clamped_date(now.year, now.month, day_of_month)
    if due < now.date():
        year, month = (now.year + 1, 1) if now.month == 12 else (now.year, now.month + 1)
        due = _clamped_date(year, month, day_of_month)
    return datetime.combine(due, time(0, 0), tzinfo=now.tzinfo)


def parse_due_date(value: str) -> date:
    return date.fromisoformat(value.strip())


def due_date_to_iso(value: str) -> str:
    """A chosen due date is due until the end of that day, UTC."""
    due = datetime.combine(parse_due_date(value), time(23, 59, 59), tzinfo=timezone.utc)
    return due.isoformat().replace("+00:00", "Z")


def to_iso(moment: datetime) -> str:
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
        return moment.isoformat().replace("+00:00", "Z")
    return moment.isoformat()
