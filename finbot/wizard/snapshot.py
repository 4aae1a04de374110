"""
JSON form of the wizard state kept in the progress slot.

Only user input is written; connection status and other in-flight data are
left out. Reading is lenient: missing or malformed values take their
defaults, unknown keys are ignored.
"""
from datetime import date

from finbot.wizard.state import (
    GatewayPayment,
    GatewayPaymentType,
    InputMode,
    MovementType,
    PaymentMethod,
    PixPayment,
    RecurringInterval,
    Relationship,
    WizardState,
    new_state,
)

SNAPSHOT_VERSION = 1


class UnsupportedSnapshot(ValueError):
    pass


def _value(member):
    return member.value if member is not None else None


def state_to_snapshot(state: WizardState) -> dict:
    selections = state.selections
    fields = state.fields
    calc = state.installment_calc
    recurring = state.recurring
    pix = selections.payment if isinstance(selections.payment, PixPayment) else None
    return {
        "version": SNAPSHOT_VERSION,
        "step_index": state.step_index,
        "selections": {
            "wallet_id": selections.wallet_id,
            "payment_method": _value(selections.payment_method),
            "movement_type": _value(pix.movement_type) if pix else None,
            "gateway_payment_type": _value(selections.gateway_payment_type),
            "relationship": selections.relationship.value,
        },
        "fields": {
            "description": fields.description,
            "total_amount": fields.total_amount,
            "installments": fields.installments,
            "due_date": fields.due_date,
            "debtor_email": fields.debtor_email,
            "debtor_name": fields.debtor_name,
            "creditor_email": fields.creditor_email,
            "creditor_name": fields.creditor_name,
            "pix_key_id": selections.pix_key_id,
        },
        "installment_calc": {
            "mode": calc.mode.value,
            "installment_amount": calc.installment_amount,
            "total_installments": calc.total_installments,
            "is_in_progress": calc.is_in_progress,
            "paid_installments": calc.paid_installments,
        },
        "recurring": {
            "interval": recurring.interval.value,
            "day_of_month": recurring.day_of_month,
            "subscription_name": recurring.subscription_name,
            "duration_months": recurring.duration_months,
        },
    }


def _section(data: dict, name: str) -> dict:
    section = data.get(name)
    return section if isinstance(section, dict) else {}

def _enum_or(enum_cls, value, default):
    try:
        return enum_cls(value) if value is not None else default
    except ValueError:
        return default

def _int_or(value, default):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return int(value)

def _float_or(value, default):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return float(value)

def _str_or(value, default):
    return value if isinstance(value, str) else default


def state_from_snapshot(data: dict, today: date | None = None) -> WizardState:
    if not isinstance(data, dict):
        raise UnsupportedSnapshot("Snapshot is not an object.")
    version = data.get("version", SNAPSHOT_VERSION)
    if not isinstance(version, int) or version > SNAPSHOT_VERSION:
        raise UnsupportedSnapshot(f"Unsupported snapshot version: {version!r}")

    state = new_state(today)
    selections = _section(data, "selections")
    fields = _section(data, "fields")
    calc = _section(data, "installment_calc")
    recurring = _section(data, "recurring")

    state.step_index = _int_or(data.get("step_index"), 0)

    state.selections.wallet_id = _str_or(selections.get("wallet_id"), None)
    method = _enum_or(PaymentMethod, selections.get("payment_method"), None)
    if method == PaymentMethod.PIX:
        state.selections.payment = PixPayment(
            movement_type=_enum_or(MovementType, selections.get("movement_type"), None),
            pix_key_id=_str_or(fields.get("pix_key_id"), None),
        )
    elif method == PaymentMethod.GATEWAY:
        state.selections.payment = GatewayPayment(
            payment_type=_enum_or(GatewayPaymentType, selections.get("gateway_payment_type"), None),
        )
    state.selections.relationship = _enum_or(Relationship, selections.get("relationship"), Relationship.OTHER_OWES_ME)

    state.fields.description = _str_or(fields.get("description"), "")
    state.fields.total_amount = _float_or(fields.get("total_amount"), None)
    state.fields.installments = max(1, _int_or(fields.get("installments"), 1))
    state.fields.due_date = _str_or(fields.get("due_date"), None)
    state.fields.debtor_email = _str_or(fields.get("debtor_email"), "")
    state.fields.debtor_name = _str_or(fields.get("debtor_name"), "")
    state.fields.creditor_email = _str_or(fields.get("creditor_email"), "")
    state.fields.creditor_name = _str_or(fields.get("creditor_name"), "")

    state.installment_calc.mode = _enum_or(InputMode, calc.get("mode"), InputMode.TOTAL)
    state.installment_calc.installment_amount = _float_or(calc.get("installment_amount"), None)
    state.installment_calc.total_installments = _int_or(calc.get("total_installments"), None)
    state.installment_calc.is_in_progress = calc.get("is_in_progress") is True
    state.installment_calc.paid_installments = max(0, _int_or(calc.get("paid_installments"), 0))

    state.recurring.interval = _enum_or(RecurringInterval, recurring.get("interval"), RecurringInterval.MONTHLY)
    day = _int_or(recurring.get("day_of_month"), state.recurring.day_of_month)
    if 1 <= day <= 31:
        state.recurring.day_of_month = day
    state.recurring.subscription_name = _str_or(recurring.get("subscription_name"), "")
    state.recurring.duration_months = _int_or(recurring.get("duration_months"), None)
    return state
