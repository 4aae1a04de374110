from dataclasses import dataclass
from datetime import datetime

from finbot.wizard.calculator import due_date_to_iso, next_recurring_due_date, to_iso
from finbot.wizard.state import (
    Fields,
    GatewayPaymentType,
    MovementType,
    PaymentMethod,
    Relationship,
    WizardState,
)

PREFERRED_GATEWAY = "MERCADOPAGO"


@dataclass(frozen=True)
class UserProfile:
    """The logged-in user, as known by the backend."""
    email: str
    name: str = ""


@dataclass(frozen=True)
class Parties:
    debtor_email: str
    debtor_name: str
    creditor_email: str
    creditor_name: str


def resolve_parties(relationship: Relationship, user: UserProfile, fields: Fields) -> Parties:
    if relationship == Relationship.OTHER_OWES_ME:
        return Parties(fields.debtor_email, fields.debtor_name, user.email, user.name)
    if relationship == Relationship.I_OWE_OTHER:
        return Parties(user.email, user.name, fields.creditor_email, fields.creditor_name)
    if relationship == Relationship.I_OWE_MYSELF:
        return Parties(user.email, user.name, user.email, user.name)
    raise ValueError(f"Unknown relationship: {relationship!r}")


def _recurring_keys(state: WizardState, description: str) -> dict:
    recurring = state.recurring
    return {
        "isRecurring": True,
        "recurringInterval": recurring.interval.value,
        "recurringDay": recurring.day_of_month,
        "installments": 1,
        "recurringConfig": {
            "subscriptionName": recurring.subscription_name or description,
            "durationMonths": recurring.duration_months,
        },
    }


def assemble_payload(state: WizardState, user: UserProfile, now: datetime) -> dict:
    """Backend body of POST /debts for the current wizard state."""
    fields = state.fields
    selections = state.selections
    movement_type = state.movement_type
    description = fields.description.strip()
    parties = resolve_parties(selections.relationship, user, fields)

    if movement_type == MovementType.RECURRING:
        due_date = to_iso(next_recurring_due_date(state.recurring.day_of_month, now))
    elif fields.due_date:
        due_date = due_date_to_iso(fields.due_date)
    else:
        due_date = None

    payload = {
        "walletId": selections.wallet_id,
        "description": description,
        "totalAmount": fields.total_amount,
        "dueDate": due_date,
        "debtorEmail": parties.debtor_email,
        "creditorEmail": parties.creditor_email,
        "isPersonalDebt": selections.relationship != Relationship.OTHER_OWES_ME,
    }
    if parties.debtor_name:
        payload["debtorName"] = parties.debtor_name
    if parties.creditor_name:
        payload["creditorName"] = parties.creditor_name

    if state.payment_method == PaymentMethod.GATEWAY:
        payment_type = selections.gateway_payment_type
        payload["useGateway"] = True
        payload["preferredGateway"] = PREFERRED_GATEWAY
        payload["mercadoPagoPaymentType"] = payment_type.value if payment_type else None
        if payment_type == GatewayPaymentType.INSTALLMENT:
            payload["installments"] = fields.installments
            payload["installmentConfig"] = {"interval": "MONTHLY", "intervalCount": 1}
        elif payment_type == GatewayPaymentType.RECURRING_CARD:
            payload.update(_recurring_keys(state, description))
        else:
            payload["installments"] = 1
        return payload

    payload["useGateway"] = False
    payload["pixKeyId"] = selections.pix_key_id
    if movement_type == MovementType.RECURRING:
        payload.update(_recurring_keys(state, description))
    elif movement_type == MovementType.INSTALLMENT:
        payload["installments"] = fields.installments
        calc = state.installment_calc
        if calc.is_in_progress:
            payload["isInProgress"] = True
            payload["installmentAmount"] = calc.installment_amount
            payload["totalInstallments"] = calc.total_installments
            payload["paidInstallments"] = calc.paid_installments
    else:
        payload["installments"] = 1
    return payload


def duplicate_criteria(payload: dict) -> dict:
    return {
        "walletId": payload.get("walletId"),
        "debtorEmail": payload.get("debtorEmail"),
        "creditorEmail": payload.get("creditorEmail"),
        "totalAmount": payload.get("totalAmount"),
        "description": payload.get("description"),
    }
