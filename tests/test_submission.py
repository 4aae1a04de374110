"""Tests for turning the wizard state into the backend payload."""

import pytest

from finbot.services.submission import UserProfile, assemble_payload, resolve_parties
from finbot.wizard.machine import WizardMachine
from finbot.wizard.state import Fields, Relationship

ME = UserProfile(email="me@example.com", name="Me")


@pytest.fixture
def machine(clock):
    machine = WizardMachine(clock=clock)
    machine.set_field("wallet_id", "w1")
    machine.set_field("description", "  Rent  ")
    machine.set_field("debtor_email", "ana@example.com")
    machine.set_field("debtor_name", "Ana")
    machine.set_field("total_amount", 1500)
    machine.set_field("due_date", "2024-07-01")
    return machine


@pytest.mark.parametrize(
    "relationship, expected",
    [
        (Relationship.OTHER_OWES_ME, ("ana@example.com", "Ana", "me@example.com", "Me")),
        (Relationship.I_OWE_OTHER, ("me@example.com", "Me", "shop@example.com", "Shop")),
        (Relationship.I_OWE_MYSELF, ("me@example.com", "Me", "me@example.com", "Me")),
    ],
)
def test_resolve_parties(relationship, expected):
    fields = Fields(debtor_email="ana@example.com", debtor_name="Ana", creditor_email="shop@example.com", creditor_name="Shop")

    parties = resolve_parties(relationship, ME, fields)

    assert (parties.debtor_email, parties.debtor_name, parties.creditor_email, parties.creditor_name) == expected


def test_resolve_parties_rejects_unknown_relationship():
    with pytest.raises(ValueError):
        resolve_parties("friends", ME, Fields())


def test_pix_single_payload(machine, now):
    machine.set_field("payment_method", "pix")
    machine.set_field("movement_type", "single")
    machine.set_field("pix_key_id", "k1")

    payload = assemble_payload(machine.state, ME, now)

    assert payload == {
        "walletId": "w1",
        "description": "Rent",
        "totalAmount": 1500.0,
        "dueDate": "2024-07-01T23:59:59Z",
        "debtorEmail": "ana@example.com",
        "creditorEmail": "me@example.com",
        "isPersonalDebt": False,
        "debtorName": "Ana",
        "creditorName": "Me",
        "useGateway": False,
        "pixKeyId": "k1",
        "installments": 1,
    }


def test_pix_in_progress_installments(machine, now):
    machine.set_field("payment_method", "pix")
    machine.set_field("movement_type", "installment")
    machine.set_field("pix_key_id", "k1")
    machine.set_field("installments", 10)
    machine.set_field("is_in_progress", True)
    machine.set_field("installment_amount", 250)
    machine.set_field("total_installments", 10)
    machine.set_field("paid_installments", 4)

    payload = assemble_payload(machine.state, ME, now)

    assert payload["installments"] == 6
    assert payload["totalAmount"] == 1500.0
    assert payload["isInProgress"] is True
    assert payload["installmentAmount"] == 250.0
    assert payload["totalInstallments"] == 10
    assert payload["paidInstallments"] == 4


def test_pix_recurring_uses_next_charge_date(machine, now):
    machine.set_field("payment_method", "pix")
    machine.set_field("movement_type", "recurring")
    machine.set_field("day_of_month", 5)
    machine.set_field("duration_months", 12)

    payload = assemble_payload(machine.state, ME, now)

    # 2024-07-05 at midnight -03:00
    assert payload["dueDate"] == "2024-07-05T03:00:00Z"
    assert payload["isRecurring"] is True
    assert payload["recurringInterval"] == "MONTHLY"
    assert payload["recurringDay"] == 5
    assert payload["installments"] == 1
    assert payload["recurringConfig"] == {"subscriptionName": "Rent", "durationMonths": 12}


def test_gateway_installment_payload(machine, now):
    machine.set_field("payment_method", "gateway")
    machine.set_field("gateway_payment_type", "INSTALLMENT")
    machine.set_field("installments", 3)

    payload = assemble_payload(machine.state, ME, now)

    assert payload["useGateway"] is True
    assert payload["preferredGateway"] == "MERCADOPAGO"
    assert payload["mercadoPagoPaymentType"] == "INSTALLMENT"
    assert payload["installments"] == 3
    assert payload["installmentConfig"] == {"interval": "MONTHLY", "intervalCount": 1}
    assert "pixKeyId" not in payload


def test_gateway_recurring_card_payload(machine, now):
    machine.set_field("payment_method", "gateway")
    machine.set_field("gateway_payment_type", "RECURRING_CARD")
    machine.set_field("subscription_name", "Gym")

    payload = assemble_payload(machine.state, ME, now)

    assert payload["mercadoPagoPaymentType"] == "RECURRING_CARD"
    assert payload["recurringConfig"]["subscriptionName"] == "Gym"
    assert payload["recurringConfig"]["durationMonths"] is None


def test_gateway_single_pix_payload(machine, now):
    machine.set_field("payment_method", "gateway")
    machine.set_field("gateway_payment_type", "SINGLE_PIX")

    payload = assemble_payload(machine.state, ME, now)

    assert payload["installments"] == 1
    assert payload["dueDate"] == "2024-07-01T23:59:59Z"


def test_personal_bill_payload(machine, now):
    machine.set_field("payment_method", "pix")
    machine.set_field("movement_type", "single")
    machine.set_field("relationship", "i-owe-myself")

    payload = assemble_payload(machine.state, ME, now)

    assert payload["isPersonalDebt"] is True
    assert payload["debtorEmail"] == payload["creditorEmail"] == "me@example.com"


def test_empty_names_are_left_out(machine, now):
    machine.set_field("payment_method", "pix")
    machine.set_field("movement_type", "single")
    machine.set_field("debtor_name", "")

    payload = assemble_payload(machine.state, UserProfile(email="me@example.com"), now)

    assert "debtorName" not in payload
    assert "creditorName" not in payload


def test_gateway_installments_ignore_earlier_pix_history(machine, now):
    machine.set_field("payment_method", "pix")
    machine.set_field("movement_type", "installment")
    machine.set_field("is_in_progress", True)
    machine.set_field("installment_amount", 250)
    machine.set_field("total_installments", 10)
    machine.set_field("paid_installments", 4)
    machine.set_field("payment_method", "gateway")
    machine.set_field("gateway_payment_type", "INSTALLMENT")
    machine.set_field("installment_amount", 100)
    machine.set_field("installments", 12)

    payload = assemble_payload(machine.state, ME, now)

    assert payload["installments"] == 12
    assert payload["totalAmount"] == 1200.0
    assert "isInProgress" not in payload
    assert "paidInstallments" not in payload
