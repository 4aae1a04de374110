import re
from dataclasses import dataclass, replace
from datetime import date
from typing import Callable

from finbot.wizard.calculator import parse_due_date, reconcile_installments
from finbot.wizard.state import (
    ConnectionStatus,
    InputMode,
    InstallmentCalc,
    MovementType,
    PaymentMethod,
    Relationship,
    RecurringInterval,
    WizardState,
)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    first_error: str | None = None


VALID = ValidationResult(ok=True)


def invalid(message: str) -> ValidationResult:
    return ValidationResult(ok=False, first_error=message)


def _always(state: WizardState) -> bool:
    return True


@dataclass(frozen=True)
class FieldDefinition:
    key: str
    label: str
    is_relevant: Callable[[WizardState], bool] = _always


@dataclass(frozen=True)
class StepDefinition:
    id: str
    title: str
    validate: Callable[[WizardState, date], ValidationResult]
    fields: tuple[FieldDefinition, ...] = ()
    is_relevant: Callable[[WizardState], bool] = _always

    def visible_fields(self, state: WizardState) -> list[FieldDefinition]:
        return [f for f in self.fields if f.is_relevant(state)]


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_RE.match(value.strip())) if value else False


def _gateway_connected(state: WizardState) -> bool:
    return state.gateway_connection.status == ConnectionStatus.CONNECTED


# Relevance predicates

def _is_pix(state):
    return state.payment_method == PaymentMethod.PIX

def _is_gateway(state):
    return state.payment_method == PaymentMethod.GATEWAY

def _is_installment(state):
    return state.movement_type == MovementType.INSTALLMENT

def _is_recurring(state):
    return state.movement_type == MovementType.RECURRING

def _not_recurring(state):
    return state.movement_type != MovementType.RECURRING

def _is_monthly_recurring(state):
    return _is_recurring(state) and state.recurring.interval == RecurringInterval.MONTHLY

def _pix_installment(state):
    return _is_pix(state) and _is_installment(state)

def _in_progress(state):
    return _pix_installment(state) and state.installment_calc.is_in_progress

def _per_installment(state):
    return _is_installment(state) and state.installment_calc.mode == InputMode.PER_INSTALLMENT

def _types_total(state):
    return not _per_installment(state)

def _counts_installments(state):
    return _is_installment(state) and not _in_progress(state)

def installment_calc_for(state: WizardState) -> InstallmentCalc:
    """The installment inputs that apply to the current branch. Paid history only counts on PIX installments."""
    calc = state.installment_calc
    if calc.is_in_progress and not _in_progress(state):
        return replace(calc, is_in_progress=False)
    return calc

def _other_owes_me(state):
    return state.selections.relationship == Relationship.OTHER_OWES_ME

def _i_owe_other(state):
    return state.selections.relationship == Relationship.I_OWE_OTHER


# Validators

def validate_wallet(state: WizardState, today: date) -> ValidationResult:
    if not state.selections.wallet_id:
        return invalid("Select a wallet.")
    return VALID


def validate_payment_method(state: WizardState, today: date) -> ValidationResult:
    if state.payment_method is None:
        return invalid("Select a payment method.")
    if _is_gateway(state) and not _gateway_connected(state):
        return invalid("You need to connect your Mercado Pago account first.")
    return VALID


def validate_movement_type(state: WizardState, today: date) -> ValidationResult:
    if state.payment_method is None:
        return invalid("Select a payment method.")
    if _is_gateway(state):
        if not _gateway_connected(state):
            return invalid("You need to connect your Mercado Pago account first.")
        if state.selections.gateway_payment_type is None:
            return invalid("Select the Mercado Pago payment type.")
        return VALID
    if state.movement_type is None:
        return invalid("Select the movement type.")
    return VALID


def validate_parties(state: WizardState, today: date) -> ValidationResult:
    fields = state.fields
    if not fields.description.strip():
        return invalid("A description is required.")
    relationship = state.selections.relationship
    if relationship == Relationship.OTHER_OWES_ME and not is_valid_email(fields.debtor_email):
        return invalid("A valid debtor email is required.")
    if relationship == Relationship.I_OWE_OTHER and not is_valid_email(fields.creditor_email):
        return invalid("A valid creditor email is required.")
    return VALID


def validate_amounts(state: WizardState, today: date) -> ValidationResult:
    fields = state.fields
    calc = installment_calc_for(state)
    movement_type = state.movement_type

    if movement_type == MovementType.INSTALLMENT and calc.mode == InputMode.PER_INSTALLMENT:
        if not calc.installment_amount or calc.installment_amount <= 0:
            return invalid("Enter the amount of each installment.")
    if not fields.total_amount or fields.total_amount <= 0:
        return invalid("Enter a total amount greater than zero.")

    if movement_type == MovementType.RECURRING:
        recurring = state.recurring
        if not 1 <= recurring.day_of_month <= 31:
            return invalid("The day of the month must be between 1 and 31.")
        if recurring.duration_months is not None and recurring.duration_months < 1:
            return invalid("The duration must be at least one month.")
    else:
        if not fields.due_date:
            return invalid("A due date is required.")
        try:
            due = parse_due_date(fields.due_date)
        except ValueError:
            return invalid("The due date must look like YYYY-MM-DD.")
        if due < today:
            return invalid("The due date cannot be in the past.")

    if movement_type == MovementType.INSTALLMENT:
        if fields.installments < 1:
            return invalid("The number of installments must be at least 1.")
        if calc.is_in_progress:
            breakdown = reconcile_installments(calc, fields.total_amount, fields.installments)
            if not breakdown.valid:
                return invalid(breakdown.error)

    if _is_pix(state) and not state.selections.pix_key_id:
        return invalid("Select or create a PIX key.")
    return VALID


def validate_confirmation(state: WizardState, today: date) -> ValidationResult:
    return VALID


STEPS: tuple[StepDefinition, ...] = (
    StepDefinition(
        id="wallet",
        title="Wallet",
        validate=validate_wallet,
        fields=(FieldDefinition("wallet_id", "Wallet"),),
    ),
    StepDefinition(
        id="payment_method",
        title="Payment method",
        validate=validate_payment_method,
        fields=(FieldDefinition("payment_method", "Payment method"),),
    ),
    StepDefinition(
        id="movement_type",
        title="Movement type",
        validate=validate_movement_type,
        fields=(
            FieldDefinition("movement_type", "Movement type", _is_pix),
            FieldDefinition("gateway_payment_type", "Mercado Pago payment type", _is_gateway),
        ),
    ),
    StepDefinition(
        id="parties",
        title="People",
        validate=validate_parties,
        fields=(
            FieldDefinition("relationship", "Who owes whom"),
            FieldDefinition("description", "Description"),
            FieldDefinition("debtor_email", "Debtor email", _other_owes_me),
            FieldDefinition("debtor_name", "Debtor name", _other_owes_me),
            FieldDefinition("creditor_email", "Creditor email", _i_owe_other),
            FieldDefinition("creditor_name", "Creditor name", _i_owe_other),
        ),
    ),
    StepDefinition(
        id="amounts",
        title="Amounts",
        validate=validate_amounts,
        fields=(
            FieldDefinition("pix_key_id", "PIX key", _is_pix),
            FieldDefinition("input_mode", "Amount input", _is_installment),
            FieldDefinition("total_amount", "Total amount", _types_total),
            FieldDefinition("installment_amount", "Installment amount", _per_installment),
            FieldDefinition("installments", "Installments", _counts_installments),
            FieldDefinition("is_in_progress", "Already in progress", _pix_installment),
            FieldDefinition("total_installments", "Total installments", _in_progress),
            FieldDefinition("paid_installments", "Paid installments", _in_progress),
            FieldDefinition("due_date", "Due date", _not_recurring),
            FieldDefinition("interval", "Interval", _is_recurring),
            FieldDefinition("day_of_month", "Day of the month", _is_monthly_recurring),
            FieldDefinition("subscription_name", "Subscription name", _is_recurring),
            FieldDefinition("duration_months", "Duration (months)", _is_recurring),
        ),
    ),
    StepDefinition(
        id="confirmation",
        title="Confirmation",
        validate=validate_confirmation,
    ),
)

TERMINAL_STEP = len(STEPS) - 1
