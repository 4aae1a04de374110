import re
from datetime import date
from typing import Callable

from finbot.logger import get_logger
from finbot.utils.time import get_now_in_configured_timezone
from finbot.wizard.calculator import clamp_paid_installments, parse_due_date, reconcile_installments
from finbot.wizard.state import (
    ConnectionStatus,
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
from finbot.wizard.steps import STEPS, TERMINAL_STEP, StepDefinition, ValidationResult, installment_calc_for

logger = get_logger(__name__)

Listener = Callable[[WizardState], None]


class InvalidFieldValue(ValueError):
    """Raised by set_field when user input cannot be turned into a field value."""


# "1.500" or "12.345.678": dots grouping thousands, no decimal part
THOUSANDS_RE = re.compile(r"^[1-9]\d{0,2}(\.\d{3})+$")


# Coercion of raw input (chat text or already typed values)

def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())

def _text(value) -> str:
    return "" if value is None else str(value).strip()

def _amount(value) -> float | None:
    if _is_blank(value):
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        amount = float(value)
    else:
        raw = str(value).replace("R$", "").replace(" ", "")
        if "," in raw and "." in raw:
            raw = raw.replace(".", "").replace(",", ".")
        elif "," in raw:
            raw = raw.replace(",", ".")
        elif THOUSANDS_RE.match(raw):
            raw = raw.replace(".", "")
        try:
            amount = float(raw)
        except ValueError:
            raise InvalidFieldValue(f"'{value}' is not a valid amount.")
    if amount < 0 or amount >= 1_000_000_000:
        raise InvalidFieldValue("Amount must be between 0 and 1,000,000,000.")
    return round(amount, 2)

def _count(value, minimum: int = 0) -> int:
    try:
        count = int(str(value).strip()) if not isinstance(value, int) else value
    except ValueError:
        raise InvalidFieldValue(f"'{value}' is not a whole number.")
    if count < minimum:
        raise InvalidFieldValue(f"The value must be at least {minimum}.")
    return count

def _optional_count(value, minimum: int = 0) -> int | None:
    return None if _is_blank(value) else _count(value, minimum)

def _flag(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "on", "yes", "y")

def _choice(enum_cls, value):
    if _is_blank(value):
        return None
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidFieldValue(f"'{value}' is not a valid option.")

def _iso_date(value) -> str | None:
    if _is_blank(value):
        return None
    if isinstance(value, date):
        return value.isoformat()
    try:
        return parse_due_date(str(value)).isoformat()
    except ValueError:
        raise InvalidFieldValue("Dates must look like YYYY-MM-DD.")


# Field setters. Each one mutates the state in place.

def _set_wallet_id(state: WizardState, value):
    wallet_id = _text(value) or None
    if wallet_id != state.selections.wallet_id and isinstance(state.selections.payment, PixPayment):
        # PIX keys belong to a wallet
        state.selections.payment.pix_key_id = None
    state.selections.wallet_id = wallet_id

def _clear_paid_history(calc):
    calc.is_in_progress = False
    calc.paid_installments = 0
    calc.total_installments = None

def _set_payment_method(state: WizardState, value):
    method = _choice(PaymentMethod, value)
    if method == state.payment_method:
        return
    if method is None:
        state.selections.payment = None
    elif method == PaymentMethod.PIX:
        state.selections.payment = PixPayment()
    else:
        state.selections.payment = GatewayPayment()
    state.gateway_connection.status = ConnectionStatus.UNKNOWN
    _clear_paid_history(state.installment_calc)

def _set_movement_type(state: WizardState, value):
    payment = state.selections.payment
    if payment is None:
        raise InvalidFieldValue("Select a payment method first.")
    if not isinstance(payment, PixPayment):
        raise InvalidFieldValue("With Mercado Pago the movement type follows the payment type.")
    payment.movement_type = _choice(MovementType, value)
    if payment.movement_type != MovementType.INSTALLMENT:
        _clear_paid_history(state.installment_calc)

def _set_gateway_payment_type(state: WizardState, value):
    payment = state.selections.payment
    if not isinstance(payment, GatewayPayment):
        raise InvalidFieldValue("The Mercado Pago payment type needs the Mercado Pago payment method.")
    payment.payment_type = _choice(GatewayPaymentType, value)

def _set_pix_key_id(state: WizardState, value):
    payment = state.selections.payment
    if not isinstance(payment, PixPayment):
        raise InvalidFieldValue("PIX keys are only used with the PIX payment method.")
    payment.pix_key_id = _text(value) or None

def _set_relationship(state: WizardState, value):
    state.selections.relationship = _choice(Relationship, value) or Relationship.OTHER_OWES_ME

def _field_setter(attr: str, coerce: Callable):
    def setter(state: WizardState, value):
        setattr(state.fields, attr, coerce(value))
    return setter

def _set_installments(state: WizardState, value):
    state.fields.installments = _count(value, minimum=1)

def _set_input_mode(state: WizardState, value):
    mode = _choice(InputMode, value) or InputMode.TOTAL
    state.installment_calc.mode = mode
    if mode == InputMode.TOTAL:
        state.installment_calc.is_in_progress = False

def _set_installment_amount(state: WizardState, value):
    state.installment_calc.installment_amount = _amount(value)

def _set_total_installments(state: WizardState, value):
    calc = state.installment_calc
    calc.total_installments = _optional_count(value, minimum=1)
    calc.paid_installments = clamp_paid_installments(calc.paid_installments, calc.total_installments)

def _set_paid_installments(state: WizardState, value):
    calc = state.installment_calc
    calc.paid_installments = clamp_paid_installments(_count(value), calc.total_installments)

def _set_is_in_progress(state: WizardState, value):
    calc = state.installment_calc
    in_progress = _flag(value)
    if in_progress and not isinstance(state.selections.payment, PixPayment):
        raise InvalidFieldValue("Only PIX installments can start with paid history.")
    calc.is_in_progress = in_progress
    if calc.is_in_progress:
        # Paid history is entered per installment
        calc.mode = InputMode.PER_INSTALLMENT

def _set_interval(state: WizardState, value):
    state.recurring.interval = _choice(RecurringInterval, value) or RecurringInterval.MONTHLY

def _set_day_of_month(state: WizardState, value):
    day = _count(value, minimum=1)
    if day > 31:
        raise InvalidFieldValue("The day of the month must be between 1 and 31.")
    state.recurring.day_of_month = day

def _set_subscription_name(state: WizardState, value):
    state.recurring.subscription_name = _text(value)

def _set_duration_months(state: WizardState, value):
    state.recurring.duration_months = _optional_count(value, minimum=1)


FIELD_SETTERS: dict[str, Callable] = {
    "wallet_id": _set_wallet_id,
    "payment_method": _set_payment_method,
    "movement_type": _set_movement_type,
    "gateway_payment_type": _set_gateway_payment_type,
    "pix_key_id": _set_pix_key_id,
    "relationship": _set_relationship,
    "description": _field_setter("description", _text),
    "total_amount": _field_setter("total_amount", _amount),
    "installments": _set_installments,
    "due_date": _field_setter("due_date", _iso_date),
    "debtor_email": _field_setter("debtor_email", _text),
    "debtor_name": _field_setter("debtor_name", _text),
    "creditor_email": _field_setter("creditor_email", _text),
    "creditor_name": _field_setter("creditor_name", _text),
    "input_mode": _set_input_mode,
    "installment_amount": _set_installment_amount,
    "total_installments": _set_total_installments,
    "paid_installments": _set_paid_installments,
    "is_in_progress": _set_is_in_progress,
    "interval": _set_interval,
    "day_of_month": _set_day_of_month,
    "subscription_name": _set_subscription_name,
    "duration_months": _set_duration_months,
}

CALCULATOR_INPUTS = {
    "total_amount", "installments", "input_mode", "installment_amount",
    "total_installments", "paid_installments", "is_in_progress",
    "payment_method", "movement_type", "gateway_payment_type",
}


class WizardMachine:
    """
    Owns the WizardState of one wizard and is the only thing that mutates it.

    Subscribers are called with the state after every mutation.
    """

    def __init__(self, state: WizardState | None = None, clock: Callable = get_now_in_configured_timezone, steps: tuple[StepDefinition, ...] = STEPS):
        self._clock = clock
        self.steps = steps
        self.state = state or new_state(self.today())
        self._listeners: list[Listener] = []

    def today(self) -> date:
        return self._clock().date()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _emit(self):
        for listener in list(self._listeners):
            try:
                listener(self.state)
            except Exception as e:
                logger.error(f"Wizard listener {listener} failed: {e}", exc_info=True)

    @property
    def step(self) -> StepDefinition:
        return self.steps[self.state.step_index]

    @property
    def is_terminal(self) -> bool:
        return self.state.step_index == len(self.steps) - 1

    def visible_fields(self):
        return self.step.visible_fields(self.state)

    def validate_step(self, step_index: int | None = None) -> ValidationResult:
        index = self.state.step_index if step_index is None else step_index
        return self.steps[index].validate(self.state, self.today())

    def first_invalid_step(self) -> tuple[int, ValidationResult] | None:
        for index in range(TERMINAL_STEP):
            result = self.validate_step(index)
            if not result.ok:
                return index, result
        return None

    def next(self) -> ValidationResult:
        result = self.validate_step()
        if not result.ok:
            logger.debug(f"Step {self.step.id} blocked: {result.first_error}")
            return result
        if not self.is_terminal:
            self.state.step_index += 1
            self._emit()
        return result

    def prev(self) -> int:
        if self.state.step_index > 0:
            self.state.step_index -= 1
            self._emit()
        return self.state.step_index

    def go_to(self, step_index: int) -> int:
        self.state.step_index = max(0, min(int(step_index), len(self.steps) - 1))
        self._emit()
        return self.state.step_index

    def set_field(self, key: str, value) -> None:
        setter = FIELD_SETTERS.get(key)
        if setter is None:
            raise InvalidFieldValue(f"Unknown field '{key}'.")
        setter(self.state, value)
        if key in CALCULATOR_INPUTS:
            self._reconcile_installments()
        self._emit()

    def _reconcile_installments(self):
        if self.state.movement_type != MovementType.INSTALLMENT:
            return
        fields = self.state.fields
        breakdown = reconcile_installments(installment_calc_for(self.state), fields.total_amount, fields.installments)
        if breakdown.valid:
            fields.total_amount = breakdown.total_amount
            fields.installments = breakdown.installments

    def set_connection_status(self, status: ConnectionStatus) -> None:
        if self.state.gateway_connection.status != status:
            self.state.gateway_connection.status = status
            self._emit()

    def replace_state(self, state: WizardState) -> None:
        state.step_index = max(0, min(state.step_index, len(self.steps) - 1))
        self.state = state
        self._emit()

    def reset(self) -> None:
        self.state = new_state(self.today())
        self._emit()
