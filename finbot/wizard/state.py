from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import ClassVar


class PaymentMethod(str, Enum):
    PIX = "pix"
    GATEWAY = "gateway"


class MovementType(str, Enum):
    SINGLE = "single"
    INSTALLMENT = "installment"
    RECURRING = "recurring"


class GatewayPaymentType(str, Enum):
    INSTALLMENT = "INSTALLMENT"
    SINGLE_PIX = "SINGLE_PIX"
    RECURRING_CARD = "RECURRING_CARD"

    @property
    def movement_type(self) -> MovementType:
        return _GATEWAY_MOVEMENT_TYPES[self]


_GATEWAY_MOVEMENT_TYPES = {
    GatewayPaymentType.INSTALLMENT: MovementType.INSTALLMENT,
    GatewayPaymentType.SINGLE_PIX: MovementType.SINGLE,
    GatewayPaymentType.RECURRING_CARD: MovementType.RECURRING,
}


class Relationship(str, Enum):
    OTHER_OWES_ME = "other-owes-me"
    I_OWE_OTHER = "i-owe-other"
    I_OWE_MYSELF = "i-owe-myself"


class InputMode(str, Enum):
    TOTAL = "total"
    PER_INSTALLMENT = "per-installment"


class RecurringInterval(str, Enum):
    MONTHLY = "MONTHLY"
    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"


class ConnectionStatus(str, Enum):
    UNKNOWN = "unknown"
    CHECKING = "checking"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


@dataclass
class PixPayment:
    """Manual PIX branch: the user picks the movement type and a PIX key."""

    method: ClassVar[PaymentMethod] = PaymentMethod.PIX

    movement_type: MovementType | None = None
    pix_key_id: str | None = None


@dataclass
class GatewayPayment:
    """Online gateway branch: the gateway payment type implies the movement type."""

    method: ClassVar[PaymentMethod] = PaymentMethod.GATEWAY

    payment_type: GatewayPaymentType | None = None


@dataclass
class Selections:
    wallet_id: str | None = None
    payment: PixPayment | GatewayPayment | None = None
    relationship: Relationship = Relationship.OTHER_OWES_ME

    @property
    def payment_method(self) -> PaymentMethod | None:
        return self.payment.method if self.payment else None

    @property
    def movement_type(self) -> MovementType | None:
        if isinstance(self.payment, PixPayment):
            return self.payment.movement_type
        if isinstance(self.payment, GatewayPayment) and self.payment.payment_type:
            return self.payment.payment_type.movement_type
        return None

    @property
    def gateway_payment_type(self) -> GatewayPaymentType | None:
        if isinstance(self.payment, GatewayPayment):
            return self.payment.payment_type
        return None

    @property
    def pix_key_id(self) -> str | None:
        if isinstance(self.payment, PixPayment):
            return self.payment.pix_key_id
        return None


@dataclass
class Fields:
    description: str = ""
    total_amount: float | None = None
    installments: int = 1
    due_date: str | None = None  # YYYY-MM-DD
    debtor_email: str = ""
    debtor_name: str = ""
    creditor_email: str = ""
    creditor_name: str = ""


@dataclass
class InstallmentCalc:
    mode: InputMode = InputMode.TOTAL
    installment_amount: float | None = None
    total_installments: int | None = None
    is_in_progress: bool = False
    paid_installments: int = 0


@dataclass
class RecurringConfig:
    interval: RecurringInterval = RecurringInterval.MONTHLY
    day_of_month: int = 1
    subscription_name: str = ""
    duration_months: int | None = None


@dataclass
class GatewayConnection:
    status: ConnectionStatus = ConnectionStatus.UNKNOWN


@dataclass
class WizardState:
    step_index: int = 0
    selections: Selections = field(default_factory=Selections)
    fields: Fields = field(default_factory=Fields)
    installment_calc: InstallmentCalc = field(default_factory=InstallmentCalc)
    recurring: RecurringConfig = field(default_factory=RecurringConfig)
    gateway_connection: GatewayConnection = field(default_factory=GatewayConnection)

    @property
    def payment_method(self) -> PaymentMethod | None:
        return self.selections.payment_method

    @property
    def movement_type(self) -> MovementType | None:
        return self.selections.movement_type


def new_state(today: date | None = None) -> WizardState:
    """A fresh wizard; recurring charges default to today's day of the month."""
    today = today or date.today()
    return WizardState(recurring=RecurringConfig(day_of_month=today.day))
