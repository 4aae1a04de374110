from typing import Callable

from finbot.logger import get_logger
from finbot.services.api_client import PIX_KEY_TYPES, ApiClient, ApiError
from finbot.services.duplicate_gate import DuplicateGate, GateResult, GateStatus, Resolution
from finbot.services.gateway_service import GatewayReconciler
from finbot.services.progress_service import ProgressPersistence
from finbot.services.submission import UserProfile, assemble_payload
from finbot.utils.time import get_now_in_configured_timezone
from finbot.wizard.machine import InvalidFieldValue, WizardMachine
from finbot.wizard.state import ConnectionStatus, PaymentMethod, WizardState
from finbot.wizard.steps import TERMINAL_STEP, ValidationResult, is_valid_email

logger = get_logger(__name__)

Notify = Callable[[str, str], None]


class WizardSession:
    """
    The movement wizard of one user: the state machine plus everything around
    it (saved progress, gateway connection, duplicate check, submission).
    """

    def __init__(self, user: UserProfile, api: ApiClient, store, notify: Notify, clock: Callable = get_now_in_configured_timezone, timer_factory: Callable | None = None):
        self.user = user
        self.api = api
        self.store = store
        self.notify = notify
        self.clock = clock
        self.machine = WizardMachine(clock=clock)
        self.progress = ProgressPersistence(self.machine, store, timer_factory=timer_factory)
        self.gateway = GatewayReconciler(self.machine, api.gateway, store, notify, token_source=lambda: self._token)
        self.gate = DuplicateGate(api.debts)
        self._token = None
        # Transient UI state, never persisted
        self.awaiting_field: str | None = None
        self.new_pix_key_type: str | None = None

    @property
    def state(self) -> WizardState:
        return self.machine.state

    @property
    def is_open(self) -> bool:
        return self._token is not None

    def open(self, query_params: dict | None = None) -> WizardState:
        """Opens the wizard, restoring saved progress and any gateway return trip."""
        self._token = object()
        self.progress.open()
        returning = self.gateway.has_pending_return(query_params)
        self.progress.restore(refresh_gateway=None if returning else self.gateway.refresh)
        if returning:
            self.gateway.reconcile(query_params)
        return self.state

    def close(self) -> None:
        """Closes without losing anything: the latest input stays saved."""
        self.progress.close()
        self.gate.discard()
        self._token = None
        self.awaiting_field = None
        self.new_pix_key_type = None

    def discard(self) -> None:
        self.progress.clear()
        self.close()
        self.machine.reset()

    def set_field(self, key: str, value) -> None:
        self.machine.set_field(key, value)
        if key == "payment_method" and self.state.payment_method == PaymentMethod.GATEWAY:
            self.gateway.refresh()

    def next(self) -> ValidationResult:
        return self.machine.next()

    def prev(self) -> int:
        return self.machine.prev()

    def go_to(self, step_index: int) -> int:
        return self.machine.go_to(step_index)

    def wallets(self) -> list[dict]:
        try:
            return self.api.wallets.list()
        except ApiError as e:
            logger.error(f"Could not list wallets: {e}")
            self.notify("error", "Could not load your wallets.")
            return []

    def pix_keys(self) -> list[dict]:
        try:
            return self.api.pix_keys.list(self.state.selections.wallet_id)
        except ApiError as e:
            logger.error(f"Could not list PIX keys: {e}")
            self.notify("error", "Could not load your PIX keys.")
            return []

    def create_pix_key(self, key_type: str, key_value: str, label: str | None = None) -> dict | None:
        key_type = (key_type or "").upper()
        key_value = (key_value or "").strip()
        if key_type not in PIX_KEY_TYPES:
            raise InvalidFieldValue(f"PIX key type must be one of {', '.join(PIX_KEY_TYPES)}.")
        if not key_value:
            raise InvalidFieldValue("The PIX key value is required.")
        if key_type == "EMAIL" and not is_valid_email(key_value):
            raise InvalidFieldValue("That is not a valid email address.")
        if key_type in ("CPF", "PHONE") and not key_value.lstrip("+").replace(".", "").replace("-", "").replace(" ", "").isdigit():
            raise InvalidFieldValue("CPF and phone keys may only contain digits.")

        key_data = {"keyType": key_type, "keyValue": key_value, "walletId": self.state.selections.wallet_id}
        if label:
            key_data["label"] = label
        token = self._token
        try:
            pix_key = self.api.pix_keys.create(key_data)
        except ApiError as e:
            self.notify("error", e.message or "Could not create the PIX key.")
            return None
        if token is not self._token:
            logger.info("Wizard closed while creating a PIX key; selection dropped.")
            return pix_key
        self.machine.set_field("pix_key_id", pix_key["id"])
        self.notify("success", "PIX key created!")
        return pix_key

    def refresh_gateway(self) -> ConnectionStatus:
        return self.gateway.refresh()

    def connect_gateway(self) -> str | None:
        return self.gateway.begin_authorization()

    def submit(self) -> GateResult | None:
        if not self.machine.is_terminal:
            self.notify("error", "Finish the previous steps first.")
            return None
        failing = self.machine.first_invalid_step()
        if failing:
            step_index, result = failing
            self.machine.go_to(step_index)
            self.notify("error", result.first_error)
            return None

        payload = assemble_payload(self.state, self.user, self.clock())
        logger.info(f"Submitting movement for {self.user.email}: {payload}")
        try:
            result = self.gate.submit(payload)
        except ApiError as e:
            logger.error(f"Creating the movement failed: {e}")
            self.notify("error", e.message or "Could not create the movement.")
            return None
        return self._after_gate(result)

    def resolve_duplicates(self, action: Resolution) -> GateResult | None:
        try:
            result = self.gate.resolve(Resolution(action))
        except ApiError as e:
            logger.error(f"Creating the movement failed: {e}")
            self.notify("error", e.message or "Could not create the movement.")
            return None
        if result.status == GateStatus.CANCELLED:
            self.machine.go_to(TERMINAL_STEP)
        return self._after_gate(result)

    def _after_gate(self, result: GateResult) -> GateResult:
        if result.status == GateStatus.CREATED:
            self._finish()
        return result

    def _finish(self) -> None:
        # The movement exists now: drop saved progress even if the wizard was closed meanwhile
        self.progress.clear()
        was_open = self.is_open
        self.close()
        self.machine.reset()
        if was_open:
            self.notify("success", "Movement created successfully!")
