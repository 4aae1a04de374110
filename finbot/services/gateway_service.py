import threading
from typing import Callable

from finbot.db.repos import GATEWAY_RECOVERY_SLOT
from finbot.logger import get_logger
from finbot.wizard.machine import WizardMachine
from finbot.wizard.state import ConnectionStatus, PaymentMethod

logger = get_logger(__name__)

RECOVERY_VERSION = 1
# Keys the gateway puts on the way back, removed once handled so a reload does not re-trigger
RETURN_PARAMS = {"connected": "true", "tab": "payments"}


def is_return_trip(query_params: dict | None) -> bool:
    if not query_params:
        return False
    return any(str(query_params.get(key, "")).lower() == value for key, value in RETURN_PARAMS.items())


class GatewayReconciler:
    """
    Keeps gateway_connection.status of the wizard in line with the backend.

    Also handles the round trip through the gateway's authorization page: a
    small recovery record is written before leaving and consumed on return.
    """

    def __init__(self, machine: WizardMachine, gateway_api, store, notify: Callable[[str, str], None], token_source: Callable[[], object] = lambda: None):
        self.machine = machine
        self.gateway_api = gateway_api
        self.store = store
        self.notify = notify
        # Results that arrive after the session token changed belong to a closed wizard
        self.token_source = token_source
        self._lock = threading.Lock()
        self._checking = False

    def refresh(self) -> ConnectionStatus:
        with self._lock:
            if self._checking:
                return ConnectionStatus.CHECKING
            self._checking = True
        token = self.token_source()
        try:
            self.machine.set_connection_status(ConnectionStatus.CHECKING)
            try:
                connected = bool((self.gateway_api.get_connection_status() or {}).get("connected"))
                status = ConnectionStatus.CONNECTED if connected else ConnectionStatus.DISCONNECTED
            except Exception as e:
                logger.error(f"Gateway status check failed: {e}")
                status = ConnectionStatus.DISCONNECTED
                if self.token_source() is token:
                    self.notify("error", "Could not check the Mercado Pago connection. Try again.")
            if self.token_source() is not token:
                logger.info("Wizard closed while checking the gateway status; result dropped.")
                return status
            self.machine.set_connection_status(status)
            return status
        finally:
            with self._lock:
                self._checking = False

    def begin_authorization(self) -> str | None:
        """Returns the gateway's authorization URL, after saving where the user was."""
        try:
            auth_url = (self.gateway_api.get_authorization_url() or {}).get("authUrl")
        except Exception as e:
            logger.error(f"Could not get the gateway authorization URL: {e}")
            self.notify("error", getattr(e, "message", None) or "Could not connect Mercado Pago.")
            return None
        if not auth_url:
            self.notify("error", "Could not connect Mercado Pago.")
            return None

        state = self.machine.state
        record = {
            "version": RECOVERY_VERSION,
            "step_index": state.step_index,
            "payment_method": state.payment_method.value if state.payment_method else None,
            "wallet_id": state.selections.wallet_id,
        }
        try:
            self.store.put(GATEWAY_RECOVERY_SLOT, record)
        except Exception as e:
            logger.error(f"Could not save the gateway recovery record: {e}")
        return auth_url

    def _read_recovery(self) -> dict | None:
        try:
            record = self.store.get(GATEWAY_RECOVERY_SLOT)
        except Exception as e:
            logger.error(f"Could not read the gateway recovery record: {e}")
            return None
        return record if isinstance(record, dict) else None

    def _clear_recovery(self):
        try:
            self.store.delete(GATEWAY_RECOVERY_SLOT)
        except Exception as e:
            logger.error(f"Could not delete the gateway recovery record: {e}")

    def _apply_recovery(self, record: dict):
        state = self.machine.state
        if record.get("wallet_id") and not state.selections.wallet_id:
            self.machine.set_field("wallet_id", record["wallet_id"])
        if record.get("payment_method") == PaymentMethod.GATEWAY.value and state.payment_method is None:
            self.machine.set_field("payment_method", PaymentMethod.GATEWAY.value)
        step_index = record.get("step_index")
        if isinstance(step_index, int) and step_index > state.step_index:
            self.machine.go_to(step_index)

    def has_pending_return(self, query_params: dict | None = None) -> bool:
        return is_return_trip(query_params) or self._read_recovery() is not None

    def reconcile(self, query_params: dict | None = None) -> bool:
        """
        Handles a return from the authorization page. Returns True when one was
        detected; the status is refreshed once and the return markers are cleared.
        """
        record = self._read_recovery()
        if record is None and not is_return_trip(query_params):
            return False

        logger.info("Returned from the gateway authorization page; refreshing the connection status.")
        if record:
            self._apply_recovery(record)
        self._clear_recovery()
        if query_params is not None:
            for key in RETURN_PARAMS:
                query_params.pop(key, None)

        token = self.token_source()
        status = self.refresh()
        if status == ConnectionStatus.CONNECTED and self.token_source() is token:
            self.notify("success", "Mercado Pago connected successfully!")
        return True
