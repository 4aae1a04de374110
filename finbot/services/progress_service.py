from typing import Callable

from finbot.config import PROGRESS_DEBOUNCE_SECONDS
from finbot.db.repos import PROGRESS_SLOT
from finbot.logger import get_logger
from finbot.wizard.debounce import Debouncer
from finbot.wizard.machine import WizardMachine
from finbot.wizard.snapshot import UnsupportedSnapshot, state_from_snapshot, state_to_snapshot
from finbot.wizard.state import PaymentMethod, WizardState

logger = get_logger(__name__)


class ProgressPersistence:
    """
    Mirrors the wizard state into the user's progress slot.

    Writes are debounced and only happen while the wizard is open. Storage
    failures are logged and never reach the wizard.
    """

    def __init__(self, machine: WizardMachine, store, delay: float = PROGRESS_DEBOUNCE_SECONDS, timer_factory: Callable | None = None):
        self.machine = machine
        self.store = store
        self.is_open = False
        kwargs = {"timer_factory": timer_factory} if timer_factory else {}
        self.debouncer = Debouncer(delay, self._write, **kwargs)
        self._unsubscribe = machine.subscribe(self._on_change)

    def _on_change(self, state: WizardState):
        if not self.is_open:
            return
        try:
            snapshot = state_to_snapshot(state)
        except Exception as e:
            logger.error(f"Could not serialize wizard progress: {e}", exc_info=True)
            return
        self.debouncer.schedule(snapshot)

    def _write(self, snapshot: dict):
        try:
            self.store.put(PROGRESS_SLOT, snapshot)
        except Exception as e:
            logger.error(f"Could not save wizard progress: {e}")

    def open(self):
        self.is_open = True

    def close(self):
        """Writes any pending snapshot now and stops saving. The snapshot is kept."""
        self.debouncer.flush()
        self.is_open = False

    def save_now(self):
        if not self.is_open:
            return
        self.debouncer.cancel()
        self._write(state_to_snapshot(self.machine.state))

    def restore(self, refresh_gateway: Callable[[], object] | None = None) -> bool:
        """
        Loads the saved snapshot into the machine. Returns True if one was applied.

        A restored gateway selection is re-checked through `refresh_gateway`
        instead of trusting whatever status the user had before.
        """
        try:
            snapshot = self.store.get(PROGRESS_SLOT)
        except Exception as e:
            logger.error(f"Could not read wizard progress: {e}")
            return False
        if not snapshot:
            return False
        try:
            state = state_from_snapshot(snapshot, self.machine.today())
        except UnsupportedSnapshot as e:
            logger.warning(f"Ignoring saved wizard progress: {e}")
            return False
        except Exception as e:
            logger.error(f"Could not restore wizard progress: {e}", exc_info=True)
            return False

        self.machine.replace_state(state)
        logger.info(f"Restored wizard progress at step {state.step_index}.")
        if state.payment_method == PaymentMethod.GATEWAY and refresh_gateway:
            refresh_gateway()
        return True

    def clear(self):
        self.debouncer.cancel()
        try:
            self.store.delete(PROGRESS_SLOT)
        except Exception as e:
            logger.error(f"Could not delete wizard progress: {e}")

    def detach(self):
        self.debouncer.cancel()
        self._unsubscribe()
