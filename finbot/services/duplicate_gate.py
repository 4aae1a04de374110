import threading
from dataclasses import dataclass, field
from enum import Enum

from finbot.logger import get_logger
from finbot.services.submission import duplicate_criteria

logger = get_logger(__name__)


class GateStatus(str, Enum):
    CREATED = "created"
    PAUSED = "paused"
    CANCELLED = "cancelled"
    BUSY = "busy"


class Resolution(str, Enum):
    CREATE_ANYWAY = "create"
    CANCEL = "cancel"


@dataclass(frozen=True)
class DuplicateCandidate:
    id: str
    description: str
    total_amount: float
    debtor_email: str
    creditor_email: str | None
    is_recurring: bool
    similarity_score: float
    reason: str

    @classmethod
    def from_api(cls, data: dict) -> "DuplicateCandidate":
        return cls(
            id=str(data.get("id", "")),
            description=data.get("description") or "",
            total_amount=float(data.get("totalAmount") or 0),
            debtor_email=data.get("debtorEmail") or "",
            creditor_email=data.get("creditorEmail"),
            is_recurring=bool(data.get("isRecurring")),
            similarity_score=float(data.get("similarityScore") or 0),
            reason=data.get("reason") or "",
        )


@dataclass
class GateResult:
    status: GateStatus
    movement: dict | None = None
    candidates: list[DuplicateCandidate] = field(default_factory=list)


class DuplicateGate:
    """
    Runs the duplicate check right before the real create call.

    The check is advisory: if it fails the movement is created anyway. When it
    finds candidates the payload is held until the user resolves the warning.
    """

    def __init__(self, debts_api):
        self.debts_api = debts_api
        self._lock = threading.Lock()
        self._in_flight = False
        self.pending_payload: dict | None = None
        self.candidates: list[DuplicateCandidate] = []

    @property
    def is_paused(self) -> bool:
        return self.pending_payload is not None

    def _acquire(self) -> bool:
        with self._lock:
            if self._in_flight or self.pending_payload is not None:
                return False
            self._in_flight = True
            return True

    def _release(self):
        with self._lock:
            self._in_flight = False

    def check(self, payload: dict) -> list[DuplicateCandidate]:
        try:
            found = self.debts_api.check_duplicates(duplicate_criteria(payload)) or []
        except Exception as e:
            logger.warning(f"Duplicate check failed, continuing without it: {e}")
            return []
        candidates = []
        for item in found:
            try:
                candidates.append(DuplicateCandidate.from_api(item))
            except (AttributeError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed duplicate candidate {item!r}: {e}")
        return candidates

    def submit(self, payload: dict) -> GateResult:
        if not self._acquire():
            logger.info("Submission ignored: another one is in flight or awaiting a duplicate decision.")
            return GateResult(GateStatus.BUSY, candidates=list(self.candidates))
        try:
            candidates = self.check(payload)
            if candidates:
                logger.info(f"Found {len(candidates)} possible duplicates; holding the submission.")
                self.pending_payload = payload
                self.candidates = candidates
                return GateResult(GateStatus.PAUSED, candidates=list(candidates))
            movement = self.debts_api.create(payload)
            return GateResult(GateStatus.CREATED, movement=movement)
        finally:
            self._release()

    def resolve(self, action: Resolution) -> GateResult:
        with self._lock:
            if self._in_flight or self.pending_payload is None:
                return GateResult(GateStatus.BUSY)
            payload = self.pending_payload
            self.pending_payload = None
            self.candidates = []
            if action != Resolution.CREATE_ANYWAY:
                logger.info("Duplicate warning cancelled; payload discarded.")
                return GateResult(GateStatus.CANCELLED)
            self._in_flight = True
        try:
            movement = self.debts_api.create(payload)
            return GateResult(GateStatus.CREATED, movement=movement)
        finally:
            self._release()

    def discard(self) -> None:
        with self._lock:
            self.pending_payload = None
            self.candidates = []
