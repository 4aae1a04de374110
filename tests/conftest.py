"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta, timezone

import pytest

from finbot.services.api_client import ApiError

BRT = timezone(timedelta(hours=-3))


class FakeTimer:
    """Stands in for threading.Timer; fire() runs the callback by hand."""

    def __init__(self, delay, fn):
        self.delay = delay
        self.fn = fn
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.fn()


class TimerFactory:
    def __init__(self):
        self.timers: list[FakeTimer] = []

    def __call__(self, delay, fn):
        timer = FakeTimer(delay, fn)
        self.timers.append(timer)
        return timer

    @property
    def live(self) -> list[FakeTimer]:
        return [t for t in self.timers if t.started and not t.cancelled]

    def fire_all(self):
        for timer in self.live:
            timer.fire()


class MemoryStore:
    """Slot store kept in a dict, same interface as UserSlotStore."""

    def __init__(self, fail: bool = False):
        self.slots: dict[str, dict] = {}
        self.fail = fail
        self.writes = 0

    def get(self, slot):
        if self.fail:
            raise OSError("storage unavailable")
        return self.slots.get(slot)

    def put(self, slot, value):
        if self.fail:
            raise OSError("storage unavailable")
        self.writes += 1
        self.slots[slot] = value

    def delete(self, slot):
        if self.fail:
            raise OSError("storage unavailable")
        self.slots.pop(slot, None)


class FakeDebtsApi:
    def __init__(self):
        self.duplicates: list[dict] = []
        self.check_error: Exception | None = None
        self.create_error: Exception | None = None
        self.created: list[dict] = []
        self.checked: list[dict] = []

    def check_duplicates(self, criteria):
        self.checked.append(criteria)
        if self.check_error:
            raise self.check_error
        return self.duplicates

    def create(self, payload):
        if self.create_error:
            raise self.create_error
        self.created.append(payload)
        return {"id": f"debt-{len(self.created)}", **payload}


class FakeWalletsApi:
    def __init__(self):
        self.items = [{"id": "w1", "name": "Personal"}, {"id": "w2", "name": "House"}]
        self.error: Exception | None = None

    def list(self):
        if self.error:
            raise self.error
        return self.items


class FakePixKeysApi:
    def __init__(self):
        self.items = [{"id": "k1", "walletId": "w1", "keyType": "EMAIL", "keyValue": "me@example.com"}]
        self.created: list[dict] = []

    def list(self, wallet_id=None):
        return [k for k in self.items if not wallet_id or k["walletId"] == wallet_id]

    def create(self, key_data):
        self.created.append(key_data)
        key = {"id": f"k{len(self.items) + 1}", **key_data}
        self.items.append(key)
        return key


class FakeGatewayApi:
    def __init__(self, connected: bool = True):
        self.connected = connected
        self.error: Exception | None = None
        self.status_calls = 0
        self.auth_url = "https://auth.mercadopago.com/authorization?client_id=1"
        self.on_status = None

    def get_connection_status(self):
        self.status_calls += 1
        if self.on_status:
            self.on_status()
        if self.error:
            raise self.error
        return {"connected": self.connected}

    def get_authorization_url(self):
        if self.error:
            raise self.error
        return {"authUrl": self.auth_url}


class FakeApi:
    def __init__(self):
        self.debts = FakeDebtsApi()
        self.wallets = FakeWalletsApi()
        self.pix_keys = FakePixKeysApi()
        self.gateway = FakeGatewayApi()


class Notifications:
    def __init__(self):
        self.sent: list[tuple[str, str]] = []

    def __call__(self, kind, text):
        self.sent.append((kind, text))

    def of(self, kind):
        return [text for k, text in self.sent if k == kind]


@pytest.fixture
def now():
    return datetime(2024, 6, 10, 12, 0, tzinfo=BRT)


@pytest.fixture
def clock(now):
    return lambda: now


@pytest.fixture
def timers():
    return TimerFactory()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def api():
    return FakeApi()


@pytest.fixture
def notify():
    return Notifications()


@pytest.fixture
def api_error():
    return ApiError("Internal server error", 500)


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    path = tmp_path / "movements.db"
    monkeypatch.setattr("finbot.db.connection.DB_PATH", str(path))
    return path
