"""Tests for gateway connection checks and the authorization round trip."""

import pytest

from finbot.db.repos import GATEWAY_RECOVERY_SLOT
from finbot.services.gateway_service import GatewayReconciler, is_return_trip
from finbot.wizard.machine import WizardMachine
from finbot.wizard.state import ConnectionStatus, PaymentMethod


class Session:
    """Mutable session token, like WizardSession keeps it."""

    def __init__(self):
        self.token = object()


@pytest.fixture
def machine(clock):
    return WizardMachine(clock=clock)


@pytest.fixture
def session():
    return Session()


@pytest.fixture
def reconciler(machine, api, store, notify, session):
    return GatewayReconciler(machine, api.gateway, store, notify, token_source=lambda: session.token)


def test_refresh_sets_connected(reconciler, machine, api):
    assert reconciler.refresh() == ConnectionStatus.CONNECTED
    assert machine.state.gateway_connection.status == ConnectionStatus.CONNECTED


def test_refresh_sets_disconnected(reconciler, machine, api):
    api.gateway.connected = False

    assert reconciler.refresh() == ConnectionStatus.DISCONNECTED
    assert machine.state.gateway_connection.status == ConnectionStatus.DISCONNECTED


def test_refresh_failure_notifies_and_disconnects(reconciler, machine, api, notify, api_error):
    api.gateway.error = api_error

    assert reconciler.refresh() == ConnectionStatus.DISCONNECTED
    assert machine.state.gateway_connection.status == ConnectionStatus.DISCONNECTED
    assert len(notify.of("error")) == 1


def test_refresh_goes_through_checking(reconciler, machine):
    seen = []
    machine.subscribe(lambda state: seen.append(state.gateway_connection.status))

    reconciler.refresh()

    assert seen == [ConnectionStatus.CHECKING, ConnectionStatus.CONNECTED]


def test_result_after_close_is_dropped(reconciler, machine, api, session, notify, api_error):
    def close_wizard():
        session.token = None

    api.gateway.on_status = close_wizard
    api.gateway.error = api_error

    reconciler.refresh()

    assert machine.state.gateway_connection.status == ConnectionStatus.CHECKING
    assert notify.sent == []


def test_concurrent_refresh_is_ignored(reconciler, api):
    nested = []
    api.gateway.on_status = lambda: nested.append(reconciler.refresh())

    reconciler.refresh()

    assert nested == [ConnectionStatus.CHECKING]
    assert api.gateway.status_calls == 1


def test_begin_authorization_saves_recovery_record(reconciler, machine, store):
    machine.set_field("wallet_id", "w1")
    machine.set_field("payment_method", "gateway")
    machine.go_to(1)

    auth_url = reconciler.begin_authorization()

    assert auth_url.startswith("https://auth.mercadopago.com")
    assert store.slots[GATEWAY_RECOVERY_SLOT] == {
        "version": 1,
        "step_index": 1,
        "payment_method": "gateway",
        "wallet_id": "w1",
    }


def test_begin_authorization_failure_notifies(reconciler, api, store, notify, api_error):
    api.gateway.error = api_error

    assert reconciler.begin_authorization() is None
    assert GATEWAY_RECOVERY_SLOT not in store.slots
    assert notify.of("error") == ["Internal server error"]


@pytest.mark.parametrize(
    "params, expected",
    [
        ({"connected": "true"}, True),
        ({"tab": "payments"}, True),
        ({"connected": "false"}, False),
        ({}, False),
        (None, False),
    ],
)
def test_is_return_trip(params, expected):
    assert is_return_trip(params) is expected


def test_reconcile_restores_position_and_refreshes_once(reconciler, machine, store, api, notify):
    store.put(GATEWAY_RECOVERY_SLOT, {"version": 1, "step_index": 1, "payment_method": "gateway", "wallet_id": "w1"})
    params = {"connected": "true", "tab": "payments", "other": "x"}

    assert reconciler.reconcile(params)

    assert machine.state.selections.wallet_id == "w1"
    assert machine.state.payment_method == PaymentMethod.GATEWAY
    assert machine.state.step_index == 1
    assert machine.state.gateway_connection.status == ConnectionStatus.CONNECTED
    assert api.gateway.status_calls == 1
    assert GATEWAY_RECOVERY_SLOT not in store.slots
    assert params == {"other": "x"}
    assert notify.of("success") == ["Mercado Pago connected successfully!"]


def test_reconcile_only_runs_once(reconciler, store, api):
    store.put(GATEWAY_RECOVERY_SLOT, {"version": 1, "step_index": 1, "payment_method": "gateway"})
    params = {"connected": "true"}

    assert reconciler.reconcile(params)
    assert not reconciler.reconcile(params)
    assert api.gateway.status_calls == 1


def test_reconcile_without_markers_does_nothing(reconciler, api):
    assert not reconciler.reconcile({})
    assert api.gateway.status_calls == 0


def test_reconcile_does_not_move_wizard_backwards(reconciler, machine, store):
    machine.set_field("wallet_id", "w2")
    machine.set_field("payment_method", "gateway")
    machine.go_to(3)
    store.put(GATEWAY_RECOVERY_SLOT, {"version": 1, "step_index": 1, "payment_method": "gateway", "wallet_id": "w1"})

    reconciler.reconcile({"connected": "true"})

    assert machine.state.step_index == 3
    assert machine.state.selections.wallet_id == "w2"


def test_reconcile_without_connection_stays_quiet(reconciler, machine, api, notify):
    api.gateway.connected = False

    assert reconciler.reconcile({"connected": "true"})
    assert machine.state.gateway_connection.status == ConnectionStatus.DISCONNECTED
    assert notify.sent == []
