"""End-to-end tests of a wizard session against fake backend and storage."""

import pytest

from finbot.db.repos import GATEWAY_RECOVERY_SLOT, PROGRESS_SLOT
from finbot.services.api_client import ApiError
from finbot.services.duplicate_gate import GateStatus, Resolution
from finbot.services.submission import UserProfile
from finbot.services.wizard_service import WizardSession
from finbot.wizard.machine import InvalidFieldValue
from finbot.wizard.state import ConnectionStatus
from finbot.wizard.steps import TERMINAL_STEP

ME = UserProfile(email="me@example.com", name="Me")


@pytest.fixture
def make_session(api, store, notify, clock, timers):
    def factory():
        return WizardSession(ME, api, store, notify, clock=clock, timer_factory=timers)
    return factory


@pytest.fixture
def session(make_session):
    session = make_session()
    session.open()
    return session


def _fill_pix(session):
    session.set_field("wallet_id", "w1")
    session.set_field("payment_method", "pix")
    session.set_field("movement_type", "single")
    session.set_field("description", "Dinner")
    session.set_field("debtor_email", "ana@example.com")
    session.set_field("total_amount", "80")
    session.set_field("due_date", "2024-06-20")
    session.set_field("pix_key_id", "k1")
    session.go_to(TERMINAL_STEP)


def test_progress_survives_close_and_reopen(session, make_session, store):
    session.set_field("wallet_id", "w1")
    session.next()
    session.set_field("payment_method", "pix")

    session.close()

    assert store.slots[PROGRESS_SLOT]["step_index"] == 1
    reopened = make_session()
    reopened.open()
    assert reopened.state.selections.wallet_id == "w1"
    assert reopened.state.step_index == 1


def test_reopen_with_gateway_rechecks_connection(session, make_session, api):
    session.set_field("payment_method", "gateway")
    assert api.gateway.status_calls == 1
    session.close()

    reopened = make_session()
    reopened.open()

    assert api.gateway.status_calls == 2
    assert reopened.state.gateway_connection.status == ConnectionStatus.CONNECTED


def test_gateway_return_trip_refreshes_once(session, make_session, api, store, notify):
    session.set_field("wallet_id", "w1")
    session.next()
    session.set_field("payment_method", "gateway")
    api.gateway.connected = False
    session.refresh_gateway()
    assert session.connect_gateway()
    session.close()

    api.gateway.connected = True
    calls_before = api.gateway.status_calls
    returned = make_session()
    returned.open({"connected": "true"})

    assert api.gateway.status_calls == calls_before + 1
    assert returned.state.step_index == 1
    assert returned.state.gateway_connection.status == ConnectionStatus.CONNECTED
    assert GATEWAY_RECOVERY_SLOT not in store.slots
    assert "Mercado Pago connected successfully!" in notify.of("success")


def test_submit_creates_and_clears_progress(session, api, store, notify, timers):
    _fill_pix(session)
    timers.fire_all()
    assert PROGRESS_SLOT in store.slots

    result = session.submit()

    assert result.status == GateStatus.CREATED
    assert len(api.debts.created) == 1
    assert PROGRESS_SLOT not in store.slots
    assert not session.is_open
    assert session.state.step_index == 0
    assert "Movement created successfully!" in notify.of("success")


def test_submit_jumps_to_first_invalid_step(session, api, notify):
    _fill_pix(session)
    session.set_field("debtor_email", "not-an-email")

    assert session.submit() is None

    assert session.state.step_index == 3
    assert notify.of("error") == ["A valid debtor email is required."]
    assert api.debts.created == []


def test_submit_before_last_step_is_refused(session, api):
    session.set_field("wallet_id", "w1")

    assert session.submit() is None
    assert api.debts.checked == []


def test_backend_error_keeps_the_wizard(session, api, notify, store):
    _fill_pix(session)
    api.debts.create_error = ApiError("Wallet not found", 404)

    assert session.submit() is None

    assert session.is_open
    assert session.state.fields.description == "Dinner"
    assert notify.of("error") == ["Wallet not found"]


def test_duplicate_warning_then_create_anyway(session, api):
    _fill_pix(session)
    api.debts.duplicates = [{"id": "d1", "description": "Dinner", "totalAmount": 80, "similarityScore": 0.9}]

    paused = session.submit()
    assert paused.status == GateStatus.PAUSED
    assert api.debts.created == []

    created = session.resolve_duplicates(Resolution.CREATE_ANYWAY)
    assert created.status == GateStatus.CREATED
    assert len(api.debts.created) == 1


def test_duplicate_warning_cancel_returns_to_review(session, api):
    _fill_pix(session)
    api.debts.duplicates = [{"id": "d1"}]
    session.submit()

    result = session.resolve_duplicates("cancel")

    assert result.status == GateStatus.CANCELLED
    assert session.state.step_index == TERMINAL_STEP
    assert session.is_open
    assert api.debts.created == []


def test_create_pix_key_selects_it(session, api, notify):
    session.set_field("wallet_id", "w1")
    session.set_field("payment_method", "pix")

    pix_key = session.create_pix_key("email", "new@example.com")

    assert api.pix_keys.created == [{"keyType": "EMAIL", "keyValue": "new@example.com", "walletId": "w1"}]
    assert session.state.selections.pix_key_id == pix_key["id"]
    assert notify.of("success") == ["PIX key created!"]


@pytest.mark.parametrize(
    "key_type, value",
    [("IBAN", "x"), ("EMAIL", ""), ("EMAIL", "nope"), ("CPF", "abc")],
)
def test_create_pix_key_validates_input(session, api, key_type, value):
    session.set_field("payment_method", "pix")

    with pytest.raises(InvalidFieldValue):
        session.create_pix_key(key_type, value)
    assert api.pix_keys.created == []


def test_wallet_listing_failure_is_reported(session, api, notify, api_error):
    api.wallets.error = api_error

    assert session.wallets() == []
    assert notify.of("error") == ["Could not load your wallets."]


def test_pix_keys_of_selected_wallet(session):
    session.set_field("wallet_id", "w2")

    assert session.pix_keys() == []


def test_discard_forgets_everything(session, make_session, store):
    session.set_field("wallet_id", "w1")

    session.discard()

    assert not session.is_open
    assert PROGRESS_SLOT not in store.slots
    reopened = make_session()
    reopened.open()
    assert reopened.state.selections.wallet_id is None


def test_late_gateway_result_after_close_is_ignored(session, api, notify, api_error):
    session.set_field("payment_method", "pix")
    api.gateway.on_status = session.close
    api.gateway.error = api_error

    session.set_field("payment_method", "gateway")

    assert notify.of("error") == []
    assert session.state.gateway_connection.status == ConnectionStatus.CHECKING
