import telebot

from finbot.services.api_client import PIX_KEY_TYPES
from finbot.ui.wizard_config import (
    GATEWAY_PAYMENT_TYPE_LABELS,
    INTERVAL_LABELS,
    MOVEMENT_TYPE_LABELS,
    RELATIONSHIP_LABELS,
)
from finbot.wizard.state import ConnectionStatus, InputMode, PaymentMethod, WizardState


def _check(selected: bool) -> str:
    return "✅ " if selected else ""


def _ask_button(label: str, field_key: str) -> telebot.types.InlineKeyboardButton:
    return telebot.types.InlineKeyboardButton(f"✏️ {label}", callback_data=f"mv:ask:{field_key}")


def generate_wallet_step_buttons(state: WizardState, wallets: list[dict]):
    keyboard = telebot.types.InlineKeyboardMarkup(row_width=1)
    for wallet in wallets:
        selected = state.selections.wallet_id == wallet['id']
        keyboard.add(telebot.types.InlineKeyboardButton(f"{_check(selected)}👛 {wallet.get('name') or wallet['id']}", callback_data=f"mv:wallet:{wallet['id']}"))
    if not wallets:
        keyboard.add(telebot.types.InlineKeyboardButton("🔄 Reload wallets", callback_data="mv:reload"))
    return keyboard


def generate_payment_method_step_buttons(state: WizardState):
    keyboard = telebot.types.InlineKeyboardMarkup(row_width=2)
    keyboard.row(
        telebot.types.InlineKeyboardButton(f"{_check(state.payment_method == PaymentMethod.PIX)}🔑 PIX", callback_data="mv:method:pix"),
        telebot.types.InlineKeyboardButton(f"{_check(state.payment_method == PaymentMethod.GATEWAY)}🏦 Mercado Pago", callback_data="mv:method:gateway"),
    )
    if state.payment_method == PaymentMethod.GATEWAY:
        status = state.gateway_connection.status
        if status == ConnectionStatus.DISCONNECTED:
            keyboard.row(telebot.types.InlineKeyboardButton("🔗 Connect Mercado Pago", callback_data="mv:gw_connect"))
        if status != ConnectionStatus.CHECKING:
            keyboard.row(telebot.types.InlineKeyboardButton("🔄 Check connection", callback_data="mv:gw_refresh"))
    return keyboard


def generate_movement_type_step_buttons(state: WizardState):
    keyboard = telebot.types.InlineKeyboardMarkup(row_width=1)
    if state.payment_method == PaymentMethod.GATEWAY:
        selected = state.selections.gateway_payment_type
        for value, label in GATEWAY_PAYMENT_TYPE_LABELS.items():
            is_selected = selected is not None and selected.value == value
            keyboard.add(telebot.types.InlineKeyboardButton(f"{_check(is_selected)}{label}", callback_data=f"mv:gw_type:{value}"))
    elif state.payment_method == PaymentMethod.PIX:
        selected = state.movement_type
        for value, label in MOVEMENT_TYPE_LABELS.items():
            is_selected = selected is not None and selected.value == value
            keyboard.add(telebot.types.InlineKeyboardButton(f"{_check(is_selected)}{label}", callback_data=f"mv:type:{value}"))
    return keyboard


def generate_parties_step_buttons(state: WizardState, visible_fields):
    keyboard = telebot.types.InlineKeyboardMarkup(row_width=1)
    relationship = state.selections.relationship
    keyboard.add(*[
        telebot.types.InlineKeyboardButton(f"{_check(relationship.value == value)}{label}", callback_data=f"mv:rel:{value}")
        for value, label in RELATIONSHIP_LABELS.items()
    ])
    ask_buttons = [_ask_button(f.label, f.key) for f in visible_fields if f.key != 'relationship']
    keyboard.add(*ask_buttons, row_width=2)
    return keyboard


# Fields of the amounts step that get their own buttons instead of a text prompt
CHOICE_FIELDS = {'pix_key_id', 'input_mode', 'is_in_progress', 'interval'}


def generate_amounts_step_buttons(state: WizardState, visible_fields, pix_keys: list[dict]):
    keyboard = telebot.types.InlineKeyboardMarkup(row_width=2)
    keys = {f.key for f in visible_fields}

    if 'pix_key_id' in keys:
        for pix_key in pix_keys:
            selected = state.selections.pix_key_id == pix_key['id']
            label = pix_key.get('label') or pix_key.get('keyValue') or pix_key['id']
            keyboard.row(telebot.types.InlineKeyboardButton(f"{_check(selected)}🔑 {pix_key.get('keyType', '')} {label}".strip(), callback_data=f"mv:pix:{pix_key['id']}"))
        keyboard.add(*[
            telebot.types.InlineKeyboardButton(f"➕ {key_type}", callback_data=f"mv:pix_new:{key_type}")
            for key_type in PIX_KEY_TYPES
        ], row_width=4)

    if 'input_mode' in keys:
        mode = state.installment_calc.mode
        keyboard.row(
            telebot.types.InlineKeyboardButton(f"{_check(mode == InputMode.TOTAL)}Total", callback_data=f"mv:mode:{InputMode.TOTAL.value}"),
            telebot.types.InlineKeyboardButton(f"{_check(mode == InputMode.PER_INSTALLMENT)}Per installment", callback_data=f"mv:mode:{InputMode.PER_INSTALLMENT.value}"),
        )

    if 'is_in_progress' in keys:
        in_progress = state.installment_calc.is_in_progress
        label = "☑️ Already in progress" if in_progress else "⬜ Already in progress"
        keyboard.row(telebot.types.InlineKeyboardButton(label, callback_data="mv:progress"))

    if 'interval' in keys:
        interval = state.recurring.interval
        keyboard.row(*[
            telebot.types.InlineKeyboardButton(f"{_check(interval.value == value)}{label}", callback_data=f"mv:interval:{value}")
            for value, label in INTERVAL_LABELS.items()
        ])

    ask_buttons = [_ask_button(f.label, f.key) for f in visible_fields if f.key not in CHOICE_FIELDS]
    keyboard.add(*ask_buttons, row_width=2)

    if 'duration_months' in keys and state.recurring.duration_months is not None:
        keyboard.row(telebot.types.InlineKeyboardButton("♾️ No end", callback_data="mv:clear:duration_months"))
    return keyboard


def generate_duplicate_buttons():
    keyboard = telebot.types.InlineKeyboardMarkup(row_width=2)
    keyboard.add(
        telebot.types.InlineKeyboardButton("✅ Create anyway", callback_data="mv:dup:create"),
        telebot.types.InlineKeyboardButton("❌ Cancel", callback_data="mv:dup:cancel"),
    )
    return keyboard
