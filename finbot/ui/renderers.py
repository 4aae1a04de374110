import html
import inspect

import telebot

from finbot.config import BOT_USERNAME
from finbot.logger import get_logger
from finbot.services.duplicate_gate import DuplicateCandidate
from finbot.ui import wizard_helpers
from finbot.ui.wizard_config import (
    CONNECTION_LABELS,
    FIELD_PROMPTS,
    GATEWAY_PAYMENT_TYPE_LABELS,
    INTERVAL_LABELS,
    MOVEMENT_TYPE_LABELS,
    RELATIONSHIP_LABELS,
    WIZARD_CONFIG,
)
from finbot.utils.currency import format_amount
from finbot.wizard.calculator import next_recurring_due_date
from finbot.wizard.state import InputMode, MovementType, PaymentMethod, WizardState
from finbot.wizard.steps import STEPS, TERMINAL_STEP

logger = get_logger(__name__)

MONEY_FIELDS = {'total_amount', 'installment_amount'}


def _escape(value) -> str:
    return html.escape(str(value))


def field_value(state: WizardState, key: str, wallets: list[dict] | None = None, pix_keys: list[dict] | None = None) -> str:
    """Human readable value of a wizard field, '—' when unset."""
    selections = state.selections
    fields = state.fields
    calc = state.installment_calc
    recurring = state.recurring

    if key == 'wallet_id':
        wallet = next((w for w in wallets or [] if w['id'] == selections.wallet_id), None)
        value = wallet.get('name') if wallet else selections.wallet_id
    elif key == 'payment_method':
        value = {PaymentMethod.PIX: "PIX", PaymentMethod.GATEWAY: "Mercado Pago"}.get(state.payment_method)
    elif key == 'movement_type':
        value = MOVEMENT_TYPE_LABELS.get(state.movement_type.value) if state.movement_type else None
    elif key == 'gateway_payment_type':
        payment_type = selections.gateway_payment_type
        value = GATEWAY_PAYMENT_TYPE_LABELS.get(payment_type.value) if payment_type else None
    elif key == 'pix_key_id':
        pix_key = next((k for k in pix_keys or [] if k['id'] == selections.pix_key_id), None)
        value = (pix_key.get('label') or pix_key.get('keyValue')) if pix_key else selections.pix_key_id
    elif key == 'relationship':
        value = RELATIONSHIP_LABELS.get(selections.relationship.value)
    elif key == 'input_mode':
        value = "Per installment" if calc.mode == InputMode.PER_INSTALLMENT else "Total"
    elif key == 'is_in_progress':
        value = "Yes" if calc.is_in_progress else "No"
    elif key == 'installment_amount':
        value = calc.installment_amount
    elif key in ('total_installments', 'paid_installments'):
        value = getattr(calc, key)
    elif key == 'interval':
        value = INTERVAL_LABELS.get(recurring.interval.value)
    elif key == 'duration_months':
        value = recurring.duration_months if recurring.duration_months is not None else "No end"
    elif key in ('day_of_month', 'subscription_name'):
        value = getattr(recurring, key)
    else:
        value = getattr(fields, key, None)

    if key in MONEY_FIELDS:
        return format_amount(value)
    if value is None or value == "":
        return "—"
    return _escape(value)


def _render_summary(state: WizardState, up_to_step: int, wallets, pix_keys) -> str:
    lines = []
    for step in STEPS[:up_to_step]:
        for field_def in step.visible_fields(state):
            lines.append(f"<b>{field_def.label}:</b> {field_value(state, field_def.key, wallets, pix_keys)}")
    return "\n".join(lines)


def _render_next_charge(state: WizardState, now) -> str:
    if state.movement_type != MovementType.RECURRING or now is None:
        return ""
    first_charge = next_recurring_due_date(state.recurring.day_of_month, now)
    return f"\n🗓️ First charge: <b>{first_charge.date().isoformat()}</b>"


def render_wizard(state: WizardState, wallets: list[dict] | None = None, pix_keys: list[dict] | None = None, awaiting_field: str | None = None, now=None) -> tuple[str, telebot.types.InlineKeyboardMarkup]:
    wallets = wallets or []
    pix_keys = pix_keys or []
    step_index = state.step_index
    step = STEPS[step_index]
    step_config = WIZARD_CONFIG['steps'][step.id]

    title = WIZARD_CONFIG['title']
    if step_index == TERMINAL_STEP:
        title += " (Review)"
    text = f"{title}\n<i>Step {step_index + 1} of {len(STEPS)}: {step.title}</i>\n\n"

    if step_index == TERMINAL_STEP:
        text += _render_summary(state, TERMINAL_STEP, wallets, pix_keys)
        text += _render_next_charge(state, now)
        text += "\n\n"
    else:
        # Display summary for all steps except the first
        if step_index > 0:
            summary = _render_summary(state, step_index, wallets, pix_keys)
            if summary:
                text += summary + "\n\n"
        if state.payment_method == PaymentMethod.GATEWAY and step.id in ('payment_method', 'movement_type'):
            text += f"Mercado Pago: {CONNECTION_LABELS[state.gateway_connection.status.value]}\n\n"
        current_fields = [
            f"• {f.label}: {field_value(state, f.key, wallets, pix_keys)}"
            for f in step.visible_fields(state)
            if f.key not in ('wallet_id', 'payment_method')
        ]
        if current_fields and step.id in ('parties', 'amounts'):
            text += "\n".join(current_fields) + "\n\n"

    instruction = step_config['instruction']
    if awaiting_field and awaiting_field in FIELD_PROMPTS:
        instruction = f"✍️ {FIELD_PROMPTS[awaiting_field]}"
    text += instruction

    # Step-specific buttons
    keyboard = telebot.types.InlineKeyboardMarkup(row_width=2)
    if step_config['buttons']:
        button_func = getattr(wizard_helpers, step_config['buttons'])
        # Pass only what the builder asks for
        sig = inspect.signature(button_func)
        params = {'state': state}
        if 'wallets' in sig.parameters:
            params['wallets'] = wallets
        if 'pix_keys' in sig.parameters:
            params['pix_keys'] = pix_keys
        if 'visible_fields' in sig.parameters:
            params['visible_fields'] = step.visible_fields(state)
        keyboard = button_func(**params)

    # Navigation row
    navigation_row = []
    if step_index > 0:
        navigation_row.append(telebot.types.InlineKeyboardButton("◀ Back", callback_data="mv:back"))
    navigation_row.append(telebot.types.InlineKeyboardButton("⏸ Close", callback_data="mv:close"))
    if step_index < TERMINAL_STEP:
        navigation_row.append(telebot.types.InlineKeyboardButton("Next ▶", callback_data="mv:next"))
    else:
        navigation_row.append(telebot.types.InlineKeyboardButton("✅ Create", callback_data="mv:submit"))
    keyboard.row(*navigation_row)
    keyboard.row(telebot.types.InlineKeyboardButton("🗑️ Discard", callback_data="mv:discard"))

    return text, keyboard


def render_duplicate_warning(candidates: list[DuplicateCandidate]) -> tuple[str, telebot.types.InlineKeyboardMarkup]:
    text = "⚠️ <b>Possible duplicate</b>\n\n"
    text += "These movements look a lot like the one you are creating:\n\n"
    for candidate in candidates:
        text += f"• <b>{_escape(candidate.description)}</b> {format_amount(candidate.total_amount)}"
        if candidate.is_recurring:
            text += " 🔁"
        text += f"\n  {_escape(candidate.debtor_email)}"
        if candidate.creditor_email:
            text += f" → {_escape(candidate.creditor_email)}"
        text += f"\n  {round(candidate.similarity_score * 100)}% similar"
        if candidate.reason:
            text += f", {_escape(candidate.reason)}"
        text += "\n"
    text += "\nCreate it anyway?"
    return text, wizard_helpers.generate_duplicate_buttons()


def render_created_message(movement: dict | None) -> str:
    movement = movement or {}
    text = "✅ <b>Movement created!</b>\n\n"
    if movement.get('description'):
        text += f"<b>Description:</b> {_escape(movement['description'])}\n"
    if movement.get('totalAmount') is not None:
        text += f"<b>Total:</b> {format_amount(movement['totalAmount'])}\n"
    if movement.get('paymentLink'):
        text += f"\n💳 <a href=\"{_escape(movement['paymentLink'])}\">Payment link</a>\n"
    return text


def render_gateway_connect_message(auth_url: str) -> tuple[str, telebot.types.InlineKeyboardMarkup]:
    text = "🔗 <b>Connect Mercado Pago</b>\n\n"
    text += "Open the link below and authorize the app. When you are done you will be sent back here and the wizard continues where you left off."
    keyboard = telebot.types.InlineKeyboardMarkup()
    keyboard.add(telebot.types.InlineKeyboardButton("Open Mercado Pago", url=auth_url))
    return text, keyboard


def render_help_message() -> str:
    bot_link = f"@{BOT_USERNAME}" if BOT_USERNAME else "this bot"
    return f"""<b>❓ Help</b>

    <b>/link email token [name]</b>
    Connect {bot_link} to your account. The message is deleted right away since it carries your token.

    <b>/new</b>
    Create a new movement: a single charge, installments or a recurring subscription, paid with your own PIX key or through Mercado Pago.
    - Your progress is saved as you go. Close the wizard at any time and /new picks up where you stopped.
    - In-progress installments: enter what each installment costs and how many were already paid. Only the remaining ones are registered.
    - Recurring charges start on the chosen day. Days that a month does not have fall on its last day.

    <b>/discard</b>
    Throw away the saved progress and start over.
    """
