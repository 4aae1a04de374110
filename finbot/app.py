import threading
import telebot
from finbot.config import BOT_TOKEN, WARNING_TTL_SECONDS
from finbot.db.connection import get_connection
from finbot.db.repos import UserSlotStore, create_user_if_not_exists, get_user, link_user_account
from finbot.logger import get_logger
from finbot.services.api_client import ApiClient
from finbot.services.duplicate_gate import GateStatus, Resolution
from finbot.services.submission import UserProfile
from finbot.services.wizard_service import WizardSession
from finbot.ui.renderers import (
    render_created_message,
    render_duplicate_warning,
    render_gateway_connect_message,
    render_help_message,
    render_wizard,
)
from finbot.ui.wizard_config import FIELD_PROMPTS
from finbot.wizard.machine import InvalidFieldValue
from finbot.wizard.state import PaymentMethod
from finbot.wizard.steps import STEPS, TERMINAL_STEP, is_valid_email

logger = get_logger(__name__)

# Start parameter the gateway redirect uses: t.me/<bot>?start=gateway_connected
GATEWAY_RETURN_START = "gateway_connected"

# Fields that may be cleared from a button
CLEARABLE_FIELDS = {'duration_months'}

class Bot:
    def __init__(self):
        self.bot = telebot.TeleBot(BOT_TOKEN)
        self.sessions: dict[int, WizardSession] = {}
        self.wizard_messages: dict[int, int] = {}
        self.user_locks = set()
        self.user_locks_guard = threading.Lock()
        self.sessions_lock = threading.Lock()
        self.setup_handlers()

    def setup_database(self):
        with get_connection() as conn:
            logger.info("Database connection established and migrations run.")

    def setup_handlers(self):
        self.bot.register_message_handler(self.handle_new_command, commands=['new'])
        self.bot.register_message_handler(self.handle_start_command, commands=['start'])
        self.bot.register_message_handler(self.handle_link_command, commands=['link'])
        self.bot.register_message_handler(self.handle_discard_command, commands=['discard'])
        self.bot.register_message_handler(self.handle_help_command, commands=['help'])
        self.bot.register_message_handler(self.handle_text_message, func=lambda message: True, content_types=['text'])
        self.bot.register_callback_query_handler(self.handle_callback_query, func=lambda call: call.data.startswith("mv:"))

        # Set bot commands
        self.bot.set_my_commands(
            [
                telebot.types.BotCommand("new", "➕ Create a movement"),
                telebot.types.BotCommand("discard", "🗑️ Discard saved progress"),
                telebot.types.BotCommand("help", "❓ Help"),
            ]
        )

    def run(self):
        logger.info("Starting Movement Wizard Bot...")
        if not BOT_TOKEN:
            logger.critical("BOT_TOKEN environment variable not set. Exiting.")
            return

        self.setup_database()

        logger.info("Starting bot polling...")
        self.bot.polling(none_stop=True)

    def delete_message(self, chat_id, message_id):
        try:
            self.bot.delete_message(chat_id, message_id)
        except Exception as e:
            logger.error(f"Error deleting message {message_id} in chat {chat_id}: {e}")

    def send_warning(self, chat_id: int, text: str):
        warning_msg = self.bot.send_message(chat_id, f"❗ {text}")
        threading.Timer(WARNING_TTL_SECONDS, self.delete_message, [chat_id, warning_msg.message_id]).start()

    def notify(self, chat_id: int, kind: str, text: str):
        try:
            if kind == "error":
                self.send_warning(chat_id, text)
            else:
                self.bot.send_message(chat_id, f"✅ {text}")
        except Exception as e:
            logger.error(f"Error sending notification to chat {chat_id}: {e}")

    def acquire_user(self, user_id: int) -> bool:
        with self.user_locks_guard:
            if user_id in self.user_locks:
                return False
            self.user_locks.add(user_id)
            return True

    def release_user(self, user_id: int):
        with self.user_locks_guard:
            self.user_locks.discard(user_id)

    def get_session(self, tg_user: telebot.types.User, chat_id: int) -> WizardSession | None:
        with self.sessions_lock:
            session = self.sessions.get(tg_user.id)
        if session:
            return session

        user_id = create_user_if_not_exists(tg_user.id, tg_user.username, tg_user.full_name)
        user = get_user(user_id)
        if not user or not user.get('email') or not user.get('api_token'):
            self.bot.send_message(chat_id, "🔐 Link your account first:\n<code>/link your@email.com your-api-token [name]</code>", parse_mode='HTML')
            return None

        session = WizardSession(
            user=UserProfile(email=user['email'], name=user.get('display_name') or ""),
            api=ApiClient(token=user['api_token']),
            store=UserSlotStore(user_id),
            notify=lambda kind, text: self.notify(chat_id, kind, text),
        )
        with self.sessions_lock:
            # Another handler may have won the race
            session = self.sessions.setdefault(tg_user.id, session)
        return session

    def drop_session(self, tg_user_id: int):
        with self.sessions_lock:
            session = self.sessions.pop(tg_user_id, None)
        if session:
            if session.is_open:
                session.close()
            session.progress.detach()

    def refresh_wizard(self, chat_id: int, session: WizardSession, force_new: bool = False):
        state = session.state
        step_id = STEPS[state.step_index].id
        wallets = session.wallets() if step_id == 'wallet' or state.step_index == TERMINAL_STEP else []
        uses_pix_keys = state.payment_method == PaymentMethod.PIX and (step_id == 'amounts' or state.step_index == TERMINAL_STEP)
        pix_keys = session.pix_keys() if uses_pix_keys else []
        wizard_text, wizard_keyboard = render_wizard(state, wallets=wallets, pix_keys=pix_keys, awaiting_field=session.awaiting_field, now=session.clock())
        self.show_wizard_message(chat_id, wizard_text, wizard_keyboard, force_new)

    def show_wizard_message(self, chat_id: int, text: str, keyboard, force_new: bool = False):
        message_id = self.wizard_messages.get(chat_id)
        if message_id and not force_new:
            try:
                self.bot.edit_message_text(chat_id=chat_id, message_id=message_id, text=text, reply_markup=keyboard, parse_mode='HTML')
                return
            except telebot.apihelper.ApiTelegramException as e:
                if "message is not modified" in str(e.description):
                    return
                logger.debug(f"Wizard message {message_id} could not be edited, sending a new one: {e}")
        elif message_id:
            self.delete_message(chat_id, message_id)
        sent_message = self.bot.send_message(chat_id, text, reply_markup=keyboard, parse_mode='HTML')
        self.wizard_messages[chat_id] = sent_message.message_id

    def end_wizard_message(self, chat_id: int, text: str):
        message_id = self.wizard_messages.pop(chat_id, None)
        if message_id:
            try:
                self.bot.edit_message_text(chat_id=chat_id, message_id=message_id, text=text, parse_mode='HTML')
                return
            except Exception as e:
                logger.error(f"Error closing wizard message {message_id} in chat {chat_id}: {e}")
        self.bot.send_message(chat_id, text, parse_mode='HTML')

    def open_wizard(self, message: telebot.types.Message, query_params: dict | None = None):
        chat_id = message.chat.id
        session = self.get_session(message.from_user, chat_id)
        if not session:
            return
        if session.is_open and query_params:
            # A return trip has to run through open() again
            session.close()
        if not session.is_open:
            session.open(query_params)
        self.refresh_wizard(chat_id, session, force_new=True)

    def handle_new_command(self, message: telebot.types.Message):
        if message.chat.type != 'private':
            self.bot.send_message(message.chat.id, "I only work in private chats.")
            return
        if not self.acquire_user(message.from_user.id):
            return
        try:
            logger.info(f"Received /new command from user {message.from_user.id}")
            self.open_wizard(message)
        except Exception as e:
            logger.error(f"Error in handle_new_command: {e}", exc_info=True)
        finally:
            self.release_user(message.from_user.id)

    def handle_start_command(self, message: telebot.types.Message):
        if message.chat.type != 'private':
            return
        parts = message.text.split(maxsplit=1)
        start_param = parts[1].strip() if len(parts) > 1 else ""
        if start_param != GATEWAY_RETURN_START:
            self.bot.send_message(message.chat.id, render_help_message(), parse_mode='HTML')
            return
        if not self.acquire_user(message.from_user.id):
            return
        try:
            logger.info(f"User {message.from_user.id} came back from the gateway authorization page")
            self.open_wizard(message, query_params={"connected": "true"})
        except Exception as e:
            logger.error(f"Error in handle_start_command: {e}", exc_info=True)
        finally:
            self.release_user(message.from_user.id)

    def handle_link_command(self, message: telebot.types.Message):
        if message.chat.type != 'private':
            return
        chat_id = message.chat.id
        # The message carries a token
        self.delete_message(chat_id, message.message_id)
        parts = message.text.split(maxsplit=3)
        if len(parts) < 3 or not is_valid_email(parts[1]):
            self.send_warning(chat_id, "Usage: /link email token [name]")
            return
        try:
            user_id = create_user_if_not_exists(message.from_user.id, message.from_user.username, message.from_user.full_name)
            display_name = parts[3].strip() if len(parts) > 3 else None
            link_user_account(user_id, parts[1].strip(), parts[2].strip(), display_name)
            self.drop_session(message.from_user.id)
            self.bot.send_message(chat_id, "✅ Account linked. Use /new to create a movement.")
        except Exception as e:
            logger.error(f"Error in handle_link_command: {e}", exc_info=True)
            self.send_warning(chat_id, "An error occurred while linking your account.")

    def handle_discard_command(self, message: telebot.types.Message):
        if message.chat.type != 'private':
            return
        chat_id = message.chat.id
        if not self.acquire_user(message.from_user.id):
            return
        try:
            session = self.get_session(message.from_user, chat_id)
            if not session:
                return
            session.discard()
            self.end_wizard_message(chat_id, "🗑️ Progress discarded. Use /new to start over.")
        except Exception as e:
            logger.error(f"Error in handle_discard_command: {e}", exc_info=True)
        finally:
            self.release_user(message.from_user.id)

    def handle_help_command(self, message: telebot.types.Message):
        self.bot.send_message(message.chat.id, render_help_message(), parse_mode='HTML')

    def handle_text_message(self, message: telebot.types.Message):
        if message.chat.type != 'private' or message.text.startswith('/'):
            return
        chat_id = message.chat.id
        user_id = message.from_user.id
        with self.sessions_lock:
            session = self.sessions.get(user_id)
        if not session or not session.is_open or not session.awaiting_field:
            return
        if not self.acquire_user(user_id):
            return
        try:
            logger.info(f"Received value for {session.awaiting_field} from user {user_id}")
            field_key = session.awaiting_field
            self.delete_message(chat_id, message.message_id)
            try:
                if field_key == 'pix_key_value':
                    pix_key = session.create_pix_key(session.new_pix_key_type, message.text)
                    if pix_key is None:
                        return
                    session.new_pix_key_type = None
                else:
                    session.set_field(field_key, message.text)
            except InvalidFieldValue as e:
                self.send_warning(chat_id, str(e))
                return
            session.awaiting_field = None
            self.refresh_wizard(chat_id, session)
        except Exception as e:
            logger.error(f"Error in handle_text_message: {e}", exc_info=True)
        finally:
            self.release_user(user_id)

    def handle_callback_query(self, call: telebot.types.CallbackQuery):
        user_id = call.from_user.id
        if not self.acquire_user(user_id):
            self.bot.answer_callback_query(call.id, text="⏳ Please wait, processing previous request.", show_alert=False)
            return

        try:
            logger.info(f"Received callback query from user {call.from_user.id} in chat {call.message.chat.id}: {call.data}")
            action_payload = call.data[3:]
            parts = action_payload.split(":", 1)
            action = parts[0] if parts else ""
            payload = parts[1] if len(parts) > 1 else ""
            self.callback_router(call, action, payload)
        except InvalidFieldValue as e:
            self.bot.answer_callback_query(call.id, text=f"❗ {e}", show_alert=True)
        except Exception as e:
            logger.error(f"Error in handle_callback_query: {e}", exc_info=True)
            self.bot.answer_callback_query(call.id, text="❗ An error occurred. Please try again.", show_alert=True)
        finally:
            self.release_user(user_id)

    def callback_router(self, call: telebot.types.CallbackQuery, action: str, payload: str):
        chat_id = call.message.chat.id
        with self.sessions_lock:
            session = self.sessions.get(call.from_user.id)
        if not session or not session.is_open:
            self.bot.answer_callback_query(call.id, text="❗ This wizard was closed. Use /new to continue.", show_alert=True)
            return
        self.wizard_messages.setdefault(chat_id, call.message.message_id)

        if action == "wallet":
            session.set_field("wallet_id", payload)
        elif action == "method":
            session.set_field("payment_method", payload)
        elif action == "gw_refresh":
            session.refresh_gateway()
        elif action == "gw_connect":
            self.handle_gateway_connect(call, session)
            return
        elif action == "gw_type":
            session.set_field("gateway_payment_type", payload)
        elif action == "type":
            session.set_field("movement_type", payload)
        elif action == "rel":
            session.set_field("relationship", payload)
        elif action == "ask":
            if payload not in FIELD_PROMPTS:
                self.bot.answer_callback_query(call.id, text=f"❗ Unknown field: {payload}", show_alert=True)
                return
            session.awaiting_field = payload
        elif action == "mode":
            session.set_field("input_mode", payload)
        elif action == "progress":
            session.set_field("is_in_progress", not session.state.installment_calc.is_in_progress)
        elif action == "interval":
            session.set_field("interval", payload)
        elif action == "pix":
            session.set_field("pix_key_id", payload)
        elif action == "pix_new":
            session.new_pix_key_type = payload
            session.awaiting_field = "pix_key_value"
        elif action == "clear":
            if payload not in CLEARABLE_FIELDS:
                self.bot.answer_callback_query(call.id, text=f"❗ {payload} cannot be cleared.", show_alert=True)
                return
            session.set_field(payload, None)
        elif action == "next":
            result = session.next()
            if not result.ok:
                self.bot.answer_callback_query(call.id, text=f"❗ {result.first_error}", show_alert=True)
                return
            session.awaiting_field = None
        elif action == "back":
            session.prev()
            session.awaiting_field = None
        elif action == "submit":
            self.handle_submit(call, session)
            return
        elif action == "dup":
            self.handle_duplicate_resolution(call, session, payload)
            return
        elif action == "close":
            session.close()
            self.end_wizard_message(chat_id, "⏸ Wizard closed. Your progress is saved, use /new to continue.")
            self.bot.answer_callback_query(call.id)
            return
        elif action == "discard":
            session.discard()
            self.end_wizard_message(chat_id, "🗑️ Progress discarded. Use /new to start over.")
            self.bot.answer_callback_query(call.id, text="Discarded.")
            return
        elif action == "reload":
            pass  # re-render below fetches wallets again
        else:
            self.bot.answer_callback_query(call.id, text=f"❗ Unknown or expired action: {action}", show_alert=True)
            return

        self.refresh_wizard(chat_id, session)
        self.bot.answer_callback_query(call.id)

    def handle_gateway_connect(self, call: telebot.types.CallbackQuery, session: WizardSession):
        auth_url = session.connect_gateway()
        if not auth_url:
            self.bot.answer_callback_query(call.id)
            return
        text, keyboard = render_gateway_connect_message(auth_url)
        self.bot.send_message(call.message.chat.id, text, reply_markup=keyboard, parse_mode='HTML')
        self.bot.answer_callback_query(call.id)

    def handle_submit(self, call: telebot.types.CallbackQuery, session: WizardSession):
        chat_id = call.message.chat.id
        result = session.submit()
        if result is None:
            # Validation or backend error, already notified
            self.refresh_wizard(chat_id, session)
            self.bot.answer_callback_query(call.id)
            return
        self.show_gate_result(call, session, result)

    def handle_duplicate_resolution(self, call: telebot.types.CallbackQuery, session: WizardSession, payload: str):
        try:
            action = Resolution(payload)
        except ValueError:
            self.bot.answer_callback_query(call.id, text=f"❗ Unknown action: {payload}", show_alert=True)
            return
        result = session.resolve_duplicates(action)
        if result is None:
            self.refresh_wizard(call.message.chat.id, session)
            self.bot.answer_callback_query(call.id)
            return
        self.show_gate_result(call, session, result)

    def show_gate_result(self, call: telebot.types.CallbackQuery, session: WizardSession, result):
        chat_id = call.message.chat.id
        if result.status == GateStatus.CREATED:
            self.end_wizard_message(chat_id, render_created_message(result.movement))
            self.bot.answer_callback_query(call.id, text="✅ Movement created!")
        elif result.status == GateStatus.PAUSED:
            text, keyboard = render_duplicate_warning(result.candidates)
            self.show_wizard_message(chat_id, text, keyboard)
            self.bot.answer_callback_query(call.id)
        elif result.status == GateStatus.CANCELLED:
            self.refresh_wizard(chat_id, session)
            self.bot.answer_callback_query(call.id, text="Cancelled.")
        else:
            self.bot.answer_callback_query(call.id, text="⏳ Already submitting, please wait.", show_alert=False)
