import os

BOT_TOKEN = os.environ.get("BOT_TOKEN")
BOT_USERNAME = os.environ.get("BOT_USERNAME", "")
DB_PATH = os.environ.get("DB_PATH", "movements.db")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "DEBUG")
API_URL = os.environ.get("API_URL", "http://localhost:3444/api/v1")
API_TIMEOUT = float(os.environ.get("API_TIMEOUT", 10))
PROGRESS_DEBOUNCE_SECONDS = float(os.environ.get("PROGRESS_DEBOUNCE_SECONDS", 0.3))
WARNING_TTL_SECONDS = float(os.environ.get("WARNING_TTL_SECONDS", 5.0))
CURRENCY = os.environ.get("CURRENCY", "BRL")
DB_TIMEZONE_OFFSET = os.environ.get('DB_TIMEZONE_OFFSET', '-3 hours')
