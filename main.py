import sys
import os

sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))

from finbot.app import Bot
from finbot.config import API_URL, BOT_TOKEN
from finbot.logger import get_logger

logger = get_logger(__name__)

def main():
    """
    The main function that creates and runs the bot.
    """
    try:
        bot = Bot()
        bot.run()
    except Exception as e:
        logger.critical(f"An unhandled exception occurred in main: {e}", exc_info=True)

if __name__ == "__main__":
    if not BOT_TOKEN:
        logger.critical("BOT_TOKEN environment variable not set. Exiting.")
    elif not API_URL:
        logger.critical("API_URL environment variable is empty. Exiting.")
    else:
        main()
