"""
TaskPilot — Entry Point.

`python main.py` starts the Telegram bot. Set LOG_LEVEL=DEBUG in .env to see
raw LLM responses and planner decisions.
"""

import logging

from taskpilot.config import settings

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
# python-telegram-bot polls through httpx, which logs every request at INFO
logging.getLogger("httpx").setLevel(logging.WARNING)

from taskpilot.bot.telegram_bot import main

if __name__ == "__main__":
    main()
