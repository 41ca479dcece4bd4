from __future__ import annotations

import asyncio

from clockin.config import load_settings
from clockin.db import Database
from clockin.logging_setup import setup_logging
from clockin.telegram_bot import build_application


def run_bot() -> None:
    settings = load_settings()
    setup_logging(settings.log_level)
    db = Database(settings.database_path)

    # Python 3.14 does not auto-create a default event loop in main thread.
    try:
        asyncio.get_event_loop()
    except RuntimeError:
        asyncio.set_event_loop(asyncio.new_event_loop())

    application = build_application(settings, db)
    application.run_polling()
