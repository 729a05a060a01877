"""
ASGI entry point for the Recurring Ledger Scheduler

Run with:
    uvicorn app.main:app

Configuration is read and validated here, once, at startup. Every
section is checked and logged first; then a missing
GOOGLE_SHEETS_SPREADSHEET_URL, GOOGLE_SHEETS_CREDENTIALS_PATH or
CRON_SECRET stops the process before it accepts any request.
"""

import logging

from recurring_ledger.api import create_app
from recurring_ledger.config import get_settings
from recurring_ledger.orchestrator import create_app_components, log_settings_status


logging.basicConfig(
    format="%(message)s",
    level=logging.DEBUG if get_settings().app.debug_mode else logging.INFO,
)

log_settings_status()
app = create_app(create_app_components())
