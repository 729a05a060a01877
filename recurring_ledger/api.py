"""
Trigger Endpoint

HTTP surface of the scheduler. A periodic job (cron) calls

    POST /process-recurring/<secret>

and gets back {"count": n} on success or {"error": "..."} with a
non-2xx status on failure. The secret may also be sent in the
X-Trigger-Secret header to /process-recurring.

CRITICAL: The gate is checked before the runner is touched. An
unauthorized call performs no store reads or writes.
"""

from datetime import date
from typing import Optional

import structlog
from fastapi import FastAPI, Header, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from recurring_ledger import __version__
from recurring_ledger.orchestrator import AppComponents
from recurring_ledger.services.storage import FetchError
from recurring_ledger.trigger import AuthorizationError


logger = structlog.get_logger(__name__)

CORS_ALLOW_HEADERS = [
    "authorization",
    "x-client-info",
    "apikey",
    "content-type",
    "x-trigger-secret",
]


def create_app(components: AppComponents) -> FastAPI:
    """Build the FastAPI application around ready-made components."""
    app = FastAPI(title="Recurring Ledger Scheduler", version=__version__)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=CORS_ALLOW_HEADERS,
    )
    app.state.components = components

    async def _process(credential: Optional[str], run_date: Optional[date]) -> JSONResponse:
        try:
            components.gate.check(credential)
        except AuthorizationError as e:
            await components.audit_logger.log_trigger_rejected(reason=str(e))
            return JSONResponse({"error": "Unauthorized"}, status_code=401)

        try:
            result = await components.runner.run(today=run_date)
        except FetchError as e:
            logger.error("batch_run_failed", error=str(e))
            return JSONResponse({"error": str(e)}, status_code=500)
        except Exception as e:
            logger.exception("batch_run_crashed", error=str(e))
            return JSONResponse({"error": str(e)}, status_code=500)

        logger.info(
            "batch_run_finished",
            run_id=str(result.run_id),
            count=result.count,
            failed=len(result.failed_rule_ids),
            advance_failed=len(result.advance_failed_rule_ids),
        )
        return JSONResponse(result.to_response(), status_code=200)

    @app.api_route("/process-recurring/{secret}", methods=["GET", "POST"])
    async def process_recurring(
        secret: str,
        run_date: Optional[date] = Query(default=None),
    ) -> JSONResponse:
        return await _process(secret, run_date)

    @app.api_route("/process-recurring", methods=["GET", "POST"])
    async def process_recurring_header(
        x_trigger_secret: Optional[str] = Header(default=None),
        run_date: Optional[date] = Query(default=None),
    ) -> JSONResponse:
        return await _process(x_trigger_secret, run_date)

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok", "version": __version__}

    return app
