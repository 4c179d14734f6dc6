"""
FastAPI server for the gas dashboard.

Endpoints:
  GET  /                 liveness text
  GET  /api/gas-history  current gas price per chain (snapshot, not history)
  POST /api/v1/simulate  estimate + record transfer cost on every chain
  GET  /gas-history      full persisted history (separate router)
"""

import logging
import math
import threading
from typing import Any

from pipeline.aggregator import CycleFailed, GasAggregator
from report.history import HistoryStore

logger = logging.getLogger(__name__)

ROOT_MESSAGE = "Real-Time Gas Tracker Backend is running"


class InvalidAmount(ValueError):
    pass


def parse_eth_amount(body: Any) -> float:
    """Validate the simulate request body. Raises InvalidAmount."""
    amount = body.get("ethAmount") if isinstance(body, dict) else None
    if not amount:
        raise InvalidAmount("ethAmount is required")
    if isinstance(amount, bool):
        raise InvalidAmount("ethAmount must be a positive number")
    try:
        value = float(amount)
    except (TypeError, ValueError, OverflowError):
        raise InvalidAmount("ethAmount must be a positive number") from None
    if not math.isfinite(value) or value <= 0:
        raise InvalidAmount("ethAmount must be a positive number")
    return value


def create_history_router(store: HistoryStore) -> Any:
    """Router serving the persisted history file."""
    from fastapi import APIRouter
    from fastapi.responses import JSONResponse

    router = APIRouter()

    @router.get("/gas-history")
    def get_gas_history():
        try:
            return [entry.to_dict() for entry in store.read_all()]
        except Exception:
            logger.exception("Failed to fetch gas history")
            return JSONResponse({"error": "Failed to fetch gas history"}, status_code=500)

    return router


def create_app(aggregator: GasAggregator, include_history_route: bool = True) -> Any:
    """Build and return the FastAPI application."""
    from fastapi import FastAPI, Request
    from fastapi.middleware.cors import CORSMiddleware
    from fastapi.responses import JSONResponse, PlainTextResponse
    from starlette.concurrency import run_in_threadpool

    app = FastAPI(title="Gas Tracker", docs_url="/docs")
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=".*",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Static ──

    @app.get("/", response_class=PlainTextResponse)
    def index():
        return ROOT_MESSAGE

    # ── Gas prices ──

    @app.get("/api/gas-history")
    def get_gas_prices():
        try:
            return aggregator.snapshot()
        except CycleFailed:
            logger.exception("Failed to fetch gas prices")
            return JSONResponse({"error": "Failed to fetch gas prices"}, status_code=500)

    # ── Simulation ──

    @app.post("/api/v1/simulate")
    async def simulate(request: Request):
        try:
            body = await request.json()
        except ValueError:
            body = None
        try:
            amount = parse_eth_amount(body)
        except InvalidAmount as e:
            return JSONResponse({"error": str(e)}, status_code=400)

        try:
            results = await run_in_threadpool(aggregator.run_cycle, amount)
        except Exception:
            logger.exception("Simulation failed")
            return JSONResponse({"error": "Simulation failed"}, status_code=500)
        return {"data": results}

    # ── History ──

    if include_history_route:
        app.include_router(create_history_router(aggregator.store))

    return app


def start_server(
    aggregator: GasAggregator,
    host: str = "0.0.0.0",
    port: int = 5000,
    include_history_route: bool = True,
    background: bool = True,
) -> threading.Thread | None:
    """
    Run the API with uvicorn.

    With background=True the server runs in a daemon thread which is returned;
    otherwise this call blocks until the server exits.
    """
    import uvicorn

    app = create_app(aggregator, include_history_route=include_history_route)

    def _run():
        uvicorn.run(
            app,
            host=host,
            port=port,
            log_level="warning",
            access_log=False,
        )

    logger.info("Gas tracker API at http://%s:%d", host, port)
    if not background:
        _run()
        return None

    thread = threading.Thread(target=_run, daemon=True, name="gas-api")
    thread.start()
    return thread
