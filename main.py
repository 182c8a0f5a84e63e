"""Cron Watch: diagnostics API and background monitor.

On startup the lifespan handler starts the polling loop on a daemon thread.
The HTTP endpoints only read engine state, except POST /api/check, which
runs one poll immediately on the request thread.

Endpoints:
    GET  /health              liveness
    GET  /api/jobs            every tracked job's state
    GET  /api/jobs/{job_id}   one job's state (404 when not tracked)
    GET  /api/scheduler       scheduler liveness state
    GET  /api/polls/latest    outcome of the last poll (404 before the first)
    POST /api/check           poll now (503 when the source cannot be read)

All state returned here is a copy taken under the engine lock, so handlers
never observe a poll half-way through.

Run locally:
    uv run uvicorn main:app --reload
"""

import logging
import threading
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder

from config import get_settings
from core.log_setup import configure_logging
from core.monitor import MonitorService, build_service
from schemas.alert import PollResult

logger = logging.getLogger(__name__)


def create_app(service: MonitorService | None = None, run_loop: bool = True) -> FastAPI:
    """Build the API around a monitor service.

    Args:
        service: The service to expose. Built from settings on startup when
            omitted.
        run_loop: Start the polling loop on a background thread. Tests pass
            False and drive polls through POST /api/check.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.service is None:
            settings = get_settings()
            configure_logging(settings)
            app.state.service = build_service(settings)

        svc: MonitorService = app.state.service
        worker: threading.Thread | None = None
        if run_loop:
            worker = threading.Thread(target=svc.start, name="cronwatch-monitor", daemon=True)
            worker.start()

        yield

        if worker is not None:
            svc.stop()
            worker.join(timeout=30)
            if worker.is_alive():
                logger.warning("Monitor thread did not stop within 30s.")
        svc.close()

    app = FastAPI(title="Cron Watch", lifespan=lifespan)
    app.state.service = service

    # ---------------------------------------------------------------------------
    # Health check
    # ---------------------------------------------------------------------------

    @app.get("/health")
    def health(request: Request):
        svc = _service(request)
        last = svc.last_result
        return {
            "status": "ok",
            "last_poll": last.polled_at if last else None,
        }

    # ---------------------------------------------------------------------------
    # Diagnostics
    # ---------------------------------------------------------------------------

    @app.get("/api/jobs")
    def list_jobs(request: Request):
        """Return every tracked job's state, sorted by job id."""
        states = _service(request).engine.job_states()
        return {
            "count": len(states),
            "jobs": [jsonable_encoder(states[job_id]) for job_id in sorted(states)],
        }

    @app.get("/api/jobs/{job_id}")
    def get_job(job_id: str, request: Request):
        state = _service(request).engine.job_state(job_id)
        if state is None:
            raise HTTPException(status_code=404, detail=f"Job '{job_id}' is not tracked.")
        return jsonable_encoder(state)

    @app.get("/api/scheduler")
    def get_scheduler(request: Request):
        return jsonable_encoder(_service(request).engine.scheduler_state())

    @app.get("/api/polls/latest", response_model=PollResult)
    def get_latest_poll(request: Request):
        """Return the most recent successful poll.

        Returns 404 if no poll has completed yet.
        """
        last = _service(request).last_result
        if last is None:
            raise HTTPException(status_code=404, detail="No polls yet.")
        return last

    @app.post("/api/check", response_model=PollResult)
    def run_check(request: Request):
        """Run one poll now and return its outcome."""
        result = _service(request).run_check()
        if result is None:
            raise HTTPException(status_code=503, detail="Record source unavailable.")
        return result

    return app


def _service(request: Request) -> MonitorService:
    return request.app.state.service


app = create_app()
