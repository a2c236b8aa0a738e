"""
api/app.py — FastAPI application factory
==========================================
Creates and configures the FastAPI instance.  All configuration is
centralised here so that `main.py` stays minimal.

Session
-------
Each app owns one MonitorSession on `app.state.session`.  Tests pass their
own session (e.g. backed by a temporary calibration file); the server
uses one backed by CALIBRATION_STORE_PATH.

CORS
----
We allow all origins by default (suitable for local development and
demos).  In a production deployment restrict `allow_origins` to your
frontend domain.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import router
from api.session import MonitorSession
from config import API_TITLE, API_VERSION
from model.calibration import default_store


def create_app(session: MonitorSession | None = None) -> FastAPI:
    """
    Construct and return the configured FastAPI application.

    This is a *factory function* (rather than a module-level singleton)
    so that tests can create isolated app instances.
    """
    app = FastAPI(
        title=API_TITLE,
        version=API_VERSION,
        description=(
            "Fingertip photoplethysmography (PPG) vital-signs pipeline. "
            "⚠️ WELLNESS TOOL ONLY — not a medical device."
        ),
    )
    app.state.session = session if session is not None else MonitorSession(default_store())

    # ── CORS ────────────────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],           # Restrict in production!
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Mount routes ────────────────────────────────────────────────────
    app.include_router(router)

    return app
