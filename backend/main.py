import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import get_settings
from database import SessionLocal, commit, init_db
from logging_config import configure_logging
from api import router, register_error_handlers
from api.middleware import RequestLoggingMiddleware
from services import reconcile_pending_exposure

settings = get_settings()
configure_logging(settings)
logger = logging.getLogger(__name__)

app = FastAPI(title="Wager Ledger API", version="1.0.0")

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)
app.include_router(router, prefix="/api")


@app.on_event("startup")
def on_startup():
    """Create tables and finish any half-applied wagers.

    The stats row is not seeded here; it appears with the first write that
    counts something, or through POST /api/platform-stats.
    """
    init_db()

    db = SessionLocal()
    try:
        # A wager committed without its exposure step gets it now
        applied = reconcile_pending_exposure(db)
        commit(db, "startup reconciliation")

        logger.info(
            "ledger ready on %s network, reconciled %d wagers",
            settings.network.name, applied,
        )
    finally:
        db.close()


@app.get("/health")
def health_check():
    return {"status": "healthy"}
