"""FastAPI application entry point"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from videohop import __version__
from videohop.api import accounts, uploads
from videohop.core.config import settings
from videohop.core.logging import setup_logging
from videohop.db.account_store import AccountStore, DatabaseAccountStore, MemoryAccountStore
from videohop.services.session_context import SessionContext
from videohop.services.token_service import TokenLifecycleManager
from videohop.services.upload.orchestrator import UploadOrchestrator
from videohop.tasks.token_monitor import TokenMonitor

setup_logging()
logger = logging.getLogger(__name__)


def build_account_store() -> AccountStore:
    """Account store selected by ACCOUNT_STORE"""
    if settings.ACCOUNT_STORE == "database":
        from videohop.db.session import SessionLocal, init_db

        logger.info("Initializing database...")
        init_db()
        logger.info("Database initialized successfully")
        return DatabaseAccountStore(SessionLocal)
    return MemoryAccountStore()


def create_app(session: Optional[SessionContext] = None,
               tokens: Optional[TokenLifecycleManager] = None,
               orchestrator: Optional[UploadOrchestrator] = None,
               monitor: Optional[TokenMonitor] = None,
               start_monitor: bool = True) -> FastAPI:
    """Build the application; collaborators not passed in are created in the lifespan"""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan event handler for startup and shutdown"""
        app_session = session or SessionContext(build_account_store())
        app_tokens = tokens or TokenLifecycleManager()
        app_orchestrator = orchestrator or UploadOrchestrator(app_session, app_tokens)
        app_monitor = monitor or TokenMonitor(app_session, app_tokens)

        app.state.session = app_session
        app.state.tokens = app_tokens
        app.state.orchestrator = app_orchestrator
        app.state.monitor = app_monitor

        if start_monitor:
            logger.info("Starting token monitor...")
            app_monitor.start()

        yield

        # Shutdown
        logger.info("Shutting down...")
        await app_monitor.stop()
        await app_orchestrator.shutdown()

    app = FastAPI(
        title="videohop",
        description="Resumable multi-platform video uploads",
        version=__version__,
        lifespan=lifespan
    )

    app.include_router(uploads.router)
    app.include_router(accounts.router)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler"""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error"}
        )

    @app.get("/metrics")
    def metrics_endpoint():
        """Prometheus metrics endpoint"""
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.get("/health")
    def health_check():
        """Health check endpoint"""
        return {"status": "healthy"}

    return app


app = create_app()
