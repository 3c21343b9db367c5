"""
Unhangout realtime server - FastAPI backend
Main application entry point
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from app.core.config import settings
from app.core.db import engine, Base
from app.core.errors import UnhangoutError
from app.api import routes_admin, routes_public, routes_session, ws
from app.services.repositories import use_firestore
from app.services.state import UnhangoutState
from app.utils.responses import unhangout_error_response

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

def create_app(state: Optional[UnhangoutState] = None) -> FastAPI:
    """Build the application; tests pass in a state wired to their own storage"""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan management"""
        current = state
        if current is None:
            if not use_firestore():
                # Create database tables
                Base.metadata.create_all(bind=engine)
                logger.info("Database tables created")
            current = UnhangoutState()
        await current.load()
        app.state.unhangout = current
        logger.info("Unhangout server started")
        yield
        await current.shutdown()
        logger.info("Application shutdown")

    app = FastAPI(
        title="Unhangout",
        description="Realtime event and breakout session server",
        version="1.0.0",
        lifespan=lifespan
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOW_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(UnhangoutError)
    async def unhangout_error_handler(request: Request, exc: UnhangoutError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return unhangout_error_response(exc)

    # Include routers
    app.include_router(routes_public.router, tags=["public"])
    app.include_router(routes_session.router, tags=["session"])
    app.include_router(routes_admin.router, prefix="/admin", tags=["admin"])
    app.include_router(ws.router, tags=["websocket"])
    return app

app = create_app()

# Note: Run this ASGI app directly with Uvicorn or Hypercorn. For Gunicorn,
# use `uvicorn.workers.UvicornWorker` instead of wrapping the app.

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="127.0.0.1",
        port=7777,
        reload=True
    )
