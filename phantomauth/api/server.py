"""
FastAPI server for PhantomAuth.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from ..config import Config, get_config
from ..errors import PhantomAuthError, RateLimitedError
from ..service import AuthFlow
from ..store import MemoryStore

logger = logging.getLogger(__name__)

# Global flow instance (shared with routes.py)
_flow: Optional[AuthFlow] = None


def get_flow() -> Optional[AuthFlow]:
    """Get the global AuthFlow instance."""
    return _flow


def set_flow(flow: Optional[AuthFlow]) -> None:
    """Set the global AuthFlow instance."""
    global _flow
    _flow = flow


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build an AuthFlow from configuration unless one was supplied."""
    owned = False
    if get_flow() is None:
        config = get_config()
        try:
            set_flow(AuthFlow.from_config(config, MemoryStore()))
        except PhantomAuthError as e:
            logger.error(f"Failed to start server: {e.message}")
            raise
        owned = True
        logger.info("AuthFlow initialized with in-memory store")

    yield

    if owned:
        set_flow(None)


async def handle_phantomauth_error(request: Request, exc: PhantomAuthError) -> JSONResponse:
    """Map PhantomAuth errors onto JSON responses."""
    headers = {}
    if isinstance(exc, RateLimitedError):
        flow = get_flow()
        now = flow.clock.now() if flow else exc.reset_at
        headers["Retry-After"] = str(max(0, int(exc.reset_at - now)))

    if exc.status_code >= 500:
        logger.error(f"{request.url.path}: {exc.code} {exc.message}")

    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


def create_app(flow: Optional[AuthFlow] = None, config: Optional[Config] = None) -> FastAPI:
    """Create the FastAPI application."""
    from .routes import router

    if config:
        from ..config import set_config
        set_config(config)
    if flow:
        set_flow(flow)

    cors_origins = (config or (flow.config if flow else None) or Config()).server.cors_origins

    app = FastAPI(
        title="PhantomAuth",
        description="Passwordless magic links and device memory tokens",
        version="1.0.0",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Device-Fingerprint"],
    )

    app.add_exception_handler(PhantomAuthError, handle_phantomauth_error)

    app.include_router(router, prefix="/api")

    return app


def run_server(
    host: str = "127.0.0.1",
    port: int = 8420,
    config: Optional[Config] = None,
):
    """Run the server with uvicorn."""
    app = create_app(config=config)
    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level="info"
    )
