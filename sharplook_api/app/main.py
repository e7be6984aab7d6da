"""
Main entrypoint for the SharpLook API.

``create_app`` configures logging, CORS, security middleware and the
error envelope, mounts the versioned router under ``/api/v1`` and
registers the database migrations to run on startup.  The instance is
created at import time as ``app`` so it can be served with::

    uvicorn sharplook_api.app.main:app --reload
"""

import time
from typing import Any, Dict

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.v1.router import router as v1_router
from .core.config import settings
from .core.db import init_db
from .core.errors import register_exception_handlers
from .core.helpers import now_iso
from .core.logging_config import setup_logging
from .core.middleware import register_middleware
from .core.rate_limit import limiter
from .core.responses import success


_started_at = time.monotonic()


def create_app() -> FastAPI:
    """Create and configure a FastAPI application.

    Returns
    -------
    FastAPI
        A configured application instance.
    """
    setup_logging(settings.log_level, settings.log_file or None)

    app = FastAPI(title=settings.project_name, version=settings.api_version)
    app.state.limiter = limiter

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )
    register_middleware(app)
    register_exception_handlers(app)

    @app.get("/health", tags=["health"])
    async def health() -> Dict[str, Any]:
        return success(
            {
                "status": "healthy",
                "environment": settings.environment,
                "timestamp": now_iso(),
                "uptime": round(time.monotonic() - _started_at, 3),
            },
            "Server is running",
        )

    app.include_router(v1_router, prefix="/api/v1")

    @app.on_event("startup")
    async def startup_event() -> None:
        init_db()

    return app


app = create_app()
