"""FastAPI application entrypoint and configuration.

This module provides the FastAPI application factory that sets up CORS
middleware, includes the merge API router, and exposes a health check
endpoint for monitoring. It lets a tile-serving stack trigger merges of
GeoPackages that already sit on the server's filesystem.

Example:
    The application can be run with uvicorn:
        $ uvicorn gpkg_merge.main:app

    Or imported and used programmatically:
        >>> from gpkg_merge.main import app
"""

import fastapi
from fastapi.middleware import cors

from gpkg_merge.api import merges
from gpkg_merge.core import config


def create_app() -> fastapi.FastAPI:
    """Create and configure the FastAPI application.

    Sets up CORS middleware, includes the merge router, and adds a health
    check endpoint. CORS origins are configured from settings.

    Returns:
        Configured FastAPI application instance ready for ASGI server.
    """
    settings = config.get_settings()
    app = fastapi.FastAPI(title="GeoPackage Merge", version="0.1.0")

    app.include_router(merges.router)

    app.add_middleware(
        cors.CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health() -> dict[str, str]:  # type: ignore[misc]
        """Health check endpoint for monitoring and load balancers.

        Returns:
            Dictionary with status "ok" if the service is running.
        """
        return {"status": "ok"}

    return app


app = create_app()
