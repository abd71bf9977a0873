import logging
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .server import SERVER_NAME, STATS_RESOURCE_NAME, DiscourseMCP, build_server
from .settings import Settings, get_settings

CORS_ALLOW_METHODS = ["GET", "POST", "OPTIONS"]
CORS_ALLOW_HEADERS = ["Content-Type", "Authorization", "mcp-protocol-version"]


def setup_server_logging(level: str = "INFO") -> logging.Logger:
    """Configure and return the package logger (console + rotating file)."""
    logs_dir = Path("logs")
    logs_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger("discourse_mcp")
    if logger.handlers:
        return logger

    logger.setLevel(level)
    fmt = logging.Formatter("%(asctime)s %(levelname)s %(name)s - %(message)s")

    ch = logging.StreamHandler()
    ch.setFormatter(fmt)
    logger.addHandler(ch)

    fh = RotatingFileHandler(logs_dir / "server.log", maxBytes=5_000_000, backupCount=3)
    fh.setFormatter(fmt)
    logger.addHandler(fh)

    return logger


def _cors_origins_list(origins: str) -> list[str]:
    """Parse CORS_ORIGINS into a list."""
    if not origins or origins.strip() == "*":
        return ["*"]
    return [o.strip() for o in origins.split(",") if o.strip()]


LOGGER = logging.getLogger("discourse_mcp.main")


def create_app(settings: Settings, mcp_server: DiscourseMCP | None = None) -> FastAPI:
    """Build the HTTP host: health check, CORS and both MCP transports.

    Raises ConfigurationError when the Discourse credentials are missing.
    """
    mcp_server = mcp_server or build_server(settings)
    streamable_app = mcp_server.streamable_http_app()
    sse_app = mcp_server.sse_app()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Connect optional session persistence, run the MCP session manager, clean up."""
        await mcp_server.store.connect()
        LOGGER.info("Discourse MCP server ready (%s)", mcp_server.service.base_url)
        async with mcp_server.session_manager.run():
            yield
        LOGGER.info("Shutting down...")
        await mcp_server.service.aclose()
        await mcp_server.store.close()

    app = FastAPI(
        title="Discourse MCP Server",
        version=__version__,
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.mcp_server = mcp_server

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins_list(settings.cors_origins),
        allow_methods=CORS_ALLOW_METHODS,
        allow_headers=CORS_ALLOW_HEADERS,
        expose_headers=["mcp-session-id"],
        max_age=86400,
    )

    @app.get("/health")
    async def health() -> dict[str, Any]:
        """Liveness check reporting configuration presence and the exposed surface."""
        return {
            "name": f"{SERVER_NAME}-server",
            "status": "healthy",
            "version": __version__,
            "description": "MCP server for a Discourse community forum",
            "tools": mcp_server.service.registry.names(),
            "resources": [STATS_RESOURCE_NAME],
            "endpoints": {
                "sse": "/sse (Server-Sent Events)",
                "mcp": "/mcp (Streamable HTTP)",
                "health": "/health",
            },
            "env_check": settings.env_check(),
        }

    app.router.routes.extend(streamable_app.routes)
    app.router.routes.extend(sse_app.routes)
    return app


def app_factory() -> FastAPI:
    """Application factory for ``uvicorn discourse_mcp.main:app_factory --factory``."""
    settings = get_settings()
    setup_server_logging(settings.log_level)
    return create_app(settings)


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    settings = get_settings()
    uvicorn.run(
        app_factory(),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
