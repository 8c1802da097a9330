"""
FastAPI entrypoint for the companion authorization server.
"""

from __future__ import annotations

from fastapi import FastAPI

from outlook_mcp.api.routes import router as auth_router
from outlook_mcp.core.config import get_settings
from outlook_mcp.core.logging import configure_logging


def create_app() -> FastAPI:
    """Factory for the companion authorization server application."""
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_file)

    app = FastAPI(
        title="Outlook MCP Authorization Server",
        version="0.1.0",
        description="Completes Microsoft OAuth flows on behalf of the Outlook MCP server.",
    )
    app.include_router(auth_router)
    return app


app = create_app()

__all__ = ["app", "create_app"]
