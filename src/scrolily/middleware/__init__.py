"""Middleware registration."""

from fastapi import FastAPI

from scrolily.config import Settings
from scrolily.middleware.cors import setup_cors
from scrolily.middleware.error_handler import setup_error_handlers
from scrolily.middleware.logging import setup_logging
from scrolily.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register all middleware in the correct order.

    Starlette executes middleware in reverse-add order (last added = outermost).
    CORS is outermost so it wraps error responses too.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
