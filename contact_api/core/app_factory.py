"""Application factory for the FastAPI app.

Centralizes app construction (state, middleware, handlers, routers) so tests
can build isolated instances with their own limiter store and inbox.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from contact_api.adapters.rate_limit.base import AbstractRateLimiter
from contact_api.api.routes import contact_router, health_router
from contact_api.core.config import Settings, settings as default_settings
from contact_api.core.exception_handlers import setup_exception_handlers
from contact_api.core.logging import configure_logging
from contact_api.core.middleware import request_id_middleware
from contact_api.core.openapi import apply_openapi_customizations
from contact_api.core.rate_limit import RateLimitMiddleware, build_rate_limiter
from contact_api.services.contact_service import ContactInbox, ContactService

CONTACT_PATH = "/api/contact"


def create_app(
    app_settings: Settings | None = None,
    *,
    rate_limiter: AbstractRateLimiter | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        app_settings: Settings to use; defaults to the global settings.
        rate_limiter: Limiter guarding the contact route; built from settings
            when omitted.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    cfg = app_settings or default_settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    limiter = rate_limiter or build_rate_limiter(cfg.rate_limit)
    inbox = ContactInbox(max_entries=cfg.app.contact_inbox_size)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        limiter.reset()
        inbox.clear()

    app = FastAPI(
        title="Contact API",
        description=(
            "Contact form backend for the company website. Submissions are "
            "rate limited per client with a sliding window."
        ),
        version="0.1.0",
        debug=cfg.app.debug,
        lifespan=lifespan,
    )
    app.state.rate_limiter = limiter
    app.state.contact_inbox = inbox
    app.state.contact_service = ContactService(inbox)

    # Middleware: the last registered runs first, so request ids wrap everything
    if cfg.rate_limit.enabled:
        app.middleware("http")(
            RateLimitMiddleware(limiter, paths={CONTACT_PATH}, methods={"POST"})
        )
    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(contact_router)
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
