"""FastAPI application factory for the billing API."""

import logging

from fastapi import FastAPI

from api.actions import create_actions_router
from api.data import create_data_router
from api.errors import register_error_handlers
from api.middleware import RequestIDMiddleware, StaffActorMiddleware

logger = logging.getLogger(__name__)


def create_app(services: dict) -> FastAPI:
    """
    Build the app around already-wired services (see core.wiring.build_services).

    Middleware runs outermost-last-added: request ID is assigned before the
    staff actor is bound, so even a rejected X-Staff-ID gets a request ID.
    """
    app = FastAPI(title=services["config"].app_name)

    app.add_middleware(StaffActorMiddleware)
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)

    app.include_router(create_data_router(services), prefix="/api")
    app.include_router(create_actions_router(services), prefix="/api")

    logger.info("Billing API created")
    return app
