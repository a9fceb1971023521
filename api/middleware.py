"""Request-scoped middleware for API requests."""

from uuid import UUID, uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from utils.actor_context import actor_context


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assigns a request ID, reusing the caller's X-Request-ID when present."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class StaffActorMiddleware(BaseHTTPMiddleware):
    """
    Binds the X-Staff-ID header to the actor context for the request.

    Staff identity is established upstream by the console's gateway; this
    only carries it through so audit entries and payments are attributed.
    Requests without the header run as the system actor.
    """

    async def dispatch(self, request: Request, call_next):
        raw = request.headers.get("X-Staff-ID")
        if not raw:
            return await call_next(request)

        try:
            staff_id = UUID(raw)
        except ValueError:
            return JSONResponse(
                status_code=400,
                content=error_response(
                    ErrorCodes.INVALID_REQUEST,
                    f"X-Staff-ID must be a UUID, got '{raw}'",
                    getattr(request.state, "request_id", None),
                ).model_dump(mode="json"),
            )

        with actor_context(staff_id):
            return await call_next(request)
