"""HTTP interface for the billing console."""

from api.base import APIResponse, ErrorCodes, success_response, error_response
from api.errors import register_error_handlers, status_for
from api.middleware import RequestIDMiddleware, StaffActorMiddleware
