"""Request correlation id middleware."""

from __future__ import annotations

import re
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from backend.app.core.logging_config import request_id_var

_HEADER = "X-Request-ID"
_VALID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Accept or mint an ``X-Request-ID`` and expose it to log records.

    The id is stored on ``request.state.request_id`` and echoed back on the
    response.  Client-supplied ids that do not look like an identifier are
    replaced.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        incoming = request.headers.get(_HEADER, "")
        request_id = incoming if _VALID.match(incoming) else uuid.uuid4().hex
        request.state.request_id = request_id

        token = request_id_var.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)
        response.headers[_HEADER] = request_id
        return response
