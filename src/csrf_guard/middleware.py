"""
Middleware that gives each request a ``CsrfRequestContext`` and writes the
cookie changes it collected onto the outgoing response.

Applying cookies here rather than inside the dependencies means a consumed
double-submit cookie is deleted in the browser even when the route answers
with a 403, a 404 forward, returns its own ``RedirectResponse``, or fails with
an unhandled exception (answered here with a JSON 500).
"""

import logging

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from src.csrf_guard import config
from src.csrf_guard.context import attach_csrf_context
from src.csrf_guard.errors import INTERNAL_ERROR_BODY

logger = logging.getLogger(__name__)


class CsrfCookieMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, secret_key: str | None = None) -> None:
        super().__init__(app)
        if secret_key is None:
            secret_key = config.SECRET_KEY
        if config.IS_PROD and secret_key == config.DEFAULT_SECRET_KEY:
            raise RuntimeError("SECRET_KEY must be set when APP_ENV=production")
        self.secret_key = secret_key

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        context = attach_csrf_context(request, self.secret_key)
        try:
            response = await call_next(request)
        except Exception:
            # A 500 built outside this middleware would carry no cookie changes.
            logger.exception("csrf_unhandled_error method=%s path=%s", request.method, request.url.path)
            response = JSONResponse(status_code=500, content=INTERNAL_ERROR_BODY)
        context.cookies.apply(response)
        return response
