# Copyright (C) 2024 OrgAuth Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Map core error kinds onto HTTP responses."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from orgauth_server.errors import AccountLocked, SecurityError, StoreUnavailable

logger = logging.getLogger(__name__)


def error_body(exc: SecurityError) -> dict:
    body: dict = {"detail": exc.message, "code": exc.kind}
    if isinstance(exc, AccountLocked):
        body["retry_after_seconds"] = exc.retry_after_seconds
    return body


def register_exception_handlers(app: FastAPI) -> None:
    """Install a single handler for every SecurityError subclass."""

    @app.exception_handler(SecurityError)
    async def handle_security_error(request: Request, exc: SecurityError) -> JSONResponse:
        headers: dict[str, str] = {}
        if isinstance(exc, AccountLocked):
            headers["Retry-After"] = str(exc.retry_after_seconds)
        if isinstance(exc, StoreUnavailable) and exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.kind)
        return JSONResponse(status_code=exc.status_code, content=error_body(exc), headers=headers)
