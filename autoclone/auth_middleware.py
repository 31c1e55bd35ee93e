"""
Shared-secret authentication middleware for the pipeline worker.

All /pipeline/* endpoints require a valid X-Worker-Secret header matching
the WORKER_SHARED_SECRET environment variable. The cron job and dashboard
attach this header when triggering runs.
"""

import os
import secrets

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware


class WorkerAuthMiddleware(BaseHTTPMiddleware):
    """Reject unauthenticated requests to /pipeline/* endpoints."""

    PROTECTED_PREFIX = "/pipeline"

    def __init__(self, app, secret: str = None, environment: str = None):
        super().__init__(app)
        self.secret = os.environ.get("WORKER_SHARED_SECRET", "") if secret is None else secret
        self.environment = environment or os.environ.get("ENVIRONMENT", "development")

    async def dispatch(self, request: Request, call_next):
        if not request.url.path.startswith(self.PROTECTED_PREFIX):
            return await call_next(request)

        if not self.secret:
            # In development without the secret set, allow all traffic
            if self.environment == "development":
                return await call_next(request)
            return JSONResponse({"detail": "WORKER_SHARED_SECRET not configured"}, status_code=500)

        # Constant-time compare avoids timing attacks
        provided = request.headers.get("X-Worker-Secret", "")
        if not secrets.compare_digest(provided, self.secret):
            return JSONResponse({"detail": "Invalid or missing worker secret"}, status_code=401)

        return await call_next(request)
