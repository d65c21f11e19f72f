"""
Per-request tenant context.

The routing layer resolves the tenant before any engine call; here it comes
from the ``X-Tenant-Id`` header, falling back to ``DEFAULT_TENANT_ID``.

Usage:
    app.add_middleware(TenantContextMiddleware, default_tenant="default")

    # In a handler dependency:
    request.state.tenant_id
"""
from __future__ import annotations

import logging

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

TENANT_HEADER = "X-Tenant-Id"


class TenantContextMiddleware(BaseHTTPMiddleware):
    """Set ``request.state.tenant_id`` for every request."""

    def __init__(self, app, default_tenant: str = "default"):
        super().__init__(app)
        self.default_tenant = default_tenant

    async def dispatch(self, request: Request, call_next):
        tenant_id = (request.headers.get(TENANT_HEADER) or "").strip() or self.default_tenant
        request.state.tenant_id = tenant_id
        logger.debug("%s %s tenant=%s", request.method, request.url.path, tenant_id)
        return await call_next(request)
