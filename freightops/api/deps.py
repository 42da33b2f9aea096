"""
API Dependencies
Common dependencies for API endpoints
"""

from fastapi import Header

from freightops.core.context import RequestContext
from freightops.core.database import get_db  # noqa: F401


def get_request_context(
    tenant_id: int = Header(..., alias="X-Tenant-Id", gt=0),
    user_id: str = Header(..., alias="X-User-Id", min_length=1),
) -> RequestContext:
    """
    Tenant and user resolved by the upstream gateway.
    """
    return RequestContext(tenant_id=tenant_id, actor_id=user_id)
