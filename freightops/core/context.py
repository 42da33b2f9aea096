"""
Request context passed explicitly to every engine operation
"""
from dataclasses import dataclass


@dataclass(frozen=True)
class RequestContext:
    """Tenant and actor already resolved by the caller"""
    tenant_id: int
    actor_id: str

    def __post_init__(self):
        if self.tenant_id is None:
            raise ValueError("tenant_id is required")
        if not self.actor_id:
            raise ValueError("actor_id is required")
