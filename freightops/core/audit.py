"""
Audit trail helpers
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from .context import RequestContext

audit_logger = logging.getLogger("freightops.audit")


def log_user_action(
    db: Session,
    ctx: RequestContext,
    action: str,
    table: Optional[str] = None,
    key: Optional[str] = None,
    old_values: Optional[Dict[str, Any]] = None,
    new_values: Optional[Dict[str, Any]] = None,
    module: Optional[str] = None
) -> None:
    """Log user action to audit trail

    The entry is added to the caller's transaction and is committed or
    rolled back together with the change it describes.
    """
    from freightops.models.audit import AuditLog

    audit_entry = AuditLog(
        tenant_id=ctx.tenant_id,
        audit_user=ctx.actor_id,
        audit_action=action,
        audit_table=table,
        audit_key=key,
        audit_old_values=old_values or None,
        audit_new_values=new_values or None,
        audit_module=module
    )
    db.add(audit_entry)
    audit_logger.info(
        f"tenant={ctx.tenant_id} user={ctx.actor_id} action={action} table={table} key={key}"
    )
