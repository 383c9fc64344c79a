# shelter/services/audit_service.py
import json
import logging
from typing import Any, Optional
from uuid import UUID

from shelter.core.store import InventoryStore
from shelter.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


async def log_action(
    store: InventoryStore,
    action: str,
    table_name: str,
    record_id: Optional[UUID] = None,
    details: Optional[dict[str, Any]] = None,
    *,
    user_id: Optional[UUID] = None,
) -> bool:
    """
    Write an audit row in its own session after the primary operation.
    Best-effort: a failure is logged and never reaches the caller.
    """
    try:
        async with store.session() as db:
            db.add(
                AuditLog(
                    user_id=user_id,
                    action=action,
                    table_name=table_name,
                    record_id=record_id,
                    details=json.dumps(details, default=str) if details else None,
                )
            )
            await db.commit()
        return True
    except Exception as e:
        logger.warning(f"Failed to log action {action} on {table_name}/{record_id}: {e}")
        return False
