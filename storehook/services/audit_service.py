"""
Audit logging service.

Fire-and-forget: a failed audit write is logged and swallowed so it never
breaks the operation being audited.
"""
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from storehook.logging_config import get_logger
from storehook.models.audit_log import AuditLog


logger = get_logger(component="audit")


class AuditLogger:
    """Records audit events in the audit_logs table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        action: str,
        actor: str | None,
        resource_type: str | None,
        resource_id: str | None = None,
        details: dict[str, Any] | None = None,
        organization: str | None = None,
        severity: str = "info",
    ) -> AuditLog | None:
        """
        Persist an audit event.

        Returns the stored entry, or None when the write failed.
        """
        entry = AuditLog(
            action=action,
            user_id=actor,
            resource=resource_type,
            resource_id=str(resource_id) if resource_id is not None else None,
            details=details or {},
            organization_id=organization,
            severity=severity,
        )
        try:
            self.db.add(entry)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.warning("audit_log_failed", action=action, resource=resource_type, error=str(e))
            return None

        logger.info("audit_log", action=action, resource=resource_type, severity=severity)
        return entry
