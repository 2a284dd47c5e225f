"""Security/audit event recording."""

import logging
from typing import Any, Dict, Optional

from fastapi import Request

from app.crud.security_event import SecurityEventCRUD
from app.models.security_event import SecurityEvent, SecurityEventType, Severity
from app.utils.logger import get_logger, log_with_data

logger = get_logger(__name__)

_LOG_LEVELS = {
    Severity.LOW.value: logging.INFO,
    Severity.MEDIUM.value: logging.WARNING,
    Severity.HIGH.value: logging.ERROR,
    Severity.CRITICAL.value: logging.CRITICAL,
}


def client_ip(request: Optional[Request]) -> str:
    """Best guess at the caller's address behind a proxy."""
    if request is None:
        return "unknown"
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return request.client.host if request.client else "unknown"


class SecurityLogger:
    """Writes security events to the log stream and the ``security_events`` collection."""

    def __init__(self, db: Any):
        self.events = SecurityEventCRUD(db)

    def log_event(
        self,
        event_type: SecurityEventType,
        severity: Severity = Severity.LOW,
        request: Optional[Request] = None,
        user_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> SecurityEvent:
        """
        Record a security event.

        Args:
            event_type: What happened.
            severity: How bad it is; controls the log level.
            request: Source request for IP, user agent and path.
            user_id: Affected or acting user.
            details: Extra structured context.

        Returns:
            The stored event.
        """
        event = SecurityEvent(
            type=event_type,
            severity=severity,
            user_id=user_id,
            ip=client_ip(request),
            user_agent=request.headers.get("user-agent") if request else None,
            path=request.url.path if request else None,
            details=details or {},
        )
        log_with_data(
            logger,
            _LOG_LEVELS.get(event.severity, logging.WARNING),
            f"Security event: {event.type}",
            security_event=event.type,
            severity=event.severity,
            user_id=user_id,
            ip=event.ip,
            path=event.path,
        )
        self.events.create(event.to_dict(), doc_id=event.id)
        return event

    def cleanup_expired(self) -> int:
        removed = self.events.cleanup_expired()
        if removed:
            logger.info(f"Removed {removed} expired security events")
        return removed
