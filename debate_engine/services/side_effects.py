"""
External collaborators: audit sink and notification dispatcher.

Both are invoked only after the owning transaction has committed and
always through `emit_best_effort`, so a failing sink is logged and never
undoes or fails the mutation that triggered it.
"""
import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Awaitable, Dict, Optional

import httpx

from debate_engine.config.feature_flags import FeatureFlags
from debate_engine.config.settings import get_settings
from debate_engine.orm.audit_log import AuditLog

logger = logging.getLogger(__name__)


# =============================================================================
# Audit
# =============================================================================

class AuditSink:
    """Receives one record per successful mutation."""

    async def record(
        self,
        user_id: Optional[int],
        action: str,
        resource_type: str,
        resource_id: Any,
        description: str,
        previous_state: Optional[Dict[str, Any]] = None,
        new_state: Optional[Dict[str, Any]] = None,
    ) -> None:
        raise NotImplementedError


class LoggingAuditSink(AuditSink):
    async def record(self, user_id, action, resource_type, resource_id, description,
                     previous_state=None, new_state=None) -> None:
        logger.info(f"AUDIT user={user_id} {action} {resource_type}:{resource_id} - {description}")


class DatabaseAuditSink(AuditSink):
    """Writes audit_logs rows in a session of its own."""

    def __init__(self, session_factory=None):
        if session_factory is None:
            from debate_engine.database import AsyncSessionLocal
            session_factory = AsyncSessionLocal
        self.session_factory = session_factory

    async def record(self, user_id, action, resource_type, resource_id, description,
                     previous_state=None, new_state=None) -> None:
        async with self.session_factory() as session:
            session.add(AuditLog(
                user_id=user_id,
                action=action,
                resource_type=resource_type,
                resource_id=str(resource_id) if resource_id is not None else None,
                description=description,
                previous_state=json.dumps(previous_state, default=str) if previous_state is not None else None,
                new_state=json.dumps(new_state, default=str) if new_state is not None else None,
            ))
            await session.commit()


# =============================================================================
# Notifications
# =============================================================================

class NotificationDispatcher:
    """Broadcasts a message to everyone attached to a tournament."""

    async def notify_tournament(
        self,
        tournament_id: int,
        title: str,
        message: str,
        type: str = "tournament",
    ) -> None:
        raise NotImplementedError


class LoggingNotificationDispatcher(NotificationDispatcher):
    async def notify_tournament(self, tournament_id, title, message, type="tournament") -> None:
        logger.info(f"NOTIFY tournament={tournament_id} [{type}] {title}: {message}")


class WebhookNotificationDispatcher(NotificationDispatcher):
    """POSTs each notification as JSON to a configured webhook."""

    def __init__(self, url: str, timeout: float = 5.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = url
        self.timeout = timeout
        self.transport = transport

    async def notify_tournament(self, tournament_id, title, message, type="tournament") -> None:
        payload = {
            "tournament_id": tournament_id,
            "title": title,
            "message": message,
            "type": type,
            "send_push": True,
        }
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.post(self.url, json=payload)
            response.raise_for_status()


# =============================================================================
# Wiring
# =============================================================================

@dataclass
class Collaborators:
    audit: AuditSink
    notifier: NotificationDispatcher


def default_collaborators() -> Collaborators:
    settings = get_settings()
    if settings.notification_webhook_url:
        notifier: NotificationDispatcher = WebhookNotificationDispatcher(
            settings.notification_webhook_url,
            timeout=settings.notification_timeout_seconds,
        )
    else:
        notifier = LoggingNotificationDispatcher()
    return Collaborators(audit=DatabaseAuditSink(), notifier=notifier)


@lru_cache()
def get_collaborators() -> Collaborators:
    """FastAPI dependency; tests override it with recording fakes."""
    return default_collaborators()


async def emit_best_effort(call: Awaitable[Any], description: str) -> bool:
    """Await a side effect; log and swallow any failure. Returns success."""
    try:
        await call
        return True
    except Exception as e:
        logger.warning(f"Failed to {description}: {type(e).__name__}: {str(e)}")
        return False


async def notify_best_effort(
    collaborators: Collaborators,
    tournament_id: int,
    title: str,
    message: str,
) -> bool:
    if not FeatureFlags.is_enabled("FEATURE_PAIRING_NOTIFICATIONS"):
        return False
    return await emit_best_effort(
        collaborators.notifier.notify_tournament(tournament_id, title, message, type="tournament"),
        f"send notification '{title}'",
    )


async def audit_best_effort(collaborators: Collaborators, **record: Any) -> bool:
    return await emit_best_effort(
        collaborators.audit.record(**record),
        f"write audit record {record.get('action')}",
    )
