"""
Tools Package
Utility tools for the AdherenceEngine system
"""

from .clock import (
    Clock,
    SystemClock,
    system_clock
)

from .frequency_parser import (
    ParsedSchedule,
    FREQUENCY_RULES,
    DEFAULT_DOSE_TIME,
    parse_frequency,
    parse_end_date,
    parse_schedule,
    default_times_for
)

from .notification_service import (
    NotificationService,
    NotificationType,
    NotificationError,
    NotificationRequest,
    NotificationResult,
    notification_service
)

__all__ = [
    # Clock
    "Clock",
    "SystemClock",
    "system_clock",

    # Frequency Parser
    "ParsedSchedule",
    "FREQUENCY_RULES",
    "DEFAULT_DOSE_TIME",
    "parse_frequency",
    "parse_end_date",
    "parse_schedule",
    "default_times_for",

    # Notification Service
    "NotificationService",
    "NotificationType",
    "NotificationError",
    "NotificationRequest",
    "NotificationResult",
    "notification_service"
]
