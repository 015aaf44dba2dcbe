"""
Test Tools Package
Tests for the tools module (frequency parser, notification service)
"""

__all__ = [
    "test_frequency_parser",
    "test_notification_service",
]
