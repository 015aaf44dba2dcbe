"""
Tests for Notification Service
"""

import pytest
from datetime import datetime

from tools.notification_service import (
    NotificationService,
    NotificationType,
    NotificationError,
)
from models import NotificationChannel


@pytest.fixture
def notifier(clock):
    return NotificationService(clock=clock, max_per_hour=2)


async def _send(notifier, channel=NotificationChannel.IN_APP, user_id=1):
    return await notifier.send(
        user_id=user_id,
        notification_type=NotificationType.MEDICATION_REMINDER,
        title="Time to take your medication",
        body="It's time to take Metformin 500mg",
        channel=channel
    )


class TestSend:
    """Tests for single-channel delivery"""

    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.parametrize("channel", list(NotificationChannel))
    async def test_every_channel_delivers(self, notifier, channel):
        result = await _send(notifier, channel=channel)

        assert result.success is True
        assert result.channel == channel
        assert result.delivered_at == datetime(2025, 1, 6, 9, 0)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_accepts_channel_strings(self, notifier):
        result = await _send(notifier, channel="sms")

        assert result.channel == NotificationChannel.SMS

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unknown_channel_raises(self, notifier):
        with pytest.raises(NotificationError):
            await _send(notifier, channel="pager")


class TestRateLimit:
    """Tests for the per-user hourly limit"""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_limit_per_user(self, notifier):
        await _send(notifier)
        await _send(notifier)

        with pytest.raises(NotificationError):
            await _send(notifier)

        # Other users are unaffected
        result = await _send(notifier, user_id=2)
        assert result.success is True

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_limit_resets_after_an_hour(self, notifier, clock):
        await _send(notifier)
        await _send(notifier)

        clock.advance(hours=1, minutes=1)
        result = await _send(notifier)

        assert result.success is True

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_idle_users_are_forgotten(self, notifier, clock):
        await _send(notifier, user_id=1)
        await _send(notifier, user_id=2)

        clock.advance(hours=2)
        assert notifier._check_rate_limit(1) is True

        assert 1 not in notifier._rate_limits
        assert 2 in notifier._rate_limits
