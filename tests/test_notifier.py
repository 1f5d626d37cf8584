"""Tests for acknowledgment replies."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from hoard.exceptions import OutboundCallError
from hoard.notifier import ReplyNotifier
from hoard.session import SessionToken

from samples import ALLOWED_GROUP, OTHER_GROUP


@pytest.fixture
def client() -> MagicMock:
    client = MagicMock()
    client.send_friend_message = AsyncMock(return_value={"code": 0})
    client.send_group_message = AsyncMock(return_value={"code": 0})
    return client


@pytest.fixture
def session() -> SessionToken:
    token = SessionToken()
    token.set("tok")
    return token


class TestReplyRouting:
    """Tests for where replies go."""

    @pytest.mark.asyncio
    async def test_direct_message_replies_to_sender(
        self, client: MagicMock, session: SessionToken
    ) -> None:
        """Direct messages get a friend reply to the sender."""
        notifier = ReplyNotifier(client)

        sent = await notifier.notify(session, 3, sender_id=1001, group_id=None)

        assert sent is True
        client.send_friend_message.assert_awaited_once_with("tok", 1001, "3")
        client.send_group_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_group_message_replies_to_group(
        self, client: MagicMock, session: SessionToken
    ) -> None:
        """Group messages get a group reply to the group."""
        notifier = ReplyNotifier(client)

        await notifier.notify(session, 0, sender_id=1001, group_id=ALLOWED_GROUP)

        client.send_group_message.assert_awaited_once_with("tok", ALLOWED_GROUP, "0")
        client.send_friend_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_allowed_group_only(
        self, client: MagicMock, session: SessionToken
    ) -> None:
        """With an allow-listed group set, other groups get no reply."""
        notifier = ReplyNotifier(client, allowed_group_id=ALLOWED_GROUP)

        sent = await notifier.notify(session, 2, sender_id=1001, group_id=OTHER_GROUP)

        assert sent is False
        client.send_group_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_allowed_group_only_still_answers_direct(
        self, client: MagicMock, session: SessionToken
    ) -> None:
        """The group restriction does not affect direct messages."""
        notifier = ReplyNotifier(client, allowed_group_id=ALLOWED_GROUP)

        assert await notifier.notify(session, 1, sender_id=1001, group_id=None) is True

    @pytest.mark.asyncio
    async def test_disabled(self, client: MagicMock, session: SessionToken) -> None:
        """Disabled notifier sends nothing."""
        notifier = ReplyNotifier(client, enabled=False)

        assert await notifier.notify(session, 1, sender_id=1001, group_id=None) is False
        client.send_friend_message.assert_not_called()


class TestReplyFailures:
    """Tests for fire-and-forget failure handling."""

    @pytest.mark.asyncio
    async def test_failure_not_propagated(
        self, client: MagicMock, session: SessionToken
    ) -> None:
        """Send failures are swallowed and reported as not sent."""
        client.send_group_message.side_effect = OutboundCallError("boom")
        notifier = ReplyNotifier(client)

        sent = await notifier.notify(session, 1, sender_id=1001, group_id=ALLOWED_GROUP)

        assert sent is False
        assert client.send_group_message.await_count == 1
