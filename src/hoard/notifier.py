"""Acknowledgment replies sent after a message's media has been stored."""

from __future__ import annotations

from typing import TYPE_CHECKING

from hoard.exceptions import OutboundCallError
from hoard.logging import get_logger

if TYPE_CHECKING:
    from hoard.api import GatewayClient
    from hoard.session import SessionToken

log = get_logger("notifier")


class ReplyNotifier:
    """Sends the stored-media count back to where the message came from.

    Direct messages are answered with a friend message to the sender; group
    messages with a group message to the group. Failures are logged and
    never reach the caller, and nothing is retried.
    """

    def __init__(
        self,
        client: GatewayClient,
        allowed_group_id: int | None = None,
        enabled: bool = True,
    ) -> None:
        """Initialize the notifier.

        Args:
            client: Shared gateway REST client.
            allowed_group_id: When set, group replies go only to this group.
            enabled: When False, no replies are sent at all.
        """
        self.client = client
        self.allowed_group_id = allowed_group_id
        self.enabled = enabled

    async def notify(
        self,
        session: SessionToken,
        count: int,
        sender_id: int,
        group_id: int | None,
    ) -> bool:
        """Send the count as plain text.

        Args:
            session: Session token handle for the current connection.
            count: Number of media items stored.
            sender_id: Sender of the original message.
            group_id: Group of the original message, None for direct messages.

        Returns:
            True if a reply was sent, False if skipped or failed.
        """
        if not self.enabled:
            return False

        if group_id is not None and self.allowed_group_id is not None:
            if group_id != self.allowed_group_id:
                log.debug("reply_skipped_group", group_id=group_id)
                return False

        text = str(count)
        try:
            session_key = await session.wait()
            if group_id is None:
                await self.client.send_friend_message(session_key, sender_id, text)
            else:
                await self.client.send_group_message(session_key, group_id, text)
        except OutboundCallError as e:
            log.warning(
                "reply_failed",
                sender_id=sender_id,
                group_id=group_id,
                error=str(e),
            )
            return False

        log.info(
            "reply_sent",
            target=sender_id if group_id is None else group_id,
            direct=group_id is None,
            count=count,
        )
        return True
