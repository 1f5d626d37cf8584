"""Collecting media references from a single chat message.

The collector walks a message's segments in the order the platform sent
them. The Source segment fixes the message id and send time; image, flash
image and file segments become media items, subject to the allow-listed
group rules:

- Image: skipped in any group other than the allow-listed one.
- FlashImage: always collected.
- File: only in the allow-listed group, after resolving its download URL.

Everything for one message happens sequentially; the collected items are
handed to the store in one batch and the resulting count is sent back as
a reply.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from hoard.exceptions import OutboundCallError
from hoard.logging import get_logger
from hoard.models import (
    FileSegment,
    FlashImageSegment,
    ImageSegment,
    MediaItem,
    MessageEvent,
    Placement,
    SourceSegment,
)

if TYPE_CHECKING:
    from hoard.api import GatewayClient
    from hoard.notifier import ReplyNotifier
    from hoard.session import SessionToken
    from hoard.store import MediaStore

log = get_logger("collector")


class MediaCollector:
    """Turns one message event into stored files and a reply."""

    def __init__(
        self,
        client: GatewayClient,
        store: MediaStore,
        notifier: ReplyNotifier,
        allowed_group_id: int,
    ) -> None:
        self.client = client
        self.store = store
        self.notifier = notifier
        self.allowed_group_id = allowed_group_id

    async def collect(
        self,
        event: MessageEvent,
        session: SessionToken,
    ) -> tuple[list[MediaItem], Placement]:
        """Scan segments and build the ordered media list.

        Args:
            event: Decoded friend or group message.
            session: Token handle used for file URL resolution.

        Returns:
            Tuple of (media items in message order, placement metadata).
        """
        group_id = event.group_id
        message_id = 0
        sent_at = datetime.now()
        items: list[MediaItem] = []

        for segment in event.segments:
            if isinstance(segment, SourceSegment):
                message_id = segment.id
                sent_at = segment.sent_at

            elif isinstance(segment, ImageSegment):
                if group_id is not None and group_id != self.allowed_group_id:
                    continue
                items.append(MediaItem(media_id=segment.image_id, url=segment.url))

            elif isinstance(segment, FlashImageSegment):
                items.append(MediaItem(media_id=segment.image_id, url=segment.url))

            elif isinstance(segment, FileSegment):
                if group_id is None or group_id != self.allowed_group_id:
                    log.debug(
                        "file_segment_unhandled",
                        sender_id=event.sender_id,
                        group_id=group_id,
                        file_id=segment.id,
                    )
                    continue
                url = await self._resolve_file_url(session, group_id, segment.id)
                if url is not None:
                    items.append(MediaItem(media_id=segment.id, url=url))

        placement = Placement(
            group_id=group_id or 0,
            sender_id=event.sender_id,
            message_id=message_id,
            sent_at=sent_at,
        )
        return items, placement

    async def process(self, event: MessageEvent, session: SessionToken) -> int:
        """Collect, store and acknowledge one message.

        Args:
            event: Decoded friend or group message.
            session: Token handle for the connection the message arrived on.

        Returns:
            Number of media items stored.
        """
        items, placement = await self.collect(event, session)

        log.debug(
            "message_collected",
            kind=event.kind.value,
            sender_id=event.sender_id,
            sender_name=event.sender_name,
            group_id=event.group_id,
            group_name=event.group.name if event.group else None,
            message_id=placement.message_id,
            media_count=len(items),
        )

        count = await self.store.store_all(items, placement)
        await self.notifier.notify(session, count, event.sender_id, event.group_id)
        return count

    async def _resolve_file_url(
        self,
        session: SessionToken,
        group_id: int,
        file_id: str,
    ) -> str | None:
        try:
            session_key = await session.wait()
            return await self.client.resolve_file_url(session_key, group_id, file_id)
        except OutboundCallError as e:
            log.warning(
                "file_url_resolve_failed",
                group_id=group_id,
                file_id=file_id,
                error=str(e),
            )
            return None
