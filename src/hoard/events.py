"""Routing decoded gateway events.

Message events are handed to the collector as independently scheduled
tasks so that one message's downloads never hold up the read loop. The
tasks are tracked by a ``TaskSupervisor``, which logs failures as they
finish and lets the connection owner cancel or await whatever is still
in flight.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Coroutine

from hoard.exceptions import DecodeError, DuplicateHandshakeError
from hoard.logging import get_logger
from hoard.models import BusinessEvent, Event, EventKind, Handshake, decode_frame

if TYPE_CHECKING:
    from hoard.collector import MediaCollector
    from hoard.session import SessionToken

log = get_logger("events")

# Observed but not acted upon
IGNORED_KINDS = frozenset(
    {
        EventKind.FRIEND_INPUT_STATUS_CHANGED,
        EventKind.FRIEND_RECALL,
        EventKind.GROUP_RECALL,
    }
)


class TaskSupervisor:
    """Tracks spawned message tasks and reports how they end."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()
        self.completed = 0
        self.failed = 0

    @property
    def pending(self) -> int:
        """Number of tasks still running."""
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task[Any]:
        """Schedule a coroutine as a tracked task."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)

        if task.cancelled():
            log.debug("message_task_cancelled", task=task.get_name())
            return

        exc = task.exception()
        if exc is not None:
            self.failed += 1
            log.error(
                "message_task_failed",
                task=task.get_name(),
                error=str(exc),
                exc_info=exc,
            )
        else:
            self.completed += 1

    def cancel_all(self) -> int:
        """Ask every in-flight task to stop.

        Returns:
            Number of tasks that were signalled.
        """
        tasks = [t for t in self._tasks if not t.done()]
        for task in tasks:
            task.cancel()
        return len(tasks)

    async def join(self) -> None:
        """Wait until every tracked task has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class EventDispatcher:
    """Decodes frames and routes them by kind.

    - FriendMessage / GroupMessage: spawn ``collector.process`` as a task.
    - Handshake: set the connection's session token (once).
    - Recall and input-status events: acknowledged, nothing else.
    - Unknown kinds and malformed frames: logged and dropped.
    """

    def __init__(
        self,
        collector: MediaCollector,
        supervisor: TaskSupervisor | None = None,
    ) -> None:
        self.collector = collector
        self.supervisor = supervisor or TaskSupervisor()

    def dispatch(
        self,
        frame: str | bytes | dict[str, Any],
        session: SessionToken,
    ) -> Event | None:
        """Decode and route one frame.

        Never raises for bad input; decode failures are logged and return None.

        Args:
            frame: Raw frame as received.
            session: Token handle of the connection the frame arrived on.

        Returns:
            The decoded event, or None if the frame was dropped.
        """
        try:
            event = decode_frame(frame)
        except DecodeError as e:
            log.warning("frame_decode_failed", error=str(e))
            return None

        if isinstance(event, Handshake):
            self._handle_handshake(event, session)
        else:
            self._route(event, session)
        return event

    def _handle_handshake(self, event: Handshake, session: SessionToken) -> None:
        try:
            session.set(event.session)
        except DuplicateHandshakeError as e:
            log.warning("duplicate_handshake", error=str(e))
            return
        log.info("session_established")

    def _route(self, event: BusinessEvent, session: SessionToken) -> None:
        if event.message is not None:
            message = event.message
            self.supervisor.spawn(
                self.collector.process(message, session),
                name=f"message-{event.kind.value}-{message.sender_id}",
            )
            log.debug(
                "message_dispatched",
                kind=event.kind.value,
                sender_id=message.sender_id,
                group_id=message.group_id,
                pending=self.supervisor.pending,
            )
        elif event.kind in IGNORED_KINDS:
            log.debug("event_ignored", kind=event.kind.value)
        else:
            log.debug("event_unknown", tag=event.tag)
