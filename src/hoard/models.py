"""Pydantic models for gateway events and message segments.

Inbound frames are decoded into explicit variants rather than navigated as
raw dicts. A frame is either a handshake (carrying the session token) or a
business event tagged by kind; message events carry an ordered list of
segments, each decoded into one of the known segment variants or
``OtherSegment``.
"""

from __future__ import annotations

import json
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from hoard.exceptions import DecodeError

# =============================================================================
# Enums
# =============================================================================


class EventKind(str, Enum):
    """Business event kinds the dispatcher recognizes."""

    FRIEND_MESSAGE = "FriendMessage"
    GROUP_MESSAGE = "GroupMessage"
    FRIEND_INPUT_STATUS_CHANGED = "FriendInputStatusChangedEvent"
    FRIEND_RECALL = "FriendRecallEvent"
    GROUP_RECALL = "GroupRecallEvent"
    UNKNOWN = "Unknown"

    @classmethod
    def from_tag(cls, tag: str) -> "EventKind":
        """Map a raw type tag to a kind, falling back to UNKNOWN."""
        try:
            return cls(tag)
        except ValueError:
            return cls.UNKNOWN

    @property
    def is_message(self) -> bool:
        return self in (EventKind.FRIEND_MESSAGE, EventKind.GROUP_MESSAGE)


# =============================================================================
# Message segments
# =============================================================================


class SourceSegment(BaseModel):
    """Message id and send time; expected once per message."""

    type: Literal["Source"] = "Source"
    id: int
    time: int

    @field_validator("time")
    @classmethod
    def validate_time(cls, v: int) -> int:
        """Reject timestamps the platform cannot turn into a local datetime."""
        try:
            datetime.fromtimestamp(v)
        except (OverflowError, OSError, ValueError) as e:
            raise ValueError(f"timestamp {v} out of range") from e
        return v

    @property
    def sent_at(self) -> datetime:
        """Send time as a naive local datetime."""
        return datetime.fromtimestamp(self.time)


class ImageSegment(BaseModel):
    """Inline image."""

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["Image"] = "Image"
    image_id: str = Field(alias="imageId")
    url: str


class FlashImageSegment(BaseModel):
    """View-once image."""

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["FlashImage"] = "FlashImage"
    image_id: str = Field(alias="imageId")
    url: str


class FileSegment(BaseModel):
    """Group file upload; the download URL must be resolved separately."""

    type: Literal["File"] = "File"
    id: str
    name: str | None = None
    size: int | None = None


class OtherSegment(BaseModel):
    """Any segment kind this client does not act on (text, at, face...)."""

    model_config = ConfigDict(extra="allow")

    type: str


MessageSegment = Union[
    SourceSegment, ImageSegment, FlashImageSegment, FileSegment, OtherSegment
]

SEGMENT_TYPES: dict[str, type[BaseModel]] = {
    "Source": SourceSegment,
    "Image": ImageSegment,
    "FlashImage": FlashImageSegment,
    "File": FileSegment,
}


def parse_segment(raw: Any) -> MessageSegment:
    """Decode one message-chain element.

    Args:
        raw: The element as parsed from JSON.

    Returns:
        The matching segment variant, or OtherSegment for unknown tags.

    Raises:
        DecodeError: If the element has no type tag or a known variant is
            missing required fields.
    """
    if not isinstance(raw, dict) or not isinstance(raw.get("type"), str):
        raise DecodeError(f"segment without type tag: {raw!r}")

    model = SEGMENT_TYPES.get(raw["type"], OtherSegment)
    try:
        return model.model_validate(raw)  # type: ignore[return-value]
    except ValidationError as e:
        raise DecodeError(f"malformed {raw['type']} segment: {e}") from e


# =============================================================================
# Events
# =============================================================================


class GroupInfo(BaseModel):
    """Group a message was sent in."""

    id: int
    name: str = ""


class MessageEvent(BaseModel):
    """A friend or group message with its ordered segments."""

    kind: EventKind
    sender_id: int
    sender_name: str = ""
    group: GroupInfo | None = None
    segments: list[MessageSegment] = Field(default_factory=list)

    @property
    def group_id(self) -> int | None:
        return self.group.id if self.group is not None else None


class Handshake(BaseModel):
    """Session token issued once per connection."""

    session: str


class BusinessEvent(BaseModel):
    """A tagged event; ``message`` is populated for message kinds only."""

    kind: EventKind
    tag: str
    payload: dict[str, Any] = Field(default_factory=dict)
    message: MessageEvent | None = None


Event = Union[Handshake, BusinessEvent]


def parse_message_event(kind: EventKind, data: dict[str, Any]) -> MessageEvent:
    """Decode a FriendMessage or GroupMessage payload.

    Args:
        kind: Which of the two message kinds this is.
        data: The frame's ``data`` object.

    Returns:
        Decoded MessageEvent.

    Raises:
        DecodeError: If sender or message chain are missing or malformed.
    """
    sender = data.get("sender")
    if not isinstance(sender, dict) or not isinstance(sender.get("id"), int):
        raise DecodeError(f"{kind.value} without sender id")

    chain = data.get("messageChain")
    if not isinstance(chain, list):
        raise DecodeError(f"{kind.value} without messageChain")

    group = None
    raw_group = sender.get("group")
    if isinstance(raw_group, dict):
        try:
            group = GroupInfo.model_validate(raw_group)
        except ValidationError as e:
            raise DecodeError(f"malformed group in {kind.value}: {e}") from e

    return MessageEvent(
        kind=kind,
        sender_id=sender["id"],
        sender_name=sender.get("nickname") or sender.get("memberName") or "",
        group=group,
        segments=[parse_segment(item) for item in chain],
    )


def decode_frame(frame: str | bytes | dict[str, Any]) -> Event:
    """Decode one inbound gateway frame.

    A nested ``data.type`` makes the frame a business event; otherwise a
    ``data.session`` makes it a handshake. Anything else is malformed.

    Args:
        frame: Raw frame text, or an already-parsed JSON object.

    Returns:
        Handshake or BusinessEvent.

    Raises:
        DecodeError: If the frame is not JSON or matches no known shape.
    """
    if isinstance(frame, (str, bytes)):
        try:
            parsed = json.loads(frame)
        except ValueError as e:
            raise DecodeError(f"frame is not valid JSON: {e}") from e
    else:
        parsed = frame

    data = parsed.get("data") if isinstance(parsed, dict) else None
    if not isinstance(data, dict):
        raise DecodeError("frame has no data object")

    tag = data.get("type")
    if isinstance(tag, str):
        kind = EventKind.from_tag(tag)
        message = parse_message_event(kind, data) if kind.is_message else None
        return BusinessEvent(kind=kind, tag=tag, payload=data, message=message)

    session = data.get("session")
    if isinstance(session, str):
        return Handshake(session=session)

    raise DecodeError("frame matches neither event nor handshake shape")


# =============================================================================
# Collected media
# =============================================================================


class MediaItem(BaseModel):
    """A media reference with its resolved download URL."""

    media_id: str
    url: str


class Placement(BaseModel):
    """Where a message's media belongs: who sent it, where, and when."""

    group_id: int = 0
    sender_id: int
    message_id: int = 0
    sent_at: datetime


class StoredMediaRecord(BaseModel):
    """Fields that together determine one storage path."""

    group_id: int
    sender_id: int
    message_id: int
    sent_at: datetime
    index: int
    size: int
    extension: str

    def relative_path(self) -> Path:
        """Path below the storage root: ``<YYYYMM>/<filename>``."""
        month_dir = self.sent_at.strftime("%Y%m")
        filename = "_".join(
            [
                str(self.group_id),
                str(self.sender_id),
                str(self.message_id),
                self.sent_at.strftime("%Y%m%d%H%M%S"),
                str(self.index),
                str(self.size),
            ]
        )
        return Path(month_dir) / f"{filename}.{self.extension}"
