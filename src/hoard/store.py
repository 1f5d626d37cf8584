"""Writing downloaded media to the storage tree.

Files land at ``<root>/<YYYYMM>/<group>_<sender>_<msg>_<YYYYMMDDHHMMSS>_<idx>_<size>.<ext>``.
The path is a pure function of those fields, so concurrent messages never
need to coordinate: two media items only collide if every field matches.
Each item succeeds or fails on its own; a failed item is logged and skipped,
and files already written for the batch stay in place.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING

from hoard.exceptions import DownloadError, SniffError, StorageError
from hoard.logging import get_logger
from hoard.models import MediaItem, Placement, StoredMediaRecord

if TYPE_CHECKING:
    from hoard.api import GatewayClient

log = get_logger("store")

# Signature checks in priority order: (offset, magic bytes, extension).
# Containers that need a second check (RIFF, ftyp) are handled in sniff_extension.
SIGNATURES: list[tuple[int, bytes, str]] = [
    (0, b"\xff\xd8\xff", "jpg"),
    (0, b"\x89PNG\r\n\x1a\n", "png"),
    (0, b"GIF87a", "gif"),
    (0, b"GIF89a", "gif"),
    (0, b"BM", "bmp"),
    (0, b"II*\x00", "tif"),
    (0, b"MM\x00*", "tif"),
    (0, b"\x00\x00\x01\x00", "ico"),
    (0, b"%PDF", "pdf"),
    (0, b"PK\x03\x04", "zip"),
    (0, b"Rar!\x1a\x07", "rar"),
    (0, b"7z\xbc\xaf\x27\x1c", "7z"),
    (0, b"\x1f\x8b\x08", "gz"),
    (0, b"\x1aE\xdf\xa3", "mkv"),
    (0, b"FLV\x01", "flv"),
    (0, b"ID3", "mp3"),
    (0, b"fLaC", "flac"),
    (0, b"OggS", "ogg"),
    (0, b"#!AMR", "amr"),
    (0, b"#!SILK_V3", "silk"),
    (0, b"\x02#!SILK_V3", "silk"),
]

RIFF_KINDS = {b"WEBP": "webp", b"WAVE": "wav", b"AVI ": "avi"}

FTYP_KINDS = {
    b"heic": "heic",
    b"heix": "heic",
    b"mif1": "heif",
    b"avif": "avif",
    b"qt  ": "mov",
    b"M4A ": "m4a",
}


def _is_mpeg_layer3_frame(data: bytes) -> bool:
    """Check for an MPEG audio Layer III frame header without an ID3 tag."""
    if len(data) < 3 or data[0] != 0xFF or data[1] & 0xE0 != 0xE0:
        return False
    version = (data[1] >> 3) & 0x03
    layer = (data[1] >> 1) & 0x03
    bitrate = data[2] >> 4
    sample_rate = (data[2] >> 2) & 0x03
    # 0b01 version and 0b11 sample rate are reserved; bitrate 0xF is invalid
    return version != 0b01 and layer == 0b01 and bitrate != 0x0F and sample_rate != 0b11


def sniff_extension(data: bytes) -> str:
    """Detect a file extension from content bytes.

    Args:
        data: Downloaded bytes.

    Returns:
        Extension without the dot, e.g. ``"png"``.

    Raises:
        SniffError: If no known signature matches.
    """
    if len(data) >= 12 and data[:4] == b"RIFF":
        kind = RIFF_KINDS.get(data[8:12])
        if kind:
            return kind

    if len(data) >= 12 and data[4:8] == b"ftyp":
        return FTYP_KINDS.get(data[8:12], "mp4")

    for offset, magic, extension in SIGNATURES:
        if data[offset:offset + len(magic)] == magic:
            return extension

    if _is_mpeg_layer3_frame(data):
        return "mp3"

    raise SniffError(
        f"unrecognized content (first bytes {data[:12].hex() or 'empty'})"
    )


def build_store_path(root: Path, record: StoredMediaRecord) -> Path:
    """Absolute storage path for a record under ``root``."""
    return root / record.relative_path()


def _write_file(path: Path, data: bytes) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise StorageError(f"cannot create {path.parent}: {e}") from e
    try:
        path.write_bytes(data)
    except OSError as e:
        raise StorageError(f"cannot write {path}: {e}") from e


class MediaStore:
    """Downloads media items and files them under the storage root."""

    def __init__(self, root: Path, client: GatewayClient) -> None:
        self.root = Path(root)
        self.client = client

    async def store_all(self, items: list[MediaItem], placement: Placement) -> int:
        """Download, sniff and write each item in order.

        Args:
            items: Media items in message order; list position is the index.
            placement: Group, sender, message id and send time.

        Returns:
            Number of items written successfully.
        """
        count = 0

        for index, item in enumerate(items):
            try:
                path = await self.store_one(item, index, placement)
            except (DownloadError, SniffError, StorageError) as e:
                log.warning(
                    "media_store_failed",
                    media_id=item.media_id,
                    index=index,
                    message_id=placement.message_id,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                continue

            log.info("media_stored", path=str(path), media_id=item.media_id)
            count += 1

        return count

    async def store_one(self, item: MediaItem, index: int, placement: Placement) -> Path:
        """Store a single item.

        Raises:
            DownloadError: If the bytes could not be fetched.
            SniffError: If the content type is unrecognized.
            StorageError: If the directory or file could not be written.
        """
        data = await self.client.download(item.url)
        extension = sniff_extension(data)

        record = StoredMediaRecord(
            group_id=placement.group_id,
            sender_id=placement.sender_id,
            message_id=placement.message_id,
            sent_at=placement.sent_at,
            index=index,
            size=len(data),
            extension=extension,
        )
        path = build_store_path(self.root, record)

        # Blocking filesystem work runs off the event loop
        await asyncio.to_thread(_write_file, path, data)
        log.debug("media_written", path=str(path), size=len(data))
        return path
