"""Vorbis comment header parsing.

A Vorbis comment header is packet type ``0x03`` followed by ``vorbis``, a
length-prefixed vendor string, a comment count and that many
length-prefixed ``KEY=value`` strings. All lengths are little-endian u32.
Ogg page framing is not decoded; headers are located by scanning raw
stream bytes, which works because Icecast relays emit a fresh header on
every track change.
"""

import struct
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

COMMENT_HEADER_MAGIC = b"\x03vorbis"
KNOWN_KEYS = ("artist", "title", "album", "genre")
UNKNOWN_TITLE = "Unknown"

_U32 = struct.Struct("<I")


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class StreamMetadata:
    """Track metadata carried in a stream's comment header."""

    title: str = UNKNOWN_TITLE
    artist: Optional[str] = None
    album: Optional[str] = None
    genre: Optional[str] = None
    other: Dict[str, str] = field(default_factory=dict)
    last_update: int = field(default_factory=_now_ms)

    def update_from_comment(self, key: str, value: str) -> bool:
        """Apply one comment. Returns True if a field changed."""
        name = key.lower()
        if name in KNOWN_KEYS:
            if getattr(self, name) == value:
                return False
            setattr(self, name, value)
        else:
            if self.other.get(key) == value:
                return False
            self.other[key] = value

        self.last_update = _now_ms()
        return True

    def is_complete(self) -> bool:
        return self.title != UNKNOWN_TITLE or self.artist is not None

    def display(self) -> str:
        """One-line description used to detect meaningful changes."""
        parts = []
        if self.artist is not None:
            parts.append(f"Artist: {self.artist.strip()}")
        parts.append(f"Title: {self.title.strip()}")
        if self.album is not None:
            parts.append(f"Album: {self.album.strip()}")
        if self.genre is not None:
            parts.append(f"Genre: {self.genre.strip()}")
        for key, value in sorted(self.other.items()):
            parts.append(f"{key.strip()}: {value.strip()}")
        return " | ".join(parts)

    def to_dict(self) -> Dict[str, object]:
        """JSON shape served to clients; extra comments sit at top level."""
        data: Dict[str, object] = {
            key: value for key, value in self.other.items() if key.lower() not in KNOWN_KEYS
        }
        data.update(
            {
                "title": self.title,
                "artist": self.artist,
                "album": self.album,
                "genre": self.genre,
                "last_update": self.last_update,
            }
        )
        return data


def find_comment_headers(buffer: bytes) -> List[int]:
    """Offsets of every ``vorbis`` signature that follows a ``0x03`` type byte."""
    positions = []
    start = 0
    while True:
        index = buffer.find(COMMENT_HEADER_MAGIC, start)
        if index < 0:
            return positions
        positions.append(index + 1)
        start = index + 1


def parse_comment_header(data: bytes, offset: int = 0) -> Optional[StreamMetadata]:
    """Parse a comment header starting at the ``vorbis`` signature.

    Truncated comment lists are parsed up to the last complete comment.

    Returns:
        StreamMetadata, or None if the header is malformed or carries no
        comments.
    """
    if data[offset:offset + 6] != b"vorbis":
        return None
    pos = offset + 6

    try:
        (vendor_length,) = _U32.unpack_from(data, pos)
        pos += 4 + vendor_length
        (count,) = _U32.unpack_from(data, pos)
        pos += 4
    except struct.error:
        return None
    if pos > len(data):
        return None

    metadata = StreamMetadata()
    updated = False
    for _ in range(count):
        if pos + 4 > len(data):
            break
        (length,) = _U32.unpack_from(data, pos)
        if pos + 4 + length > len(data):
            break
        comment = data[pos + 4:pos + 4 + length].decode("utf-8", errors="replace")
        pos += 4 + length

        key, _, value = comment.partition("=")
        updated |= metadata.update_from_comment(key.strip(), value.strip())

    return metadata if updated else None


def latest_metadata(buffer: bytes) -> Optional[StreamMetadata]:
    """Return the newest complete comment header found in ``buffer``."""
    for position in reversed(find_comment_headers(buffer)):
        metadata = parse_comment_header(buffer, position)
        if metadata is not None and metadata.is_complete():
            return metadata
    return None

