"""
HLS playlist rendering and parsing.

Rendered playlists address a single merged binary through
``#EXT-X-BYTERANGE`` and reference the key by a placeholder URI; the player
substitutes real network locations at playback time.
"""

import re
from dataclasses import dataclass
from typing import List, Optional

from .models import ByteRange

DEFAULT_BINARY_NAME = "video.bin"
DEFAULT_KEY_URI = "video.key"

_KEY_RE = re.compile(r'#EXT-X-KEY:METHOD=([A-Z0-9-]+)(?:,URI="([^"]*)")?(?:,IV=0x([0-9a-fA-F]+))?')
_EXTINF_RE = re.compile(r'#EXTINF:([\d.]+)')
_BYTERANGE_RE = re.compile(r'#EXT-X-BYTERANGE:(\d+)(?:@(\d+))?')
_TARGET_RE = re.compile(r'#EXT-X-TARGETDURATION:(\d+)')


@dataclass
class PlaylistEntry:
    """One media segment as listed in a playlist"""
    uri: str
    duration: float
    length: Optional[int] = None
    offset: Optional[int] = None
    iv: Optional[bytes] = None
    key_uri: Optional[str] = None


@dataclass
class Playlist:
    target_duration: Optional[int]
    entries: List[PlaylistEntry]
    ended: bool


def render_playlist(ranges: List[ByteRange],
                    target_duration: int,
                    binary_name: str = DEFAULT_BINARY_NAME,
                    key_uri: str = DEFAULT_KEY_URI) -> str:
    """Render a byte-range playlist over one merged binary"""
    lines = [
        "#EXTM3U",
        "#EXT-X-VERSION:3",
        f"#EXT-X-TARGETDURATION:{target_duration}",
        "#EXT-X-MEDIA-SEQUENCE:0",
    ]
    for byte_range in ranges:
        if byte_range.iv is not None:
            lines.append(
                f'#EXT-X-KEY:METHOD=AES-128,URI="{key_uri}",IV=0x{byte_range.iv.hex()}'
            )
        lines.append(f"#EXTINF:{byte_range.duration:.3f},")
        lines.append(f"#EXT-X-BYTERANGE:{byte_range.length}@{byte_range.offset}")
        lines.append(binary_name)
    lines.append("#EXT-X-ENDLIST")
    return "\n".join(lines) + "\n"


def parse_playlist(text: str) -> Playlist:
    """
    Parse a media playlist.

    Handles both the playlists rendered here and the temporary playlist the
    HLS muxer writes while splitting. A byte range without an explicit offset
    continues from the end of the previous range.
    """
    target_duration = None
    entries: List[PlaylistEntry] = []
    ended = False

    current_iv: Optional[bytes] = None
    current_key_uri: Optional[str] = None
    pending_duration: Optional[float] = None
    pending_range = None
    next_offset = 0

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line:
            continue

        if line.startswith("#EXT-X-TARGETDURATION"):
            match = _TARGET_RE.match(line)
            if match:
                target_duration = int(match.group(1))
        elif line.startswith("#EXT-X-KEY"):
            match = _KEY_RE.match(line)
            if match and match.group(1) != "NONE":
                current_key_uri = match.group(2)
                current_iv = bytes.fromhex(match.group(3)) if match.group(3) else None
            else:
                current_key_uri, current_iv = None, None
        elif line.startswith("#EXTINF"):
            match = _EXTINF_RE.match(line)
            pending_duration = float(match.group(1)) if match else 0.0
        elif line.startswith("#EXT-X-BYTERANGE"):
            match = _BYTERANGE_RE.match(line)
            if match:
                length = int(match.group(1))
                offset = int(match.group(2)) if match.group(2) is not None else next_offset
                pending_range = (length, offset)
                next_offset = offset + length
        elif line.startswith("#EXT-X-ENDLIST"):
            ended = True
        elif line.startswith("#"):
            continue
        else:
            length, offset = pending_range if pending_range else (None, None)
            entries.append(PlaylistEntry(
                uri=line,
                duration=pending_duration or 0.0,
                length=length,
                offset=offset,
                iv=current_iv,
                key_uri=current_key_uri,
            ))
            pending_duration = None
            pending_range = None

    return Playlist(target_duration=target_duration, entries=entries, ended=ended)
