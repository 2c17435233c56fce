"""
Merge encrypted segments into one addressable blob with a byte-range playlist.

Storing every segment as its own blob would multiply registrations, fees and
signing prompts, so segments are concatenated into a single binary and the
playlist points into it by offset.
"""

import logging
import math
from typing import List, Optional

from .models import AssembledVideo, ByteRange, VideoSegment
from .playlist import DEFAULT_BINARY_NAME, DEFAULT_KEY_URI, render_playlist
from .types import InputValidationError, UploadState

logger = logging.getLogger(__name__)


class BlobAssembler:
    """Concatenates ordered segments and describes them in an HLS playlist"""

    def __init__(self, binary_name: str = DEFAULT_BINARY_NAME, key_uri: str = DEFAULT_KEY_URI):
        self.binary_name = binary_name
        self.key_uri = key_uri

    @staticmethod
    def target_duration(segments: List[VideoSegment], split_seconds: Optional[float] = None) -> int:
        longest = max((s.duration for s in segments), default=0.0)
        return int(math.ceil(max(longest, split_seconds or 0.0)))

    def assemble(self,
                 segments: List[VideoSegment],
                 split_seconds: Optional[float] = None,
                 release: bool = False) -> AssembledVideo:
        """
        Build the merged binary and its playlist.

        Args:
            segments: segments in playback order
            split_seconds: nominal split duration used by the transcoder
            release: drop each segment's payload once it has been copied

        Returns:
            AssembledVideo with contiguous ranges starting at offset 0
        """
        if not segments:
            raise InputValidationError("No segments to assemble", phase=UploadState.ENCODING)

        ordered = sorted(segments, key=lambda s: s.index)
        merged = bytearray()
        ranges: List[ByteRange] = []

        for segment in ordered:
            offset = len(merged)
            merged.extend(segment.data)
            ranges.append(ByteRange(
                offset=offset,
                length=len(segment.data),
                duration=segment.duration,
                iv=segment.iv,
            ))
            if release:
                segment.data = b""

        target = self.target_duration(ordered, split_seconds)
        manifest = render_playlist(ranges, target, self.binary_name, self.key_uri)

        logger.info(f"Assembled {len(ranges)} segments into {len(merged)} bytes")
        return AssembledVideo(
            data=bytes(merged),
            manifest=manifest,
            ranges=ranges,
            target_duration=target,
        )
