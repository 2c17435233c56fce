"""
ffmpeg-backed transcoder.

Splits an H.264/AAC source into HLS transport-stream segments without
re-encoding video and grabs a cover frame at one second.
"""

import asyncio
import logging
import tempfile
from pathlib import Path
from typing import List

from ..models import TranscodeResult, VideoSegment
from ..playlist import parse_playlist
from ..types import TranscodeError

logger = logging.getLogger(__name__)

UNSUPPORTED_FORMAT = "Video format not supported. Please use H.264/AAC MP4."


class FfmpegTranscoder:
    """Runs the ffmpeg binary in a scratch directory per call"""

    def __init__(self, ffmpeg_path: str = "ffmpeg", cover_offset: str = "00:00:01.000"):
        self.ffmpeg_path = ffmpeg_path
        self.cover_offset = cover_offset

    async def _run(self, args: List[str]) -> None:
        try:
            process = await asyncio.create_subprocess_exec(
                self.ffmpeg_path, "-y", *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise TranscodeError(f"ffmpeg not found at {self.ffmpeg_path}") from e

        _, stderr = await process.communicate()
        if process.returncode != 0:
            tail = stderr.decode(errors="replace")[-500:]
            logger.error(f"ffmpeg exited with {process.returncode}: {tail}")
            raise TranscodeError(UNSUPPORTED_FORMAT)

    async def segment(self, raw: bytes, split_seconds: float) -> TranscodeResult:
        if split_seconds <= 0:
            raise TranscodeError(f"Split duration must be positive, got {split_seconds}")

        loop = asyncio.get_running_loop()
        with tempfile.TemporaryDirectory(prefix="suistream-") as workdir:
            work = Path(workdir)
            source = work / "input.mp4"
            playlist_path = work / "output.m3u8"
            cover_path = work / "cover.png"

            await loop.run_in_executor(None, source.write_bytes, raw)

            await self._run([
                "-i", str(source),
                "-c:v", "copy",
                "-c:a", "aac",
                "-hls_time", f"{split_seconds:g}",
                "-hls_list_size", "0",
                "-hls_segment_filename", str(work / "segment_%03d.ts"),
                "-f", "hls",
                str(playlist_path),
            ])
            await self._run([
                "-ss", self.cover_offset,
                "-i", str(source),
                "-vframes", "1",
                str(cover_path),
            ])

            playlist = parse_playlist(await loop.run_in_executor(None, playlist_path.read_text))
            if not playlist.entries:
                raise TranscodeError(UNSUPPORTED_FORMAT)

            def _read_segments() -> List[VideoSegment]:
                return [
                    VideoSegment(
                        index=index,
                        data=(work / entry.uri).read_bytes(),
                        duration=entry.duration,
                        name=entry.uri,
                    )
                    for index, entry in enumerate(playlist.entries)
                ]

            segments = await loop.run_in_executor(None, _read_segments)
            cover = await loop.run_in_executor(None, cover_path.read_bytes)

        logger.info(f"Transcoded {len(raw)} bytes into {len(segments)} segments")
        return TranscodeResult(segments=segments, cover=cover)
