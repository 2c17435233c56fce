"""
Concrete adapters for the chain read endpoint, the upload relay and ffmpeg.
"""

from .base import BaseHttpAdapter
from .ffmpeg import FfmpegTranscoder
from .sui_rpc import SuiRpcReader
from .upload_relay import UploadRelayClient

__all__ = [
    "BaseHttpAdapter",
    "FfmpegTranscoder",
    "SuiRpcReader",
    "UploadRelayClient",
]
