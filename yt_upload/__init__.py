"""
YouTube Uploader Core Modules
=============================

This package contains the resumable upload client, retry backoff,
transcoding status polling and video embed helpers.
"""

__version__ = "1.0.0"

from .backoff import BackoffScheduler, BackoffState, CancelToken
from .resumable_upload import (
    ResumableUploadSession,
    SessionState,
    UploadError,
    UploadRequest,
    UploadSession,
)
from .status_poller import PollState, PollUpdate, TranscodeStatusPoller
from .upload_video import UploadOrchestrator, VideoMetadata, build_metadata
from .youtube_api import YTError, fetch_my_channel, fetch_video_status, watch_url
from .embed_builder import build_embed_html, classify_url
from .auth_helper import get_access_token

__all__ = [
    "BackoffScheduler",
    "BackoffState",
    "CancelToken",
    "ResumableUploadSession",
    "SessionState",
    "UploadError",
    "UploadRequest",
    "UploadSession",
    "PollState",
    "PollUpdate",
    "TranscodeStatusPoller",
    "UploadOrchestrator",
    "VideoMetadata",
    "build_metadata",
    "YTError",
    "fetch_my_channel",
    "fetch_video_status",
    "watch_url",
    "build_embed_html",
    "classify_url",
    "get_access_token",
]
