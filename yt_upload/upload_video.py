"""
Video Uploader
==============

Upload one video to YouTube and follow it through processing.

Flow:
    1. Build snippet/status metadata from title, description and tag text
    2. Run a resumable upload session against the YouTube upload endpoint
    3. Extract the new video id from the response
    4. Optionally poll processing status until processed/failed
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Callable, List, Optional, Union

import requests
from pydantic import BaseModel, Field

from .backoff import BackoffScheduler, CancelToken
from .resumable_upload import (
    ResumableUploadSession,
    SessionState,
    UploadError,
    UploadRequest,
)
from .status_poller import STATUS_POLLING_INTERVAL, PollUpdate, TranscodeStatusPoller
from .youtube_api import fetch_video_status, upload_status_of

logger = logging.getLogger(__name__)

YT_UPLOAD_URL = os.getenv("YT_UPLOAD_URL", "https://www.googleapis.com/upload/youtube/v3/videos")
DEFAULT_CHUNK_SIZE = int(os.getenv("YT_UPLOAD_CHUNK_SIZE", "0"))
DEFAULT_CATEGORY_ID = os.getenv("YT_CATEGORY_ID", "22")  # People & Blogs
DEFAULT_PRIVACY_STATUS = os.getenv("YT_PRIVACY_STATUS", "public")


# ---------- Pydantic Models ----------

class VideoSnippet(BaseModel):
    title: str
    description: str = ""
    tags: List[str] = Field(default_factory=list)
    categoryId: str = DEFAULT_CATEGORY_ID


class VideoStatus(BaseModel):
    privacyStatus: str = DEFAULT_PRIVACY_STATUS


class VideoMetadata(BaseModel):
    """Request body for videos.insert."""
    snippet: VideoSnippet
    status: VideoStatus = Field(default_factory=VideoStatus)

    @property
    def parts(self) -> str:
        return ",".join(self.model_dump().keys())


def split_tags(tag_text: Optional[str]) -> List[str]:
    """'a, b,,c' -> ['a', 'b', 'c']"""
    if not tag_text:
        return []
    return [t.strip() for t in tag_text.split(",") if t.strip()]


def build_metadata(
    title: str,
    description: str = "",
    tags: Optional[str] = None,
    category_id: str = DEFAULT_CATEGORY_ID,
    privacy_status: str = DEFAULT_PRIVACY_STATUS,
) -> VideoMetadata:
    return VideoMetadata(
        snippet=VideoSnippet(
            title=title.strip(),
            description=description,
            tags=split_tags(tags),
            categoryId=str(category_id),
        ),
        status=VideoStatus(privacyStatus=privacy_status),
    )


def error_message(body: Any) -> str:
    """
    Human-readable message from an error body.

    YouTube errors are JSON with error.message set; anything else is
    returned as-is.
    """
    if not body:
        return "Upload failed"
    data = body
    if isinstance(body, str):
        try:
            data = json.loads(body)
        except ValueError:
            return body
    err = data.get("error") if isinstance(data, dict) else None
    if isinstance(err, dict) and err.get("message"):
        return err["message"]
    return body if isinstance(body, str) else json.dumps(body)


def _noop(*args, **kwargs) -> None:
    return None


class UploadOrchestrator:
    """
    Owns one upload session and, on success, one status poller.

    Callbacks:
        on_progress(bytes_transferred, total_bytes)
        on_complete(video_id)
        on_error(message)
        on_status(PollUpdate)  # only when poll_status=True
    """

    def __init__(
        self,
        token: str,
        on_progress: Callable[[int, int], None] = _noop,
        on_complete: Callable[[str], None] = _noop,
        on_error: Callable[[str], None] = _noop,
        on_status: Callable[[PollUpdate], None] = _noop,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        poll_status: bool = True,
        poll_interval: float = STATUS_POLLING_INTERVAL,
        upload_url: str = YT_UPLOAD_URL,
        http: Optional[requests.Session] = None,
        scheduler: Optional[BackoffScheduler] = None,
        wait: Optional[Callable[[float], bool]] = None,
        retry_initiation: bool = False,
    ):
        self.token = token
        self.on_progress = on_progress
        self.on_complete = on_complete
        self.on_error = on_error
        self.on_status = on_status
        self.chunk_size = chunk_size
        self.poll_status = poll_status
        self.poll_interval = poll_interval
        self.upload_url = upload_url
        self.http = http or requests.Session()
        self.cancel_token = scheduler.cancel_token if scheduler else CancelToken()
        self.scheduler = scheduler or BackoffScheduler(cancel_token=self.cancel_token, wait=wait)
        self._wait = wait
        self.retry_initiation = retry_initiation

        self.video_id: Optional[str] = None
        self.session: Optional[ResumableUploadSession] = None
        self.poller: Optional[TranscodeStatusPoller] = None
        self.last_status: Optional[PollUpdate] = None

    def build_request(
        self,
        file: Union[str, Path, UploadRequest],
        title: str,
        description: str = "",
        tags: Optional[str] = None,
        replace_video_id: Optional[str] = None,
    ) -> UploadRequest:
        if isinstance(file, UploadRequest):
            return file
        metadata = build_metadata(title, description, tags)
        return UploadRequest.from_path(
            file,
            metadata=metadata.model_dump(),
            destination_id=replace_video_id,
            params={"part": metadata.parts},
        )

    def upload_file(
        self,
        file: Union[str, Path, UploadRequest],
        title: str = "",
        description: str = "",
        tags: Optional[str] = None,
        replace_video_id: Optional[str] = None,
    ) -> SessionState:
        """
        Upload and (optionally) wait for processing. Reports through callbacks.

        Returns:
            Terminal state of the upload session
        """
        self.video_id = None
        self.last_status = None
        self.scheduler.reset()

        request = self.build_request(file, title, description, tags, replace_video_id)
        try:
            self.session = ResumableUploadSession(
                request,
                token=self.token,
                base_url=self.upload_url,
                chunk_size=self.chunk_size,
                on_progress=self.on_progress,
                on_complete=self._on_upload_complete,
                on_error=self._on_upload_error,
                http=self.http,
                scheduler=self.scheduler,
                cancel_token=self.cancel_token,
                retry_initiation=self.retry_initiation,
            )
            state = self.session.run()
        finally:
            if isinstance(file, (str, Path)):
                request.content.close()

        if state is SessionState.COMPLETED and self.video_id and self.poll_status:
            self.poll_for_video_status(self.video_id)
        return state

    def upload(self, file: Union[str, Path, UploadRequest], **kwargs) -> str:
        """
        Blocking variant of upload_file.

        Returns:
            The new video id

        Raises:
            UploadError if the upload failed or was cancelled
        """
        state = self.upload_file(file, **kwargs)
        if self.video_id:
            return self.video_id

        ctx = self.session.session
        if state is SessionState.COMPLETED:
            raise UploadError("Upload response did not contain a video id", ctx.status_code, ctx.result)
        if state is SessionState.CANCELLED:
            raise UploadError("Upload cancelled", ctx.status_code)
        raise UploadError(error_message(ctx.error), ctx.status_code, ctx.error)

    def poll_for_video_status(self, video_id: str) -> None:
        self.poller = TranscodeStatusPoller(
            fetch=lambda vid: fetch_video_status(vid, self.token, http=self.http),
            status_of=upload_status_of,
            interval=self.poll_interval,
            cancel_token=self.cancel_token,
            wait=self._wait,
        )
        self.poller.poll(video_id, self._on_status)

    def cancel(self) -> None:
        """Stop any further network activity for this upload."""
        self.cancel_token.cancel()

    # ---------- Session callbacks ----------

    def _on_upload_complete(self, body: Any) -> None:
        video_id = body.get("id") if isinstance(body, dict) else None
        if not video_id:
            logger.error("Upload response did not contain a video id")
            self.on_error("Upload response did not contain a video id")
            return
        self.video_id = video_id
        logger.info(f"Uploaded video {video_id}")
        self.on_complete(video_id)

    def _on_upload_error(self, body: Any) -> None:
        message = error_message(body)
        logger.error(f"Upload failed: {message}")
        self.on_error(message)

    def _on_status(self, update: PollUpdate) -> None:
        self.last_status = update
        self.on_status(update)
