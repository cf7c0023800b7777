"""
Resumable Upload Session
========================

Client for Google's resumable upload protocol (YouTube, Drive, ...).

Flow:
    1. Initiate: POST metadata, receive a session URL in `Location`
    2. Transfer: PUT the content (whole, or in chunks) with `Content-Range`
    3. 308 Resume Incomplete: continue from the server-reported `Range`
    4. 5xx / network failure: probe the session with `bytes */total`
       after a backoff delay, then resume from what the server has
    5. 200/201: done, the body is the created resource

The session is an explicit state machine: every state has a step handler
that takes the `UploadSession` context and returns the next state.
"""

import io
import json
import logging
import mimetypes
import os
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, BinaryIO, Callable, Dict, Optional, Union

import requests

from .backoff import BackoffScheduler, BackoffState, CancelToken

logger = logging.getLogger(__name__)

DRIVE_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v2/files/"
DEFAULT_CONTENT_TYPE = "application/octet-stream"
REQUEST_TIMEOUT = 60  # seconds, per request

RE_RANGE_NUMBER = re.compile(r"\d+")

ProgressCallback = Callable[[int, int], None]


def _noop(*args, **kwargs) -> None:
    return None


class UploadError(RuntimeError):
    """Upload failed permanently."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class SessionState(str, Enum):
    INITIATING = "initiating"
    TRANSFERRING = "transferring"
    RESUMING = "resuming"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in (SessionState.COMPLETED, SessionState.FAILED, SessionState.CANCELLED)


@dataclass(frozen=True)
class UploadRequest:
    """What to upload. Immutable once a session starts."""
    content: BinaryIO
    size_bytes: int
    content_type: str = DEFAULT_CONTENT_TYPE
    metadata: Dict[str, Any] = field(default_factory=dict)
    destination_id: Optional[str] = None  # present => replace existing resource
    params: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_bytes(cls, data: bytes, **kwargs) -> "UploadRequest":
        return cls(content=io.BytesIO(data), size_bytes=len(data), **kwargs)

    @classmethod
    def from_path(cls, path: Union[str, Path], **kwargs) -> "UploadRequest":
        """Open a file for upload, guessing its content type from the name."""
        p = Path(path)
        if "content_type" not in kwargs:
            guessed, _ = mimetypes.guess_type(p.name)
            kwargs["content_type"] = guessed or DEFAULT_CONTENT_TYPE
        if "metadata" not in kwargs:
            kwargs["metadata"] = {"title": p.name, "mimeType": kwargs["content_type"]}
        return cls(content=p.open("rb"), size_bytes=os.path.getsize(p), **kwargs)


@dataclass
class UploadSession:
    """Mutable context threaded through the state handlers."""
    session_url: Optional[str] = None
    offset_bytes: int = 0
    chunk_size_bytes: int = 0  # 0 = send in one piece
    retry_state: BackoffState = field(default_factory=BackoffState)
    state: SessionState = SessionState.INITIATING
    result: Any = None
    error: Any = None
    status_code: Optional[int] = None


class ProgressReader:
    """
    File-like view over `[start, end)` of a stream.

    requests sends file-like bodies by calling read() in blocks, so progress
    is reported as the bytes actually leave for the socket.
    """

    def __init__(self, stream: BinaryIO, start: int, end: int, total: int,
                 on_progress: ProgressCallback = _noop):
        self._stream = stream
        self._start = start
        self._remaining = end - start
        self._length = end - start
        self._total = total
        self._on_progress = on_progress
        self._stream.seek(start)

    def __len__(self) -> int:
        return self._length

    def read(self, size: int = -1) -> bytes:
        if self._remaining <= 0:
            return b""
        if size is None or size < 0 or size > self._remaining:
            size = self._remaining
        data = self._stream.read(size)
        self._remaining -= len(data)
        self._on_progress(self._start + self._length - self._remaining, self._total)
        return data


def build_url(base_url: str, destination_id: Optional[str] = None) -> str:
    """Upload endpoint, with the id of the resource to replace appended."""
    url = base_url
    if destination_id:
        url = url.rstrip("/") + "/" + destination_id
    return url


def content_range(start: int, end: int, total: int) -> str:
    """`Content-Range` for the half-open byte range [start, end)."""
    if end <= start:
        return f"bytes */{total}"
    return f"bytes {start}-{end - 1}/{total}"


def parse_range_upper(header: Optional[str]) -> Optional[int]:
    """Last byte the server reports as received, e.g. 'bytes=0-42' -> 42."""
    if not header:
        return None
    numbers = RE_RANGE_NUMBER.findall(header)
    if not numbers:
        return None
    return int(numbers[-1])


def parse_body(response: requests.Response) -> Any:
    """JSON body when there is one, raw text otherwise."""
    try:
        return response.json()
    except ValueError:
        return response.text


class ResumableUploadSession:
    """
    Drives one file's upload lifecycle.

    Usage:
        session = ResumableUploadSession(
            request, token=access_token,
            base_url="https://www.googleapis.com/upload/youtube/v3/videos",
            on_complete=lambda body: ..., on_error=lambda body: ...,
        )
        state = session.run()
    """

    def __init__(
        self,
        request: UploadRequest,
        token: str,
        base_url: str = DRIVE_UPLOAD_URL,
        chunk_size: int = 0,
        offset: int = 0,
        session_url: Optional[str] = None,
        on_progress: ProgressCallback = _noop,
        on_complete: Callable[[Any], None] = _noop,
        on_error: Callable[[Any], None] = _noop,
        http: Optional[requests.Session] = None,
        scheduler: Optional[BackoffScheduler] = None,
        cancel_token: Optional[CancelToken] = None,
        retry_initiation: bool = False,
    ):
        if chunk_size < 0:
            raise ValueError("chunk_size must be >= 0")
        if not 0 <= offset <= request.size_bytes:
            raise ValueError("offset must be within the content")

        self.request = request
        self.token = token
        self.url = build_url(base_url, request.destination_id)
        self.http_method = "PUT" if request.destination_id else "POST"
        self.on_progress = on_progress
        self.on_complete = on_complete
        self.on_error = on_error
        self.http = http or requests.Session()
        self.cancel_token = cancel_token or (scheduler.cancel_token if scheduler else CancelToken())
        self.scheduler = scheduler or BackoffScheduler(cancel_token=self.cancel_token)
        self.retry_initiation = retry_initiation

        self.session = UploadSession(
            session_url=session_url,
            offset_bytes=offset,
            chunk_size_bytes=chunk_size,
            retry_state=self.scheduler.state,
            # A known session URL skips initiation and starts by asking the
            # server how much it already has.
            state=SessionState.RESUMING if session_url else SessionState.INITIATING,
        )

        self._handlers = {
            SessionState.INITIATING: self._step_initiate,
            SessionState.TRANSFERRING: self._step_transfer,
            SessionState.RESUMING: self._step_resume,
        }

    # ---------- Public API ----------

    def run(self) -> SessionState:
        """Run the state machine until it reaches a terminal state."""
        session = self.session
        while not session.state.terminal:
            if self.cancel_token.cancelled:
                logger.info("Upload cancelled")
                session.state = SessionState.CANCELLED
                break
            next_state = self._handlers[session.state](session)
            logger.debug(f"{session.state.value} -> {next_state.value} (offset={session.offset_bytes})")
            session.state = next_state

        if session.state is SessionState.COMPLETED:
            self.on_complete(session.result)
        elif session.state is SessionState.FAILED:
            self.on_error(session.error)
        return session.state

    def cancel(self) -> None:
        self.cancel_token.cancel()

    # ---------- State handlers ----------

    def _step_initiate(self, session: UploadSession) -> SessionState:
        response = self._send_initiation(session)
        if response is None and self.retry_initiation:
            return self._retry_initiation(session)
        if response is None:
            return SessionState.FAILED
        if response.status_code >= 500 and self.retry_initiation:
            return self._retry_initiation(session)
        return self._handle_initiation(session, response)

    def _step_transfer(self, session: UploadSession) -> SessionState:
        try:
            response = self._send_chunk(session)
        except requests.RequestException as e:
            logger.warning(f"Content transfer failed at offset {session.offset_bytes}: {e}")
            return SessionState.RESUMING
        return self._handle_transfer(session, response)

    def _step_resume(self, session: UploadSession) -> SessionState:
        response = self.scheduler.schedule(lambda: self._probe(session))
        if self.cancel_token.cancelled:
            return SessionState.CANCELLED
        if response is None:
            return SessionState.RESUMING
        return self._handle_transfer(session, response)

    # ---------- Response handling ----------

    def _handle_initiation(self, session: UploadSession, response: requests.Response) -> SessionState:
        session.status_code = response.status_code
        if response.status_code >= 400:
            logger.error(f"Upload initiation failed with HTTP {response.status_code}")
            session.error = response.text
            return SessionState.FAILED

        location = response.headers.get("Location")
        if not location:
            logger.error("Upload initiation response has no Location header")
            session.error = response.text or "Missing upload session location"
            return SessionState.FAILED

        session.session_url = location
        logger.info(f"Upload session created ({self.request.size_bytes} bytes)")
        return SessionState.TRANSFERRING

    def _handle_transfer(self, session: UploadSession, response: requests.Response) -> SessionState:
        status = response.status_code
        session.status_code = status

        if status in (200, 201):
            session.offset_bytes = self.request.size_bytes
            session.result = parse_body(response)
            self.scheduler.reset()
            logger.info("Upload complete")
            return SessionState.COMPLETED

        if status == 308:
            self._extract_range(session, response)
            self.scheduler.reset()
            return SessionState.TRANSFERRING

        if status < 500:
            logger.error(f"Upload rejected with HTTP {status}")
            session.error = response.text
            return SessionState.FAILED

        logger.warning(f"Server error HTTP {status}, will resume at offset {session.offset_bytes}")
        return SessionState.RESUMING

    def _extract_range(self, session: UploadSession, response: requests.Response) -> None:
        """Move the offset past the last byte the server has. Unknown => unchanged."""
        upper = parse_range_upper(response.headers.get("Range"))
        if upper is None:
            return
        offset = min(upper + 1, self.request.size_bytes)
        if offset < session.offset_bytes:
            logger.warning(f"Server reported range end {upper} behind offset {session.offset_bytes}; ignoring")
            return
        session.offset_bytes = offset

    def _retry_initiation(self, session: UploadSession) -> SessionState:
        while not self.cancel_token.cancelled:
            response = self.scheduler.schedule(lambda: self._send_initiation(session))
            if self.cancel_token.cancelled:
                return SessionState.CANCELLED
            if response is not None and response.status_code < 500:
                self.scheduler.reset()
                return self._handle_initiation(session, response)
        return SessionState.CANCELLED

    # ---------- Requests ----------

    def _send_initiation(self, session: UploadSession) -> Optional[requests.Response]:
        params = dict(self.request.params)
        params["uploadType"] = "resumable"
        headers = {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
            "X-Upload-Content-Length": str(self.request.size_bytes),
            "X-Upload-Content-Type": self.request.content_type,
        }
        try:
            return self.http.request(
                self.http_method,
                self.url,
                params=params,
                headers=headers,
                data=json.dumps(self.request.metadata),
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            logger.error(f"Upload initiation request failed: {e}")
            session.error = str(e)
            return None

    def _send_chunk(self, session: UploadSession) -> requests.Response:
        total = self.request.size_bytes
        start = session.offset_bytes
        end = total
        if session.chunk_size_bytes:
            end = min(start + session.chunk_size_bytes, total)

        body = ProgressReader(self.request.content, start, end, total, self.on_progress)
        headers = {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": self.request.content_type,
            "Content-Range": content_range(start, end, total),
            "X-Upload-Content-Type": self.request.content_type,
        }
        # requests only streams non-empty file-like bodies
        return self.http.put(
            session.session_url,
            data=body if end > start else b"",
            headers=headers,
            timeout=REQUEST_TIMEOUT,
        )

    def _probe(self, session: UploadSession) -> Optional[requests.Response]:
        """Ask the server how much of the content it already has."""
        headers = {
            "Authorization": f"Bearer {self.token}",
            "Content-Range": f"bytes */{self.request.size_bytes}",
            "X-Upload-Content-Type": self.request.content_type,
        }
        try:
            return self.http.put(session.session_url, data=b"", headers=headers, timeout=REQUEST_TIMEOUT)
        except requests.RequestException as e:
            logger.warning(f"Upload status probe failed: {e}")
            return None
