"""Tests for the resumable upload state machine."""

import io
import json
from unittest.mock import Mock

import pytest
import requests

from yt_upload.backoff import BackoffScheduler, CancelToken
from yt_upload.resumable_upload import (
    ProgressReader,
    ResumableUploadSession,
    SessionState,
    UploadRequest,
    content_range,
    parse_range_upper,
)
from tests.fakes import FakeHttp, FixedJitter, RecordingWait, make_response, session_created

UPLOAD_URL = "https://www.googleapis.com/upload/youtube/v3/videos"
SESSION_URL = "https://upload.example.com/session/1"


def _request(size=1000, **kwargs):
    return UploadRequest.from_bytes(bytes(i % 256 for i in range(size)), content_type="video/mp4", **kwargs)


def _session(request, http, scheduler, **kwargs):
    callbacks = {
        "on_progress": Mock(),
        "on_complete": Mock(),
        "on_error": Mock(),
    }
    callbacks.update({k: kwargs.pop(k) for k in list(kwargs) if k in callbacks})
    session = ResumableUploadSession(
        request, token="tok", base_url=UPLOAD_URL, http=http, scheduler=scheduler, **callbacks, **kwargs
    )
    return session, callbacks


# ---------- Helpers ----------

def test_content_range_formats():
    assert content_range(0, 1000, 1000) == "bytes 0-999/1000"
    assert content_range(400, 500, 1000) == "bytes 400-499/1000"
    assert content_range(0, 0, 0) == "bytes */0"


@pytest.mark.parametrize("header,expected", [
    ("bytes=0-42", 42),
    ("0-1048575", 1048575),
    (None, None),
    ("", None),
    ("bytes=garbage", None),
])
def test_parse_range_upper(header, expected):
    assert parse_range_upper(header) == expected


def test_progress_reader_reads_range_and_reports():
    progress = Mock()
    reader = ProgressReader(io.BytesIO(b"0123456789"), 2, 7, 10, progress)

    assert len(reader) == 5
    assert reader.read(3) == b"234"
    assert reader.read() == b"56"
    assert reader.read() == b""
    assert [c.args for c in progress.call_args_list] == [(5, 10), (7, 10)]


def test_upload_request_from_path(tmp_path):
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"x" * 64)

    request = UploadRequest.from_path(path)
    try:
        assert request.size_bytes == 64
        assert request.content_type == "video/mp4"
        assert request.metadata == {"title": "clip.mp4", "mimeType": "video/mp4"}
    finally:
        request.content.close()


def test_upload_request_from_path_keeps_given_metadata(tmp_path):
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"x" * 8)

    request = UploadRequest.from_path(path, metadata={"snippet": {"title": "Talk"}})
    try:
        assert request.metadata == {"snippet": {"title": "Talk"}}
    finally:
        request.content.close()


def test_negative_chunk_size_rejected(scheduler):
    with pytest.raises(ValueError):
        ResumableUploadSession(_request(), token="tok", chunk_size=-1, scheduler=scheduler)


# ---------- Initiation ----------

def test_single_request_upload_end_to_end(scheduler):
    http = FakeHttp(transfers=[make_response(201, {"id": "vid123"})])
    request = _request(1000, metadata={"snippet": {"title": "t"}}, params={"part": "snippet"})
    session, cb = _session(request, http, scheduler)

    assert session.run() is SessionState.COMPLETED

    assert len(http.initiations) == 1
    assert len(http.puts) == 1
    cb["on_complete"].assert_called_once_with({"id": "vid123"})
    cb["on_error"].assert_not_called()
    assert http.gets == []

    init = http.initiations[0]
    assert init["method"] == "POST"
    assert init["url"] == UPLOAD_URL
    assert init["params"] == {"part": "snippet", "uploadType": "resumable"}
    assert init["headers"]["Authorization"] == "Bearer tok"
    assert init["headers"]["Content-Type"] == "application/json"
    assert init["headers"]["X-Upload-Content-Length"] == "1000"
    assert init["headers"]["X-Upload-Content-Type"] == "video/mp4"
    assert json.loads(init["data"]) == {"snippet": {"title": "t"}}

    put = http.puts[0]
    assert put["url"] == SESSION_URL
    assert put["headers"]["Content-Range"] == "bytes 0-999/1000"
    assert put["headers"]["Content-Type"] == "video/mp4"
    assert put["body"] == request.content.getvalue()


def test_destination_id_replaces_with_put(scheduler):
    http = FakeHttp(transfers=[make_response(200, {"id": "abc"})])
    session = ResumableUploadSession(
        _request(10, destination_id="abc"), token="tok", http=http, scheduler=scheduler
    )

    session.run()

    assert http.initiations[0]["method"] == "PUT"
    assert http.initiations[0]["url"].endswith("/files/abc")


def test_initiation_error_fails_without_retry(scheduler, recording_wait):
    http = FakeHttp(initiation=make_response(401, "Unauthorized"))
    session, cb = _session(_request(), http, scheduler)

    assert session.run() is SessionState.FAILED

    cb["on_error"].assert_called_once_with("Unauthorized")
    assert http.puts == []
    assert recording_wait.delays == []


def test_initiation_server_error_fails_by_default(scheduler):
    http = FakeHttp(initiation=make_response(503, "Backend Error"))
    session, cb = _session(_request(), http, scheduler)

    assert session.run() is SessionState.FAILED
    cb["on_error"].assert_called_once_with("Backend Error")


def test_initiation_without_location_fails(scheduler):
    http = FakeHttp(initiation=make_response(200))
    session, cb = _session(_request(), http, scheduler)

    assert session.run() is SessionState.FAILED
    cb["on_error"].assert_called_once()
    assert http.puts == []


def test_initiation_network_error_fails(scheduler):
    http = FakeHttp(initiation=requests.ConnectionError("connection refused"))
    session, cb = _session(_request(), http, scheduler)

    assert session.run() is SessionState.FAILED
    cb["on_error"].assert_called_once_with("connection refused")


def test_retry_initiation_opt_in(scheduler, recording_wait):
    http = FakeHttp(
        initiation=[make_response(503), requests.ConnectionError("reset"), session_created()],
        transfers=[make_response(201, {"id": "v"})],
    )
    session, cb = _session(_request(), http, scheduler, retry_initiation=True)

    assert session.run() is SessionState.COMPLETED
    assert len(http.initiations) == 3
    assert recording_wait.delays == [1.0, 2.5]
    assert scheduler.state.current_interval_ms == 1000


# ---------- Transfer ----------

def test_progress_is_reported_incrementally(scheduler):
    http = FakeHttp(transfers=[make_response(201, {"id": "v"})])
    session, cb = _session(_request(20000), http, scheduler)

    session.run()

    assert [c.args for c in cb["on_progress"].call_args_list] == [
        (8192, 20000), (16384, 20000), (20000, 20000),
    ]


def test_chunks_cover_content_without_gaps(scheduler):
    request = UploadRequest.from_bytes(b"0123456789")
    http = FakeHttp(transfers=[
        make_response(308, headers={"Range": "bytes=0-3"}),
        make_response(308, headers={"Range": "bytes=0-7"}),
        make_response(201, {"id": "v"}),
    ])
    session, cb = _session(request, http, scheduler, chunk_size=4)

    assert session.run() is SessionState.COMPLETED

    assert [p["headers"]["Content-Range"] for p in http.puts] == [
        "bytes 0-3/10", "bytes 4-7/10", "bytes 8-9/10",
    ]
    assert b"".join(p["body"] for p in http.puts) == b"0123456789"


@pytest.mark.parametrize("size,chunk", [(1000, 300), (1000, 1), (4096, 1024), (7, 3)])
def test_offset_follows_reported_range(scheduler, size, chunk):
    uppers = list(range(chunk - 1, size - 1, chunk))
    transfers = [make_response(308, headers={"Range": f"bytes=0-{u}"}) for u in uppers]
    transfers.append(make_response(201, {"id": "v"}))
    http = FakeHttp(transfers=transfers)
    session, _ = _session(_request(size), http, scheduler, chunk_size=chunk)

    session.run()

    starts = [int(p["headers"]["Content-Range"].split(" ")[1].split("-")[0]) for p in http.puts]
    assert starts == [0] + [u + 1 for u in uppers]
    assert starts == sorted(set(starts))
    assert sum(len(p["body"]) for p in http.puts) == size


def test_partial_acknowledgement_resends_rest(scheduler):
    http = FakeHttp(transfers=[
        make_response(308, headers={"Range": "bytes=0-399"}),
        make_response(201, {"id": "v"}),
    ])
    session, _ = _session(_request(1000), http, scheduler)

    session.run()

    assert http.puts[1]["headers"]["Content-Range"] == "bytes 400-999/1000"
    assert session.session.offset_bytes == 1000


def test_308_without_range_leaves_offset_unchanged(scheduler):
    http = FakeHttp(transfers=[
        make_response(308),
        make_response(201, {"id": "v"}),
    ])
    session, _ = _session(_request(1000), http, scheduler)

    session.run()

    assert [p["headers"]["Content-Range"] for p in http.puts] == ["bytes 0-999/1000"] * 2


def test_reported_range_beyond_size_is_clamped(scheduler):
    http = FakeHttp(transfers=[
        make_response(308, headers={"Range": "bytes=0-5000"}),
        make_response(201, {"id": "v"}),
    ])
    session, _ = _session(_request(1000), http, scheduler)

    session.run()

    assert session.session.offset_bytes <= 1000
    assert http.puts[1]["headers"]["Content-Range"] == "bytes */1000"


def test_client_error_reports_once_and_stops(scheduler, recording_wait):
    body = '{"error": {"message": "Forbidden"}}'
    http = FakeHttp(transfers=[make_response(403, body)])
    session, cb = _session(_request(), http, scheduler)

    assert session.run() is SessionState.FAILED

    cb["on_error"].assert_called_once_with(body)
    cb["on_complete"].assert_not_called()
    assert len(http.puts) == 1
    assert recording_wait.delays == []


def test_zero_size_completes_after_one_transfer(scheduler):
    http = FakeHttp(transfers=[make_response(201, {"id": "empty"})])
    session, cb = _session(UploadRequest.from_bytes(b""), http, scheduler)

    assert session.run() is SessionState.COMPLETED

    assert len(http.transfers) == 1
    assert http.puts[0]["headers"]["Content-Range"] == "bytes */0"
    assert http.puts[0]["body"] == b""
    cb["on_complete"].assert_called_once_with({"id": "empty"})


def test_non_json_completion_body_passed_through(scheduler):
    http = FakeHttp(transfers=[make_response(200, "OK")])
    session, cb = _session(_request(), http, scheduler)

    session.run()

    cb["on_complete"].assert_called_once_with("OK")


# ---------- Resume ----------

def test_server_error_probes_then_resumes(scheduler, recording_wait):
    http = FakeHttp(transfers=[
        make_response(503),
        make_response(308, headers={"Range": "bytes=0-499"}),
        make_response(201, {"id": "v"}),
    ])
    session, cb = _session(_request(1000), http, scheduler)

    assert session.run() is SessionState.COMPLETED

    assert len(http.probes) == 1
    probe = http.probes[0]
    assert probe["headers"]["Content-Range"] == "bytes */1000"
    assert probe["body"] == b""
    assert http.puts[2]["headers"]["Content-Range"] == "bytes 500-999/1000"
    assert recording_wait.delays == [1.0]
    assert scheduler.state.current_interval_ms == 1000
    cb["on_error"].assert_not_called()


def test_network_errors_back_off_until_probe_succeeds(scheduler, recording_wait):
    http = FakeHttp(transfers=[
        requests.ConnectionError("reset"),
        requests.ConnectionError("reset"),
        make_response(500),
        requests.Timeout("slow"),
        make_response(308, headers={"Range": "bytes=0-99"}),
        make_response(201, {"id": "v"}),
    ])
    session, cb = _session(_request(1000), http, scheduler)

    assert session.run() is SessionState.COMPLETED

    assert recording_wait.delays == [1.0, 2.5, 5.5, 11.5]
    assert recording_wait.delays == sorted(recording_wait.delays)
    assert http.puts[-1]["headers"]["Content-Range"] == "bytes 100-999/1000"
    assert scheduler.state.current_interval_ms == 1000


def test_probe_client_error_fails(scheduler):
    http = FakeHttp(transfers=[make_response(502), make_response(404, "Not Found")])
    session, cb = _session(_request(), http, scheduler)

    assert session.run() is SessionState.FAILED
    cb["on_error"].assert_called_once_with("Not Found")


def test_probe_completion_finishes_upload(scheduler):
    http = FakeHttp(transfers=[make_response(503), make_response(201, {"id": "v"})])
    session, cb = _session(_request(), http, scheduler)

    assert session.run() is SessionState.COMPLETED
    assert len(http.puts) == 2
    cb["on_complete"].assert_called_once_with({"id": "v"})
    assert scheduler.state.current_interval_ms == 1000


def test_known_session_url_starts_with_probe(scheduler):
    http = FakeHttp(transfers=[
        make_response(308, headers={"Range": "bytes=0-599"}),
        make_response(201, {"id": "v"}),
    ])
    session, _ = _session(_request(1000), http, scheduler, session_url=SESSION_URL)

    assert session.run() is SessionState.COMPLETED

    assert http.initiations == []
    assert http.puts[0]["headers"]["Content-Range"] == "bytes */1000"
    assert http.puts[1]["headers"]["Content-Range"] == "bytes 600-999/1000"


# ---------- Cancellation ----------

def test_cancel_during_backoff_stops_network_activity():
    token = CancelToken()
    wait = RecordingWait(cancel_after=1, token=token)
    scheduler = BackoffScheduler(cancel_token=token, wait=wait, rng=FixedJitter())
    http = FakeHttp(transfers=[make_response(503)])
    session, cb = _session(_request(), http, scheduler)

    assert session.run() is SessionState.CANCELLED

    assert len(http.puts) == 1
    cb["on_error"].assert_not_called()
    cb["on_complete"].assert_not_called()


def test_cancel_before_run(scheduler):
    http = FakeHttp()
    session, _ = _session(_request(), http, scheduler)
    session.cancel()

    assert session.run() is SessionState.CANCELLED
    assert http.initiations == []
