"""Tests for the MCP tool functions (called directly, no transport)."""

import json
from unittest.mock import patch

from mcp_server import yt_upload_mcp_server as srv
from yt_upload.youtube_api import YTError


def test_embed_video_tool():
    result = json.loads(srv.tool_embed_video("https://vimeo.com/123456"))

    assert result["platform"] == "vimeo"
    assert result["key"] == "123456"
    assert "player.vimeo.com/video/123456" in result["html"]


def test_embed_video_tool_unknown_link():
    assert srv.tool_embed_video("https://example.com").startswith("Error:")


def test_video_status_tool(monkeypatch):
    monkeypatch.setenv("YT_ACCESS_TOKEN", "tok")
    video = {"id": "vid1", "status": {"uploadStatus": "processed"}, "player": {"embedHtml": "<iframe/>"}}

    with patch.object(srv, "fetch_video_status", return_value=video) as fetch:
        result = json.loads(srv.tool_video_status("vid1"))

    fetch.assert_called_once_with("vid1", "tok")
    assert result["upload_status"] == "processed"
    assert result["embed_html"] == "<iframe/>"
    assert result["url"] == "https://www.youtube.com/watch?v=vid1"


def test_video_status_tool_error(monkeypatch):
    monkeypatch.setenv("YT_ACCESS_TOKEN", "tok")

    with patch.object(srv, "fetch_video_status", side_effect=YTError("Video not found: x")):
        assert srv.tool_video_status("x") == "Error: Video not found: x"


def test_upload_video_tool_missing_file(tmp_path):
    result = srv.tool_upload_video(str(tmp_path / "missing.mp4"))

    assert result.startswith("Error: file not found")


def test_upload_video_tool(monkeypatch, tmp_path):
    monkeypatch.setenv("YT_ACCESS_TOKEN", "tok")
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"\x00" * 10)

    with patch.object(srv.UploadOrchestrator, "upload", return_value="vid9") as upload:
        result = json.loads(srv.tool_upload_video(str(path), title="Clip", tags="a,b"))

    upload.assert_called_once_with(path, title="Clip", description="", tags="a,b")
    assert result == {"video_id": "vid9", "url": "https://www.youtube.com/watch?v=vid9", "status": "uploaded"}
