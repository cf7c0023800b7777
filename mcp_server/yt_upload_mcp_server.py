"""
YouTube Uploader MCP Server
===========================

Model Context Protocol (MCP) server exposing the uploader to AI agents
(Claude Desktop, Cursor, Windsurf, etc.)

Transport: stdio (secure, local-first)

Tools:
- upload_video: Resumable upload of a local file, optionally waiting for processing
- video_status: Processing status + embed HTML of an uploaded video
- embed_video: Embeddable HTML for a YouTube/Vimeo/Instagram/... URL
- my_channel: Channel of the configured credentials
"""

import json
import logging
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from mcp.server.fastmcp import FastMCP

from yt_upload import (
    UploadError,
    UploadOrchestrator,
    YTError,
    build_embed_html,
    classify_url,
    fetch_my_channel,
    fetch_video_status,
    get_access_token,
    watch_url,
)
from yt_upload.youtube_api import embed_html_of, upload_status_of

logger = logging.getLogger(__name__)

server = FastMCP("youtube-uploader")


def _error(e: Exception) -> str:
    return f"Error: {str(e)}"


# --------- TOOL DECLARATIONS ---------

@server.tool(
    name="upload_video",
    description="Upload a local video file to YouTube (resumable). Optionally wait until YouTube finishes processing."
)
def tool_upload_video(
    file_path: str,
    title: Optional[str] = None,
    description: str = "",
    tags: Optional[str] = None,
    wait_for_processing: bool = False,
    chunk_size: int = 0,
) -> str:
    """Upload a video and report its id and URL."""
    try:
        path = Path(file_path).expanduser()
        if not path.is_file():
            return f"Error: file not found: {path}"

        orch = UploadOrchestrator(
            get_access_token(),
            chunk_size=chunk_size,
            poll_status=wait_for_processing,
        )
        video_id = orch.upload(path, title=title or path.stem, description=description, tags=tags)

        result = {
            "video_id": video_id,
            "url": watch_url(video_id),
            "status": "uploaded",
        }
        last = orch.last_status
        if last is not None and last.status:
            result["status"] = last.status
            result["embed_html"] = embed_html_of(last.resource)
        return json.dumps(result, ensure_ascii=False, indent=2)

    except (UploadError, YTError, RuntimeError, OSError) as e:
        logger.error(f"upload_video failed: {e}")
        return _error(e)


@server.tool(
    name="video_status",
    description="Processing status (uploaded/processed/failed/...) and embed HTML of a YouTube video"
)
def tool_video_status(video_id: str) -> str:
    """Look up processing status once."""
    try:
        video = fetch_video_status(video_id, get_access_token())
        return json.dumps({
            "video_id": video_id,
            "upload_status": upload_status_of(video),
            "embed_html": embed_html_of(video),
            "url": watch_url(video_id),
        }, ensure_ascii=False, indent=2)
    except (YTError, RuntimeError) as e:
        return _error(e)


@server.tool(
    name="embed_video",
    description="Build embeddable HTML for a video link (YouTube, Instagram, Vine, Vimeo, Dailymotion, Youku, QQ, Facebook, mp4/ogg/webm)"
)
def tool_embed_video(url: str) -> str:
    """Classify a video link and build its embed HTML."""
    found = classify_url(url)
    if not found:
        return f"Error: not a known video link: {url}"
    platform, key = found
    return json.dumps({
        "platform": platform,
        "key": key,
        "html": build_embed_html(url),
    }, ensure_ascii=False, indent=2)


@server.tool(
    name="my_channel",
    description="Title and thumbnail of the channel the uploads will go to"
)
def tool_my_channel() -> str:
    """Show the signed-in channel."""
    try:
        return json.dumps(fetch_my_channel(get_access_token()), ensure_ascii=False, indent=2)
    except (YTError, RuntimeError) as e:
        return _error(e)


# --------- SERVER STARTUP ---------

def main():
    """Run MCP server on stdio."""
    load_dotenv()
    server.run(transport="stdio")


if __name__ == "__main__":
    main()
