"""
YouTube Data API
================

Thin helpers over YouTube Data API v3 used around an upload.

Features:
- Processing status lookup for an uploaded video (status + player)
- Signed-in channel lookup (title + thumbnail)
- Watch URL construction
"""

import os
from typing import Dict, Optional

import requests

BASE = os.getenv("YT_API_BASE", "https://www.googleapis.com/youtube/v3")
WATCH_URL = "https://www.youtube.com/watch?v="


class YTError(RuntimeError):
    """YouTube API error."""
    pass


def _get(path: str, token: str, http: Optional[requests.Session] = None, **params) -> dict:
    """Make an authenticated GET request to YouTube API."""
    if not token:
        raise YTError("Missing access token")
    headers = {"Authorization": f"Bearer {token}"}
    getter = http.get if http is not None else requests.get
    try:
        r = getter(f"{BASE}/{path}", params=params, headers=headers, timeout=30)
    except requests.RequestException as e:
        raise YTError(f"YT API request failed: {e}") from e
    if r.status_code != 200:
        raise YTError(f"YT API error {r.status_code}: {r.text[:200]}")
    return r.json()


def watch_url(video_id: str) -> str:
    return f"{WATCH_URL}{video_id}"


def fetch_video_status(video_id: str, token: str, http: Optional[requests.Session] = None) -> Dict:
    """
    Fetch processing status of one video.

    Args:
        video_id: YouTube video ID
        token: OAuth2 bearer token

    Returns:
        The video resource with `status` and `player` parts

    Raises:
        YTError if the request fails or the video is unknown
    """
    data = _get("videos", token, http=http, part="status,player", id=video_id)
    items = data.get("items") or []
    if not items:
        raise YTError(f"Video not found: {video_id}")
    return items[0]


def upload_status_of(video: Dict) -> Optional[str]:
    """`status.uploadStatus` of a video resource."""
    return (video.get("status") or {}).get("uploadStatus")


def embed_html_of(video: Dict) -> Optional[str]:
    """`player.embedHtml` of a video resource."""
    return (video.get("player") or {}).get("embedHtml")


def fetch_my_channel(token: str, http: Optional[requests.Session] = None) -> Dict:
    """
    Fetch the channel owned by the token's user.

    Returns:
        Dict with channel_id, title and thumbnail_url
    """
    data = _get("channels", token, http=http, part="snippet", mine="true")
    items = data.get("items") or []
    if not items:
        raise YTError("No channel found for this account")
    sn = items[0].get("snippet", {})
    return {
        "channel_id": items[0].get("id"),
        "title": sn.get("title"),
        "thumbnail_url": sn.get("thumbnails", {}).get("default", {}).get("url"),
    }
