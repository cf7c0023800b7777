"""
Embed Builder
=============

Turns a video URL into embeddable HTML.

Supports (checked in this order, first match wins):
- YouTube (watch, youtu.be, embed, v/ URLs; optional t=1h2m3s start)
- Instagram posts
- Vine
- Vimeo
- Dailymotion
- Youku
- QQ video
- Direct media files (mp4, m4v, ogg, ogv, webm)
- Facebook videos
"""

import html
import re
import urllib.parse as up
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

# Regex patterns
RE_YOUTUBE = re.compile(
    r"//(?:www\.)?(?:youtu\.be/|youtube\.com/(?:embed/|v/|watch\?v=|watch\?.+&v=))([\w|-]{11})(?:(?:[?&]t=)(\S+))?$"
)
RE_YOUTUBE_START = re.compile(r"^(?:(\d+)h)?(?:(\d+)m)?(?:(\d+)s)?$")
RE_INSTAGRAM = re.compile(r"(?:www\.|//)instagram\.com/p/(.[a-zA-Z0-9_-]*)")
RE_VINE = re.compile(r"//vine\.co/v/([a-zA-Z0-9]+)")
RE_VIMEO = re.compile(r"//(player\.)?vimeo\.com/([a-z]*/)*(\d+)[?]?.*")
RE_DAILYMOTION = re.compile(r".+dailymotion.com/(video|hub)/([^_]+)[^#]*(#video=([^_&]+))?")
RE_YOUKU = re.compile(r"//v\.youku\.com/v_show/id_(\w+)=*\.html")
RE_QQ = re.compile(r"//v\.qq\.com.*?vid=(.+)")
RE_QQ_PAGE = re.compile(r"//v\.qq\.com/x?/?(page|cover).*?/([^/]+)\.html\??.*")
RE_MEDIA_FILE = re.compile(r"^.+.(mp4|m4v|ogg|ogv|webm)$")
RE_FACEBOOK = re.compile(r"(?:www\.|//)facebook\.com/([^/]+)/videos/([0-9]+)")

FULLSCREEN = " webkitallowfullscreen mozallowfullscreen allowfullscreen"


@dataclass(frozen=True)
class EmbedRule:
    """One row of the lookup table: extract a key from the URL, build HTML from it."""
    name: str
    extract: Callable[[str], Optional[str]]
    build: Callable[[str, str], str]


def _iframe(src: str, width: int, height: int, extra: str = "", attrs: str = "") -> str:
    return (
        f'<iframe{attrs} frameborder="0" src="{html.escape(src)}" '
        f'width="{width}" height="{height}"{extra}></iframe>'
    )


def youtube_start_seconds(t: Optional[str]) -> int:
    """'1h2m3s' -> 3723. Unparseable values mean no offset."""
    if not t:
        return 0
    m = RE_YOUTUBE_START.match(t)
    if not m:
        return 0
    return sum(mult * int(g) for mult, g in zip((3600, 60, 1), m.groups()) if g)


def _group(pattern: re.Pattern, index: int) -> Callable[[str], Optional[str]]:
    def extract(url: str) -> Optional[str]:
        m = pattern.search(url)
        if m and m.group(index):
            return m.group(index)
        return None
    return extract


def _extract_youtube(url: str) -> Optional[str]:
    m = RE_YOUTUBE.search(url)
    if not m or len(m.group(1)) != 11:
        return None
    return m.group(1)


def _youtube_src(video_id: str, url: str) -> str:
    m = RE_YOUTUBE.search(url)
    start = youtube_start_seconds(m.group(2)) if m else 0
    src = f"//www.youtube.com/embed/{video_id}"
    return f"{src}?start={start}" if start > 0 else src


def _extract_qq(url: str) -> Optional[str]:
    return _group(RE_QQ, 1)(url) or _group(RE_QQ_PAGE, 2)(url)


def _extract_media_file(url: str) -> Optional[str]:
    return url if RE_MEDIA_FILE.match(url) else None


def _extract_vine(url: str) -> Optional[str]:
    m = RE_VINE.search(url)
    return m.group(0) if m else None


def _extract_facebook(url: str) -> Optional[str]:
    m = RE_FACEBOOK.search(url)
    return m.group(0) if m else None


EMBED_RULES: Tuple[EmbedRule, ...] = (
    EmbedRule(
        "youtube", _extract_youtube,
        lambda key, url: _iframe(_youtube_src(key, url), 640, 360),
    ),
    EmbedRule(
        "instagram", _group(RE_INSTAGRAM, 1),
        lambda key, url: _iframe(
            f"https://instagram.com/p/{key}/embed/", 612, 710,
            extra=' scrolling="no" allowtransparency="true"',
        ),
    ),
    EmbedRule(
        "vine", _extract_vine,
        lambda key, url: _iframe(f"{key}/embed/simple", 600, 600, extra=' class="vine-embed"'),
    ),
    EmbedRule(
        "vimeo", _group(RE_VIMEO, 3),
        lambda key, url: _iframe(f"//player.vimeo.com/video/{key}", 640, 360, attrs=FULLSCREEN),
    ),
    EmbedRule(
        "dailymotion", _group(RE_DAILYMOTION, 2),
        lambda key, url: _iframe(f"//www.dailymotion.com/embed/video/{key}", 640, 360),
    ),
    EmbedRule(
        "youku", _group(RE_YOUKU, 1),
        lambda key, url: _iframe(f"//player.youku.com/embed/{key}", 510, 498, attrs=FULLSCREEN),
    ),
    EmbedRule(
        "qq", _extract_qq,
        lambda key, url: _iframe(
            f"https://v.qq.com/iframe/player.html?vid={key}&auto=0", 500, 310, attrs=FULLSCREEN,
        ),
    ),
    EmbedRule(
        "video", _extract_media_file,
        lambda key, url: f'<video controls src="{html.escape(key)}" width="640" height="360"></video>',
    ),
    EmbedRule(
        "facebook", _extract_facebook,
        lambda key, url: _iframe(
            "https://www.facebook.com/plugins/video.php?href="
            + up.quote(key, safe="")
            + "&show_text=0&width=560",
            560, 301,
            extra=' scrolling="no" allowtransparency="true"',
        ),
    ),
)


def _match(url: str) -> Optional[Tuple[EmbedRule, str]]:
    url = url.strip()
    for rule in EMBED_RULES:
        key = rule.extract(url)
        if key:
            return rule, key
    return None


def classify_url(url: str) -> Optional[Tuple[str, str]]:
    """
    Find the first rule matching the URL.

    Returns:
        (platform_name, extracted_key) or None for unknown links
    """
    found = _match(url)
    return (found[0].name, found[1]) if found else None


def build_embed_html(url: str) -> Optional[str]:
    """Embeddable HTML for a video URL, or None if it is not a known video link."""
    found = _match(url)
    if not found:
        return None
    rule, key = found
    return rule.build(key, url.strip())
