"""
Rewrite lesson video links from the supported hosts into iframe-embeddable URLs.
"""

from __future__ import annotations

import re

YOUTUBE_PARAMS = "modestbranding=1&rel=0&showinfo=0&fs=0&disablekb=1"
VIMEO_PARAMS = "title=0&byline=0&portrait=0&badge=0&autopause=0&player_id=0&app_id=58479"
LOOM_PARAMS = "hide_owner=true&hide_share=true&hide_title=true&hideEmbedTopBar=true"

_VIMEO_ID = re.compile(r"vimeo\.com/(\d+)")
_LOOM_SHARE_ID = re.compile(r"loom\.com/share/([a-zA-Z0-9]+)")
_DRIVE_FILE_ID = re.compile(r"/file/d/([a-zA-Z0-9_-]+)")
_DRIVE_OPEN_ID = re.compile(r"[?&]id=([a-zA-Z0-9_-]+)")


def _with_params(url: str, params: str) -> str:
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{params}"


def _youtube(url: str) -> str | None:
    if "youtube.com/embed/" in url:
        return _with_params(url, YOUTUBE_PARAMS)
    video_id = ""
    if "youtube.com/watch?v=" in url:
        video_id = url.split("watch?v=", 1)[1].split("&", 1)[0]
    elif "youtu.be/" in url:
        video_id = url.split("youtu.be/", 1)[1].split("?", 1)[0]
    if video_id:
        return f"https://www.youtube.com/embed/{video_id}?{YOUTUBE_PARAMS}"
    return None


def _vimeo(url: str) -> str | None:
    if "player.vimeo.com/video/" in url:
        return _with_params(url, VIMEO_PARAMS)
    m = _VIMEO_ID.search(url)
    if m:
        return f"https://player.vimeo.com/video/{m.group(1)}?{VIMEO_PARAMS}"
    return None


def _loom(url: str) -> str | None:
    if "loom.com/embed/" in url:
        return _with_params(url, LOOM_PARAMS)
    m = _LOOM_SHARE_ID.search(url)
    if m:
        return f"https://www.loom.com/embed/{m.group(1)}?{LOOM_PARAMS}"
    return None


def _google_drive(url: str) -> str | None:
    if "/preview" in url or "/embed" in url:
        return url
    m = _DRIVE_FILE_ID.search(url) or _DRIVE_OPEN_ID.search(url)
    if m:
        return f"https://drive.google.com/file/d/{m.group(1)}/preview"
    return None


def _onedrive(url: str) -> str:
    if "embed" in url:
        return url
    return _with_params(url, "embed")


def normalize_video_url(url: str | None) -> str:
    """
    Map a lesson video link to its embeddable form.

    Supported: YouTube (watch, youtu.be, embed), Vimeo, Loom (share, embed),
    Google Drive (file/d, open?id=) and OneDrive (onedrive.live.com, 1drv.ms).
    A host that is recognised but whose URL shape is not falls through to the
    remaining checks; anything unmatched is returned unchanged.
    """
    url = (url or "").strip()
    if not url:
        return ""

    if "youtube.com" in url or "youtu.be" in url:
        embed = _youtube(url)
        if embed:
            return embed
    if "vimeo.com" in url:
        embed = _vimeo(url)
        if embed:
            return embed
    if "loom.com" in url:
        embed = _loom(url)
        if embed:
            return embed
    if "drive.google.com" in url:
        embed = _google_drive(url)
        if embed:
            return embed
    if "onedrive.live.com" in url or "1drv.ms" in url:
        return _onedrive(url)
    return url
