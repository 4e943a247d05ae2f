from app.portal.modules.courses.video import LOOM_PARAMS, VIMEO_PARAMS, YOUTUBE_PARAMS, normalize_video_url


def test_youtube_watch_and_short_links():
    assert normalize_video_url("https://www.youtube.com/watch?v=abc123&t=10") == (
        f"https://www.youtube.com/embed/abc123?{YOUTUBE_PARAMS}"
    )
    assert normalize_video_url("https://youtu.be/xyz789?t=3") == f"https://www.youtube.com/embed/xyz789?{YOUTUBE_PARAMS}"


def test_youtube_embed_gets_player_params():
    assert normalize_video_url("https://www.youtube.com/embed/abc123") == (
        f"https://www.youtube.com/embed/abc123?{YOUTUBE_PARAMS}"
    )
    assert normalize_video_url("https://www.youtube.com/embed/abc123?start=5") == (
        f"https://www.youtube.com/embed/abc123?start=5&{YOUTUBE_PARAMS}"
    )


def test_unrecognised_youtube_shape_is_unchanged():
    url = "https://www.youtube.com/channel/UC123"
    assert normalize_video_url(url) == url


def test_vimeo():
    assert normalize_video_url("https://vimeo.com/76979871") == f"https://player.vimeo.com/video/76979871?{VIMEO_PARAMS}"
    assert normalize_video_url("https://player.vimeo.com/video/1") == f"https://player.vimeo.com/video/1?{VIMEO_PARAMS}"


def test_loom():
    assert normalize_video_url("https://www.loom.com/share/abc123def") == f"https://www.loom.com/embed/abc123def?{LOOM_PARAMS}"
    assert normalize_video_url("https://www.loom.com/embed/abc") == f"https://www.loom.com/embed/abc?{LOOM_PARAMS}"


def test_google_drive():
    assert normalize_video_url("https://drive.google.com/file/d/FILE_id-1/view?usp=sharing") == (
        "https://drive.google.com/file/d/FILE_id-1/preview"
    )
    assert normalize_video_url("https://drive.google.com/open?id=XYZ") == "https://drive.google.com/file/d/XYZ/preview"
    preview = "https://drive.google.com/file/d/XYZ/preview"
    assert normalize_video_url(preview) == preview


def test_onedrive():
    assert normalize_video_url("https://onedrive.live.com/redir?resid=1") == "https://onedrive.live.com/redir?resid=1&embed"
    assert normalize_video_url("https://1drv.ms/v/s!abc") == "https://1drv.ms/v/s!abc?embed"
    embed = "https://onedrive.live.com/embed?resid=1"
    assert normalize_video_url(embed) == embed


def test_other_links_and_blank():
    assert normalize_video_url("https://cdn.example.com/clip.mp4") == "https://cdn.example.com/clip.mp4"
    assert normalize_video_url("  ") == ""
    assert normalize_video_url(None) == ""
