# veritas/tools/youtube.py
"""
YouTube transcript sources.

Each source returns a list of {"text", "start", "duration"} segments (or
text, for metadata) and raises on failure; the acquisition chain in
veritas.pipeline.transcript decides the order and what to do about it.
"""
import contextlib
import glob
import html
import json
import os
import re
import tempfile
import uuid

from bs4 import BeautifulSoup

from veritas.tools.fetch import fetch_url, new_browser_session

WATCH_URL = "https://www.youtube.com/watch?v={video_id}"

# Tried in order until one downloads under the size ceiling.
AUDIO_FORMAT_LADDER = [
    "bestaudio[abr<=128]/bestaudio",
    "bestaudio[abr<=96]/worstaudio",
    "bestaudio[abr<=64]/worstaudio",
    "worstaudio",
]


def fmt_timestamp(seconds: float) -> str:
    """Format seconds as M:SS or H:MM:SS."""
    s = int(seconds)
    if s < 3600:
        return f"{s // 60}:{s % 60:02d}"
    return f"{s // 3600}:{(s % 3600) // 60:02d}:{s % 60:02d}"


def extract_video_id(url_or_id: str) -> str:
    """Extract 11-char YouTube video ID from various URL formats.

    Supports: youtube.com/watch?v=, youtu.be/, shorts/, embed/, live/, bare ID.
    Raises ValueError if no valid ID found.
    """
    s = (url_or_id or "").strip()
    if re.fullmatch(r"[A-Za-z0-9_-]{11}", s):
        return s

    patterns = [
        r"(?:[?&]v=)([A-Za-z0-9_-]{11})",
        r"(?:youtu\.be/)([A-Za-z0-9_-]{11})",
        r"(?:shorts/)([A-Za-z0-9_-]{11})",
        r"(?:embed/)([A-Za-z0-9_-]{11})",
        r"(?:live/)([A-Za-z0-9_-]{11})",
        r"(?:youtube\.com/v/)([A-Za-z0-9_-]{11})",
    ]
    for p in patterns:
        m = re.search(p, s)
        if m:
            return m.group(1)

    raise ValueError(f"Could not extract a YouTube video ID from: {s}")


# ---------------------------------------------------------------------------
# Captions API
# ---------------------------------------------------------------------------

def fetch_captions(video_id: str, languages=None) -> list:
    """Captions via youtube-transcript-api.

    Prefers manually created > auto-generated English, then any other language.
    """
    from youtube_transcript_api import YouTubeTranscriptApi

    languages = languages or ["en", "en-US", "en-GB"]
    api = YouTubeTranscriptApi()
    transcript_list = api.list(video_id)

    manual, generated, other = [], [], []
    for t in transcript_list:
        if t.language_code in languages:
            (generated if t.is_generated else manual).append(t)
        else:
            other.append(t)

    chosen = (manual or generated or other or [None])[0]
    if chosen is None:
        return []

    fetched = chosen.fetch()
    segments = []
    for snippet in fetched.snippets:
        text = (snippet.text or "").replace("\n", " ").strip()
        if text:
            segments.append({"text": text, "start": float(snippet.start), "duration": float(snippet.duration)})
    return segments


# ---------------------------------------------------------------------------
# Page scrape
# ---------------------------------------------------------------------------

def find_caption_tracks(page_html: str, marker: str = '"captionTracks":', max_scan: int = 20000) -> list:
    """
    Pull the captionTracks array out of a watch page.

    The array is located by bracket balancing from the marker instead of a
    document-wide regex, because track URLs contain escaped characters.
    """
    idx = page_html.find(marker)
    if idx == -1:
        raise ValueError("No caption tracks found in page HTML")

    start = idx + len(marker)
    depth = 0
    in_string = False
    escaped = False
    end = -1
    for i in range(start, min(len(page_html), start + max_scan)):
        ch = page_html[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
            if depth == 0:
                end = i + 1
                break

    if end == -1:
        raise ValueError("Failed to parse caption tracks array")

    tracks = json.loads(page_html[start:end])
    if not isinstance(tracks, list) or not tracks:
        raise ValueError("Caption tracks array is empty")
    return tracks


def order_tracks(tracks: list, language: str = "en") -> list:
    """Manual English first, then auto-generated (asr) English, then other languages."""
    def is_lang(t):
        return (t.get("languageCode") or "").split("-")[0] == language

    manual = [t for t in tracks if is_lang(t) and t.get("kind") != "asr"]
    auto = [t for t in tracks if is_lang(t) and t.get("kind") == "asr"]
    rest = [t for t in tracks if not is_lang(t)]
    return manual + auto + rest


def _clean_caption_text(raw: str) -> str:
    # Timed-text XML is often double-escaped (&amp;#39;)
    return " ".join(html.unescape(raw or "").split())


def parse_timedtext_xml(xml: str) -> list:
    """Parse legacy <text start dur> or srv3 <p t d> (milliseconds) timed-text."""
    soup = BeautifulSoup(xml, "xml")
    segments = []
    for node in soup.find_all("text"):
        text = _clean_caption_text(node.get_text())
        if not text:
            continue
        try:
            start = float(node.get("start", 0))
            duration = float(node.get("dur", 0))
        except ValueError:
            continue
        segments.append({"text": text, "start": start, "duration": duration})
    if segments:
        return segments

    for node in soup.find_all("p"):
        text = _clean_caption_text(node.get_text())
        if not text:
            continue
        try:
            start = float(node.get("t", 0)) / 1000.0
            duration = float(node.get("d", 0)) / 1000.0
        except ValueError:
            continue
        segments.append({"text": text, "start": start, "duration": duration})
    return segments


def parse_json3(body: str) -> list:
    try:
        data = json.loads(body)
    except ValueError:
        return []
    segments = []
    for ev in data.get("events") or []:
        segs = ev.get("segs")
        if not segs:
            continue
        text = "".join(s.get("utf8", "") for s in segs).strip()
        if not text:
            continue
        segments.append({
            "text": " ".join(text.split()),
            "start": (ev.get("tStartMs") or 0) / 1000.0,
            "duration": (ev.get("dDurationMs") or 0) / 1000.0,
        })
    return segments


def scrape_captions(video_id: str, timeout_sec: int = 15) -> list:
    """Captions by loading the watch page and fetching a caption track directly."""
    session = new_browser_session()
    page_url = WATCH_URL.format(video_id=video_id)
    page_html, status, err = fetch_url(page_url, timeout_sec=timeout_sec, session=session)
    if page_html is None:
        raise RuntimeError(f"watch page fetch failed: {err}")

    tracks = order_tracks(find_caption_tracks(page_html))
    headers = {"Referer": page_url}

    for track in tracks:
        base_url = (track.get("baseUrl") or "").replace("\\u0026", "&")
        if not base_url:
            continue

        body, _, _ = fetch_url(base_url, timeout_sec=timeout_sec, session=session, headers=headers)
        if body and len(body) > 50:
            segments = parse_timedtext_xml(body)
            if segments:
                return segments

        sep = "&" if "?" in base_url else "?"
        body, _, _ = fetch_url(f"{base_url}{sep}fmt=json3", timeout_sec=timeout_sec, session=session, headers=headers)
        if body and len(body) > 50:
            segments = parse_json3(body)
            if segments:
                return segments

    raise RuntimeError("All caption tracks returned empty transcripts")


# ---------------------------------------------------------------------------
# Metadata and audio (yt-dlp)
# ---------------------------------------------------------------------------

def fetch_video_metadata(video_id: str) -> dict:
    """Use yt-dlp to extract video metadata without downloading.

    Returns dict with: title, uploader, category, description, url, duration.
    """
    import yt_dlp

    url = WATCH_URL.format(video_id=video_id)
    ydl_opts = {"quiet": True, "no_warnings": True, "skip_download": True, "socket_timeout": 20}
    with yt_dlp.YoutubeDL(ydl_opts) as ydl:
        info = ydl.extract_info(url, download=False) or {}
    categories = info.get("categories") or []
    return {
        "title": info.get("title"),
        "uploader": info.get("uploader") or info.get("channel"),
        "category": categories[0] if categories else None,
        "description": info.get("description"),
        "url": url,
        "duration": info.get("duration"),
    }


def metadata_text(meta: dict) -> str:
    parts = []
    if meta.get("title"):
        parts.append(f"Title: {meta['title']}")
    if meta.get("uploader"):
        parts.append(f"Uploader: {meta['uploader']}")
    if meta.get("category"):
        parts.append(f"Category: {meta['category']}")
    if meta.get("description"):
        parts.append(f"Description: {meta['description']}")
    return "\n".join(parts)


def download_audio(url: str, outdir: str, max_bytes: int) -> str:
    """
    Download audio into `outdir`, stepping down the format ladder until a
    file fits under `max_bytes`. Returns the file path.
    """
    import yt_dlp

    errors = []
    for fmt in AUDIO_FORMAT_LADDER:
        outtmpl = os.path.join(outdir, f"audio-{uuid.uuid4().hex}.%(ext)s")
        ydl_opts = {
            "format": fmt,
            "outtmpl": outtmpl,
            "quiet": True,
            "no_warnings": True,
            "noplaylist": True,
            "nopart": True,
            "overwrites": True,
            "max_filesize": int(max_bytes),
            "socket_timeout": 30,
        }
        try:
            with yt_dlp.YoutubeDL(ydl_opts) as ydl:
                ydl.download([url])
        except yt_dlp.utils.DownloadError as e:
            errors.append(f"{fmt}: {e}")
            continue

        prefix = outtmpl.split(".%(ext)s")[0]
        files = glob.glob(prefix + ".*")
        if not files:
            errors.append(f"{fmt}: no file written (over size limit?)")
            continue
        path = files[0]
        size = os.path.getsize(path)
        if size > max_bytes:
            os.remove(path)
            errors.append(f"{fmt}: {size / 1024 / 1024:.1f}MB exceeds {max_bytes / 1024 / 1024:.0f}MB")
            continue
        return path

    raise RuntimeError("Audio download failed: " + "; ".join(errors))


@contextlib.contextmanager
def downloaded_audio(url: str, video_id: str, max_bytes: int):
    """
    Yield a downloaded audio path inside a per-call temporary directory.

    The directory is unique per call (concurrent requests for the same video
    never share it) and is removed on every exit path.
    """
    with tempfile.TemporaryDirectory(prefix=f"veritas-{video_id}-") as tmpdir:
        yield download_audio(url, tmpdir, max_bytes)
