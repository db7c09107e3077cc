import json
import os

import pytest
import yt_dlp

from veritas.tools import youtube
from veritas.tools.youtube import AUDIO_FORMAT_LADDER, download_audio, downloaded_audio, scrape_captions

VIDEO_ID = "dQw4w9WgXcQ"
WATCH = f"https://www.youtube.com/watch?v={VIDEO_ID}"


class FakeYoutubeDL:
    """Writes a file of the next scripted size (or raises) per download() call."""

    script = []
    seen = []

    def __init__(self, opts):
        self.opts = opts

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def download(self, urls):
        FakeYoutubeDL.seen.append(self.opts)
        step = FakeYoutubeDL.script.pop(0)
        if isinstance(step, Exception):
            raise step
        path = self.opts["outtmpl"].replace("%(ext)s", "m4a")
        with open(path, "wb") as f:
            f.write(b"\x00" * step)


@pytest.fixture
def fake_ydl(monkeypatch):
    FakeYoutubeDL.script = []
    FakeYoutubeDL.seen = []
    monkeypatch.setattr(yt_dlp, "YoutubeDL", FakeYoutubeDL)
    return FakeYoutubeDL


def test_format_ladder_steps_past_oversize_files(fake_ydl, tmp_path):
    fake_ydl.script = [500, 400, 80]
    path = download_audio(WATCH, str(tmp_path), max_bytes=100)

    assert [o["format"] for o in fake_ydl.seen] == AUDIO_FORMAT_LADDER[:3]
    assert os.path.getsize(path) == 80
    assert os.listdir(tmp_path) == [os.path.basename(path)]
    outtmpls = [o["outtmpl"] for o in fake_ydl.seen]
    assert len(set(outtmpls)) == len(outtmpls)


def test_format_ladder_exhausted_reports_each_step(fake_ydl, tmp_path):
    fake_ydl.script = [yt_dlp.utils.DownloadError("HTTP Error 403")] + [500] * (len(AUDIO_FORMAT_LADDER) - 1)
    with pytest.raises(RuntimeError) as exc:
        download_audio(WATCH, str(tmp_path), max_bytes=100)
    assert "HTTP Error 403" in str(exc.value)
    assert "exceeds" in str(exc.value)
    assert os.listdir(tmp_path) == []


def test_temp_dir_removed_after_success(fake_ydl):
    fake_ydl.script = [60]
    with downloaded_audio(WATCH, VIDEO_ID, max_bytes=100) as path:
        tmpdir = os.path.dirname(path)
        assert os.path.isfile(path)
        assert VIDEO_ID in os.path.basename(tmpdir)
    assert not os.path.exists(tmpdir)


def test_temp_dir_removed_when_caller_raises(fake_ydl):
    fake_ydl.script = [60]
    dirs = []
    with pytest.raises(ValueError):
        with downloaded_audio(WATCH, VIDEO_ID, max_bytes=100) as path:
            dirs.append(os.path.dirname(path))
            raise ValueError("transcription blew up")
    assert dirs and not os.path.exists(dirs[0])


def test_temp_dir_removed_when_download_fails(fake_ydl):
    fake_ydl.script = [yt_dlp.utils.DownloadError("gone")] * len(AUDIO_FORMAT_LADDER)
    with pytest.raises(RuntimeError):
        with downloaded_audio(WATCH, VIDEO_ID, max_bytes=100):
            pass
    tmpdir = os.path.dirname(fake_ydl.seen[0]["outtmpl"])
    assert not os.path.exists(tmpdir)


def test_each_call_gets_its_own_directory(fake_ydl):
    fake_ydl.script = [60, 60]
    with downloaded_audio(WATCH, VIDEO_ID, max_bytes=100) as first:
        with downloaded_audio(WATCH, VIDEO_ID, max_bytes=100) as second:
            assert os.path.dirname(first) != os.path.dirname(second)


# ---------------------------------------------------------------------------
# Page scrape
# ---------------------------------------------------------------------------

EN_ASR = "https://www.youtube.com/api/timedtext?v=dQw4w9WgXcQ&lang=en&kind=asr"
DE = "https://www.youtube.com/api/timedtext?v=dQw4w9WgXcQ&lang=de"

TRACKS = [
    {"baseUrl": DE, "languageCode": "de"},
    {"baseUrl": EN_ASR, "languageCode": "en", "kind": "asr"},
]
PAGE = '<html><script>var ytInitialPlayerResponse = {"captions": {"captionTracks":' + json.dumps(TRACKS) + "}};</script></html>"

XML = (
    '<?xml version="1.0" encoding="utf-8" ?><transcript>'
    '<text start="0.5" dur="2.0">Guten Tag</text><text start="3" dur="1.5">zusammen</text></transcript>'
)
JSON3 = json.dumps({"events": [{"tStartMs": 1000, "dDurationMs": 2000, "segs": [{"utf8": "hello "}, {"utf8": "there"}]}]})


@pytest.fixture
def fake_fetch(monkeypatch):
    def _install(bodies):
        calls = []

        def fetch(url, timeout_sec=20, session=None, headers=None):
            calls.append(url)
            body = bodies.get(url)
            if body is None:
                return None, 404, "HTTP 404"
            return body, 200, None

        monkeypatch.setattr(youtube, "fetch_url", fetch)
        monkeypatch.setattr(youtube, "new_browser_session", lambda: None)
        return calls
    return _install


def test_scrape_tries_xml_then_json3_then_next_track(fake_fetch):
    calls = fake_fetch({WATCH: PAGE, EN_ASR: "", EN_ASR + "&fmt=json3": "{}", DE: XML})

    segments = scrape_captions(VIDEO_ID)

    assert calls == [WATCH, EN_ASR, EN_ASR + "&fmt=json3", DE]
    assert [s["text"] for s in segments] == ["Guten Tag", "zusammen"]
    assert segments[1]["start"] == 3.0


def test_scrape_json3_used_when_xml_is_empty(fake_fetch):
    calls = fake_fetch({WATCH: PAGE, EN_ASR: "", EN_ASR + "&fmt=json3": JSON3, DE: XML})

    segments = scrape_captions(VIDEO_ID)

    assert calls == [WATCH, EN_ASR, EN_ASR + "&fmt=json3"]
    assert segments == [{"text": "hello there", "start": 1.0, "duration": 2.0}]


def test_scrape_fails_when_every_track_is_empty(fake_fetch):
    calls = fake_fetch({WATCH: PAGE})
    with pytest.raises(RuntimeError, match="empty transcripts"):
        scrape_captions(VIDEO_ID)
    assert calls == [WATCH, EN_ASR, EN_ASR + "&fmt=json3", DE, DE + "&fmt=json3"]


def test_scrape_page_fetch_failure(fake_fetch):
    fake_fetch({})
    with pytest.raises(RuntimeError, match="watch page fetch failed"):
        scrape_captions(VIDEO_ID)
