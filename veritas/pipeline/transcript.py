# veritas/pipeline/transcript.py
"""
Transcript acquisition chain.

Sources are tried in a fixed order and the first non-empty result wins:
captions API -> page scrape -> audio transcription -> video metadata.
Failures and timeouts only advance the chain; when every source is
exhausted the collected reasons are raised as TranscriptUnavailable so
callers can offer manual-text mode instead of a generic error.
"""
import asyncio
from typing import Callable, List, Optional, Tuple

from veritas.schemas.transcript import TranscriptSegment
from veritas.tools.cooldown import TRANSCRIPTION, Cooldowns
from veritas.tools.fallback import AllStrategiesFailed, Strategy, first_success
from veritas.tools.logger import log
from veritas.tools.transcription import TranscriptionRateLimited, transcribe_file
from veritas.tools.youtube import (
    WATCH_URL,
    downloaded_audio,
    extract_video_id,
    fetch_captions,
    fetch_video_metadata,
    fmt_timestamp,
    metadata_text,
    scrape_captions,
)

CAPTIONS = "captions"
PAGE_SCRAPE = "page_scrape"
AUDIO = "audio"
METADATA = "metadata"
TEXT = "text"


class TranscriptUnavailable(Exception):
    def __init__(self, details: str):
        self.details = details
        super().__init__(f"Transcript unavailable: {details}")


def to_segments(raw: list) -> List[TranscriptSegment]:
    out = []
    for item in raw or []:
        text = (item.get("text") or "").strip()
        if not text:
            continue
        out.append(TranscriptSegment(
            text=text,
            start=max(0.0, float(item.get("start") or 0.0)),
            duration=max(0.0, float(item.get("duration") or 0.0)),
        ))
    return out


def single_segment(text: str) -> List[TranscriptSegment]:
    text = (text or "").strip()
    return [TranscriptSegment(text=text, start=0.0, duration=0.0)] if text else []


class TranscriptAcquirer:
    def __init__(
        self,
        cfg: dict,
        cooldowns: Cooldowns,
        captions_fn: Optional[Callable] = None,
        scrape_fn: Optional[Callable] = None,
        audio_fn: Optional[Callable] = None,
        metadata_fn: Optional[Callable] = None,
    ):
        self.tcfg = cfg.get("transcript", {})
        self.stt_cfg = cfg.get("transcription", {})
        self.cooldowns = cooldowns
        self._captions = captions_fn or fetch_captions
        self._scrape = scrape_fn or scrape_captions
        self._metadata = metadata_fn or fetch_video_metadata
        if audio_fn is not None:
            self._audio = audio_fn
        elif self.stt_cfg.get("api_key"):
            self._audio = self._download_and_transcribe
        else:
            self._audio = None

    # -- sources ------------------------------------------------------------

    def _download_and_transcribe(self, url: str, video_id: str) -> str:
        max_bytes = int(float(self.stt_cfg.get("max_audio_mb", 25)) * 1024 * 1024)
        with downloaded_audio(url, video_id, max_bytes) as path:
            return transcribe_file(
                self.stt_cfg["base_url"],
                self.stt_cfg["api_key"],
                path,
                model=self.stt_cfg.get("model", "whisper-large-v3-turbo"),
                timeout_sec=int(self.stt_cfg.get("timeout_sec", 300)),
            )

    async def _from_captions(self, video_id: str) -> List[TranscriptSegment]:
        return to_segments(await asyncio.to_thread(self._captions, video_id))

    async def _from_page(self, video_id: str) -> List[TranscriptSegment]:
        timeout = int(self.tcfg.get("page_request_timeout_sec", 15))
        return to_segments(await asyncio.to_thread(self._scrape, video_id, timeout))

    async def _from_audio(self, video_id: str) -> List[TranscriptSegment]:
        url = WATCH_URL.format(video_id=video_id)
        try:
            text = await asyncio.to_thread(self._audio, url, video_id)
        except TranscriptionRateLimited as e:
            self.cooldowns.extend_from_message(
                TRANSCRIPTION, str(e), float(self.stt_cfg.get("cooldown_default_sec", 600))
            )
            raise
        return single_segment(text)

    async def _from_metadata(self, video_id: str) -> List[TranscriptSegment]:
        meta = await asyncio.to_thread(self._metadata, video_id)
        text = metadata_text(meta or {})
        min_chars = int(self.tcfg.get("metadata_min_chars", 200))
        if len(text) <= min_chars:
            raise ValueError(f"metadata too short ({len(text)} <= {min_chars} chars)")
        return single_segment(text)

    def _audio_skip_reason(self) -> Optional[str]:
        if self._audio is None:
            return "no speech-to-text credentials configured"
        if self.cooldowns.active(TRANSCRIPTION):
            return f"speech-to-text cooling down ({self.cooldowns.remaining(TRANSCRIPTION):.0f}s left)"
        return None

    def strategies(self) -> List[Strategy]:
        t = self.tcfg
        return [
            Strategy(CAPTIONS, self._from_captions, float(t.get("captions_timeout_sec", 20))),
            Strategy(PAGE_SCRAPE, self._from_page, float(t.get("page_scrape_timeout_sec", 30))),
            Strategy(AUDIO, self._from_audio, float(t.get("audio_timeout_sec", 240)), skip_if=self._audio_skip_reason),
            Strategy(METADATA, self._from_metadata, float(t.get("metadata_timeout_sec", 20))),
        ]

    # -- entry point --------------------------------------------------------

    async def acquire(self, url_or_text: str) -> Tuple[str, List[TranscriptSegment]]:
        """
        Returns (source_name, segments).

        Input that is not a video reference is taken as the transcript itself,
        unless it looks like a URL, which is reported as unavailable.
        """
        value = (url_or_text or "").strip()
        try:
            video_id = extract_video_id(value)
        except ValueError:
            if value.lower().startswith(("http://", "https://", "www.")):
                raise TranscriptUnavailable(f"not a YouTube video URL: {value}")
            segments = single_segment(value)
            if not segments:
                raise TranscriptUnavailable("no input text")
            return TEXT, segments

        log("INFO", f"Acquiring transcript for video {video_id}")
        try:
            return await first_success(self.strategies(), video_id)
        except AllStrategiesFailed as e:
            log("ERROR", f"All transcript sources failed for {video_id}: {e}")
            raise TranscriptUnavailable(str(e)) from e


def transcript_text(segments: List[TranscriptSegment], with_timestamps: bool = True) -> str:
    """
    Join segments in order. Timed segments are prefixed with [M:SS] so the
    extraction model can report where a claim was made.
    """
    timed = with_timestamps and any(s.duration > 0 or s.start > 0 for s in segments)
    if not timed:
        return " ".join(s.text for s in segments).strip()
    return "\n".join(f"[{fmt_timestamp(s.start)}] {s.text}" for s in segments).strip()
