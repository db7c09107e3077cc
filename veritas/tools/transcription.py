# veritas/tools/transcription.py
import os

import requests

from veritas.tools.llm_client import is_rate_limit_message


class TranscriptionError(Exception):
    pass


class TranscriptionRateLimited(TranscriptionError):
    """Speech-to-text provider rate limit. The message may carry a retry-after hint."""


def transcribe_file(
    base_url: str,
    api_key: str,
    path: str,
    model: str = "whisper-large-v3-turbo",
    timeout_sec: int = 300,
) -> str:
    """Upload an audio file to an OpenAI-compatible /audio/transcriptions endpoint; returns plain text."""
    url = f"{base_url.rstrip('/')}/audio/transcriptions"
    headers = {"Authorization": f"Bearer {api_key}"}
    data = {"model": model, "response_format": "text", "temperature": "0"}
    try:
        with open(path, "rb") as f:
            files = {"file": (os.path.basename(path), f)}
            r = requests.post(url, headers=headers, data=data, files=files, timeout=timeout_sec)
    except requests.exceptions.RequestException as e:
        raise TranscriptionError(f"upload failed: {type(e).__name__}: {e}") from e

    if r.status_code == 429 or (r.status_code >= 400 and is_rate_limit_message(r.text)):
        raise TranscriptionRateLimited(f"HTTP {r.status_code}: {r.text[:500]}")
    if r.status_code >= 400:
        raise TranscriptionError(f"HTTP {r.status_code}: {r.text[:500]}")

    # response_format=text returns the transcript body directly; some providers still wrap it
    ctype = r.headers.get("Content-Type", "")
    if "json" in ctype:
        try:
            body = r.json()
        except ValueError:
            return r.text.strip()
        if isinstance(body, dict) and isinstance(body.get("text"), str):
            return body["text"].strip()
    return r.text.strip()
