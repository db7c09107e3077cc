# veritas/tools/llm_client.py
import re
import time

import requests

from veritas.tools.logger import log, should_log

RATE_LIMIT_PATTERNS = [
    r"\b429\b",
    r"rate[\s_-]?limit",
    r"too many requests",
    r"tokens per (minute|day)",
    r"requests per (minute|day)",
    r"\b(tpm|tpd|rpm|rpd)\b",
]
_RATE_LIMIT_RE = re.compile("|".join(RATE_LIMIT_PATTERNS), re.I)


class LLMError(Exception):
    """Non-recoverable text-generation failure (bad request, auth, malformed response)."""


class RateLimitError(LLMError):
    """Provider rejected the call for quota reasons. The message may carry a retry-after hint."""


class MaxRetriesExceeded(LLMError):
    """Every retry and fallback for a model call was rate limited."""


def is_rate_limit_message(text: str) -> bool:
    return bool(_RATE_LIMIT_RE.search(text or ""))


def _error_text(r: requests.Response) -> str:
    try:
        body = r.json()
        err = body.get("error") if isinstance(body, dict) else None
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, str):
            return err
    except ValueError:
        pass
    return (r.text or "")[:500]


def chat_completion(
    base_url: str,
    api_key: str,
    model: str,
    system: str,
    user: str,
    temperature: float = 0.2,
    force_json: bool = False,
    timeout_sec: int = 120,
    max_tokens: int = 4096,
    max_network_retries: int = 2,
) -> str:
    """
    Single chat completion against an OpenAI-compatible endpoint.

    Raises RateLimitError on 429 / quota wording, LLMError on other failures.
    Connection errors and read timeouts are retried with a short backoff.
    """
    url = f"{base_url.rstrip('/')}/chat/completions"
    messages = []
    if system:
        messages.append({"role": "system", "content": system})
    messages.append({"role": "user", "content": user})
    payload = {
        "model": model,
        "messages": messages,
        "temperature": float(temperature),
        "max_tokens": int(max_tokens),
    }
    if force_json:
        payload["response_format"] = {"type": "json_object"}
    headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}

    last_err = None
    for attempt in range(max_network_retries + 1):
        try:
            r = requests.post(url, json=payload, headers=headers, timeout=timeout_sec)
        except (requests.exceptions.ReadTimeout, requests.exceptions.ConnectionError) as e:
            last_err = e
            # backoff: 2s, 5s, 10s
            sleep_s = [2, 5, 10][min(attempt, 2)]
            log("WARNING", f"LLM timeout/connection error on attempt {attempt+1}/{max_network_retries+1}. Retrying in {sleep_s}s...")
            time.sleep(sleep_s)
            continue

        if r.status_code == 429:
            raise RateLimitError(f"{model}: HTTP 429: {_error_text(r)}")
        if r.status_code >= 400:
            text = _error_text(r)
            if is_rate_limit_message(text):
                raise RateLimitError(f"{model}: HTTP {r.status_code}: {text}")
            raise LLMError(f"{model}: HTTP {r.status_code}: {text}")

        try:
            resp_json = r.json()
            content = resp_json["choices"][0]["message"].get("content") or ""
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise LLMError(f"{model}: unexpected response shape ({type(e).__name__})") from e

        if not content and should_log("DEBUG"):
            log("DEBUG", f"LLM returned empty content. Model: {model}, "
                         f"system prompt length: {len(system or '')} chars, "
                         f"user prompt length: {len(user)} chars")
        return content

    raise LLMError(f"{model}: network failure after retries: {type(last_err).__name__}: {last_err}")
