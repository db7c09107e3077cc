# veritas/tools/search.py
import re
from urllib.parse import urlparse

import requests

from veritas.policy import HIGH_TRUST_DOMAINS, LOW_TRUST_DOMAINS

QUOTA_STATUS_CODES = {429, 432, 433}
_QUOTA_RE = re.compile(
    r"\b(429|432|433)\b|quota|rate[\s_-]?limit|usage limit|limit exceeded|exceeds your plan|credits?",
    re.I,
)


class SearchError(Exception):
    pass


class SearchQuotaError(SearchError):
    """Search provider quota or rate limit hit. The message may carry a retry-after hint."""


def is_quota_message(text: str) -> bool:
    return bool(_QUOTA_RE.search(text or ""))


def _host(url: str) -> str:
    try:
        return (urlparse(url).hostname or "").lower()
    except Exception:
        return ""


def _error_text(r: requests.Response) -> str:
    try:
        body = r.json()
    except ValueError:
        return (r.text or "")[:500]
    detail = body.get("detail") if isinstance(body, dict) else None
    if isinstance(detail, dict):
        return str(detail.get("error") or detail)
    if detail:
        return str(detail)
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return str(body)[:500]


def tavily_search(
    base_url: str,
    api_key: str,
    query: str,
    depth: str = "basic",
    max_results: int = 5,
    topic: str = "general",
    timeout_sec: int = 30,
) -> dict:
    """
    Returns {"results": [{"title", "content", "url", "score"}], "answer": str | None}.

    Raises SearchQuotaError for quota/rate-limit responses, SearchError otherwise.
    """
    payload = {
        "query": query,
        "search_depth": depth,
        "max_results": int(max_results),
        "topic": topic,
        "include_answer": True,
    }
    headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
    try:
        r = requests.post(f"{base_url.rstrip('/')}/search", json=payload, headers=headers, timeout=timeout_sec)
    except requests.exceptions.RequestException as e:
        raise SearchError(f"search request failed: {type(e).__name__}: {e}") from e

    if r.status_code in QUOTA_STATUS_CODES:
        raise SearchQuotaError(f"HTTP {r.status_code}: {_error_text(r)}")
    if r.status_code >= 400:
        text = _error_text(r)
        if is_quota_message(text):
            raise SearchQuotaError(f"HTTP {r.status_code}: {text}")
        raise SearchError(f"HTTP {r.status_code}: {text}")

    try:
        data = r.json()
    except ValueError as e:
        raise SearchError("search response was not JSON") from e

    out = []
    for item in data.get("results") or []:
        url = item.get("url")
        if not url or not (url.startswith("http://") or url.startswith("https://")):
            continue
        out.append({
            "url": url,
            "title": item.get("title") or "",
            "content": item.get("content") or "",
            "score": item.get("score"),
        })
    return {"results": out, "answer": data.get("answer") or None}


def domain_trust(url: str) -> int:
    """
    Heuristic source reliability from the hostname:
      -1  forums, Q&A sites, open wikis, social platforms
      +1  journals, .edu/.gov, international bodies, wire services, fact-checkers
       0  everything else
    """
    host = _host(url)
    if not host:
        return 0
    if any(host == d or host.endswith("." + d) for d in LOW_TRUST_DOMAINS):
        return -1
    if host.endswith(".gov") or ".gov." in host or host.endswith(".edu") or ".ac." in host:
        return 1
    if any(host == d or host.endswith("." + d) for d in HIGH_TRUST_DOMAINS):
        return 1
    return 0


def rank_results(results: list) -> list:
    """
    Order by domain trust first, then by the provider's relevance score.
    The sort is stable, so equal keys keep provider order.
    """
    def key(r):
        try:
            score = float(r.get("score") or 0.0)
        except (TypeError, ValueError):
            score = 0.0
        return (domain_trust(r.get("url") or ""), score)

    return sorted(results or [], key=key, reverse=True)
