# veritas/tools/fetch.py
import requests
from requests.adapters import HTTPAdapter

# Some providers serve stripped-down pages (or nothing) to non-browser agents.
BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept-Language": "en-US,en;q=0.9",
}


def new_browser_session() -> requests.Session:
    """
    Session with browser-like headers and connection pooling.

    Cookies set by a page load are sent on follow-up requests made
    through the same session.
    """
    session = requests.Session()
    session.headers.update(BROWSER_HEADERS)
    session.mount("https://", HTTPAdapter(pool_connections=4, pool_maxsize=4))
    session.mount("http://", HTTPAdapter(pool_connections=2, pool_maxsize=2))
    return session


def fetch_url(url: str, timeout_sec: int = 20, session: requests.Session = None, headers: dict = None):
    """
    Returns (text | None, status_code | None, error | None).
    """
    session = session or new_browser_session()
    try:
        r = session.get(url, timeout=int(timeout_sec), headers=headers)
    except requests.exceptions.ReadTimeout:
        return None, None, "timeout"
    except requests.exceptions.RequestException as e:
        return None, None, f"fetch_error: {type(e).__name__}"

    status = r.status_code
    if 200 <= status < 300:
        return r.text, status, None
    return None, status, f"HTTP {status}"
