# veritas/tools/cooldown.py
"""
Cooldown bookkeeping for rate-limited providers.

A cooldown is a wall-clock timestamp before which a provider is assumed
unavailable. Timestamps only ever move forward: a shorter hint arriving
after a longer one never shortens an active cooldown.
"""
import re
import time
from typing import Callable, Dict, Optional

from veritas.tools.logger import log

HEAVY_MODEL = "heavy_model"
SEARCH = "search"
TRANSCRIPTION = "transcription"

# "4h2m15s", "7m12.5s", "45s", "1h", "2m"
_DURATION_RE = re.compile(
    r"(?<![\w.])(?=\d)(?:(\d+)h)?(?:(\d+)m(?!s))?(?:(\d+(?:\.\d+)?)s)?(?![\w])"
)
_MILLIS_RE = re.compile(r"(?<![\w.])(\d+(?:\.\d+)?)ms\b")


def parse_duration(text: str) -> Optional[int]:
    """
    Parse the first <N>h<N>m<N>s style duration in free text.

    Returns milliseconds, or None when no duration is present.
    """
    if not text:
        return None
    for m in _DURATION_RE.finditer(text):
        hours, minutes, seconds = m.groups()
        if hours is None and minutes is None and seconds is None:
            continue
        total = 0.0
        total += int(hours or 0) * 3600
        total += int(minutes or 0) * 60
        total += float(seconds or 0)
        return int(round(total * 1000))
    m = _MILLIS_RE.search(text)
    if m:
        return int(round(float(m.group(1))))
    return None


class Cooldowns:
    """
    Process-wide cooldown timestamps, keyed by provider name.

    Pass one instance to every component that reads or sets cooldowns;
    tests inject a fake clock to move time deterministically.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._until: Dict[str, float] = {}

    def until(self, name: str) -> float:
        return self._until.get(name, 0.0)

    def remaining(self, name: str) -> float:
        return max(0.0, self.until(name) - self._clock())

    def active(self, name: str) -> bool:
        return self.remaining(name) > 0

    def extend(self, name: str, seconds: float) -> float:
        """Set a cooldown `seconds` from now, keeping any later existing one."""
        new_until = self._clock() + max(0.0, float(seconds))
        self._until[name] = max(self.until(name), new_until)
        log("WARNING", f"{name} on cooldown for {self.remaining(name):.0f}s")
        return self._until[name]

    def extend_from_message(self, name: str, message: str, default_sec: float) -> float:
        """Cooldown for the retry-after hint found in `message`, else `default_sec`."""
        hint_ms = parse_duration(message or "")
        seconds = hint_ms / 1000.0 if hint_ms is not None else float(default_sec)
        return self.extend(name, seconds)

    def clear(self, name: str = None) -> None:
        if name is None:
            self._until.clear()
        else:
            self._until.pop(name, None)
