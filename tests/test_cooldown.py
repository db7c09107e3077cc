import pytest

from veritas.tools.cooldown import HEAVY_MODEL, SEARCH, parse_duration


@pytest.mark.parametrize("text,expected", [
    ("Please try again in 4h2m15s.", (4 * 3600 + 2 * 60 + 15) * 1000),
    ("Rate limit reached. Please try again in 7m12.5s", (7 * 60 + 12.5) * 1000),
    ("try again in 45s", 45_000),
    ("retry after 2m", 120_000),
    ("cooldown 1h", 3_600_000),
    ("Please try again in 850ms", 850),
])
def test_parse_duration_patterns(text, expected):
    assert parse_duration(text) == int(expected)


@pytest.mark.parametrize("text", ["", "quota exhausted", "HTTP 429 Too Many Requests", "model llama-3.3-70b"])
def test_parse_duration_absent(text):
    assert parse_duration(text) is None


def test_cooldown_is_monotonic(cooldowns, clock):
    cooldowns.extend(HEAVY_MODEL, 600)
    first = cooldowns.until(HEAVY_MODEL)
    cooldowns.extend(HEAVY_MODEL, 30)
    assert cooldowns.until(HEAVY_MODEL) == first

    cooldowns.extend(HEAVY_MODEL, 1200)
    assert cooldowns.until(HEAVY_MODEL) == clock.now + 1200


def test_cooldown_expires_with_clock(cooldowns, clock):
    cooldowns.extend(SEARCH, 60)
    assert cooldowns.active(SEARCH)
    clock.advance(59)
    assert cooldowns.remaining(SEARCH) == pytest.approx(1)
    clock.advance(2)
    assert not cooldowns.active(SEARCH)


def test_extend_from_message_uses_hint_or_default(cooldowns, clock):
    cooldowns.extend_from_message(HEAVY_MODEL, "Please try again in 1m30s", default_sec=900)
    assert cooldowns.remaining(HEAVY_MODEL) == pytest.approx(90)

    cooldowns.extend_from_message(SEARCH, "quota exceeded", default_sec=900)
    assert cooldowns.remaining(SEARCH) == pytest.approx(900)


def test_instances_do_not_share_state(clock):
    from veritas.tools.cooldown import Cooldowns

    a, b = Cooldowns(clock=clock), Cooldowns(clock=clock)
    a.extend(SEARCH, 100)
    assert a.active(SEARCH)
    assert not b.active(SEARCH)
