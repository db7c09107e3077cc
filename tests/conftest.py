import pytest

from fakes import LLM_CFG, FakeClock, RecordingSleep
from veritas.tools.cooldown import Cooldowns
from veritas.tools.model_tiers import ModelInvoker


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cooldowns(clock):
    return Cooldowns(clock=clock)


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def make_invoker(cooldowns, sleep):
    def _make(model, **overrides):
        cfg = dict(LLM_CFG, **overrides)
        return ModelInvoker(cfg, cooldowns, generate=model, sleep=sleep)
    return _make
