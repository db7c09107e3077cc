# veritas/tools/fallback.py
import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from veritas.tools.logger import log


@dataclass
class Strategy:
    """One step in an ordered fallback chain."""
    name: str
    run: Callable[[Any], Awaitable[Any]]
    timeout_sec: Optional[float] = None
    # Returns a reason string to skip this step without running it.
    skip_if: Optional[Callable[[], Optional[str]]] = None


class AllStrategiesFailed(Exception):
    def __init__(self, errors: List[Tuple[str, str]]):
        self.errors = errors
        super().__init__(format_errors(errors))


def format_errors(errors: List[Tuple[str, str]]) -> str:
    return "; ".join(f"{name}: {reason}" for name, reason in errors) or "no strategies configured"


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, list, tuple, dict)):
        return len(value) == 0
    return False


async def first_success(strategies: List[Strategy], arg: Any) -> Tuple[str, Any]:
    """
    Run strategies in order and return (name, result) for the first one
    that produces a non-empty result.

    Exceptions, timeouts and empty results all advance to the next strategy.
    Raises AllStrategiesFailed with every collected reason when none succeed.
    """
    errors: List[Tuple[str, str]] = []
    for strategy in strategies:
        if strategy.skip_if is not None:
            reason = strategy.skip_if()
            if reason:
                log("INFO", f"Skipping {strategy.name}: {reason}")
                errors.append((strategy.name, f"skipped ({reason})"))
                continue
        try:
            if strategy.timeout_sec:
                result = await asyncio.wait_for(strategy.run(arg), timeout=strategy.timeout_sec)
            else:
                result = await strategy.run(arg)
        except asyncio.TimeoutError:
            log("WARNING", f"{strategy.name} timed out after {strategy.timeout_sec}s")
            errors.append((strategy.name, f"timeout after {strategy.timeout_sec}s"))
            continue
        except Exception as e:
            log("WARNING", f"{strategy.name} failed: {type(e).__name__}: {e}")
            errors.append((strategy.name, f"{type(e).__name__}: {e}"))
            continue

        if _is_empty(result):
            log("INFO", f"{strategy.name} returned nothing")
            errors.append((strategy.name, "empty result"))
            continue

        log("INFO", f"{strategy.name} succeeded")
        return strategy.name, result

    raise AllStrategiesFailed(errors)
