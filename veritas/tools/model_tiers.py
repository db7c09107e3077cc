# veritas/tools/model_tiers.py
"""
Tiered model invocation.

Two model tiers with independent provider quotas:
  heavy - claim extraction and manipulation analysis
  light - per-claim verification, summaries, output repair

Rate limits on the light tier are retried with exponential backoff.
Rate limits on the heavy tier put it on cooldown (using the provider's
retry-after hint when present) and the call is redirected to the light
tier immediately. Any other error propagates.
"""
import asyncio
from functools import partial
from typing import Awaitable, Callable, Optional

from veritas.tools.cooldown import HEAVY_MODEL, Cooldowns
from veritas.tools.llm_client import (
    MaxRetriesExceeded,
    RateLimitError,
    chat_completion,
)
from veritas.tools.logger import log

HEAVY = "heavy"
LIGHT = "light"


def make_generate(llm_cfg: dict) -> Callable[..., str]:
    """Bind chat_completion to the configured endpoint and credentials."""
    return partial(
        chat_completion,
        llm_cfg["base_url"],
        llm_cfg["api_key"],
        timeout_sec=int(llm_cfg.get("timeout_sec", 120)),
        max_tokens=int(llm_cfg.get("max_tokens", 4096)),
    )


class ModelInvoker:
    def __init__(
        self,
        llm_cfg: dict,
        cooldowns: Cooldowns,
        generate: Optional[Callable[..., str]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.heavy_model = llm_cfg["heavy_model"]
        self.light_model = llm_cfg["light_model"]
        self.max_retries = int(llm_cfg.get("max_retries", 3))
        self.backoff_base_sec = float(llm_cfg.get("backoff_base_sec", 2.0))
        self.heavy_cooldown_default_sec = float(llm_cfg.get("heavy_cooldown_default_sec", 900))
        self.temperature = float(llm_cfg.get("temperature", 0.1))
        self.cooldowns = cooldowns
        self._generate = generate or make_generate(llm_cfg)
        self._sleep = sleep

    def model_for(self, tier: str) -> str:
        return self.heavy_model if tier == HEAVY else self.light_model

    async def _call(self, model: str, prompt: str, system: str, force_json: bool) -> str:
        return await asyncio.to_thread(
            self._generate,
            model,
            system,
            prompt,
            temperature=self.temperature,
            force_json=force_json,
        )

    async def invoke(
        self,
        prompt: str,
        tier: str = LIGHT,
        max_retries: Optional[int] = None,
        fallback_prompt: Optional[str] = None,
        system: str = "",
        force_json: bool = False,
    ) -> str:
        """
        Run `prompt` on the requested tier.

        `fallback_prompt` replaces `prompt` whenever a heavy-tier call is
        redirected to the light tier (it is usually a truncated version).
        Raises MaxRetriesExceeded when the light tier stays rate limited.
        """
        retries = self.max_retries if max_retries is None else int(max_retries)
        light_prompt = fallback_prompt or prompt

        if tier == HEAVY:
            if self.cooldowns.active(HEAVY_MODEL):
                log("INFO", f"Heavy model {self.heavy_model} cooling down "
                            f"({self.cooldowns.remaining(HEAVY_MODEL):.0f}s left), using {self.light_model}")
                return await self._invoke_light(light_prompt, retries, system, force_json)
            try:
                return await self._call(self.heavy_model, prompt, system, force_json)
            except RateLimitError as e:
                self.cooldowns.extend_from_message(HEAVY_MODEL, str(e), self.heavy_cooldown_default_sec)
                log("WARNING", f"Heavy model rate limited, falling back to {self.light_model}: {e}")
                return await self._invoke_light(light_prompt, retries, system, force_json)

        return await self._invoke_light(prompt, retries, system, force_json)

    async def _invoke_light(self, prompt: str, retries: int, system: str, force_json: bool) -> str:
        last_err = None
        for attempt in range(retries + 1):
            try:
                return await self._call(self.light_model, prompt, system, force_json)
            except RateLimitError as e:
                last_err = e
                if attempt >= retries:
                    break
                delay = self.backoff_base_sec * (2 ** attempt)
                log("WARNING", f"Light model rate limited (attempt {attempt+1}/{retries+1}). Retrying in {delay:.1f}s...")
                await self._sleep(delay)
        raise MaxRetriesExceeded(f"{self.light_model}: rate limited after {retries + 1} attempts: {last_err}")
