# veritas/pipeline/verify_claims.py
import asyncio
from typing import Awaitable, Callable, List, Optional

from pydantic import ValidationError

from veritas.policy import FACT_CHECKING_STANDARDS, HEDGE_PHRASES
from veritas.schemas.claim import ExtractedClaim, VerificationResponse, VerifiedClaim
from veritas.tools.cooldown import SEARCH, Cooldowns
from veritas.tools.json_extract import extract_json
from veritas.tools.logger import log
from veritas.tools.model_tiers import LIGHT, ModelInvoker
from veritas.tools.search import SearchQuotaError, is_quota_message, rank_results

MODEL_ONLY_SOURCE = "General knowledge (no web sources)"

SYSTEM = f"""You verify factual claims.
Return ONLY valid JSON. No prose. No markdown. No code fences.
{FACT_CHECKING_STANDARDS}"""

EVIDENCE_PROMPT = """CLAIM: {claim}
TOPIC: {topic}

SEARCH RESULTS:
{context}

Rules:
- If the results CONFIRM the claim, verdict is "True"
- If the results CONTRADICT the claim, verdict is "False"
- If the results are irrelevant or silent on the claim, verdict is "Unverified"
- reasoning is ONE sentence in English
- source is the URL of the result you relied on, or null

Return exactly:
{{"verdict": "True" | "False" | "Unverified", "confidence": 0.0-1.0, "reasoning": "...", "source": "https://..." | null}}"""

MODEL_ONLY_PROMPT = """CLAIM: {claim}
TOPIC: {topic}

No web search results are available. Judge the claim from well-established general knowledge only.
If you are not certain, the verdict MUST be "Unverified". Do not guess.
reasoning is ONE sentence in English.

Return exactly:
{{"verdict": "True" | "False" | "Unverified", "confidence": 0.0-1.0, "reasoning": "..."}}"""


def normalize_verdict(value) -> str:
    v = str(value or "").strip().lower().replace(".", "")
    if v in ("true", "verified", "likely true", "accurate", "correct", "supported", "mostly true"):
        return "True"
    if v in ("false", "likely false", "inaccurate", "incorrect", "refuted", "mostly false", "contradicted"):
        return "False"
    return "Unverified"


def _clamp(value, lo: float = 0.0, hi: float = 1.0, default: float = 0.5) -> float:
    try:
        f = float(value)
    except (TypeError, ValueError):
        return default
    return max(lo, min(hi, f))


def coerce_response(data) -> VerificationResponse:
    """Best-effort field extraction when the model's JSON misses the expected shape."""
    data = data if isinstance(data, dict) else {}
    verdict = None
    for k in ["verdict", "rating", "label", "result", "classification"]:
        if data.get(k) is not None:
            verdict = normalize_verdict(data[k])
            break
    reasoning = None
    for k in ["reasoning", "explanation", "reason", "rationale", "analysis", "summary"]:
        if isinstance(data.get(k), str) and data[k].strip():
            reasoning = data[k].strip()
            break
    source = data.get("source") or data.get("url")
    return VerificationResponse(
        verdict=verdict or "Unverified",
        confidence=_clamp(data.get("confidence"), default=0.3),
        reasoning=reasoning or "Model did not provide reasoning.",
        source=source if isinstance(source, str) else None,
    )


def parse_response(raw: str) -> Optional[VerificationResponse]:
    data = extract_json(raw or "")
    if data is None:
        return None
    if isinstance(data, list):
        data = next((d for d in data if isinstance(d, dict)), {})
    if isinstance(data, dict) and "verdict" in data:
        data = dict(data, verdict=normalize_verdict(data["verdict"]))
    try:
        return VerificationResponse.model_validate(data)
    except ValidationError:
        log("INFO", "Verification response failed validation, coercing fields")
        return coerce_response(data)


def has_hedge(reasoning: str) -> bool:
    r = (reasoning or "").lower()
    return any(p in r for p in HEDGE_PHRASES)


def apply_hedge_rule(resp: VerificationResponse, cap: float = 0.5) -> VerificationResponse:
    """Reasoning that describes missing evidence cannot carry a True/False verdict."""
    if resp.verdict != "Unverified" and has_hedge(resp.reasoning):
        log("INFO", f"Reasoning hedges, forcing Unverified (model said {resp.verdict})")
        return resp.model_copy(update={"verdict": "Unverified", "confidence": min(resp.confidence, cap)})
    return resp


def build_context(ranked: list, answer: Optional[str], top_n: int = 3, snippet_chars: int = 300) -> str:
    lines = []
    for i, r in enumerate(ranked[:top_n], start=1):
        snippet = " ".join((r.get("content") or "").split())[:snippet_chars]
        lines.append(f"[{i}] {r.get('title') or 'Untitled'} ({r.get('url')})\n{snippet}")
    if answer:
        lines.append(f"Search summary: {' '.join(answer.split())[:snippet_chars * 2]}")
    return "\n\n".join(lines)


class ClaimVerifier:
    """
    Verifies claims against web search with a light-tier model.

    verify() never raises: provider errors, quota exhaustion and
    unparseable model output all resolve to a model-only or Unverified
    result.
    """

    def __init__(
        self,
        invoker: ModelInvoker,
        cfg: dict,
        cooldowns: Cooldowns,
        search_fn: Optional[Callable[..., dict]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.invoker = invoker
        self.vcfg = cfg.get("verification", {})
        self.scfg = cfg.get("search", {})
        self.cooldowns = cooldowns
        self.search_fn = search_fn
        self._sleep = sleep
        self.model_only_cap = float(self.vcfg.get("model_only_confidence_cap", 0.75))
        self.hedge_cap = float(self.vcfg.get("hedge_confidence_cap", 0.5))

    def _search_skip_reason(self) -> Optional[str]:
        if self.search_fn is None:
            return "no search provider configured"
        if self.cooldowns.active(SEARCH):
            return f"search cooling down ({self.cooldowns.remaining(SEARCH):.0f}s left)"
        return None

    async def _search(self, query: str) -> dict:
        return await asyncio.to_thread(
            self.search_fn,
            query,
            depth=self.scfg.get("depth", "basic"),
            max_results=int(self.scfg.get("max_results", 5)),
            topic=self.scfg.get("topic", "general"),
        )

    def _finish(self, claim: ExtractedClaim, resp: VerificationResponse, source: str) -> VerifiedClaim:
        resp = apply_hedge_rule(resp, self.hedge_cap)
        return VerifiedClaim(
            claim=claim.claim,
            timestamp=claim.timestamp,
            verdict=resp.verdict,
            confidence=round(_clamp(resp.confidence), 2),
            source=source,
            reasoning=resp.reasoning,
        )

    def _unverified(self, claim: ExtractedClaim, reasoning: str, source: str = "N/A") -> VerifiedClaim:
        return VerifiedClaim(
            claim=claim.claim, timestamp=claim.timestamp, verdict="Unverified",
            confidence=0.0, source=source, reasoning=reasoning,
        )

    async def verify_model_only(self, claim: ExtractedClaim, topic: str) -> VerifiedClaim:
        prompt = MODEL_ONLY_PROMPT.format(claim=claim.claim, topic=topic)
        try:
            raw = await self.invoker.invoke(prompt, tier=LIGHT, system=SYSTEM, force_json=True)
        except Exception as e:
            log("WARNING", f"Model-only verification failed: {type(e).__name__}: {e}")
            return self._unverified(claim, "Verification could not be completed.")
        resp = parse_response(raw)
        if resp is None:
            return self._unverified(claim, "Verification response could not be parsed.", MODEL_ONLY_SOURCE)
        resp = resp.model_copy(update={"confidence": min(resp.confidence, self.model_only_cap)})
        return self._finish(claim, resp, MODEL_ONLY_SOURCE)

    async def verify(self, claim: ExtractedClaim, query: str, topic: str) -> VerifiedClaim:
        skip = self._search_skip_reason()
        if skip:
            log("INFO", f"Model-only verification ({skip})")
            return await self.verify_model_only(claim, topic)

        query = (query or f"{claim.claim} {topic}")[:280]
        try:
            found = await self._search(query)
        except Exception as e:
            if isinstance(e, SearchQuotaError) or is_quota_message(str(e)):
                self.cooldowns.extend_from_message(
                    SEARCH, str(e), float(self.scfg.get("cooldown_default_sec", 900))
                )
            log("WARNING", f"Search failed ({type(e).__name__}: {e}), using model-only verification")
            return await self.verify_model_only(claim, topic)

        results = (found or {}).get("results") or []
        if not results:
            log("INFO", f"No search results for: {query[:80]}")
            return await self.verify_model_only(claim, topic)

        ranked = rank_results(results)
        context = build_context(ranked, (found or {}).get("answer"))
        prompt = EVIDENCE_PROMPT.format(claim=claim.claim, topic=topic, context=context)
        try:
            raw = await self.invoker.invoke(prompt, tier=LIGHT, system=SYSTEM, force_json=True)
        except Exception as e:
            log("WARNING", f"Verification model call failed: {type(e).__name__}: {e}")
            return self._unverified(claim, "Verification could not be completed.", ranked[0].get("url") or "N/A")

        resp = parse_response(raw)
        if resp is None:
            return self._unverified(claim, "Verification response could not be parsed.", ranked[0].get("url") or "N/A")

        urls = [r.get("url") for r in ranked[:3]]
        source = resp.source if resp.source in urls else ranked[0].get("url")
        return self._finish(claim, resp, source or "N/A")

    async def verify_all(self, claims: List[ExtractedClaim], topic: str) -> List[VerifiedClaim]:
        """
        Verify every claim, preserving input order.

        concurrency == 1: strictly sequential with a fixed delay between calls.
        concurrency > 1: fixed-size concurrent batches with a delay between batches.
        """
        concurrency = max(1, int(self.vcfg.get("concurrency", 1)))
        delay = float(self.vcfg.get("delay_sec", 1.0))
        out: List[Optional[VerifiedClaim]] = [None] * len(claims)

        if concurrency == 1:
            for i, claim in enumerate(claims):
                if i > 0 and delay > 0:
                    await self._sleep(delay)
                out[i] = await self.verify(claim, claim.query, topic)
            return out

        for start in range(0, len(claims), concurrency):
            if start > 0 and delay > 0:
                await self._sleep(delay)
            batch = claims[start:start + concurrency]
            results = await asyncio.gather(*(self.verify(c, c.query, topic) for c in batch))
            for offset, result in enumerate(results):
                out[start + offset] = result
        return out
