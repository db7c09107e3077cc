# veritas/pipeline/extract_claims.py
import re
from dataclasses import dataclass, field
from typing import List, Optional

from pydantic import ValidationError

from veritas.schemas.claim import ExtractedClaim
from veritas.tools.json_extract import extract_json, salvage_claims
from veritas.tools.logger import log, should_log
from veritas.tools.model_tiers import HEAVY, ModelInvoker

STRICT = "strict"
RELAXED = "relaxed"

SYSTEM = """You are a claim extraction system for a fact-checking service.
Return ONLY a JSON object. No prose. No markdown. No code fences."""

_MODE_RULES = {
    STRICT: """DO extract: economic, political, legal, scientific, medical and historical claims,
statistics, dates, and attributions that can be checked against public sources.
DO NOT extract: personal anecdotes, opinions, predictions, rhetoric, value judgments.""",
    RELAXED: """DO extract: any checkable statement of fact, INCLUDING personal timeline events
("the speaker says they lived in Berlin for 3 years"), specific numbers, named people or places,
and direct quotes attributed to someone.
DO NOT extract: pure opinions or feelings.""",
}

PROMPT_TEMPLATE = """Extract up to {target} checkable factual claims from the transcript below.

{mode_rules}

CRITICAL EXTRACTION RULES:
1. Write every claim in ENGLISH, whatever the language of the transcript
2. Every claim is a COMPLETE, SELF-CONTAINED sentence that can be searched on its own
3. Never return fragments:
   BAD:  "12 days"
   GOOD: "The speaker claims to have spent 12 days in Antarctica"
   BAD:  "Crime is up 50%"
   GOOD: "Crime in Los Angeles rose 50% in 2024"
4. timestamp: the [M:SS] marker nearest the claim, or "Unknown"
5. query: a short web search query that would confirm or refute the claim

Return exactly this JSON shape:
{{"topic": "short topic label", "claims": [{{"claim": "...", "timestamp": "1:23", "query": "..."}}]}}

If there are no checkable claims, return {{"topic": "short topic label", "claims": []}}.

TRANSCRIPT:
{transcript}"""


@dataclass
class ExtractionResult:
    topic: str
    claims: List[ExtractedClaim] = field(default_factory=list)
    failed: bool = False
    mode: str = STRICT


def build_prompt(transcript: str, mode: str, target: int) -> str:
    return PROMPT_TEMPLATE.format(target=target, mode_rules=_MODE_RULES[mode], transcript=transcript)


def _clip(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars].rsplit(" ", 1)[0] + " ..."


def derive_query(claim: str, topic: str) -> str:
    query = claim if not topic or topic.lower() in claim.lower() else f"{claim} {topic}"
    return query[:280].strip()


def _normalize_timestamp(value) -> str:
    if value is None:
        return "Unknown"
    ts = str(value).strip().strip("[]")
    if re.fullmatch(r"\d{1,2}(:\d{2}){1,2}", ts):
        return ts
    return "Unknown"


def normalize_claims(items: list, topic: str, max_claims: int) -> List[ExtractedClaim]:
    """Keep claims longer than 5 chars, backfill query/timestamp, cap the count."""
    claims = []
    for item in items or []:
        if isinstance(item, str):
            item = {"claim": item}
        if not isinstance(item, dict):
            continue
        text = item.get("claim") or item.get("claim_text") or item.get("text") or ""
        text = " ".join(str(text).split())
        if len(text) <= 5:
            continue
        query = " ".join(str(item.get("query") or "").split()) or derive_query(text, topic)
        try:
            claims.append(ExtractedClaim(
                claim=text,
                timestamp=_normalize_timestamp(item.get("timestamp")),
                query=query[:280],
            ))
        except ValidationError as e:
            log("WARNING", f"Dropping malformed claim: {e.errors()[0].get('msg')}")
            continue
        if len(claims) >= max_claims:
            break
    return claims


def parse_extraction(raw: str, max_claims: int) -> Optional[ExtractionResult]:
    """
    Parse model output into an ExtractionResult.

    Returns None when neither the JSON recovery passes nor claim salvage
    produce anything usable.
    """
    data = extract_json(raw)
    if isinstance(data, list):
        data = {"claims": data}
    if isinstance(data, dict):
        topic = str(data.get("topic") or "").strip() or "General"
        items = data.get("claims")
        if not isinstance(items, list):
            for key in ["data", "results", "items"]:
                if isinstance(data.get(key), list):
                    items = data[key]
                    break
        if isinstance(items, list):
            claims = normalize_claims(items, topic, max_claims)
            if claims or not salvage_claims(raw):
                return ExtractionResult(topic=topic, claims=claims)

    salvaged = salvage_claims(raw)
    if salvaged:
        topic = data.get("topic") if isinstance(data, dict) else None
        topic = str(topic or "").strip() or "General"
        log("INFO", f"Salvaged {len(salvaged)} claim strings from malformed output")
        return ExtractionResult(topic=topic, claims=normalize_claims(salvaged, topic, max_claims))
    if isinstance(data, dict) and data.get("topic"):
        return ExtractionResult(topic=str(data["topic"]).strip())
    return None


async def _run_pass(invoker: ModelInvoker, transcript: str, mode: str, ecfg: dict) -> Optional[ExtractionResult]:
    max_claims = int(ecfg.get("max_claims", 10))
    heavy_text = _clip(transcript, int(ecfg.get("max_transcript_chars", 24000)))
    light_text = _clip(transcript, int(ecfg.get("light_transcript_chars", 8000)))

    raw = await invoker.invoke(
        build_prompt(heavy_text, mode, max_claims),
        tier=HEAVY,
        fallback_prompt=build_prompt(light_text, mode, max_claims),
        system=SYSTEM,
        force_json=True,
    )
    if should_log("DEBUG"):
        log("DEBUG", f"{mode} extraction returned {len(raw or '')} chars")

    result = parse_extraction(raw or "", max_claims)
    if result is None:
        log("WARNING", f"{mode} extraction output could not be parsed")
        return None
    result.mode = mode
    log("INFO", f"{mode} extraction: {len(result.claims)} claims, topic '{result.topic}'")
    return result


async def extract_claims(invoker: ModelInvoker, transcript: str, ecfg: dict) -> ExtractionResult:
    """
    Two-pass extraction.

    Strict mode first; relaxed mode runs once when strict yields nothing,
    or too few claims from a substantial transcript. The pass with more
    claims wins. `failed` is set only when neither pass produced parseable
    output.
    """
    min_claims = int(ecfg.get("min_claims_before_relaxed", 3))
    substantial = int(ecfg.get("substantial_text_chars", 1500))

    strict = await _run_pass(invoker, transcript, STRICT, ecfg)

    needs_relaxed = (
        strict is None
        or not strict.claims
        or (len(strict.claims) < min_claims and len(transcript) >= substantial)
    )
    if not needs_relaxed:
        return strict

    log("INFO", "Retrying claim extraction in relaxed mode")
    relaxed = await _run_pass(invoker, transcript, RELAXED, ecfg)

    if strict is None and relaxed is None:
        return ExtractionResult(topic="Analysis Failed", failed=True)
    if relaxed is None:
        return strict
    if strict is None or len(relaxed.claims) > len(strict.claims):
        return relaxed
    return strict
