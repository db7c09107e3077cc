# veritas/pipeline/scorecard.py
import math
from typing import List

from veritas.schemas.claim import VerifiedClaim
from veritas.schemas.report import ReportMeta
from veritas.tools.logger import log
from veritas.tools.model_tiers import LIGHT, ModelInvoker

SUMMARY_PROMPT = """Write a 2-sentence neutral summary of this fact-check in English.

TOPIC: {topic}
RESULTS: {true_count} true, {false_count} false, {unverified_count} unverified (of {total} claims)

KEY CLAIMS:
{top_claims}

Return only the summary text. No preamble, no markdown."""


def tally(claims: List[VerifiedClaim]) -> dict:
    counts = {"True": 0, "False": 0, "Unverified": 0}
    for c in claims:
        counts[c.verdict] += 1
    return counts


def truth_score(claims: List[VerifiedClaim]) -> int:
    """
    Share of decided claims that are True, 0-100.

    Unverified claims are neutral: all-Unverified scores 50, no claims scores 0.
    """
    if not claims:
        return 0
    counts = tally(claims)
    decided = counts["True"] + counts["False"]
    if decided == 0:
        return 50
    return int(math.floor(100 * counts["True"] / decided + 0.5))


def build_meta(claims: List[VerifiedClaim], transcript_source: str = None) -> ReportMeta:
    counts = tally(claims)
    return ReportMeta(
        total_claims=len(claims),
        true_count=counts["True"],
        false_count=counts["False"],
        unverified_count=counts["Unverified"],
        transcript_source=transcript_source,
    )


def fallback_summary(topic: str, claims: List[VerifiedClaim]) -> str:
    if not claims:
        return f"No verifiable factual claims were found in this content about {topic}."
    counts = tally(claims)
    return (
        f"Analyzed {len(claims)} claims about {topic}: {counts['True']} true, "
        f"{counts['False']} false and {counts['Unverified']} unverified."
    )


def _top_claims(claims: List[VerifiedClaim], n: int = 3) -> str:
    # Decided verdicts first, most confident first.
    ranked = sorted(claims, key=lambda c: (c.verdict == "Unverified", -c.confidence))
    return "\n".join(f"- [{c.verdict}] {c.claim}" for c in ranked[:n])


async def generate_summary(invoker: ModelInvoker, topic: str, claims: List[VerifiedClaim]) -> str:
    """Light-tier summary; any failure falls back to a templated sentence."""
    if not claims:
        return fallback_summary(topic, claims)
    counts = tally(claims)
    prompt = SUMMARY_PROMPT.format(
        topic=topic,
        true_count=counts["True"],
        false_count=counts["False"],
        unverified_count=counts["Unverified"],
        total=len(claims),
        top_claims=_top_claims(claims),
    )
    try:
        text = await invoker.invoke(prompt, tier=LIGHT)
    except Exception as e:
        log("WARNING", f"Summary generation failed: {type(e).__name__}: {e}")
        return fallback_summary(topic, claims)
    text = " ".join((text or "").split()).strip().strip('"')
    if not text:
        log("WARNING", "Summary generation returned empty text, using template")
        return fallback_summary(topic, claims)
    return text
