# veritas/pipeline/manipulation.py
import json
import math
import re
from typing import List, Optional

from veritas.policy import MANIPULATION_TACTICS, TACTIC_NAMES
from veritas.schemas.report import ManipulationReport, ManipulationTactic
from veritas.tools.json_extract import extract_json
from veritas.tools.logger import log
from veritas.tools.model_tiers import HEAVY, LIGHT, ModelInvoker

FAILED_SUMMARY = "Could not analyze manipulation tactics."

SYSTEM = """You analyze rhetoric for persuasion and manipulation tactics.
Return ONLY a JSON object. No prose. No markdown. No code fences."""

_TACTIC_LINES = "\n".join(f"- {name}: {definition}" for name, definition in MANIPULATION_TACTICS)

_SCHEMA = (
    '{"tactics": [{"tactic": "<one of the tactic names>", "score": 0-100, '
    '"example": "short quote or paraphrase", "explanation": "one sentence"}], '
    '"manipulationScore": 0-100, "summary": "one sentence"}'
)

PROMPT_TEMPLATE = """Score the transcript below for each of these 8 manipulation tactics:
{tactics}

TOPIC: {topic}

Rules:
- Report ALL 8 tactics, using exactly the names above
- score 0 means absent, 100 means pervasive
- For a score of 0 leave example and explanation empty
- example and explanation in ENGLISH, whatever the language of the transcript
- manipulationScore is the overall intensity (0-100); summary is ONE sentence

Return exactly this JSON shape:
{schema}

TRANSCRIPT:
{transcript}"""

REPAIR_PROMPT = """The text below was meant to be JSON but could not be parsed.
Rewrite it as ONE valid JSON object with exactly this schema, keeping its content:
{schema}

Allowed tactic names: {names}

TEXT:
{raw}"""


def build_prompt(transcript: str, topic: str) -> str:
    return PROMPT_TEMPLATE.format(tactics=_TACTIC_LINES, topic=topic, schema=_SCHEMA, transcript=transcript)


def clamp_score(value) -> int:
    try:
        f = float(value)
    except (TypeError, ValueError):
        return 0
    if f != f:  # NaN
        return 0
    return int(math.floor(max(0.0, min(100.0, f)) + 0.5))


def _norm_name(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", " ", (name or "").lower()).strip()


def _first_word(name: str) -> str:
    parts = _norm_name(name).split()
    return parts[0] if parts else ""


def default_report(summary: str = FAILED_SUMMARY) -> ManipulationReport:
    return ManipulationReport(
        tactics=[ManipulationTactic(tactic=name, score=0) for name in TACTIC_NAMES],
        manipulation_score=0,
        summary=summary,
    )


def reconcile_tactics(items: list) -> List[ManipulationTactic]:
    """
    Map the model's tactic entries onto the 8 canonical tactics.

    Exact (normalized) name matches are taken first; remaining entries fall
    back to first-word matching. Each entry is used at most once, and any
    canonical tactic left unmatched gets score 0.
    """
    entries = [e for e in (items or []) if isinstance(e, dict)]
    used = set()
    matched = {}

    for name in TACTIC_NAMES:
        for i, e in enumerate(entries):
            if i not in used and _norm_name(e.get("tactic") or e.get("name")) == _norm_name(name):
                matched[name] = e
                used.add(i)
                break

    for name in TACTIC_NAMES:
        if name in matched:
            continue
        key = _first_word(name)
        for i, e in enumerate(entries):
            if i in used:
                continue
            model_name = _norm_name(e.get("tactic") or e.get("name"))
            if key and (model_name.startswith(key) or key in model_name.split()):
                matched[name] = e
                used.add(i)
                break

    tactics = []
    for name in TACTIC_NAMES:
        e = matched.get(name)
        score = clamp_score(e.get("score")) if e else 0
        if e is None or score == 0:
            tactics.append(ManipulationTactic(tactic=name, score=0))
            continue
        tactics.append(ManipulationTactic(
            tactic=name,
            score=score,
            example=str(e.get("example") or "").strip(),
            explanation=str(e.get("explanation") or "").strip(),
        ))
    return tactics


def build_report(data: dict) -> ManipulationReport:
    tactics = reconcile_tactics(data.get("tactics") or [])
    stated = data.get("manipulationScore", data.get("manipulation_score"))
    if stated is None:
        overall = clamp_score(sum(t.score for t in tactics) / len(tactics))
    else:
        overall = clamp_score(stated)
    summary = str(data.get("summary") or "").strip() or "No summary provided."
    return ManipulationReport(tactics=tactics, manipulation_score=overall, summary=summary)


def _as_dict(value) -> Optional[dict]:
    if isinstance(value, dict):
        return value
    if isinstance(value, list):
        return {"tactics": value}
    return None


async def analyze_manipulation(
    invoker: ModelInvoker,
    transcript: str,
    topic: str,
    max_chars: int = 24000,
    light_chars: int = 8000,
) -> ManipulationReport:
    """
    Score the transcript against the fixed tactic taxonomy.

    Never raises; any failure yields the all-zero default report.
    """
    try:
        raw = await invoker.invoke(
            build_prompt(transcript[:max_chars], topic),
            tier=HEAVY,
            fallback_prompt=build_prompt(transcript[:light_chars], topic),
            system=SYSTEM,
            force_json=True,
        )
        data = _as_dict(extract_json(raw or ""))
        if data is None:
            log("WARNING", "Manipulation output unparseable, asking for a reformat")
            repair = REPAIR_PROMPT.format(schema=_SCHEMA, names=json.dumps(TACTIC_NAMES), raw=(raw or "")[:6000])
            fixed = await invoker.invoke(repair, tier=LIGHT, system=SYSTEM, force_json=True)
            data = _as_dict(extract_json(fixed or ""))
        if data is None:
            log("WARNING", "Manipulation analysis failed after repair pass")
            return default_report()
        return build_report(data)
    except Exception as e:
        log("WARNING", f"Manipulation analysis failed: {type(e).__name__}: {e}")
        return default_report()
