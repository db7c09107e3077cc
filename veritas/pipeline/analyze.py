# veritas/pipeline/analyze.py
"""
Analysis entry point.

URL/text -> transcript -> claims -> verified claims (+ manipulation,
summary) -> AnalysisReport. Every failure is mapped to an
AnalysisOutcome here; nothing below this layer knows about status codes.
"""
import asyncio
import traceback
from dataclasses import dataclass
from typing import List, Optional

from veritas.pipeline.extract_claims import extract_claims
from veritas.pipeline.manipulation import analyze_manipulation, default_report
from veritas.pipeline.scorecard import build_meta, fallback_summary, generate_summary, truth_score
from veritas.pipeline.transcript import TEXT, TranscriptAcquirer, TranscriptUnavailable, single_segment, transcript_text
from veritas.pipeline.verify_claims import ClaimVerifier
from veritas.schemas.claim import VerifiedClaim
from veritas.schemas.report import AnalysisReport, ManipulationReport
from veritas.tools.cooldown import Cooldowns
from veritas.tools.llm_client import MaxRetriesExceeded
from veritas.tools.logger import log
from veritas.tools.model_tiers import ModelInvoker
from veritas.tools.search import tavily_search

UNAVAILABLE_TOPIC = "Transcript Unavailable"
FAILED_TOPIC = "Analysis Failed"


class ConfigurationError(Exception):
    pass


@dataclass
class AnalysisOutcome:
    status_code: int
    body: dict

    @property
    def ok(self) -> bool:
        return self.status_code == 200


def _error(status_code: int, error: str, details: str = None) -> AnalysisOutcome:
    body = {"error": error}
    if details:
        body["details"] = details
    return AnalysisOutcome(status_code, body)


def make_search_fn(scfg: dict):
    if not scfg.get("api_key"):
        return None

    def search(query, depth="basic", max_results=5, topic="general"):
        return tavily_search(
            scfg.get("base_url", "https://api.tavily.com"),
            scfg["api_key"],
            query,
            depth=depth,
            max_results=max_results,
            topic=topic,
            timeout_sec=int(scfg.get("timeout_sec", 30)),
        )

    return search


class Analyzer:
    """
    Owns the pipeline collaborators for one process.

    The Cooldowns instance is shared by every component so that a rate
    limit seen by one request is honored by the next.
    """

    def __init__(
        self,
        cfg: dict,
        cooldowns: Optional[Cooldowns] = None,
        invoker: Optional[ModelInvoker] = None,
        acquirer: Optional[TranscriptAcquirer] = None,
        verifier: Optional[ClaimVerifier] = None,
        search_fn=None,
    ):
        self.cfg = cfg
        self.cooldowns = cooldowns or Cooldowns()
        self._invoker = invoker
        self._acquirer = acquirer
        self._verifier = verifier
        self._search_fn = search_fn

    # Collaborators are built lazily so a missing credential surfaces as a
    # ConfigurationError inside analyze() rather than at construction.

    @property
    def invoker(self) -> ModelInvoker:
        if self._invoker is None:
            llm = self.cfg.get("llm", {})
            if not llm.get("api_key"):
                raise ConfigurationError("No language model API key configured (llm.api_key)")
            self._invoker = ModelInvoker(llm, self.cooldowns)
        return self._invoker

    @property
    def acquirer(self) -> TranscriptAcquirer:
        if self._acquirer is None:
            self._acquirer = TranscriptAcquirer(self.cfg, self.cooldowns)
        return self._acquirer

    @property
    def verifier(self) -> ClaimVerifier:
        if self._verifier is None:
            search_fn = self._search_fn or make_search_fn(self.cfg.get("search", {}))
            self._verifier = ClaimVerifier(self.invoker, self.cfg, self.cooldowns, search_fn=search_fn)
        return self._verifier

    # -- report builders -----------------------------------------------------

    def _report(
        self,
        url: Optional[str],
        topic: str,
        summary: str,
        claims: List[VerifiedClaim],
        manipulation: ManipulationReport,
        source: Optional[str],
        details: Optional[str] = None,
    ) -> AnalysisOutcome:
        report = AnalysisReport(
            url=url,
            topic=topic,
            summary=summary,
            truth_score=truth_score(claims),
            claims=claims,
            manipulation=manipulation,
            meta=build_meta(claims, source),
            details=details,
        )
        return AnalysisOutcome(200, report.to_json_dict())

    # -- entry point ----------------------------------------------------------

    async def analyze(self, url: Optional[str] = None, text: Optional[str] = None) -> AnalysisOutcome:
        url = (url or "").strip() or None
        text = (text or "").strip() or None
        if bool(url) == bool(text):
            return _error(400, "Provide exactly one of 'url' or 'text'")

        try:
            return await self._analyze(url, text)
        except ConfigurationError as e:
            log("ERROR", f"Configuration error: {e}")
            return _error(500, "Server is missing provider credentials", str(e))
        except MaxRetriesExceeded as e:
            log("ERROR", f"Model layer exhausted: {e}")
            return _error(503, "Language model is rate limited, try again later", str(e))
        except Exception as e:
            log("ERROR", f"Analysis failed: {type(e).__name__}: {e}")
            log("DEBUG", traceback.format_exc())
            return _error(500, "Analysis failed", f"{type(e).__name__}: {e}")

    async def _analyze(self, url: Optional[str], text: Optional[str]) -> AnalysisOutcome:
        invoker = self.invoker
        ecfg = self.cfg.get("extraction", {})

        if text is not None:
            source, segments = TEXT, single_segment(text)
        else:
            try:
                source, segments = await self.acquirer.acquire(url)
            except TranscriptUnavailable as e:
                log("WARNING", f"No transcript for {url}")
                return self._report(
                    url, UNAVAILABLE_TOPIC,
                    "No transcript could be obtained for this video. Paste the transcript text to analyze it.",
                    [], default_report("No transcript to analyze."), None, details=e.details,
                )
        log("INFO", f"Transcript via {source}: {len(segments)} segments")

        body = transcript_text(segments)
        if not body:
            return _error(422, "Transcript is empty", f"source: {source}")

        extraction = await extract_claims(invoker, body, ecfg)
        if extraction.failed:
            return self._report(
                url, FAILED_TOPIC,
                "The language model returned output that could not be parsed into claims.",
                [], default_report(), source,
            )

        plain = transcript_text(segments, with_timestamps=False)
        mcfg = dict(
            max_chars=int(ecfg.get("max_transcript_chars", 24000)),
            light_chars=int(ecfg.get("light_transcript_chars", 8000)),
        )

        if not extraction.claims:
            log("INFO", "No checkable claims found")
            manipulation = await analyze_manipulation(invoker, plain, extraction.topic, **mcfg)
            return self._report(
                url, extraction.topic, fallback_summary(extraction.topic, []),
                [], manipulation, source,
            )

        log("INFO", f"Verifying {len(extraction.claims)} claims")
        verified = await self.verifier.verify_all(extraction.claims, extraction.topic)

        summary, manipulation = await asyncio.gather(
            generate_summary(invoker, extraction.topic, verified),
            analyze_manipulation(invoker, plain, extraction.topic, **mcfg),
        )
        return self._report(url, extraction.topic, summary, verified, manipulation, source)
