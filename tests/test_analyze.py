import pytest

from fakes import LLM_CFG, ScriptedModel, as_json
from veritas.pipeline.analyze import Analyzer
from veritas.pipeline.transcript import TranscriptUnavailable
from veritas.policy import TACTIC_NAMES
from veritas.schemas.transcript import TranscriptSegment
from veritas.tools.cooldown import HEAVY_MODEL
from veritas.tools.llm_client import RateLimitError

EXTRACT_MARK = "DO extract: economic"
VERIFY_MARK = "SEARCH RESULTS"
MANIPULATION_MARK = "Score the transcript below"
SUMMARY_MARK = "Write a 2-sentence"

WATER = "Water boils at 100 degrees Celsius at sea level."

SEARCH_RESULT = {
    "results": [
        {"url": "https://www.usgs.gov/water-science/boiling", "title": "USGS",
         "content": "At sea level, water boils at 100 C (212 F).", "score": 0.9},
    ],
    "answer": "Water boils at 100 degrees Celsius at sea level.",
}

MANIPULATION_REPLY = as_json({
    "tactics": [{"tactic": name, "score": 0} for name in TACTIC_NAMES],
    "manipulationScore": 0,
    "summary": "Plain factual statement.",
})

CFG = {
    "llm": LLM_CFG,
    "search": {},
    "transcript": {},
    "transcription": {},
    "extraction": {"max_claims": 10},
    "verification": {"concurrency": 1, "delay_sec": 0},
}


def search_fn(query, depth="basic", max_results=5, topic="general"):
    return SEARCH_RESULT


class FakeAcquirer:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.inputs = []

    async def acquire(self, url_or_text):
        self.inputs.append(url_or_text)
        if self.error is not None:
            raise self.error
        return self.result


def _model(extraction, verification=None):
    return ScriptedModel([
        (EXTRACT_MARK, extraction),
        (VERIFY_MARK, verification or "{}"),
        (MANIPULATION_MARK, MANIPULATION_REPLY),
        (SUMMARY_MARK, "A short neutral summary."),
    ])


@pytest.fixture
def analyzer(make_invoker, cooldowns):
    def _make(model, acquirer=None, search=search_fn, cfg=CFG):
        return Analyzer(cfg, cooldowns=cooldowns, invoker=make_invoker(model), acquirer=acquirer, search_fn=search)
    return _make


@pytest.mark.parametrize("kwargs", [{}, {"url": "  ", "text": ""}, {"url": "https://youtu.be/dQw4w9WgXcQ", "text": "both"}])
async def test_requires_exactly_one_input(analyzer, kwargs):
    outcome = await analyzer(_model("{}")).analyze(**kwargs)
    assert outcome.status_code == 400
    assert "error" in outcome.body


async def test_missing_credentials_is_configuration_error():
    outcome = await Analyzer({"llm": {}}).analyze(text=WATER)
    assert outcome.status_code == 500
    assert "llm.api_key" in outcome.body["details"]


async def test_end_to_end_text_mode(analyzer):
    extraction = as_json({"topic": "Physics", "claims": [{"claim": WATER, "timestamp": "Unknown"}]})
    verification = as_json({
        "verdict": "True", "confidence": 0.97,
        "reasoning": "USGS confirms water boils at 100 C at sea level.",
        "source": "https://www.usgs.gov/water-science/boiling",
    })
    model = _model(extraction, verification)
    outcome = await analyzer(model).analyze(text=WATER)

    assert outcome.status_code == 200
    body = outcome.body
    assert body["topic"] == "Physics"
    assert body["truthScore"] == 100
    assert body["summary"] == "A short neutral summary."
    assert "url" not in body
    claim = body["claims"][0]
    assert claim["verdict"] == "True"
    assert claim["confidence"] > 0.5
    assert body["meta"] == {
        "totalClaims": 1, "trueCount": 1, "falseCount": 0, "unverifiedCount": 0, "transcriptSource": "text",
    }
    assert [t["tactic"] for t in body["manipulation"]["tactics"]] == TACTIC_NAMES
    assert body["manipulation"]["manipulationScore"] == 0


async def test_url_mode_reports_source_and_url(analyzer):
    url = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
    segments = [TranscriptSegment(text=WATER, start=3.0, duration=4.0)]
    extraction = as_json({"topic": "Physics", "claims": [{"claim": WATER, "timestamp": "0:03"}]})
    verification = as_json({"verdict": "True", "confidence": 0.9, "reasoning": "Confirmed by USGS."})
    acquirer = FakeAcquirer(result=("captions", segments))
    model = _model(extraction, verification)

    outcome = await analyzer(model, acquirer=acquirer).analyze(url=url)

    assert outcome.status_code == 200
    assert outcome.body["url"] == url
    assert outcome.body["meta"]["transcriptSource"] == "captions"
    assert outcome.body["claims"][0]["timestamp"] == "0:03"
    assert acquirer.inputs == [url]
    extraction_prompt = [c["prompt"] for c in model.calls if EXTRACT_MARK in c["prompt"]][0]
    assert f"[0:03] {WATER}" in extraction_prompt


async def test_transcript_unavailable_is_a_report_with_details(analyzer):
    acquirer = FakeAcquirer(error=TranscriptUnavailable("captions: disabled; metadata: too short"))
    outcome = await analyzer(_model("{}"), acquirer=acquirer).analyze(url="https://youtu.be/dQw4w9WgXcQ")

    assert outcome.status_code == 200
    body = outcome.body
    assert body["claims"] == []
    assert body["truthScore"] == 0
    assert body["details"] == "captions: disabled; metadata: too short"
    assert len(body["manipulation"]["tactics"]) == 8
    assert body["meta"]["totalClaims"] == 0


async def test_unparseable_extraction_is_analysis_failed(analyzer):
    outcome = await analyzer(_model("I refuse to answer in JSON.")).analyze(text="Some transcript text here.")
    assert outcome.status_code == 200
    assert outcome.body["topic"] == "Analysis Failed"
    assert outcome.body["claims"] == []


async def test_zero_claims_is_success_with_no_claims_summary(analyzer):
    empty = as_json({"topic": "Cooking", "claims": []})
    outcome = await analyzer(_model(empty)).analyze(text="I really love this pasta recipe, it's my favourite.")

    assert outcome.status_code == 200
    body = outcome.body
    assert body["claims"] == []
    assert body["truthScore"] == 0
    assert body["topic"] == "Cooking"
    assert "No verifiable factual claims" in body["summary"]
    assert body["meta"]["totalClaims"] == 0


async def test_mixed_verdicts_meta_invariants(analyzer):
    claims = [
        {"claim": "Water boils at 100 degrees Celsius at sea level"},
        {"claim": "The Great Wall of China is visible from the Moon"},
        {"claim": "The speaker's uncle invented the toaster in 1920"},
    ]

    def verdict_for(model, prompt):
        if "Great Wall" in prompt:
            return as_json({"verdict": "False", "confidence": 0.9, "reasoning": "Astronauts report it is not visible."})
        if "uncle" in prompt:
            return as_json({"verdict": "True", "confidence": 0.8, "reasoning": "There is insufficient information."})
        return as_json({"verdict": "True", "confidence": 0.95, "reasoning": "USGS confirms it."})

    model = _model(as_json({"topic": "Trivia", "claims": claims}), verdict_for)
    outcome = await analyzer(model).analyze(text="a transcript about trivia")

    body = outcome.body
    meta = body["meta"]
    assert [c["verdict"] for c in body["claims"]] == ["True", "False", "Unverified"]
    assert meta["totalClaims"] == len(body["claims"]) == 3
    assert meta["trueCount"] + meta["falseCount"] + meta["unverifiedCount"] == meta["totalClaims"]
    assert body["truthScore"] == 50


async def test_model_exhaustion_is_503(analyzer, cooldowns):
    model = ScriptedModel([(EXTRACT_MARK, RateLimitError("Rate limit reached. Please try again in 5m0s"))])
    outcome = await analyzer(model).analyze(text="Some transcript text here.")
    assert outcome.status_code == 503
    assert cooldowns.active(HEAVY_MODEL)


async def test_unexpected_error_is_500_with_details(analyzer):
    acquirer = FakeAcquirer(error=RuntimeError("disk full"))
    outcome = await analyzer(_model("{}"), acquirer=acquirer).analyze(url="https://youtu.be/dQw4w9WgXcQ")
    assert outcome.status_code == 500
    assert "disk full" in outcome.body["details"]


async def test_acquirer_returning_no_segments_is_422(analyzer):
    acquirer = FakeAcquirer(result=("captions", []))
    model = _model("{}")
    outcome = await analyzer(model, acquirer=acquirer).analyze(url="https://youtu.be/dQw4w9WgXcQ")
    assert outcome.status_code == 422
    assert outcome.body["error"] == "Transcript is empty"
    assert model.calls == []
