# veritas/web/server.py
"""
FastAPI server for the Veritas fact-checker.

Exposes the analysis pipeline as a JSON API. One Analyzer (and with it
one Cooldowns instance) is shared by every request in the process.

Run with: python -m veritas.web.server
"""
import os
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from veritas.main import load_config
from veritas.pipeline.analyze import Analyzer
from veritas.tools.logger import log

# ---------------------------------------------------------------------------
# App setup
# ---------------------------------------------------------------------------

app = FastAPI(title="Veritas Fact Checker")

_analyzer: Optional[Analyzer] = None


def get_analyzer() -> Analyzer:
    global _analyzer
    if _analyzer is None:
        _analyzer = Analyzer(load_config(os.getenv("VERITAS_CONFIG", "config.yaml")))
    return _analyzer


def set_analyzer(analyzer: Optional[Analyzer]) -> None:
    """Replace the process-wide analyzer (tests install one with fakes)."""
    global _analyzer
    _analyzer = analyzer


class AnalyzeRequest(BaseModel):
    url: Optional[str] = None
    text: Optional[str] = None


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@app.post("/api/analyze")
async def analyze(req: AnalyzeRequest):
    """Run the full pipeline for a video URL or pasted transcript text."""
    log("INFO", f"Analyze request: {'url=' + req.url if req.url else 'text mode'}")
    outcome = await get_analyzer().analyze(url=req.url, text=req.text)
    return JSONResponse(outcome.body, status_code=outcome.status_code)


@app.get("/api/health")
async def health():
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main():
    import uvicorn
    host = os.getenv("VERITAS_HOST", "0.0.0.0")
    port = int(os.getenv("VERITAS_PORT", "8000"))
    print(f"Starting Veritas API at http://localhost:{port}")
    uvicorn.run(app, host=host, port=port, log_level="info")


if __name__ == "__main__":
    main()
