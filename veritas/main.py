# veritas/main.py
import argparse
import asyncio
import copy
import json
import os
import sys

import yaml
from dotenv import load_dotenv

from veritas.pipeline.analyze import Analyzer
from veritas.tools.logger import log, set_level_from_flags


# ----------------------------
# Configuration
# ----------------------------

DEFAULTS = {
    "llm": {
        "base_url": "https://api.groq.com/openai/v1",
        "api_key": None,
        "heavy_model": "llama-3.3-70b-versatile",
        "light_model": "llama-3.1-8b-instant",
        "temperature": 0.1,
        "timeout_sec": 120,
        "max_tokens": 4096,
        "max_retries": 3,
        "backoff_base_sec": 2.0,
        "heavy_cooldown_default_sec": 900,
    },
    "search": {
        "base_url": "https://api.tavily.com",
        "api_key": None,
        "depth": "basic",
        "max_results": 5,
        "topic": "general",
        "timeout_sec": 30,
        "cooldown_default_sec": 900,
    },
    "transcription": {
        "base_url": "https://api.groq.com/openai/v1",
        "api_key": None,
        "model": "whisper-large-v3-turbo",
        "max_audio_mb": 25,
        "timeout_sec": 300,
        "cooldown_default_sec": 600,
    },
    "transcript": {
        "captions_timeout_sec": 20,
        "page_scrape_timeout_sec": 30,
        "page_request_timeout_sec": 15,
        "audio_timeout_sec": 240,
        "metadata_timeout_sec": 20,
        "metadata_min_chars": 200,
    },
    "extraction": {
        "max_claims": 10,
        "min_claims_before_relaxed": 3,
        "substantial_text_chars": 1500,
        "max_transcript_chars": 24000,
        "light_transcript_chars": 8000,
    },
    "verification": {
        "concurrency": 1,
        "delay_sec": 1.0,
        "model_only_confidence_cap": 0.75,
        "hedge_confidence_cap": 0.5,
    },
}

# (env var, section, key, cast)
ENV_OVERRIDES = [
    ("VERITAS_LLM_BASE_URL", "llm", "base_url", str),
    ("VERITAS_LLM_API_KEY", "llm", "api_key", str),
    ("VERITAS_HEAVY_MODEL", "llm", "heavy_model", str),
    ("VERITAS_LIGHT_MODEL", "llm", "light_model", str),
    ("VERITAS_TEMPERATURE", "llm", "temperature", float),
    ("VERITAS_SEARCH_BASE_URL", "search", "base_url", str),
    ("VERITAS_SEARCH_API_KEY", "search", "api_key", str),
    ("VERITAS_SEARCH_DEPTH", "search", "depth", str),
    ("VERITAS_STT_BASE_URL", "transcription", "base_url", str),
    ("VERITAS_STT_API_KEY", "transcription", "api_key", str),
    ("VERITAS_STT_MODEL", "transcription", "model", str),
    ("VERITAS_MAX_CLAIMS", "extraction", "max_claims", int),
    ("VERITAS_VERIFY_CONCURRENCY", "verification", "concurrency", int),
    ("VERITAS_VERIFY_DELAY_SEC", "verification", "delay_sec", float),
]


def _merge(base: dict, override: dict) -> dict:
    out = copy.deepcopy(base)
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge(out[k], v)
        else:
            out[k] = v
    return out


def load_config(path: str = "config.yaml") -> dict:
    """
    Load configuration from built-in defaults, config.yaml and the environment.
    Configuration hierarchy (highest to lowest precedence):
    1. Environment variables (VERITAS_*)
    2. .env file
    3. config.yaml
    4. DEFAULTS
    """
    # Load .env file if it exists (does not override existing env vars)
    load_dotenv(override=False)

    cfg = copy.deepcopy(DEFAULTS)
    if path and os.path.exists(path):
        with open(path, "r", encoding="utf-8") as f:
            cfg = _merge(cfg, yaml.safe_load(f) or {})

    for env, section, key, cast in ENV_OVERRIDES:
        value = os.getenv(env)
        if value is None or value == "":
            continue
        try:
            cfg[section][key] = cast(value)
        except ValueError:
            raise ValueError(f"{env}={value!r} is not a valid {cast.__name__}")

    # Groq serves both chat and speech-to-text; reuse the key unless one is set.
    if not cfg["transcription"].get("api_key") and cfg["transcription"]["base_url"] == cfg["llm"]["base_url"]:
        cfg["transcription"]["api_key"] = cfg["llm"].get("api_key")

    return cfg


def read_file(path: str) -> str:
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


# ----------------------------
# CLI
# ----------------------------

def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Veritas fact-checker for YouTube videos and text")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--url", type=str, default=None,
                        help="YouTube video URL or 11-character video ID.")
    source.add_argument("--infile", type=str, default=None,
                        help="Path to a transcript file (.txt or .md).")
    source.add_argument("--text", type=str, default=None,
                        help="Transcript text to analyze directly.")
    parser.add_argument("--config", type=str, default="config.yaml",
                        help="Path to config.yaml (default: ./config.yaml).")
    parser.add_argument("--out", type=str, default=None,
                        help="Write the report JSON to this file instead of stdout.")
    parser.add_argument("--quiet", action="store_true",
                        help="Suppress DEBUG/INFO output (show only warnings and errors).")
    parser.add_argument("--verbose", action="store_true",
                        help="Show all DEBUG output (overrides --quiet).")
    args = parser.parse_args(argv)

    set_level_from_flags(verbose=args.verbose, quiet=args.quiet)

    text = args.text
    if args.infile:
        if not os.path.exists(args.infile):
            parser.error(f"--infile not found: {args.infile}")
        text = read_file(args.infile)

    cfg = load_config(args.config)
    outcome = asyncio.run(Analyzer(cfg).analyze(url=args.url, text=text))

    payload = json.dumps(outcome.body, indent=2, ensure_ascii=False)
    if args.out:
        with open(args.out, "w", encoding="utf-8") as f:
            f.write(payload + "\n")
        log("INFO", f"Report written to {args.out}")
    else:
        print(payload)

    if not outcome.ok:
        log("ERROR", f"Analysis finished with status {outcome.status_code}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
