# veritas/schemas/claim.py
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Verdict = Literal["True", "False", "Unverified"]


class ExtractedClaim(BaseModel):
    model_config = ConfigDict(frozen=True)

    claim: str = Field(min_length=6)
    timestamp: str = "Unknown"
    query: str = Field(max_length=280)


class VerifiedClaim(BaseModel):
    model_config = ConfigDict(frozen=True)

    claim: str
    timestamp: str = "Unknown"
    verdict: Verdict
    confidence: float = Field(ge=0.0, le=1.0)
    source: str
    reasoning: str


class VerificationResponse(BaseModel):
    """Shape the verification prompt asks the model to return."""
    verdict: Verdict
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str = Field(min_length=1)
    source: str | None = None
