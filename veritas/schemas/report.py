# veritas/schemas/report.py
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from veritas.schemas.claim import VerifiedClaim


class _Camel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class ManipulationTactic(_Camel):
    tactic: str
    score: int = Field(ge=0, le=100)
    example: str = ""
    explanation: str = ""


class ManipulationReport(_Camel):
    tactics: List[ManipulationTactic]
    manipulation_score: int = Field(ge=0, le=100)
    summary: str


class ReportMeta(_Camel):
    total_claims: int
    true_count: int
    false_count: int
    unverified_count: int
    transcript_source: Optional[str] = None


class AnalysisReport(_Camel):
    url: Optional[str] = None
    topic: str
    summary: str
    truth_score: int = Field(ge=0, le=100)
    claims: List[VerifiedClaim] = Field(default_factory=list)
    manipulation: ManipulationReport
    meta: ReportMeta
    details: Optional[str] = None

    def to_json_dict(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)
