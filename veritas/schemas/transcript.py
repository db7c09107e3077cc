# veritas/schemas/transcript.py
from pydantic import BaseModel, ConfigDict, Field


class TranscriptSegment(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    start: float = Field(default=0.0, ge=0.0)
    duration: float = Field(default=0.0, ge=0.0)
