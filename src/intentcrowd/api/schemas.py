"""Wire models for the HTTP API.

Field names match the JSON keys raters' clients already send.
"""

from typing import Optional

from pydantic import BaseModel, Field

# SQLite INTEGER PRIMARY KEY range
MAX_ITEM_ID = 2**63 - 1


class TrainSentenceRequest(BaseModel):
    """Body of ``PUT /api/sentence.json``. ``Sentence`` carries the label."""

    ID: int = Field(ge=1, le=MAX_ITEM_ID)
    Sentence: str = Field(min_length=1)


class ClassifyRequest(BaseModel):
    Sentence: str = Field(min_length=1)
    ForeignID: str = ""


class ClassifyResponse(BaseModel):
    Label: Optional[str]
    Confidence: float
    Queued: bool
    ID: Optional[int] = None


class TrainingItemResponse(BaseModel):
    ID: int
    ForeignID: str
    Sentence: str
    MaxAssignments: int
    TrainedCount: int
    Status: str
    ResolvedLabel: Optional[str] = None


class ErrorResponse(BaseModel):
    Msg: str
