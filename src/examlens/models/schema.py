# src/examlens/models/schema.py
from __future__ import annotations
from enum import Enum
from pathlib import Path
from typing import List, Literal, Optional, Tuple, Union
from pydantic import BaseModel, Field, field_validator, model_validator

# [x, y, width, height] in a 0..1000 space relative to the page image
Box2D = Tuple[float, float, float, float]

QuestionStatus = Literal["correct", "wrong", "partial"]
ErrorType = Literal["calculation", "concept", "logic"]


class Question(BaseModel):
    """
    One graded question on an exam page.
    """

    id: int
    status: QuestionStatus
    score_obtained: float = Field(ge=0)
    score_max: float = Field(ge=0)
    deduction: float = 0.0
    box_2d: Box2D
    analysis: str = ""
    error_type: Optional[ErrorType] = None

    @field_validator("error_type", mode="before")
    @classmethod
    def _blank_error_type(cls, v):
        # models like to emit "" or "none" when no error applies
        if isinstance(v, str) and v.strip().lower() in ("", "none", "null", "n/a"):
            return None
        return v

    @model_validator(mode="after")
    def _check_status_scores(self) -> "Question":
        if self.status == "correct":
            if self.score_obtained != self.score_max:
                raise ValueError(
                    f"question {self.id}: correct answer must score full marks "
                    f"({self.score_obtained} != {self.score_max})"
                )
            self.error_type = None
        else:
            if not self.score_obtained < self.score_max:
                raise ValueError(
                    f"question {self.id}: {self.status} answer must score below "
                    f"{self.score_max}, got {self.score_obtained}"
                )
            if not self.analysis.strip():
                raise ValueError(f"question {self.id}: {self.status} answer needs an analysis")
        return self


class ExamPage(BaseModel):
    """
    Grading of a single uploaded image.
    """

    image_url: str = ""
    page_score: float
    questions: List[Question] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_ids(self) -> "ExamPage":
        seen = set()
        for q in self.questions:
            if q.id in seen:
                raise ValueError(f"duplicate question id {q.id} on page {self.image_url or '?'}")
            seen.add(q.id)
        return self


class GradingResult(BaseModel):
    """
    Root output of exam grading: one ExamPage per uploaded image, in upload order.
    """

    total_score: float = Field(ge=0)
    total_max_score: float
    pages: List[ExamPage]
    summary_tags: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _default_page_refs(self) -> "GradingResult":
        for n, page in enumerate(self.pages, start=1):
            if not page.image_url:
                page.image_url = f"page_{n}"
        return self


class EssayType(str, Enum):
    NARRATIVE = "narrative"
    ARGUMENTATIVE = "argumentative"
    EXPOSITORY = "expository"
    DESCRIPTIVE = "descriptive"
    PRACTICAL = "practical"
    IMAGINATIVE = "imaginative"
    DIARY = "diary"
    WEEKLY_DIARY = "weekly_diary"
    OTHER = "other"


ImageSource = Union[Path, str, bytes]


class EssayRequest(BaseModel):
    """
    Parameters for essay generation. Exactly one of topic/image carries the subject.
    """

    topic: Optional[str] = None
    image: Optional[ImageSource] = None
    grade: int = Field(ge=1, le=12)
    essay_type: EssayType = EssayType.NARRATIVE
    word_count: Optional[str] = None
    language: Literal["chinese", "english"] = "chinese"

    @field_validator("topic", "word_count", mode="before")
    @classmethod
    def _strip(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v


class EssayExamples(BaseModel):
    """
    The same topic written three ways.
    """

    creative: str
    philosophical: str
    analytical: str
