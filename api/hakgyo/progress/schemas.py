"""Pydantic schemas for learner progress.

Request and response models for:
- Manual materi completion
- Assessments (questions without answers, submissions, results)
- Kelas progress with per-materi access
"""

from datetime import datetime
from typing import Any, Self
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from hakgyo.kelas.models import Materi

from .models import AssessmentResult


# ==============================================================================
# Completion Schemas
# ==============================================================================


class NextMateriResponse(BaseModel):
    """The materi that follows in kelas order."""

    id: UUID
    title: str
    order: int

    @classmethod
    def from_entity(cls, materi: Materi) -> "NextMateriResponse":
        """Create from Materi entity."""
        return cls(id=materi.id, title=materi.title, order=materi.order)


class MarkCompleteResponse(BaseModel):
    """Result of marking a materi's content as viewed."""

    materi_id: UUID
    content_viewed: bool = True
    is_fully_completed: bool = True
    first_completion: bool = Field(
        description="False when the materi had already been completed"
    )
    next_materi: NextMateriResponse | None = None


# ==============================================================================
# Assessment Schemas
# ==============================================================================


class AssessmentOptionResponse(BaseModel):
    """Answer option without its correctness."""

    id: int
    text: str


class AssessmentQuestionResponse(BaseModel):
    """Question as shown to the learner."""

    id: int
    text: str
    options: list[AssessmentOptionResponse]

    @classmethod
    def from_question(cls, question: dict[str, Any]) -> "AssessmentQuestionResponse":
        """Strip correct answers and explanations from a stored question."""
        return cls(
            id=question["id"],
            text=question["text"],
            options=[
                AssessmentOptionResponse(id=option["id"], text=option["text"])
                for option in question.get("options", [])
            ],
        )


class AssessmentResultResponse(BaseModel):
    """Latest graded attempt."""

    score: int
    is_passed: bool
    correct_answers: int
    total_questions: int
    attempts: int
    last_submitted_at: datetime | None = None

    @classmethod
    def from_entity(cls, result: AssessmentResult) -> "AssessmentResultResponse":
        """Create from AssessmentResult entity."""
        data = result.to_dict()
        data.pop("materi_id")
        return cls(**data)


class AssessmentResponse(BaseModel):
    """Assessment of a materi with the learner's last result."""

    materi_id: UUID
    passing_score: int
    questions: list[AssessmentQuestionResponse]
    last_result: AssessmentResultResponse | None = None
    can_retake: bool = True


class AnswerInput(BaseModel):
    """The option picked for one question."""

    question_id: int
    selected_option: int


class SubmitAssessmentRequest(BaseModel):
    """Answers of one attempt. Unanswered questions count as wrong."""

    answers: list[AnswerInput] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_answers(self) -> Self:
        """One answer per question."""
        question_ids = [answer.question_id for answer in self.answers]
        if len(set(question_ids)) != len(question_ids):
            msg = "each question can only be answered once"
            raise ValueError(msg)
        return self

    def as_mapping(self) -> dict[int, int]:
        """Answers keyed by question id."""
        return {answer.question_id: answer.selected_option for answer in self.answers}


class QuestionFeedback(BaseModel):
    """Graded answer of one question."""

    question_id: int
    selected_option: int | None = None
    correct_option: int | None = None
    is_correct: bool
    explanation: str | None = None


class SubmitAssessmentResponse(BaseModel):
    """Outcome of an assessment attempt."""

    materi_id: UUID
    score: int = Field(ge=0, le=100)
    is_passed: bool
    passing_score: int
    correct_answers: int
    total_questions: int
    attempts: int
    results: list[QuestionFeedback]
    next_materi_unlocked: UUID | None = None


# ==============================================================================
# Kelas Progress Schemas
# ==============================================================================


class MateriProgressResponse(BaseModel):
    """Access and completion of one materi."""

    id: UUID
    title: str
    order: int
    is_demo: bool = False
    is_accessible: bool
    is_completed: bool = Field(description="Content was viewed")
    is_fully_completed: bool
    has_assessment: bool
    assessment_passed: bool = False
    score: int | None = None
    can_retake: bool = False


class OverallProgressResponse(BaseModel):
    """Completion of the whole kelas."""

    completed_count: int
    total_count: int
    completion_percentage: int = Field(ge=0, le=100)


class KelasProgressResponse(BaseModel):
    """Progress of a learner through a kelas, materi in kelas order."""

    kelas_id: UUID
    user_id: UUID
    materi: list[MateriProgressResponse]
    overall_progress: OverallProgressResponse
