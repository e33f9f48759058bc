"""Pydantic schemas for kelas management.

Request and response models for:
- Kelas: CRUD and publishing
- Enrollment
- Materi: CRUD, reordering and assessment configuration
"""

from datetime import datetime
from decimal import Decimal
from typing import Self
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from hakgyo.kelas.models import Kelas, KelasLevel, Materi


# ==============================================================================
# Kelas Schemas
# ==============================================================================


class CreateKelasRequest(BaseModel):
    """Kelas creation request. New kelas start as drafts."""

    title: str = Field(..., min_length=3, max_length=200, description="Kelas title")
    description: str | None = Field(None, max_length=5000)
    level: KelasLevel = Field(KelasLevel.BEGINNER, description="Difficulty level")
    is_paid: bool = Field(False, description="Learners must pay to join")
    price: Decimal | None = Field(None, ge=0, description="Price of a paid kelas")

    @model_validator(mode="after")
    def validate_price(self) -> Self:
        """A paid kelas needs a price."""
        if self.is_paid and not self.price:
            msg = "price is required for a paid kelas"
            raise ValueError(msg)
        return self


class UpdateKelasRequest(BaseModel):
    """Kelas update request. ``is_draft=False`` publishes the kelas."""

    title: str | None = Field(None, min_length=3, max_length=200)
    description: str | None = Field(None, max_length=5000)
    level: KelasLevel | None = None
    is_draft: bool | None = None
    is_paid: bool | None = None
    price: Decimal | None = Field(None, ge=0)


class KelasResponse(BaseModel):
    """Kelas response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    description: str | None = None
    level: KelasLevel
    author_id: UUID
    is_draft: bool
    is_paid: bool
    price: Decimal | None = None
    created_at: datetime
    updated_at: datetime | None = None

    @classmethod
    def from_entity(cls, kelas: Kelas) -> "KelasResponse":
        """Create from Kelas entity."""
        return cls(**kelas.to_dict())


class KelasListResponse(BaseModel):
    """Kelas list response."""

    items: list[KelasResponse]
    total: int


# ==============================================================================
# Enrollment Schemas
# ==============================================================================


class EnrollRequest(BaseModel):
    """Enrollment request.

    ``bypass_payment_check`` is sent by the payment flow once the purchase
    went through.
    """

    bypass_payment_check: bool = False


class EnrollResponse(BaseModel):
    """Enrollment result."""

    kelas_id: UUID
    enrolled: bool = True
    already_enrolled: bool = False
    message: str


class MembershipResponse(BaseModel):
    """Whether the current user is a member of a kelas."""

    kelas_id: UUID
    is_member: bool


# ==============================================================================
# Materi Schemas
# ==============================================================================


class CreateMateriRequest(BaseModel):
    """Materi creation request. The materi is appended after the last one."""

    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = Field(None, max_length=5000)
    content: str | None = None
    is_draft: bool = False
    is_demo: bool = Field(False, description="Open to everyone, enrolled or not")


class UpdateMateriRequest(BaseModel):
    """Materi update request."""

    title: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = Field(None, max_length=5000)
    content: str | None = None
    is_draft: bool | None = None
    is_demo: bool | None = None


class ReorderMateriRequest(BaseModel):
    """New order of every materi in a kelas, first to last."""

    materi_ids: list[UUID] = Field(..., min_length=1)


class QuestionOptionInput(BaseModel):
    """Answer option of an assessment question."""

    id: int = Field(..., ge=1)
    text: str = Field(..., min_length=1)
    is_correct: bool = False


class QuestionInput(BaseModel):
    """Assessment question with its options."""

    id: int = Field(..., ge=1)
    text: str = Field(..., min_length=1)
    explanation: str | None = None
    options: list[QuestionOptionInput] = Field(..., min_length=2)

    @model_validator(mode="after")
    def validate_options(self) -> Self:
        """Exactly one option is correct and option ids are unique."""
        if sum(1 for option in self.options if option.is_correct) != 1:
            msg = "exactly one option must be correct"
            raise ValueError(msg)
        if len({option.id for option in self.options}) != len(self.options):
            msg = "option ids must be unique"
            raise ValueError(msg)
        return self


class ConfigureAssessmentRequest(BaseModel):
    """Assessment configuration.

    An empty ``questions`` list removes the assessment. Questions without a
    ``passing_score`` make an ungated practice quiz.
    """

    passing_score: int | None = Field(None, ge=0, le=100)
    questions: list[QuestionInput] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_questions(self) -> Self:
        """Question ids are unique and a passing score has questions."""
        if self.passing_score is not None and not self.questions:
            msg = "a passing score needs at least one question"
            raise ValueError(msg)
        if len({q.id for q in self.questions}) != len(self.questions):
            msg = "question ids must be unique"
            raise ValueError(msg)
        return self


class MateriResponse(BaseModel):
    """Materi response. Question contents are served by the assessment endpoint."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    kelas_id: UUID
    title: str
    description: str | None = None
    content: str | None = None
    order: int
    is_draft: bool
    is_demo: bool
    passing_score: int | None = None
    question_count: int = 0
    created_at: datetime
    updated_at: datetime | None = None

    @classmethod
    def from_entity(cls, materi: Materi) -> "MateriResponse":
        """Create from Materi entity."""
        return cls(**materi.to_dict())


class MateriListResponse(BaseModel):
    """Ordered materi of a kelas."""

    kelas_id: UUID
    items: list[MateriResponse]
