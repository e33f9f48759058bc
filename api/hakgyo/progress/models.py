"""Database models for learner progress.

Cassandra table definitions for:
- Materi completions: content viewed / assessment passed per learner and materi
- Materi assessments: latest graded attempt per learner and materi

Both tables are partitioned by ``(user_id, kelas_id)`` so the progress of a
learner in one kelas is a single partition read.
"""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from hakgyo.progress.gate import CompletionRecord


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

# One row per learner and materi, created on first view or first pass
MATERI_COMPLETIONS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.materi_completions (
    user_id UUID,
    kelas_id UUID,
    materi_id UUID,
    content_viewed BOOLEAN,
    assessment_passed BOOLEAN,
    created_at TIMESTAMP,
    updated_at TIMESTAMP,
    PRIMARY KEY ((user_id, kelas_id), materi_id)
)
"""

# Latest assessment result; earlier attempts only survive as the counter
MATERI_ASSESSMENTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.materi_assessments (
    user_id UUID,
    kelas_id UUID,
    materi_id UUID,
    score INT,
    is_passed BOOLEAN,
    correct_answers INT,
    total_questions INT,
    attempts INT,
    last_submitted_at TIMESTAMP,
    PRIMARY KEY ((user_id, kelas_id), materi_id)
)
"""

PROGRESS_TABLES_CQL = [
    MATERI_COMPLETIONS_TABLE_CQL,
    MATERI_ASSESSMENTS_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class MateriCompletion:
    """Completion state of one materi for one learner."""

    def __init__(
        self,
        user_id: UUID,
        kelas_id: UUID,
        materi_id: UUID,
        content_viewed: bool = False,
        assessment_passed: bool = False,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.user_id = user_id
        self.kelas_id = kelas_id
        self.materi_id = materi_id
        self.content_viewed = content_viewed
        self.assessment_passed = assessment_passed
        self.created_at = ensure_utc_aware(created_at) or datetime.now(UTC)
        self.updated_at = ensure_utc_aware(updated_at)

    @classmethod
    def from_row(cls, row: Any) -> "MateriCompletion":
        """Create MateriCompletion instance from Cassandra row."""
        return cls(
            user_id=row.user_id,
            kelas_id=row.kelas_id,
            materi_id=row.materi_id,
            content_viewed=bool(row.content_viewed),
            assessment_passed=bool(row.assessment_passed),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def to_record(self) -> CompletionRecord:
        """The part of the row the gate looks at."""
        return CompletionRecord(
            content_viewed=self.content_viewed,
            assessment_passed=self.assessment_passed,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "materi_id": self.materi_id,
            "kelas_id": self.kelas_id,
            "content_viewed": self.content_viewed,
            "assessment_passed": self.assessment_passed,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return (
            f"<MateriCompletion {self.materi_id} "
            f"viewed={self.content_viewed} passed={self.assessment_passed}>"
        )


class AssessmentResult:
    """Latest graded attempt of a learner on one materi."""

    def __init__(
        self,
        user_id: UUID,
        kelas_id: UUID,
        materi_id: UUID,
        score: int = 0,
        is_passed: bool = False,
        correct_answers: int = 0,
        total_questions: int = 0,
        attempts: int = 0,
        last_submitted_at: datetime | None = None,
    ):
        self.user_id = user_id
        self.kelas_id = kelas_id
        self.materi_id = materi_id
        self.score = score
        self.is_passed = is_passed
        self.correct_answers = correct_answers
        self.total_questions = total_questions
        self.attempts = attempts
        self.last_submitted_at = ensure_utc_aware(last_submitted_at)

    @classmethod
    def from_row(cls, row: Any) -> "AssessmentResult":
        """Create AssessmentResult instance from Cassandra row."""
        return cls(
            user_id=row.user_id,
            kelas_id=row.kelas_id,
            materi_id=row.materi_id,
            score=row.score or 0,
            is_passed=bool(row.is_passed),
            correct_answers=row.correct_answers or 0,
            total_questions=row.total_questions or 0,
            attempts=row.attempts or 0,
            last_submitted_at=row.last_submitted_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "materi_id": self.materi_id,
            "score": self.score,
            "is_passed": self.is_passed,
            "correct_answers": self.correct_answers,
            "total_questions": self.total_questions,
            "attempts": self.attempts,
            "last_submitted_at": self.last_submitted_at,
        }
