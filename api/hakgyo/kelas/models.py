"""Database models for kelas (class) management.

Cassandra table definitions for:
- Kelas: Main class table
- Kelas members: Enrollment, queried from both the kelas and the user side
- Materi: Lessons, with optional assessment questions
- Materi by kelas: Ordering of lessons inside a kelas

Deleting a materi removes its ordering row in the same service call; no
table relies on cascades.
"""

from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

import orjson


class KelasLevel(str, Enum):
    """Difficulty level of a kelas."""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

KELAS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.kelas (
    id UUID PRIMARY KEY,
    title TEXT,
    description TEXT,
    level TEXT,
    author_id UUID,
    is_draft BOOLEAN,
    is_paid BOOLEAN,
    price DECIMAL,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

# Members of a kelas - "who is enrolled here?"
KELAS_MEMBERS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.kelas_members (
    kelas_id UUID,
    user_id UUID,
    joined_at TIMESTAMP,
    PRIMARY KEY (kelas_id, user_id)
)
"""

# Lookup: kelas by member - "which kelas did this user join?"
KELAS_BY_MEMBER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.kelas_by_member (
    user_id UUID,
    kelas_id UUID,
    joined_at TIMESTAMP,
    PRIMARY KEY (user_id, kelas_id)
)
"""

# "order" is reserved in CQL, the rank is stored as position
MATERI_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.materi (
    id UUID PRIMARY KEY,
    kelas_id UUID,
    title TEXT,
    description TEXT,
    content TEXT,
    position INT,
    is_draft BOOLEAN,
    is_demo BOOLEAN,
    passing_score INT,
    questions TEXT,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

# Ordering of the lessons in a kelas, read in clustering order
MATERI_BY_KELAS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.materi_by_kelas (
    kelas_id UUID,
    position INT,
    materi_id UUID,
    PRIMARY KEY (kelas_id, position, materi_id)
) WITH CLUSTERING ORDER BY (position ASC, materi_id ASC)
"""

KELAS_TABLES_CQL = [
    KELAS_TABLE_CQL,
    KELAS_MEMBERS_TABLE_CQL,
    KELAS_BY_MEMBER_TABLE_CQL,
    MATERI_TABLE_CQL,
    MATERI_BY_KELAS_TABLE_CQL,
]


# ==============================================================================
# Helper Functions
# ==============================================================================


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


# ==============================================================================
# Entity Classes
# ==============================================================================


class Kelas:
    """A class: an ordered collection of materi authored by a guru.

    Attributes:
        id: Unique identifier (UUID)
        title: Kelas title
        description: Kelas description
        level: Difficulty level
        author_id: Guru who created the kelas
        is_draft: Hidden from learners until published
        is_paid: Learners must pay before joining
        price: Price of a paid kelas
        created_at: Creation timestamp
        updated_at: Last update timestamp
    """

    def __init__(
        self,
        id: UUID | None = None,
        title: str = "",
        description: str | None = None,
        level: str = KelasLevel.BEGINNER.value,
        author_id: UUID | None = None,
        is_draft: bool = True,
        is_paid: bool = False,
        price: Decimal | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.id = id or uuid4()
        self.title = title.strip()
        self.description = description
        self.level = level
        self.author_id = author_id
        self.is_draft = is_draft
        self.is_paid = is_paid
        self.price = price
        self.created_at = ensure_utc_aware(created_at) or datetime.now(UTC)
        self.updated_at = ensure_utc_aware(updated_at)

    @classmethod
    def from_row(cls, row: Any) -> "Kelas":
        """Create Kelas instance from Cassandra row."""
        return cls(
            id=row.id,
            title=row.title or "",
            description=row.description,
            level=row.level or KelasLevel.BEGINNER.value,
            author_id=row.author_id,
            is_draft=bool(row.is_draft),
            is_paid=bool(row.is_paid),
            price=row.price,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def is_author(self, user_id: UUID | str) -> bool:
        """Check if the user authored this kelas."""
        return str(self.author_id) == str(user_id)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "level": self.level,
            "author_id": self.author_id,
            "is_draft": self.is_draft,
            "is_paid": self.is_paid,
            "price": self.price,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        state = "draft" if self.is_draft else "published"
        return f"<Kelas {self.title} ({state})>"


class Materi:
    """A lesson inside a kelas.

    ``questions`` holds the assessment as plain dicts; a materi without
    questions has no assessment. ``passing_score`` set means the assessment
    must be passed for the materi to count as fully completed, otherwise it
    is a practice quiz::

        {"id": 1, "text": "...", "explanation": None,
         "options": [{"id": 1, "text": "...", "is_correct": True}, ...]}
    """

    def __init__(
        self,
        id: UUID | None = None,
        kelas_id: UUID | None = None,
        title: str = "",
        description: str | None = None,
        content: str | None = None,
        order: int = 1,
        is_draft: bool = False,
        is_demo: bool = False,
        passing_score: int | None = None,
        questions: list[dict[str, Any]] | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.id = id or uuid4()
        self.kelas_id = kelas_id
        self.title = title.strip()
        self.description = description
        self.content = content
        self.order = order
        self.is_draft = is_draft
        self.is_demo = is_demo
        self.passing_score = passing_score
        self.questions = questions or []
        self.created_at = ensure_utc_aware(created_at) or datetime.now(UTC)
        self.updated_at = ensure_utc_aware(updated_at)

    @classmethod
    def from_row(cls, row: Any) -> "Materi":
        """Create Materi instance from Cassandra row."""
        return cls(
            id=row.id,
            kelas_id=row.kelas_id,
            title=row.title or "",
            description=row.description,
            content=row.content,
            order=row.position,
            is_draft=bool(row.is_draft),
            is_demo=bool(row.is_demo),
            passing_score=row.passing_score,
            questions=orjson.loads(row.questions) if row.questions else [],
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    @property
    def has_assessment(self) -> bool:
        """Whether the materi carries questions to answer."""
        return bool(self.questions)

    @property
    def requires_passing_score(self) -> bool:
        """Whether an assessment must be passed to fully complete the materi."""
        return self.passing_score is not None and self.has_assessment

    def questions_json(self) -> str | None:
        """Questions serialized for the ``questions`` column."""
        return orjson.dumps(self.questions).decode() if self.questions else None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "kelas_id": self.kelas_id,
            "title": self.title,
            "description": self.description,
            "content": self.content,
            "order": self.order,
            "is_draft": self.is_draft,
            "is_demo": self.is_demo,
            "passing_score": self.passing_score,
            "question_count": len(self.questions),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return f"<Materi {self.order}. {self.title}>"
