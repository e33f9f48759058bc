"""Kelas management service layer.

Business logic for:
- Kelas CRUD and publishing
- Enrollment (membership, payment gate)
- Materi CRUD, ordering and assessment configuration
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

import structlog

from hakgyo.auth.permissions import UserRole, is_admin
from hakgyo.auth.schemas import UserResponse
from hakgyo.core.locks import KeyedLock
from hakgyo.core.redis import kelas_progress_pattern
from hakgyo.gamification.events import GameEvent
from hakgyo.kelas.models import Kelas, Materi
from hakgyo.kelas.schemas import (
    CreateKelasRequest,
    CreateMateriRequest,
    EnrollResponse,
    QuestionInput,
    UpdateKelasRequest,
    UpdateMateriRequest,
)


if TYPE_CHECKING:
    from cassandra.cluster import Session
    from redis.asyncio import Redis

    from hakgyo.gamification.service import GamificationService

logger = structlog.get_logger(__name__)


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class KelasError(Exception):
    """Base kelas error."""

    def __init__(self, message: str, code: str = "kelas_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class KelasNotFoundError(KelasError):
    """Kelas not found."""

    def __init__(self, message: str = "Class not found"):
        super().__init__(message, "kelas_not_found")


class MateriNotFoundError(KelasError):
    """Materi not found."""

    def __init__(self, message: str = "Materi not found"):
        super().__init__(message, "materi_not_found")


class KelasNotAvailableError(KelasError):
    """Kelas is still a draft."""

    def __init__(self, message: str = "Class not available for enrollment"):
        super().__init__(message, "kelas_not_available")


class AlreadyEnrolledError(KelasError):
    """User is already a member."""

    def __init__(self, message: str = "Already enrolled in this class"):
        super().__init__(message, "already_enrolled")


class OwnKelasEnrollmentError(KelasError):
    """Authors cannot join their own kelas."""

    def __init__(self, message: str = "Cannot enroll in your own class"):
        super().__init__(message, "own_kelas")


class PaymentRequiredError(KelasError):
    """A murid must pay before joining this kelas."""

    def __init__(
        self,
        price: Decimal | None,
        message: str = "Payment required for this class",
    ):
        self.price = price if price is not None else Decimal(0)
        super().__init__(message, "payment_required")


class NotEnrolledError(KelasError):
    """User is not a member."""

    def __init__(self, message: str = "Not enrolled in this class"):
        super().__init__(message, "not_enrolled")


class KelasPermissionError(KelasError):
    """User may not manage this kelas."""

    def __init__(self, message: str = "Only the class author can do this"):
        super().__init__(message, "not_kelas_author")


class InvalidReorderError(KelasError):
    """Reorder list does not match the materi of the kelas."""

    def __init__(self, message: str = "Materi ids do not match the class materi"):
        super().__init__(message, "invalid_reorder")


class InvalidAssessmentError(KelasError):
    """A passing score was set without questions to pass."""

    def __init__(self, message: str = "A passing score needs at least one question"):
        super().__init__(message, "invalid_assessment")


# ==============================================================================
# Access Helpers
# ==============================================================================


def can_manage_kelas(kelas: Kelas, user: UserResponse | None) -> bool:
    """Authors and admins manage a kelas."""
    if user is None:
        return False
    return is_admin(user.role) or kelas.is_author(user.id)


def can_view_kelas(kelas: Kelas, user: UserResponse | None) -> bool:
    """Published kelas are public, drafts only visible to managers."""
    return not kelas.is_draft or can_manage_kelas(kelas, user)


def materi_lock_key(kelas_id: UUID) -> str:
    """Lock serializing order assignment inside one kelas."""
    return f"locks:kelas:{kelas_id}:materi"


# ==============================================================================
# Kelas Service
# ==============================================================================


class KelasService:
    """Service for kelas, membership and materi management."""

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        locks: KeyedLock | None = None,
        gamification: "GamificationService | None" = None,
        redis: "Redis | None" = None,
    ):
        """Initialize with Cassandra session and optional Redis."""
        self.session = session
        self.keyspace = keyspace
        self.locks = locks or KeyedLock()
        self.gamification = gamification
        self.redis = redis
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements."""
        # Kelas
        self._get_kelas_by_id = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.kelas WHERE id = ?"
        )
        self._get_all_kelas = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.kelas"
        )
        self._insert_kelas = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.kelas
            (id, title, description, level, author_id, is_draft, is_paid, price,
             created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        # Members
        self._get_member = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.kelas_members
            WHERE kelas_id = ? AND user_id = ?
        """)
        self._insert_member = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.kelas_members (kelas_id, user_id, joined_at)
            VALUES (?, ?, ?)
        """)
        self._insert_kelas_by_member = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.kelas_by_member (user_id, kelas_id, joined_at)
            VALUES (?, ?, ?)
        """)
        self._delete_member = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.kelas_members
            WHERE kelas_id = ? AND user_id = ?
        """)
        self._delete_kelas_by_member = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.kelas_by_member
            WHERE user_id = ? AND kelas_id = ?
        """)
        self._get_member_kelas = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.kelas_by_member WHERE user_id = ?"
        )

        # Materi
        self._get_materi_by_id = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.materi WHERE id = ?"
        )
        self._get_materi_by_ids = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.materi WHERE id IN ?"
        )
        self._insert_materi = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.materi
            (id, kelas_id, title, description, content, position, is_draft,
             is_demo, passing_score, questions, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)
        self._update_materi_position = self.session.prepare(f"""
            UPDATE {self.keyspace}.materi SET position = ?, updated_at = ?
            WHERE id = ?
        """)
        self._update_materi_assessment = self.session.prepare(f"""
            UPDATE {self.keyspace}.materi
            SET passing_score = ?, questions = ?, updated_at = ?
            WHERE id = ?
        """)
        self._delete_materi = self.session.prepare(
            f"DELETE FROM {self.keyspace}.materi WHERE id = ?"
        )

        # Ordering
        self._get_kelas_order = self.session.prepare(f"""
            SELECT position, materi_id FROM {self.keyspace}.materi_by_kelas
            WHERE kelas_id = ?
        """)
        self._get_last_position = self.session.prepare(f"""
            SELECT position FROM {self.keyspace}.materi_by_kelas
            WHERE kelas_id = ? ORDER BY position DESC LIMIT 1
        """)
        self._insert_order = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.materi_by_kelas (kelas_id, position, materi_id)
            VALUES (?, ?, ?)
        """)
        self._delete_order = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.materi_by_kelas
            WHERE kelas_id = ? AND position = ? AND materi_id = ?
        """)
        self._delete_kelas_order = self.session.prepare(
            f"DELETE FROM {self.keyspace}.materi_by_kelas WHERE kelas_id = ?"
        )

    # ==========================================================================
    # Kelas Operations
    # ==========================================================================

    async def _save_kelas(self, kelas: Kelas) -> None:
        await self.session.aexecute(
            self._insert_kelas,
            [
                kelas.id,
                kelas.title,
                kelas.description,
                kelas.level,
                kelas.author_id,
                kelas.is_draft,
                kelas.is_paid,
                kelas.price,
                kelas.created_at,
                kelas.updated_at,
            ],
        )

    async def create_kelas(self, data: CreateKelasRequest, author_id: UUID) -> Kelas:
        """Create a new draft kelas."""
        kelas = Kelas(
            title=data.title,
            description=data.description,
            level=data.level.value,
            author_id=author_id,
            is_draft=True,
            is_paid=data.is_paid,
            price=data.price,
        )
        await self._save_kelas(kelas)

        logger.info("kelas_created", kelas_id=str(kelas.id), author_id=str(author_id))
        return kelas

    async def get_kelas(self, kelas_id: UUID) -> Kelas | None:
        """Get kelas by ID."""
        result = await self.session.aexecute(self._get_kelas_by_id, [kelas_id])
        row = result.one()
        return Kelas.from_row(row) if row else None

    async def require_kelas(self, kelas_id: UUID) -> Kelas:
        """Get kelas by ID.

        Raises:
            KelasNotFoundError: If kelas doesn't exist
        """
        kelas = await self.get_kelas(kelas_id)
        if not kelas:
            raise KelasNotFoundError
        return kelas

    async def list_kelas(self, user: UserResponse | None = None) -> list[Kelas]:
        """List kelas visible to the user, newest first.

        Learners and anonymous users only see published kelas; authors also
        see their drafts and admins see everything.
        """
        rows = await self.session.aexecute(self._get_all_kelas)
        items = [
            kelas
            for kelas in (Kelas.from_row(row) for row in rows)
            if can_view_kelas(kelas, user)
        ]
        items.sort(key=lambda k: k.created_at, reverse=True)
        return items

    async def update_kelas(
        self, kelas_id: UUID, data: UpdateKelasRequest, user: UserResponse
    ) -> Kelas:
        """Update kelas. ``is_draft=False`` publishes it.

        Raises:
            KelasNotFoundError: If kelas doesn't exist
            KelasPermissionError: If user is neither author nor admin
        """
        kelas = await self.require_kelas(kelas_id)
        if not can_manage_kelas(kelas, user):
            raise KelasPermissionError

        if data.title is not None:
            kelas.title = data.title.strip()
        if data.description is not None:
            kelas.description = data.description
        if data.level is not None:
            kelas.level = data.level.value
        if data.is_paid is not None:
            kelas.is_paid = data.is_paid
        if data.price is not None:
            kelas.price = data.price
        if data.is_draft is not None:
            kelas.is_draft = data.is_draft
        kelas.updated_at = datetime.now(UTC)

        await self._save_kelas(kelas)
        await self._invalidate_progress(kelas_id)
        logger.info(
            "kelas_updated", kelas_id=str(kelas_id), is_draft=kelas.is_draft
        )
        return kelas

    # ==========================================================================
    # Membership
    # ==========================================================================

    async def is_member(self, kelas_id: UUID, user_id: UUID) -> bool:
        """Check if user is enrolled in the kelas."""
        result = await self.session.aexecute(self._get_member, [kelas_id, user_id])
        return result.one() is not None

    async def enroll(
        self,
        kelas_id: UUID,
        user: UserResponse,
        bypass_payment_check: bool = False,
    ) -> EnrollResponse:
        """Enroll user in a kelas.

        Raises:
            KelasNotFoundError: If kelas doesn't exist
            KelasNotAvailableError: If kelas is a draft
            AlreadyEnrolledError: If user is a member (without payment bypass)
            OwnKelasEnrollmentError: If user authored the kelas
            PaymentRequiredError: If a murid joins a paid kelas without bypass
        """
        kelas = await self.require_kelas(kelas_id)
        if kelas.is_draft:
            raise KelasNotAvailableError

        if await self.is_member(kelas_id, user.id):
            if not bypass_payment_check:
                raise AlreadyEnrolledError
            # Payment callback for a user that is already in
            return EnrollResponse(
                kelas_id=kelas_id,
                already_enrolled=True,
                message="User is already enrolled in this class",
            )

        if kelas.is_author(user.id):
            raise OwnKelasEnrollmentError

        if user.role == UserRole.MURID and kelas.is_paid and not bypass_payment_check:
            raise PaymentRequiredError(kelas.price)

        now = datetime.now(UTC)
        await self.session.aexecute(self._insert_member, [kelas_id, user.id, now])
        await self.session.aexecute(
            self._insert_kelas_by_member, [user.id, kelas_id, now]
        )
        logger.info(
            "kelas_enrolled",
            kelas_id=str(kelas_id),
            user_id=str(user.id),
            role=user.role.value,
        )

        await self._award(user.id, GameEvent.JOIN_KELAS, {"kelas_id": str(kelas_id)})

        if user.role == UserRole.MURID:
            message = "Successfully enrolled in class"
        else:
            message = f"Successfully joined class as {user.role.value}"
        return EnrollResponse(kelas_id=kelas_id, message=message)

    async def unenroll(self, kelas_id: UUID, user_id: UUID) -> None:
        """Remove user from a kelas.

        Completion records are kept; they belong to the learner and come
        back into play if the learner joins again.

        Raises:
            KelasNotFoundError: If kelas doesn't exist
            NotEnrolledError: If user is not a member
        """
        await self.require_kelas(kelas_id)
        if not await self.is_member(kelas_id, user_id):
            raise NotEnrolledError

        await self.session.aexecute(self._delete_member, [kelas_id, user_id])
        await self.session.aexecute(self._delete_kelas_by_member, [user_id, kelas_id])
        logger.info("kelas_unenrolled", kelas_id=str(kelas_id), user_id=str(user_id))

    async def list_member_kelas(self, user_id: UUID) -> list[Kelas]:
        """Kelas the user joined, most recent first."""
        rows = list(await self.session.aexecute(self._get_member_kelas, [user_id]))
        rows.sort(key=lambda r: r.joined_at, reverse=True)

        items = []
        for row in rows:
            kelas = await self.get_kelas(row.kelas_id)
            if kelas:
                items.append(kelas)
        return items

    async def _award(
        self, user_id: UUID, event: GameEvent, metadata: dict[str, Any]
    ) -> None:
        if not self.gamification:
            return
        try:
            await self.gamification.trigger_event(user_id, event, metadata)
        except Exception:
            # XP is a side effect; the enrollment itself already happened
            logger.exception(
                "xp_award_failed", game_event=event.value, user_id=str(user_id)
            )

    async def _invalidate_progress(self, kelas_id: UUID) -> None:
        """Drop cached progress of every learner after the materi list changed."""
        if not self.redis:
            return

        pattern = kelas_progress_pattern(kelas_id)
        keys = [key async for key in self.redis.scan_iter(pattern)]
        if keys:
            await self.redis.delete(*keys)

    # ==========================================================================
    # Materi Operations
    # ==========================================================================

    async def _require_manager(self, kelas_id: UUID, user: UserResponse) -> Kelas:
        kelas = await self.require_kelas(kelas_id)
        if not can_manage_kelas(kelas, user):
            raise KelasPermissionError
        return kelas

    async def _save_materi(self, materi: Materi) -> None:
        await self.session.aexecute(
            self._insert_materi,
            [
                materi.id,
                materi.kelas_id,
                materi.title,
                materi.description,
                materi.content,
                materi.order,
                materi.is_draft,
                materi.is_demo,
                materi.passing_score,
                materi.questions_json(),
                materi.created_at,
                materi.updated_at,
            ],
        )

    async def create_materi(
        self, kelas_id: UUID, data: CreateMateriRequest, user: UserResponse
    ) -> Materi:
        """Append a new materi after the last one of the kelas.

        Raises:
            KelasNotFoundError: If kelas doesn't exist
            KelasPermissionError: If user is neither author nor admin
        """
        await self._require_manager(kelas_id, user)

        async with self.locks.hold(materi_lock_key(kelas_id)):
            result = await self.session.aexecute(self._get_last_position, [kelas_id])
            last = result.one()
            materi = Materi(
                kelas_id=kelas_id,
                title=data.title,
                description=data.description,
                content=data.content,
                order=(last.position if last else 0) + 1,
                is_draft=data.is_draft,
                is_demo=data.is_demo,
            )
            await self._save_materi(materi)
            await self.session.aexecute(
                self._insert_order, [kelas_id, materi.order, materi.id]
            )
        await self._invalidate_progress(kelas_id)

        logger.info(
            "materi_created",
            kelas_id=str(kelas_id),
            materi_id=str(materi.id),
            order=materi.order,
        )
        return materi

    async def get_materi(self, materi_id: UUID) -> Materi | None:
        """Get materi by ID."""
        result = await self.session.aexecute(self._get_materi_by_id, [materi_id])
        row = result.one()
        return Materi.from_row(row) if row else None

    async def require_materi(self, materi_id: UUID) -> Materi:
        """Get materi by ID.

        Raises:
            MateriNotFoundError: If materi doesn't exist
        """
        materi = await self.get_materi(materi_id)
        if not materi:
            raise MateriNotFoundError
        return materi

    async def list_materi(
        self, kelas_id: UUID, include_drafts: bool = False
    ) -> list[Materi]:
        """Materi of a kelas sorted ascending by order.

        The order comes from the clustering order of ``materi_by_kelas``;
        draft materi are left out unless ``include_drafts``.
        """
        order_rows = list(
            await self.session.aexecute(self._get_kelas_order, [kelas_id])
        )
        if not order_rows:
            return []

        rows = await self.session.aexecute(
            self._get_materi_by_ids, [[row.materi_id for row in order_rows]]
        )
        by_id = {row.id: Materi.from_row(row) for row in rows}

        items = []
        for row in order_rows:
            materi = by_id.get(row.materi_id)
            if materi is None:
                continue
            if materi.is_draft and not include_drafts:
                continue
            items.append(materi)
        return items

    async def update_materi(
        self, materi_id: UUID, data: UpdateMateriRequest, user: UserResponse
    ) -> Materi:
        """Update materi content and flags.

        Raises:
            MateriNotFoundError: If materi doesn't exist
            KelasPermissionError: If user is neither author nor admin
        """
        materi = await self.require_materi(materi_id)
        await self._require_manager(materi.kelas_id, user)

        if data.title is not None:
            materi.title = data.title.strip()
        if data.description is not None:
            materi.description = data.description
        if data.content is not None:
            materi.content = data.content
        if data.is_draft is not None:
            materi.is_draft = data.is_draft
        if data.is_demo is not None:
            materi.is_demo = data.is_demo
        materi.updated_at = datetime.now(UTC)

        await self._save_materi(materi)
        await self._invalidate_progress(materi.kelas_id)
        logger.info("materi_updated", materi_id=str(materi_id))
        return materi

    async def delete_materi(self, materi_id: UUID, user: UserResponse) -> None:
        """Delete a materi and close the gap it leaves in the order.

        Raises:
            MateriNotFoundError: If materi doesn't exist
            KelasPermissionError: If user is neither author nor admin
        """
        materi = await self.require_materi(materi_id)
        kelas_id = materi.kelas_id
        await self._require_manager(kelas_id, user)

        async with self.locks.hold(materi_lock_key(kelas_id)):
            await self.session.aexecute(self._delete_materi, [materi_id])
            await self.session.aexecute(
                self._delete_order, [kelas_id, materi.order, materi_id]
            )
            remaining = await self.list_materi(kelas_id, include_drafts=True)
            await self._rewrite_order(kelas_id, [m.id for m in remaining])
        await self._invalidate_progress(kelas_id)

        logger.info("materi_deleted", kelas_id=str(kelas_id), materi_id=str(materi_id))

    async def reorder_materi(
        self, kelas_id: UUID, materi_ids: list[UUID], user: UserResponse
    ) -> list[Materi]:
        """Rewrite the order of every materi in a kelas to 1..n.

        Raises:
            KelasNotFoundError: If kelas doesn't exist
            KelasPermissionError: If user is neither author nor admin
            InvalidReorderError: If ids don't cover exactly the kelas materi
        """
        await self._require_manager(kelas_id, user)

        async with self.locks.hold(materi_lock_key(kelas_id)):
            current = await self.list_materi(kelas_id, include_drafts=True)
            if len(materi_ids) != len(set(materi_ids)) or set(materi_ids) != {
                m.id for m in current
            }:
                raise InvalidReorderError
            await self._rewrite_order(kelas_id, materi_ids)
        await self._invalidate_progress(kelas_id)

        logger.info("materi_reordered", kelas_id=str(kelas_id), count=len(materi_ids))
        return await self.list_materi(kelas_id, include_drafts=True)

    async def _rewrite_order(self, kelas_id: UUID, materi_ids: list[UUID]) -> None:
        """Replace the ordering partition with ``materi_ids`` ranked from 1."""
        await self.session.aexecute(self._delete_kelas_order, [kelas_id])

        now = datetime.now(UTC)
        for position, materi_id in enumerate(materi_ids, start=1):
            await self.session.aexecute(
                self._insert_order, [kelas_id, position, materi_id]
            )
            await self.session.aexecute(
                self._update_materi_position, [position, now, materi_id]
            )

    async def configure_assessment(
        self,
        materi_id: UUID,
        passing_score: int | None,
        questions: list[QuestionInput],
        user: UserResponse,
    ) -> Materi:
        """Attach, replace or remove the assessment.

        Questions with a ``passing_score`` gate the next materi; questions
        without one are a practice quiz graded against the default passing
        score. An empty ``questions`` list removes the assessment.

        Raises:
            MateriNotFoundError: If materi doesn't exist
            KelasPermissionError: If user is neither author nor admin
            InvalidAssessmentError: If a passing score comes without questions
        """
        if passing_score is not None and not questions:
            raise InvalidAssessmentError

        materi = await self.require_materi(materi_id)
        await self._require_manager(materi.kelas_id, user)

        materi.passing_score = passing_score
        materi.questions = [q.model_dump() for q in questions]
        materi.updated_at = datetime.now(UTC)

        await self.session.aexecute(
            self._update_materi_assessment,
            [
                materi.passing_score,
                materi.questions_json(),
                materi.updated_at,
                materi_id,
            ],
        )
        await self._invalidate_progress(materi.kelas_id)
        logger.info(
            "materi_assessment_configured",
            materi_id=str(materi_id),
            passing_score=passing_score,
            question_count=len(materi.questions),
        )
        return materi
