"""Learner progress service layer.

Business logic for:
- Completion records (content viewed, assessment passed)
- Assessments (grading, latest result, attempts)
- Kelas progress through the sequential gate

First creation of a completion record is a lightweight transaction
(``INSERT ... IF NOT EXISTS``); flipping a flag from false to true is a
conditional update. ``was_applied`` on either tells whether this request was
the one that completed the materi, which is when XP is awarded.
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

import structlog

from hakgyo.auth.permissions import is_admin
from hakgyo.auth.schemas import UserResponse
from hakgyo.core.context import set_kelas_id
from hakgyo.core.redis import kelas_progress_key
from hakgyo.gamification.events import GameEvent
from hakgyo.kelas.models import Materi
from hakgyo.progress.gate import CompletionRecord, GateResult, Lesson, evaluate
from hakgyo.progress.grading import grade
from hakgyo.progress.models import AssessmentResult, MateriCompletion
from hakgyo.progress.schemas import (
    AssessmentQuestionResponse,
    AssessmentResponse,
    AssessmentResultResponse,
    KelasProgressResponse,
    MarkCompleteResponse,
    MateriProgressResponse,
    NextMateriResponse,
    OverallProgressResponse,
    QuestionFeedback,
    SubmitAssessmentResponse,
)


if TYPE_CHECKING:
    from cassandra.cluster import Session
    from redis.asyncio import Redis

    from hakgyo.gamification.service import GamificationService
    from hakgyo.kelas.service import KelasService

logger = structlog.get_logger(__name__)


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class ProgressError(Exception):
    """Base progress error."""

    def __init__(self, message: str, code: str = "progress_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class MateriLockedError(ProgressError):
    """Materi is not accessible to the user yet."""

    def __init__(self, message: str = "Materi not accessible"):
        super().__init__(message, "materi_locked")


class AssessmentRequiredError(ProgressError):
    """Materi with an assessment cannot be completed manually."""

    def __init__(
        self,
        message: str = (
            "This materi requires completing an assessment. "
            "Take the assessment to mark it complete."
        ),
    ):
        super().__init__(message, "assessment_required")


class AssessmentNotFoundError(ProgressError):
    """Materi has no assessment."""

    def __init__(self, message: str = "No assessment for this materi"):
        super().__init__(message, "assessment_not_found")


class ProgressAccessDeniedError(ProgressError):
    """User is neither a member nor a manager of the kelas."""

    def __init__(self, message: str = "Not a member of this class"):
        super().__init__(message, "progress_access_denied")


def lessons_of(materi: list[Materi]) -> list[Lesson]:
    """Gate view of materi already sorted by order."""
    return [
        Lesson(id=m.id, order=m.order, requires_passing_score=m.requires_passing_score)
        for m in materi
    ]


def next_in_order(materi: list[Materi], materi_id: UUID) -> Materi | None:
    """The materi following ``materi_id`` in ``materi``, if any."""
    for index, item in enumerate(materi):
        if item.id == materi_id:
            return materi[index + 1] if index + 1 < len(materi) else None
    return None


# ==============================================================================
# Progress Service
# ==============================================================================


class ProgressService:
    """Service for completion records, assessments and kelas progress."""

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        kelas_service: "KelasService",
        gamification: "GamificationService | None" = None,
        redis: "Redis | None" = None,
        default_passing_score: int = 80,
        cache_ttl_seconds: int = 60,
    ):
        """Initialize with Cassandra session, the kelas service and optional Redis."""
        self.session = session
        self.keyspace = keyspace
        self.kelas_service = kelas_service
        self.gamification = gamification
        self.redis = redis
        self.default_passing_score = default_passing_score
        self.cache_ttl_seconds = cache_ttl_seconds
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements."""
        # Completions
        self._get_completions = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.materi_completions
            WHERE user_id = ? AND kelas_id = ?
        """)
        self._insert_completion = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.materi_completions
            (user_id, kelas_id, materi_id, content_viewed, assessment_passed,
             created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)
        self._mark_viewed = self.session.prepare(f"""
            UPDATE {self.keyspace}.materi_completions
            SET content_viewed = true, updated_at = ?
            WHERE user_id = ? AND kelas_id = ? AND materi_id = ?
            IF content_viewed = false
        """)
        self._mark_passed = self.session.prepare(f"""
            UPDATE {self.keyspace}.materi_completions
            SET content_viewed = true, assessment_passed = true, updated_at = ?
            WHERE user_id = ? AND kelas_id = ? AND materi_id = ?
            IF assessment_passed = false
        """)

        # Assessments
        self._get_assessments = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.materi_assessments
            WHERE user_id = ? AND kelas_id = ?
        """)
        self._get_assessment = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.materi_assessments
            WHERE user_id = ? AND kelas_id = ? AND materi_id = ?
        """)
        self._upsert_assessment = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.materi_assessments
            (user_id, kelas_id, materi_id, score, is_passed, correct_answers,
             total_questions, attempts, last_submitted_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

    # ==========================================================================
    # Completion Records
    # ==========================================================================

    async def get_completions(
        self, user_id: UUID, kelas_id: UUID
    ) -> dict[UUID, MateriCompletion]:
        """Completion rows of a learner in a kelas, keyed by materi id."""
        rows = await self.session.aexecute(self._get_completions, [user_id, kelas_id])
        return {row.materi_id: MateriCompletion.from_row(row) for row in rows}

    async def get_completion_records(
        self, user_id: UUID, kelas_id: UUID
    ) -> dict[UUID, CompletionRecord]:
        """Completion records as the gate reads them."""
        completions = await self.get_completions(user_id, kelas_id)
        return {
            materi_id: completion.to_record()
            for materi_id, completion in completions.items()
        }

    async def _evaluate_kelas(
        self, user_id: UUID, kelas_id: UUID
    ) -> tuple[list[Materi], dict[UUID, MateriCompletion], GateResult]:
        """Published materi in order, the completions and the gate over them.

        Completions are read once so the gate and the rows agree.
        """
        materi = await self.kelas_service.list_materi(kelas_id)
        completions = await self.get_completions(user_id, kelas_id)
        records = {
            materi_id: completion.to_record()
            for materi_id, completion in completions.items()
        }
        return materi, completions, evaluate(lessons_of(materi), records)

    async def can_access_materi(self, user_id: UUID, materi: Materi) -> bool:
        """Whether the learner may open ``materi``.

        Demo materi are open to everyone. Otherwise the user must be a member
        and the previous materi must be completed.
        """
        if materi.is_demo:
            return True
        if not await self.kelas_service.is_member(materi.kelas_id, user_id):
            return False

        _, _, result = await self._evaluate_kelas(user_id, materi.kelas_id)
        gate = result.get(materi.id)
        return gate is not None and gate.is_accessible

    async def mark_content_viewed(
        self, user: UserResponse, materi_id: UUID
    ) -> MarkCompleteResponse:
        """Mark a materi that needs no passing score as viewed.

        Raises:
            MateriNotFoundError: If materi doesn't exist
            MateriLockedError: If the user cannot access the materi
            AssessmentRequiredError: If the materi has an assessment
        """
        materi = await self.kelas_service.require_materi(materi_id)
        set_kelas_id(materi.kelas_id)
        if not await self.can_access_materi(user.id, materi):
            raise MateriLockedError
        if materi.requires_passing_score:
            raise AssessmentRequiredError

        now = datetime.now(UTC)
        result = await self.session.aexecute(
            self._insert_completion,
            [user.id, materi.kelas_id, materi.id, True, False, now, now],
        )
        first_completion = result.was_applied
        if not first_completion:
            result = await self.session.aexecute(
                self._mark_viewed, [now, user.id, materi.kelas_id, materi.id]
            )
            first_completion = result.was_applied

        await self._invalidate_cache(user.id, materi.kelas_id)
        logger.info(
            "materi_completed",
            user_id=str(user.id),
            kelas_id=str(materi.kelas_id),
            materi_id=str(materi.id),
            first_completion=first_completion,
        )

        if first_completion:
            await self._award(
                user.id,
                GameEvent.COMPLETE_MATERI,
                {"materi_id": str(materi.id), "kelas_id": str(materi.kelas_id)},
            )

        published = await self.kelas_service.list_materi(materi.kelas_id)
        following = next_in_order(published, materi.id)
        return MarkCompleteResponse(
            materi_id=materi.id,
            first_completion=first_completion,
            next_materi=NextMateriResponse.from_entity(following) if following else None,
        )

    # ==========================================================================
    # Assessments
    # ==========================================================================

    def _passing_score(self, materi: Materi) -> int:
        if materi.passing_score is None:
            return self.default_passing_score
        return materi.passing_score

    async def _require_assessment(self, user_id: UUID, materi_id: UUID) -> Materi:
        materi = await self.kelas_service.require_materi(materi_id)
        set_kelas_id(materi.kelas_id)
        if not await self.can_access_materi(user_id, materi):
            raise MateriLockedError
        if not materi.has_assessment:
            raise AssessmentNotFoundError
        return materi

    async def get_assessment_result(
        self, user_id: UUID, materi: Materi
    ) -> AssessmentResult | None:
        """Latest result of the learner on the materi's assessment."""
        result = await self.session.aexecute(
            self._get_assessment, [user_id, materi.kelas_id, materi.id]
        )
        row = result.one()
        return AssessmentResult.from_row(row) if row else None

    async def get_assessment(
        self, user: UserResponse, materi_id: UUID
    ) -> AssessmentResponse:
        """Questions without answers, passing score and the last result.

        Raises:
            MateriNotFoundError: If materi doesn't exist
            MateriLockedError: If the user cannot access the materi
            AssessmentNotFoundError: If the materi has no assessment
        """
        materi = await self._require_assessment(user.id, materi_id)
        last = await self.get_assessment_result(user.id, materi)

        return AssessmentResponse(
            materi_id=materi.id,
            passing_score=self._passing_score(materi),
            questions=[
                AssessmentQuestionResponse.from_question(q) for q in materi.questions
            ],
            last_result=AssessmentResultResponse.from_entity(last) if last else None,
            can_retake=True,
        )

    async def submit_assessment(
        self, user: UserResponse, materi_id: UUID, answers: dict[int, int]
    ) -> SubmitAssessmentResponse:
        """Grade an attempt and record it.

        ``answers`` maps question id to the selected option id. Retakes are
        unlimited; only the latest attempt is kept, plus the attempt count.
        A pass is never revoked by a later failing attempt.
        Passing also marks the content viewed, since manual completion is
        refused for materi with an assessment.

        Raises:
            MateriNotFoundError: If materi doesn't exist
            MateriLockedError: If the user cannot access the materi
            AssessmentNotFoundError: If the materi has no assessment
        """
        materi = await self._require_assessment(user.id, materi_id)
        kelas_id = materi.kelas_id
        passing_score = self._passing_score(materi)

        graded = grade(materi.questions, answers)
        is_passed = graded.is_passed(passing_score)

        previous = await self.get_assessment_result(user.id, materi)
        attempts = (previous.attempts if previous else 0) + 1
        now = datetime.now(UTC)
        await self.session.aexecute(
            self._upsert_assessment,
            [
                user.id,
                kelas_id,
                materi.id,
                graded.score,
                is_passed,
                graded.correct_answers,
                graded.total_questions,
                attempts,
                now,
            ],
        )

        first_pass = False
        if is_passed:
            result = await self.session.aexecute(
                self._insert_completion,
                [user.id, kelas_id, materi.id, True, True, now, now],
            )
            first_pass = result.was_applied
            if not first_pass:
                result = await self.session.aexecute(
                    self._mark_passed, [now, user.id, kelas_id, materi.id]
                )
                first_pass = result.was_applied

        await self._invalidate_cache(user.id, kelas_id)
        logger.info(
            "assessment_submitted",
            user_id=str(user.id),
            kelas_id=str(kelas_id),
            materi_id=str(materi.id),
            score=graded.score,
            is_passed=is_passed,
            attempts=attempts,
        )

        metadata = {"materi_id": str(materi.id), "score": graded.score}
        if first_pass:
            await self._award(user.id, GameEvent.COMPLETE_ASSESSMENT, metadata)
        if is_passed and graded.score == 100 and not (previous and previous.score == 100):
            await self._award(user.id, GameEvent.PERFECT_SCORE, metadata)

        next_unlocked = None
        if is_passed:
            published, _, gate_result = await self._evaluate_kelas(
                user.id, kelas_id
            )
            current = gate_result.get(materi.id)
            following = next_in_order(published, materi.id)
            if following and current and current.is_fully_completed:
                next_unlocked = following.id

        return SubmitAssessmentResponse(
            materi_id=materi.id,
            score=graded.score,
            is_passed=is_passed,
            passing_score=passing_score,
            correct_answers=graded.correct_answers,
            total_questions=graded.total_questions,
            attempts=attempts,
            results=[
                QuestionFeedback(
                    question_id=answer.question_id,
                    selected_option=answer.selected_option,
                    correct_option=answer.correct_option,
                    is_correct=answer.is_correct,
                    explanation=answer.explanation,
                )
                for answer in graded.answers
            ],
            next_materi_unlocked=next_unlocked,
        )

    # ==========================================================================
    # Kelas Progress
    # ==========================================================================

    async def get_kelas_progress(
        self, user: UserResponse, kelas_id: UUID
    ) -> KelasProgressResponse:
        """Per-materi access and completion plus the overall summary.

        Raises:
            KelasNotFoundError: If kelas doesn't exist
            ProgressAccessDeniedError: If user is not a member, author or admin
        """
        set_kelas_id(kelas_id)
        kelas = await self.kelas_service.require_kelas(kelas_id)
        if not (
            is_admin(user.role)
            or kelas.is_author(user.id)
            or await self.kelas_service.is_member(kelas_id, user.id)
        ):
            raise ProgressAccessDeniedError

        cached = await self._get_cached_progress(user.id, kelas_id)
        if cached:
            return cached

        materi, completions, result = await self._evaluate_kelas(user.id, kelas_id)
        rows = await self.session.aexecute(self._get_assessments, [user.id, kelas_id])
        scores = {row.materi_id: row.score for row in rows}

        items = []
        for item, gate in zip(materi, result.lessons, strict=True):
            completion = completions.get(item.id)
            items.append(
                MateriProgressResponse(
                    id=item.id,
                    title=item.title,
                    order=item.order,
                    is_demo=item.is_demo,
                    is_accessible=gate.is_accessible,
                    is_completed=bool(completion and completion.content_viewed),
                    is_fully_completed=gate.is_fully_completed,
                    has_assessment=item.has_assessment,
                    assessment_passed=bool(
                        completion and completion.assessment_passed
                    ),
                    score=scores.get(item.id),
                    can_retake=item.has_assessment,
                )
            )

        response = KelasProgressResponse(
            kelas_id=kelas_id,
            user_id=user.id,
            materi=items,
            overall_progress=OverallProgressResponse(
                completed_count=result.summary.completed_count,
                total_count=result.summary.total_count,
                completion_percentage=result.summary.completion_percentage,
            ),
        )
        await self._cache_progress(response)
        return response

    # ==========================================================================
    # Side Effects and Cache
    # ==========================================================================

    async def _award(
        self, user_id: UUID, event: GameEvent, metadata: dict[str, Any]
    ) -> None:
        if not self.gamification:
            return
        try:
            await self.gamification.trigger_event(user_id, event, metadata)
        except Exception:
            logger.exception(
                "xp_award_failed", game_event=event.value, user_id=str(user_id)
            )

    async def _get_cached_progress(
        self, user_id: UUID, kelas_id: UUID
    ) -> KelasProgressResponse | None:
        if not self.redis:
            return None

        cached = await self.redis.get(kelas_progress_key(user_id, kelas_id))
        if cached:
            return KelasProgressResponse.model_validate_json(cached)
        return None

    async def _cache_progress(self, response: KelasProgressResponse) -> None:
        if not self.redis:
            return

        await self.redis.setex(
            kelas_progress_key(response.user_id, response.kelas_id),
            self.cache_ttl_seconds,
            response.model_dump_json(),
        )

    async def _invalidate_cache(self, user_id: UUID, kelas_id: UUID) -> None:
        if self.redis:
            await self.redis.delete(kelas_progress_key(user_id, kelas_id))
