"""Tests for ProgressService over the in-memory database."""

from unittest.mock import AsyncMock, Mock
from uuid import uuid4

import pytest

from hakgyo.auth.permissions import UserRole
from hakgyo.auth.schemas import UserResponse
from hakgyo.core.redis import kelas_progress_key
from hakgyo.gamification.events import GameEvent
from hakgyo.kelas.schemas import (
    CreateKelasRequest,
    CreateMateriRequest,
    QuestionInput,
    UpdateKelasRequest,
)
from hakgyo.kelas.service import KelasService
from hakgyo.progress.schemas import KelasProgressResponse
from hakgyo.progress.service import (
    AssessmentNotFoundError,
    AssessmentRequiredError,
    MateriLockedError,
    ProgressAccessDeniedError,
    ProgressService,
)


QUESTIONS = [
    QuestionInput(
        id=question_id,
        text=f"Soal {question_id}",
        explanation="Bacaan yang benar",
        options=[
            {"id": 1, "text": "benar", "is_correct": True},
            {"id": 2, "text": "salah"},
        ],
    )
    for question_id in (1, 2)
]


@pytest.fixture
def gamification():
    """Mocked gamification service."""
    service = Mock()
    service.trigger_event = AsyncMock()
    return service


@pytest.fixture
def kelas_service(db_session) -> KelasService:
    return KelasService(db_session, "ks")


@pytest.fixture
def redis():
    """Mocked Redis client with an empty cache."""
    client = Mock()
    client.get = AsyncMock(return_value=None)
    client.setex = AsyncMock()
    client.delete = AsyncMock()
    return client


@pytest.fixture
def progress_service(db_session, kelas_service, gamification) -> ProgressService:
    return ProgressService(db_session, "ks", kelas_service, gamification=gamification)


@pytest.fixture
def outsider() -> UserResponse:
    """A learner who never joined."""
    return UserResponse(id=uuid4(), email="tamu@example.com", role=UserRole.MURID)


def awarded(gamification) -> list[GameEvent]:
    return [call.args[1] for call in gamification.trigger_event.await_args_list]


async def build_kelas(kelas_service, guru, murid, second_is_demo: bool = False):
    """Published kelas: reading, assessment (pass at 60), reading.

    ``murid`` is enrolled.
    """
    kelas = await kelas_service.create_kelas(
        CreateKelasRequest(title="Hangul dasar"), author_id=guru.id
    )
    await kelas_service.update_kelas(kelas.id, UpdateKelasRequest(is_draft=False), guru)

    first = await kelas_service.create_materi(
        kelas.id, CreateMateriRequest(title="Vokal"), guru
    )
    second = await kelas_service.create_materi(
        kelas.id, CreateMateriRequest(title="Kuis vokal", is_demo=second_is_demo), guru
    )
    await kelas_service.configure_assessment(second.id, 60, QUESTIONS, guru)
    third = await kelas_service.create_materi(
        kelas.id, CreateMateriRequest(title="Konsonan"), guru
    )
    await kelas_service.enroll(kelas.id, murid)
    return kelas, [first, second, third]


class TestMarkContentViewed:
    """Manual completion of materi without assessment."""

    @pytest.mark.asyncio
    async def test_first_completion_awards_once(
        self, progress_service, kelas_service, guru, murid, gamification
    ) -> None:
        """XP comes with the first completion only."""
        _, (first, second, _) = await build_kelas(kelas_service, guru, murid)

        response = await progress_service.mark_content_viewed(murid, first.id)
        assert response.first_completion is True
        assert response.next_materi is not None
        assert response.next_materi.id == second.id
        assert response.next_materi.order == 2

        again = await progress_service.mark_content_viewed(murid, first.id)
        assert again.first_completion is False

        assert awarded(gamification) == [GameEvent.COMPLETE_MATERI]

    @pytest.mark.asyncio
    async def test_locked_materi(self, progress_service, kelas_service, guru, murid) -> None:
        """The third materi stays closed until the assessment is passed."""
        _, (first, _, third) = await build_kelas(kelas_service, guru, murid)
        await progress_service.mark_content_viewed(murid, first.id)

        with pytest.raises(MateriLockedError):
            await progress_service.mark_content_viewed(murid, third.id)

    @pytest.mark.asyncio
    async def test_locked_checked_before_assessment(
        self, progress_service, kelas_service, guru, murid
    ) -> None:
        """A locked materi with an assessment reports the lock."""
        _, (_, second, _) = await build_kelas(kelas_service, guru, murid)

        with pytest.raises(MateriLockedError):
            await progress_service.mark_content_viewed(murid, second.id)

    @pytest.mark.asyncio
    async def test_assessment_materi_cannot_be_marked(
        self, progress_service, kelas_service, guru, murid
    ) -> None:
        """Materi with an assessment are completed by passing it."""
        _, (first, second, _) = await build_kelas(kelas_service, guru, murid)
        await progress_service.mark_content_viewed(murid, first.id)

        with pytest.raises(AssessmentRequiredError):
            await progress_service.mark_content_viewed(murid, second.id)

    @pytest.mark.asyncio
    async def test_non_member_locked_out(
        self, progress_service, kelas_service, guru, murid, outsider
    ) -> None:
        """Only members progress through non-demo materi."""
        _, (first, _, _) = await build_kelas(kelas_service, guru, murid)

        with pytest.raises(MateriLockedError):
            await progress_service.mark_content_viewed(outsider, first.id)

    @pytest.mark.asyncio
    async def test_xp_failure_is_swallowed(
        self, progress_service, kelas_service, guru, murid, gamification, fake_db
    ) -> None:
        """Completion is stored even when XP cannot be awarded."""
        _, (first, _, _) = await build_kelas(kelas_service, guru, murid)
        gamification.trigger_event.side_effect = RuntimeError("stats busy")

        response = await progress_service.mark_content_viewed(murid, first.id)

        assert response.first_completion is True
        [row] = fake_db.rows("materi_completions")
        assert row.content_viewed is True
        assert row.assessment_passed is False


class TestCanAccessMateri:
    """Access outside the gate."""

    @pytest.mark.asyncio
    async def test_demo_open_to_everyone(
        self, progress_service, kelas_service, guru, murid, outsider
    ) -> None:
        """Demo materi skip both membership and the gate."""
        _, (first, second, _) = await build_kelas(
            kelas_service, guru, murid, second_is_demo=True
        )

        assert await progress_service.can_access_materi(outsider.id, second)
        assert await progress_service.can_access_materi(murid.id, second)
        assert not await progress_service.can_access_materi(outsider.id, first)
        assert await progress_service.can_access_materi(murid.id, first)


class TestAssessment:
    """Taking assessments."""

    @pytest.mark.asyncio
    async def test_questions_hide_answers(
        self, progress_service, kelas_service, guru, murid
    ) -> None:
        """Learners get the questions without correct answers."""
        _, (first, second, _) = await build_kelas(kelas_service, guru, murid)
        await progress_service.mark_content_viewed(murid, first.id)

        response = await progress_service.get_assessment(murid, second.id)

        assert response.passing_score == 60
        assert response.last_result is None
        assert response.can_retake is True
        assert [q.id for q in response.questions] == [1, 2]
        option = response.questions[0].options[0].model_dump()
        assert option == {"id": 1, "text": "benar"}

    @pytest.mark.asyncio
    async def test_materi_without_assessment(
        self, progress_service, kelas_service, guru, murid
    ) -> None:
        """404 when there is nothing to take."""
        _, (first, _, _) = await build_kelas(kelas_service, guru, murid)

        with pytest.raises(AssessmentNotFoundError):
            await progress_service.get_assessment(murid, first.id)

    @pytest.mark.asyncio
    async def test_fail_then_pass(
        self, progress_service, kelas_service, guru, murid, gamification, fake_db
    ) -> None:
        """Failing keeps the gate closed, passing opens the next materi."""
        _, (first, second, third) = await build_kelas(kelas_service, guru, murid)
        await progress_service.mark_content_viewed(murid, first.id)
        gamification.trigger_event.reset_mock()

        failed = await progress_service.submit_assessment(murid, second.id, {1: 1, 2: 2})
        assert failed.score == 50
        assert failed.is_passed is False
        assert failed.attempts == 1
        assert failed.next_materi_unlocked is None
        assert [(r.question_id, r.is_correct) for r in failed.results] == [
            (1, True),
            (2, False),
        ]
        assert failed.results[1].correct_option == 1
        assert failed.results[1].explanation == "Bacaan yang benar"
        assert not await progress_service.can_access_materi(murid.id, third)

        passed = await progress_service.submit_assessment(murid, second.id, {1: 1, 2: 1})
        assert passed.score == 100
        assert passed.is_passed is True
        assert passed.attempts == 2
        assert passed.next_materi_unlocked == third.id
        assert await progress_service.can_access_materi(murid.id, third)

        records = await progress_service.get_completion_records(murid.id, first.kelas_id)
        assert records[second.id].content_viewed is True
        assert records[second.id].assessment_passed is True
        assert awarded(gamification) == [
            GameEvent.COMPLETE_ASSESSMENT,
            GameEvent.PERFECT_SCORE,
        ]

        [result] = fake_db.rows("materi_assessments")
        assert (result.score, result.attempts) == (100, 2)

    @pytest.mark.asyncio
    async def test_pass_is_not_revoked(
        self, progress_service, kelas_service, guru, murid, gamification
    ) -> None:
        """A later failing attempt keeps the materi completed."""
        _, (first, second, third) = await build_kelas(kelas_service, guru, murid)
        await progress_service.mark_content_viewed(murid, first.id)
        await progress_service.submit_assessment(murid, second.id, {1: 1, 2: 1})
        gamification.trigger_event.reset_mock()

        retake = await progress_service.submit_assessment(murid, second.id, {})

        assert retake.score == 0
        assert retake.is_passed is False
        assert retake.attempts == 2
        assert await progress_service.can_access_materi(murid.id, third)
        assert awarded(gamification) == []

        last = await progress_service.get_assessment(murid, second.id)
        assert last.last_result is not None
        assert last.last_result.score == 0

    @pytest.mark.asyncio
    async def test_repeated_pass_awards_once(
        self, progress_service, kelas_service, guru, murid, gamification
    ) -> None:
        """Passing again at the same score adds no XP."""
        _, (first, second, _) = await build_kelas(kelas_service, guru, murid)
        await progress_service.mark_content_viewed(murid, first.id)
        await progress_service.submit_assessment(murid, second.id, {1: 1, 2: 1})
        gamification.trigger_event.reset_mock()

        await progress_service.submit_assessment(murid, second.id, {1: 1, 2: 1})

        assert awarded(gamification) == []


    @pytest.mark.asyncio
    async def test_xp_failure_on_submit_is_swallowed(
        self, progress_service, kelas_service, guru, murid, gamification
    ) -> None:
        """The pass is recorded even when XP cannot be awarded."""
        _, (first, second, third) = await build_kelas(kelas_service, guru, murid)
        await progress_service.mark_content_viewed(murid, first.id)
        gamification.trigger_event.side_effect = RuntimeError("stats busy")

        response = await progress_service.submit_assessment(
            murid, second.id, {1: 1, 2: 1}
        )

        assert response.is_passed is True
        assert response.next_materi_unlocked == third.id


class TestPracticeQuiz:
    """Questions without a passing score."""

    @pytest.mark.asyncio
    async def test_quiz_does_not_gate(
        self, progress_service, kelas_service, guru, murid
    ) -> None:
        """The materi is completed by viewing; the quiz uses the default score."""
        kelas = await kelas_service.create_kelas(
            CreateKelasRequest(title="Latihan hangul"), author_id=guru.id
        )
        await kelas_service.update_kelas(
            kelas.id, UpdateKelasRequest(is_draft=False), guru
        )
        quiz = await kelas_service.create_materi(
            kelas.id, CreateMateriRequest(title="Latihan"), guru
        )
        await kelas_service.configure_assessment(quiz.id, None, QUESTIONS, guru)
        following = await kelas_service.create_materi(
            kelas.id, CreateMateriRequest(title="Konsonan"), guru
        )
        await kelas_service.enroll(kelas.id, murid)

        assessment = await progress_service.get_assessment(murid, quiz.id)
        assert assessment.passing_score == 80

        attempt = await progress_service.submit_assessment(murid, quiz.id, {1: 1})
        assert attempt.score == 50
        assert attempt.is_passed is False

        done = await progress_service.mark_content_viewed(murid, quiz.id)
        assert done.next_materi is not None
        assert done.next_materi.id == following.id
        assert await progress_service.can_access_materi(murid.id, following)

        progress = await progress_service.get_kelas_progress(murid, kelas.id)
        assert progress.materi[0].has_assessment is True
        assert progress.materi[0].is_fully_completed is True


class TestKelasProgress:
    """Progress overview of a kelas."""

    @pytest.mark.asyncio
    async def test_overview(self, progress_service, kelas_service, guru, murid) -> None:
        """Gate state per materi plus the summary."""
        kelas, (first, second, third) = await build_kelas(kelas_service, guru, murid)
        await progress_service.mark_content_viewed(murid, first.id)
        await progress_service.submit_assessment(murid, second.id, {1: 1, 2: 2})

        response = await progress_service.get_kelas_progress(murid, kelas.id)

        assert [m.id for m in response.materi] == [first.id, second.id, third.id]
        assert [m.is_accessible for m in response.materi] == [True, True, False]
        assert [m.is_fully_completed for m in response.materi] == [True, False, False]
        assert [m.has_assessment for m in response.materi] == [False, True, False]
        assert response.materi[1].score == 50
        assert response.materi[1].assessment_passed is False
        assert response.materi[0].score is None
        assert response.overall_progress.completed_count == 1
        assert response.overall_progress.total_count == 3
        assert response.overall_progress.completion_percentage == 33

    @pytest.mark.asyncio
    async def test_completions_read_once(
        self,
        progress_service,
        kelas_service,
        guru,
        murid,
        db_session,
        statements_executed,
    ) -> None:
        """The gate and the per-materi rows come from one read."""
        kelas, (first, _, _) = await build_kelas(kelas_service, guru, murid)
        await progress_service.mark_content_viewed(murid, first.id)
        before = len(statements_executed(db_session, "FROM ks.materi_completions"))

        response = await progress_service.get_kelas_progress(murid, kelas.id)

        after = len(statements_executed(db_session, "FROM ks.materi_completions"))
        assert after - before == 1
        assert response.materi[0].is_completed is True
        assert response.materi[0].is_fully_completed is True

    @pytest.mark.asyncio
    async def test_author_may_view(self, progress_service, kelas_service, guru, murid) -> None:
        """Authors open progress without being members."""
        kelas, _ = await build_kelas(kelas_service, guru, murid)

        response = await progress_service.get_kelas_progress(guru, kelas.id)

        assert response.user_id == guru.id
        assert response.overall_progress.completed_count == 0

    @pytest.mark.asyncio
    async def test_outsider_denied(
        self, progress_service, kelas_service, guru, murid, outsider
    ) -> None:
        """Non-members get 403."""
        kelas, _ = await build_kelas(kelas_service, guru, murid)

        with pytest.raises(ProgressAccessDeniedError):
            await progress_service.get_kelas_progress(outsider, kelas.id)

    @pytest.mark.asyncio
    async def test_cached_in_redis(
        self, db_session, kelas_service, guru, murid, redis, statements_executed
    ) -> None:
        """The payload is cached and writes invalidate it."""
        service = ProgressService(
            db_session, "ks", kelas_service, redis=redis, cache_ttl_seconds=60
        )
        kelas, (first, _, _) = await build_kelas(kelas_service, guru, murid)
        key = kelas_progress_key(murid.id, kelas.id)

        response = await service.get_kelas_progress(murid, kelas.id)
        redis.setex.assert_awaited_once()
        assert redis.setex.await_args.args[:2] == (key, 60)

        redis.get.return_value = redis.setex.await_args.args[2]
        reads = len(statements_executed(db_session, "FROM ks.materi_completions"))
        cached = await service.get_kelas_progress(murid, kelas.id)
        assert cached == response
        assert isinstance(cached, KelasProgressResponse)
        assert len(statements_executed(db_session, "FROM ks.materi_completions")) == reads

        await service.mark_content_viewed(murid, first.id)
        redis.delete.assert_awaited_with(key)
