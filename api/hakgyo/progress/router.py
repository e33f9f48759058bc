"""Learner progress API endpoints.

Provides routes for:
- Kelas progress (per-materi access and completion)
- Manual materi completion
- Assessments
"""

from uuid import UUID

from fastapi import APIRouter

from hakgyo.auth.dependencies import CurrentUser
from hakgyo.kelas.dependencies import handle_kelas_error
from hakgyo.kelas.service import KelasError

from .dependencies import ProgressServiceDep, handle_progress_error
from .schemas import (
    AssessmentResponse,
    KelasProgressResponse,
    MarkCompleteResponse,
    SubmitAssessmentRequest,
    SubmitAssessmentResponse,
)
from .service import ProgressError


kelas_progress_router = APIRouter(prefix="/v1/kelas", tags=["progress"])
materi_progress_router = APIRouter(prefix="/v1/materi", tags=["progress"])


@kelas_progress_router.get(
    "/{kelas_id}/progress",
    response_model=KelasProgressResponse,
    summary="Kelas progress",
)
async def get_kelas_progress(
    kelas_id: UUID,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> KelasProgressResponse:
    """Access and completion of every published materi, in order.

    Members see their own progress; authors and admins may open it too.
    """
    try:
        return await progress_service.get_kelas_progress(user, kelas_id)
    except KelasError as e:
        raise handle_kelas_error(e) from e
    except ProgressError as e:
        raise handle_progress_error(e) from e


@materi_progress_router.post(
    "/{materi_id}/complete",
    response_model=MarkCompleteResponse,
    summary="Mark materi complete",
)
async def mark_materi_complete(
    materi_id: UUID,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> MarkCompleteResponse:
    """Mark the content of a materi as viewed.

    Materi with an assessment are completed by passing it instead.
    """
    try:
        return await progress_service.mark_content_viewed(user, materi_id)
    except KelasError as e:
        raise handle_kelas_error(e) from e
    except ProgressError as e:
        raise handle_progress_error(e) from e


@materi_progress_router.get(
    "/{materi_id}/assessment",
    response_model=AssessmentResponse,
    summary="Get assessment",
)
async def get_assessment(
    materi_id: UUID,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> AssessmentResponse:
    """Questions (without answers), passing score and the last result."""
    try:
        return await progress_service.get_assessment(user, materi_id)
    except KelasError as e:
        raise handle_kelas_error(e) from e
    except ProgressError as e:
        raise handle_progress_error(e) from e


@materi_progress_router.post(
    "/{materi_id}/assessment",
    response_model=SubmitAssessmentResponse,
    summary="Submit assessment",
)
async def submit_assessment(
    materi_id: UUID,
    data: SubmitAssessmentRequest,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> SubmitAssessmentResponse:
    """Grade an attempt. Retakes are unlimited."""
    try:
        return await progress_service.submit_assessment(
            user, materi_id, data.as_mapping()
        )
    except KelasError as e:
        raise handle_kelas_error(e) from e
    except ProgressError as e:
        raise handle_progress_error(e) from e
