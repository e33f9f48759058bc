"""Kelas management API endpoints.

Provides routes for:
- Kelas CRUD and publishing
- Enrollment
- Materi CRUD, ordering and assessment configuration
"""

from uuid import UUID

from fastapi import APIRouter, Response, status

from hakgyo.auth.dependencies import CurrentUser, GuruUser, OptionalUser

from .dependencies import KelasServiceDep, handle_kelas_error
from .schemas import (
    ConfigureAssessmentRequest,
    CreateKelasRequest,
    CreateMateriRequest,
    EnrollRequest,
    EnrollResponse,
    KelasListResponse,
    KelasResponse,
    MateriListResponse,
    MateriResponse,
    MembershipResponse,
    ReorderMateriRequest,
    UpdateKelasRequest,
    UpdateMateriRequest,
)
from .service import (
    KelasError,
    KelasNotFoundError,
    MateriNotFoundError,
    can_manage_kelas,
    can_view_kelas,
)


router = APIRouter(prefix="/v1/kelas", tags=["kelas"])
materi_router = APIRouter(prefix="/v1/materi", tags=["materi"])


# ==============================================================================
# Kelas Endpoints
# ==============================================================================


@router.get("", response_model=KelasListResponse, summary="List kelas")
async def list_kelas(
    kelas_service: KelasServiceDep,
    user: OptionalUser,
) -> KelasListResponse:
    """List published kelas, plus own drafts for authors and all for admins."""
    items = await kelas_service.list_kelas(user)
    return KelasListResponse(
        items=[KelasResponse.from_entity(k) for k in items],
        total=len(items),
    )


@router.post(
    "",
    response_model=KelasResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create kelas",
)
async def create_kelas(
    data: CreateKelasRequest,
    kelas_service: KelasServiceDep,
    user: GuruUser,
) -> KelasResponse:
    """Create a draft kelas (guru or admin)."""
    kelas = await kelas_service.create_kelas(data, author_id=user.id)
    return KelasResponse.from_entity(kelas)


@router.get("/joined", response_model=KelasListResponse, summary="My kelas")
async def list_joined_kelas(
    kelas_service: KelasServiceDep,
    user: CurrentUser,
) -> KelasListResponse:
    """Kelas the current user is enrolled in."""
    items = await kelas_service.list_member_kelas(user.id)
    return KelasListResponse(
        items=[KelasResponse.from_entity(k) for k in items],
        total=len(items),
    )


@router.get("/{kelas_id}", response_model=KelasResponse, summary="Get kelas")
async def get_kelas(
    kelas_id: UUID,
    kelas_service: KelasServiceDep,
    user: OptionalUser,
) -> KelasResponse:
    """Get a kelas. Drafts are only visible to their author and admins."""
    kelas = await kelas_service.get_kelas(kelas_id)
    if not kelas or not can_view_kelas(kelas, user):
        raise handle_kelas_error(KelasNotFoundError())
    return KelasResponse.from_entity(kelas)


@router.patch("/{kelas_id}", response_model=KelasResponse, summary="Update kelas")
async def update_kelas(
    kelas_id: UUID,
    data: UpdateKelasRequest,
    kelas_service: KelasServiceDep,
    user: CurrentUser,
) -> KelasResponse:
    """Update a kelas; send ``is_draft=false`` to publish it."""
    try:
        kelas = await kelas_service.update_kelas(kelas_id, data, user)
        return KelasResponse.from_entity(kelas)
    except KelasError as e:
        raise handle_kelas_error(e) from e


# ==============================================================================
# Enrollment Endpoints
# ==============================================================================


@router.post("/{kelas_id}/enroll", response_model=EnrollResponse, summary="Enroll")
async def enroll(
    kelas_id: UUID,
    kelas_service: KelasServiceDep,
    user: CurrentUser,
    data: EnrollRequest | None = None,
) -> EnrollResponse:
    """Join a kelas.

    Murid joining a paid kelas get 402 with the price until the payment
    flow calls back with ``bypass_payment_check``.
    """
    try:
        return await kelas_service.enroll(
            kelas_id,
            user,
            bypass_payment_check=data.bypass_payment_check if data else False,
        )
    except KelasError as e:
        raise handle_kelas_error(e) from e


@router.delete(
    "/{kelas_id}/enroll",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Leave kelas",
)
async def unenroll(
    kelas_id: UUID,
    kelas_service: KelasServiceDep,
    user: CurrentUser,
) -> Response:
    """Leave a kelas."""
    try:
        await kelas_service.unenroll(kelas_id, user.id)
    except KelasError as e:
        raise handle_kelas_error(e) from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/{kelas_id}/membership",
    response_model=MembershipResponse,
    summary="Check membership",
)
async def get_membership(
    kelas_id: UUID,
    kelas_service: KelasServiceDep,
    user: CurrentUser,
) -> MembershipResponse:
    """Whether the current user is enrolled in the kelas."""
    return MembershipResponse(
        kelas_id=kelas_id,
        is_member=await kelas_service.is_member(kelas_id, user.id),
    )


# ==============================================================================
# Materi Endpoints (kelas scoped)
# ==============================================================================


@router.get(
    "/{kelas_id}/materi",
    response_model=MateriListResponse,
    summary="List materi",
)
async def list_materi(
    kelas_id: UUID,
    kelas_service: KelasServiceDep,
    user: OptionalUser,
) -> MateriListResponse:
    """Materi of a kelas in order. Authors and admins also see drafts."""
    kelas = await kelas_service.get_kelas(kelas_id)
    if not kelas or not can_view_kelas(kelas, user):
        raise handle_kelas_error(KelasNotFoundError())

    items = await kelas_service.list_materi(
        kelas_id, include_drafts=can_manage_kelas(kelas, user)
    )
    return MateriListResponse(
        kelas_id=kelas_id,
        items=[MateriResponse.from_entity(m) for m in items],
    )


@router.post(
    "/{kelas_id}/materi",
    response_model=MateriResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create materi",
)
async def create_materi(
    kelas_id: UUID,
    data: CreateMateriRequest,
    kelas_service: KelasServiceDep,
    user: CurrentUser,
) -> MateriResponse:
    """Append a materi to the kelas."""
    try:
        materi = await kelas_service.create_materi(kelas_id, data, user)
        return MateriResponse.from_entity(materi)
    except KelasError as e:
        raise handle_kelas_error(e) from e


@router.put(
    "/{kelas_id}/materi/order",
    response_model=MateriListResponse,
    summary="Reorder materi",
)
async def reorder_materi(
    kelas_id: UUID,
    data: ReorderMateriRequest,
    kelas_service: KelasServiceDep,
    user: CurrentUser,
) -> MateriListResponse:
    """Set the order of all materi in the kelas."""
    try:
        items = await kelas_service.reorder_materi(kelas_id, data.materi_ids, user)
    except KelasError as e:
        raise handle_kelas_error(e) from e
    return MateriListResponse(
        kelas_id=kelas_id,
        items=[MateriResponse.from_entity(m) for m in items],
    )


# ==============================================================================
# Materi Endpoints
# ==============================================================================


@materi_router.get("/{materi_id}", response_model=MateriResponse, summary="Get materi")
async def get_materi(
    materi_id: UUID,
    kelas_service: KelasServiceDep,
    user: OptionalUser,
) -> MateriResponse:
    """Get a materi. Drafts are only visible to kelas managers."""
    materi = await kelas_service.get_materi(materi_id)
    if not materi:
        raise handle_kelas_error(MateriNotFoundError())

    kelas = await kelas_service.get_kelas(materi.kelas_id)
    if not kelas or not can_view_kelas(kelas, user):
        raise handle_kelas_error(MateriNotFoundError())
    if materi.is_draft and not can_manage_kelas(kelas, user):
        raise handle_kelas_error(MateriNotFoundError())

    return MateriResponse.from_entity(materi)


@materi_router.patch(
    "/{materi_id}", response_model=MateriResponse, summary="Update materi"
)
async def update_materi(
    materi_id: UUID,
    data: UpdateMateriRequest,
    kelas_service: KelasServiceDep,
    user: CurrentUser,
) -> MateriResponse:
    """Update a materi."""
    try:
        materi = await kelas_service.update_materi(materi_id, data, user)
        return MateriResponse.from_entity(materi)
    except KelasError as e:
        raise handle_kelas_error(e) from e


@materi_router.delete(
    "/{materi_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete materi",
)
async def delete_materi(
    materi_id: UUID,
    kelas_service: KelasServiceDep,
    user: CurrentUser,
) -> Response:
    """Delete a materi; the following materi move up one rank."""
    try:
        await kelas_service.delete_materi(materi_id, user)
    except KelasError as e:
        raise handle_kelas_error(e) from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@materi_router.put(
    "/{materi_id}/assessment-config",
    response_model=MateriResponse,
    summary="Configure assessment",
)
async def configure_assessment(
    materi_id: UUID,
    data: ConfigureAssessmentRequest,
    kelas_service: KelasServiceDep,
    user: CurrentUser,
) -> MateriResponse:
    """Attach or replace the materi assessment; empty ``questions`` removes it."""
    try:
        materi = await kelas_service.configure_assessment(
            materi_id, data.passing_score, data.questions, user
        )
        return MateriResponse.from_entity(materi)
    except KelasError as e:
        raise handle_kelas_error(e) from e
