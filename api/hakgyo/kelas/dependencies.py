"""FastAPI dependencies for kelas management.

Provides dependency injection for:
- Kelas service
- Error handlers
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from hakgyo.kelas.service import KelasError, KelasService, PaymentRequiredError


async def get_kelas_service(request: Request) -> KelasService:
    """Get kelas service from app state."""
    service = getattr(request.app.state, "kelas_service", None)
    if not service:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Kelas service not available",
        )
    return service


KelasServiceDep = Annotated[KelasService, Depends(get_kelas_service)]


def handle_kelas_error(error: KelasError) -> HTTPException:
    """Convert kelas errors to HTTP exceptions.

    A payment error carries the price so the client can start checkout.
    """
    status_map = {
        "kelas_not_found": status.HTTP_404_NOT_FOUND,
        "materi_not_found": status.HTTP_404_NOT_FOUND,
        "kelas_not_available": status.HTTP_400_BAD_REQUEST,
        "already_enrolled": status.HTTP_409_CONFLICT,
        "own_kelas": status.HTTP_400_BAD_REQUEST,
        "payment_required": status.HTTP_402_PAYMENT_REQUIRED,
        "not_enrolled": status.HTTP_400_BAD_REQUEST,
        "not_kelas_author": status.HTTP_403_FORBIDDEN,
        "invalid_reorder": status.HTTP_400_BAD_REQUEST,
        "invalid_assessment": status.HTTP_400_BAD_REQUEST,
    }

    status_code = status_map.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR)

    if isinstance(error, PaymentRequiredError):
        return HTTPException(
            status_code=status_code,
            detail={
                "message": error.message,
                "requires_payment": True,
                "price": float(error.price),
            },
        )

    return HTTPException(status_code=status_code, detail=error.message)
