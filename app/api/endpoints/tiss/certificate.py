"""
TISS Digital Certificate Endpoints
The PFX and its password are accepted here and never returned.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_async_session
from app.core.auth import CurrentUser
from app.api.endpoints.tiss.common import require_admin, service_response
from app.schemas.tiss import (
    CertificateUploadRequest,
    StoreCertificateResponse,
    TISSOperationResponse,
    ValidateCertificateResponse,
)
from app.services.tiss.certificate import CertificateProvider

router = APIRouter(prefix="/tiss/certificates", tags=["TISS Certificates"])


@router.post("/validate", response_model=ValidateCertificateResponse)
async def validate_certificate(
    upload: CertificateUploadRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_session)
):
    """Check a certificate without storing it"""
    result = await CertificateProvider(db).validate_certificate(upload.pfx_base64, upload.password)
    return service_response(result)


@router.put("", response_model=StoreCertificateResponse)
async def store_certificate(
    upload: CertificateUploadRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_session)
):
    """Replace the clinic's signing certificate"""
    result = await CertificateProvider(db).store_certificate(
        clinic_id=current_user.clinic_id,
        pfx_base64=upload.pfx_base64,
        password=upload.password,
        uploaded_by=current_user.user_id,
    )
    return service_response(result)


@router.delete("", response_model=TISSOperationResponse)
async def delete_certificate(
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_session)
):
    result = await CertificateProvider(db).delete_certificate(current_user.clinic_id)
    return service_response(result)
