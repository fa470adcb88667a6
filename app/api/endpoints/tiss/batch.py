"""
TISS Lote Endpoints
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_async_session
from app.core.auth import CurrentUser
from app.core.error_handling import NotFoundException
from app.api.endpoints.tiss.common import require_admin, require_billing, service_response
from app.schemas.tiss import (
    CreateLoteRequest,
    CreateLoteResponse,
    DemonstrativoRequest,
    LoteResponse,
    LoteXmlResponse,
    ProcessDemonstrativoResponse,
    TISSOperationResponse,
    UpdateLoteStatusRequest,
)
from app.services.tiss.lote_manager import LoteManagerService
from app.services.tiss.response_handler import ResponseHandlerService

router = APIRouter(prefix="/tiss/lotes", tags=["TISS Lotes"])


@router.post("", response_model=CreateLoteResponse, status_code=status.HTTP_201_CREATED)
async def create_lote(
    lote_data: CreateLoteRequest,
    current_user: CurrentUser = Depends(require_billing),
    db: AsyncSession = Depends(get_async_session)
):
    """Create a lote from guias of one operadora"""
    service = LoteManagerService(db)
    result = await service.create_lote(
        clinic_id=current_user.clinic_id,
        operadora_id=lote_data.operadora_id,
        guia_ids=lote_data.guia_ids,
        created_by=current_user.user_id,
    )
    return service_response(result, success_status=status.HTTP_201_CREATED)


@router.get("/{lote_id}", response_model=LoteResponse)
async def get_lote(
    lote_id: int,
    current_user: CurrentUser = Depends(require_billing),
    db: AsyncSession = Depends(get_async_session)
):
    lote = await LoteManagerService(db).get_lote(current_user.clinic_id, lote_id)
    if lote is None:
        raise NotFoundException("Lote não encontrado")
    return LoteResponse.model_validate(lote)


@router.delete("/{lote_id}", response_model=TISSOperationResponse)
async def delete_lote(
    lote_id: int,
    current_user: CurrentUser = Depends(require_billing),
    db: AsyncSession = Depends(get_async_session)
):
    """Delete a lote that was not sent yet and release its guias"""
    result = await LoteManagerService(db).delete_lote(current_user.clinic_id, lote_id)
    return service_response(result)


@router.post("/{lote_id}/xml", response_model=LoteXmlResponse)
async def generate_lote_xml(
    lote_id: int,
    current_user: CurrentUser = Depends(require_billing),
    db: AsyncSession = Depends(get_async_session)
):
    """Generate the lote XML (moves the lote to pronto)"""
    result = await LoteManagerService(db).generate_lote_xml(current_user.clinic_id, lote_id)
    return service_response(result)


@router.post("/{lote_id}/demonstrativo", response_model=ProcessDemonstrativoResponse)
async def process_demonstrativo(
    lote_id: int,
    demonstrativo: DemonstrativoRequest,
    current_user: CurrentUser = Depends(require_billing),
    db: AsyncSession = Depends(get_async_session)
):
    """Apply the operadora's demonstrativo de análise de conta to a sent lote"""
    result = await ResponseHandlerService(db).process_demonstrativo(
        current_user.clinic_id, lote_id, demonstrativo.xml
    )
    return service_response(result)


@router.patch("/{lote_id}/status", response_model=TISSOperationResponse)
async def update_lote_status(
    lote_id: int,
    status_data: UpdateLoteStatusRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_session)
):
    """Manual status correction (e.g. an operadora that answers out of band)"""
    extra = {"error_message": status_data.error_message} if status_data.error_message is not None else None
    result = await LoteManagerService(db).update_lote_status(
        current_user.clinic_id, lote_id, status_data.status, extra
    )
    return service_response(result)
