"""
TISS Recurso de Glosa Endpoints
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_async_session
from app.core.auth import CurrentUser
from app.api.endpoints.tiss.common import require_billing, service_response
from app.schemas.tiss import (
    CreateRecursoRequest,
    CreateRecursoResponse,
    RecursoStatusResponse,
    SendRecursoResponse,
)
from app.services.tiss.recurso_manager import RecursoManagerService

router = APIRouter(prefix="/tiss/recursos", tags=["TISS Recursos"])


@router.post("", response_model=CreateRecursoResponse, status_code=status.HTTP_201_CREATED)
async def create_recurso(
    recurso_data: CreateRecursoRequest,
    current_user: CurrentUser = Depends(require_billing),
    db: AsyncSession = Depends(get_async_session)
):
    """Appeal items of a glosa"""
    result = await RecursoManagerService(db).create_recurso(
        clinic_id=current_user.clinic_id,
        glosa_id=recurso_data.glosa_id,
        itens_contestados=recurso_data.itens_contestados,
        justificativa_geral=recurso_data.justificativa_geral,
        documentos_anexos=recurso_data.documentos_anexos,
        created_by=current_user.user_id,
    )
    return service_response(result, success_status=status.HTTP_201_CREATED)


@router.post("/{recurso_id}/send", response_model=SendRecursoResponse)
async def send_recurso(
    recurso_id: str,
    current_user: CurrentUser = Depends(require_billing),
    db: AsyncSession = Depends(get_async_session)
):
    result = await RecursoManagerService(db).send_recurso(current_user.clinic_id, recurso_id)
    return service_response(result)


@router.get("/{recurso_id}/status", response_model=RecursoStatusResponse)
async def get_recurso_status(
    recurso_id: str,
    current_user: CurrentUser = Depends(require_billing),
    db: AsyncSession = Depends(get_async_session)
):
    result = await RecursoManagerService(db).get_recurso_status(current_user.clinic_id, recurso_id)
    return service_response(result)
