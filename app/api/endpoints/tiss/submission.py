"""
TISS Submission Endpoints
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_async_session
from app.core.auth import CurrentUser
from app.api.endpoints.tiss.common import require_billing, service_response
from app.schemas.tiss import SendLoteResponse
from app.services.tiss.submission import HTTPTransport, LoteSenderService

router = APIRouter(prefix="/tiss/submission", tags=["TISS Submission"])


def get_http_transport() -> HTTPTransport:
    return HTTPTransport()


@router.post("/{lote_id}/send", response_model=SendLoteResponse)
async def send_lote(
    lote_id: int,
    current_user: CurrentUser = Depends(require_billing),
    db: AsyncSession = Depends(get_async_session),
    transport: HTTPTransport = Depends(get_http_transport),
):
    """Sign and send a lote to its operadora"""
    sender = LoteSenderService(db, transport=transport)
    result = await sender.send_lote(current_user.clinic_id, lote_id)
    return service_response(result)


@router.post("/{lote_id}/retry", response_model=SendLoteResponse)
async def retry_send_lote(
    lote_id: int,
    current_user: CurrentUser = Depends(require_billing),
    db: AsyncSession = Depends(get_async_session),
    transport: HTTPTransport = Depends(get_http_transport),
):
    """Resend a lote whose last attempt failed"""
    sender = LoteSenderService(db, transport=transport)
    result = await sender.retry_send_lote(current_user.clinic_id, lote_id)
    return service_response(result)
