"""
Shared pieces of the TISS routers
"""

from fastapi import status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from app.core.auth import RoleChecker, UserRole
from app.core.error_handling import status_for_error_code
from app.schemas.tiss import TISSOperationResponse

require_billing = RoleChecker([UserRole.OWNER, UserRole.ADMIN, UserRole.PROFESSIONAL])
require_admin = RoleChecker([UserRole.OWNER, UserRole.ADMIN])


def service_response(result: TISSOperationResponse, success_status: int = status.HTTP_200_OK) -> JSONResponse:
    """Serialize a service result; failures get the HTTP status of their error_code"""
    status_code = success_status if result.success else status_for_error_code(result.error_code)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(result))
