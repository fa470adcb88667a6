from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from contextlib import asynccontextmanager
import uvicorn
import logging
from dotenv import load_dotenv

# Load environment variables from .env file FIRST, before any other imports
load_dotenv()

# SQLAlchemy engine logging at WARNING to reduce query log noise
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

from config import settings
from app.api.endpoints.tiss import (
    lotes_router,
    submission_router,
    recurso_router,
    certificate_router,
    glosa_router,
)
from app.core.error_handling import (
    AppException,
    app_exception_handler,
    validation_exception_handler,
    general_exception_handler,
)
from app.core.monitoring import init_sentry

logger = logging.getLogger(__name__)


def get_cors_origins():
    """Get CORS origins from BACKEND_CORS_ORIGINS (comma separated)"""
    return [origin.strip() for origin in settings.BACKEND_CORS_ORIGINS.split(",") if origin.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup and shutdown"""
    logger.info(f"{settings.APP_NAME} {settings.APP_VERSION} starting up ({settings.ENVIRONMENT})")
    if init_sentry():
        logger.info("Sentry monitoring initialized")
    yield
    logger.info(f"{settings.APP_NAME} shutting down")


app = FastAPI(
    title=settings.APP_NAME,
    description="Faturamento TISS: lotes, envio às operadoras, demonstrativos e recursos de glosa",
    version=settings.APP_VERSION,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    max_age=3600,
)

app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, general_exception_handler)

# Include API routers with versioning
app.include_router(lotes_router, prefix=settings.API_V1_PREFIX)
app.include_router(submission_router, prefix=settings.API_V1_PREFIX)
app.include_router(recurso_router, prefix=settings.API_V1_PREFIX)
app.include_router(certificate_router, prefix=settings.API_V1_PREFIX)
app.include_router(glosa_router, prefix=settings.API_V1_PREFIX)


@app.get("/health")
async def health_check():
    return {"status": "healthy", "version": settings.APP_VERSION}


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )
