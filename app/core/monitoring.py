"""
Application monitoring and error tracking with Sentry
"""
import logging
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from sentry_sdk.integrations.asyncio import AsyncioIntegration

from config import settings

logger = logging.getLogger(__name__)


def _strip_secrets(event, hint):
    """Drop request bodies: certificate uploads carry the PFX and its password"""
    request = event.get("request")
    if request:
        if "data" in request:
            request["data"] = "[removed]"
        headers = request.get("headers") or {}
        for name in list(headers):
            if name.lower() in ("authorization", "cookie"):
                headers[name] = "[removed]"
    return event


def init_sentry() -> bool:
    """
    Initialize Sentry for error tracking and performance monitoring
    """
    if not settings.SENTRY_DSN:
        return False

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENVIRONMENT,
        integrations=[
            FastApiIntegration(),
            SqlalchemyIntegration(),
            AsyncioIntegration(),
        ],
        traces_sample_rate=1.0 if settings.ENVIRONMENT == "development" else 0.1,
        release=settings.APP_VERSION,
        send_default_pii=False,
        before_send=_strip_secrets,
    )
    logger.info(f"Sentry initialized for environment {settings.ENVIRONMENT}")
    return True
