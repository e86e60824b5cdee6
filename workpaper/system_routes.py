"""
System Routes - Health

Public health check reporting the version, environment and the size of the
analytics rule registry.
"""

import logging
from datetime import datetime, timezone
from typing import Dict

from fastapi import APIRouter
from pydantic import BaseModel

from workpaper import config
from workpaper.analytics_engine import RULE_REGISTRY

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/system", tags=["system"])


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    version: str
    environment: str
    services: Dict[str, str]


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Basic health check endpoint.
    Public - no auth required.
    """
    services = {
        "analytics_rules": "healthy" if RULE_REGISTRY else "unavailable",
    }
    status = "healthy" if all(v == "healthy" for v in services.values()) else "degraded"

    return HealthResponse(
        status=status,
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=config.VERSION,
        environment=config.ENVIRONMENT,
        services=services,
    )
