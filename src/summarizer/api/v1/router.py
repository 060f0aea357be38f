"""V1 API router -- aggregates all v1 endpoint routers.

The general rate-limit policy applies to every v1 route except health
probes; route-specific policies are declared on the endpoints themselves.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from src.summarizer.api.deps import rate_limit
from src.summarizer.api.v1 import admin, health, mail, summaries

router = APIRouter(prefix="/api/v1")

router.include_router(health.router)

_general = [Depends(rate_limit("general"))]
router.include_router(summaries.router, dependencies=_general)
router.include_router(mail.router, dependencies=_general)
router.include_router(admin.router, dependencies=_general)
