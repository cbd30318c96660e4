"""
API модули
"""
from fastapi import APIRouter

from pushrelay.core.config import settings
from .send import router as send_router

# Общий роутер API
router = APIRouter(prefix=settings.API_PREFIX)

router.include_router(send_router, tags=["push"])

__all__ = ["router"]
