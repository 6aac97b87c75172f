"""API v1 router aggregator.

All v1 endpoint routers are included here.
"""

from fastapi import APIRouter

from authgate.api.v1 import auth

router = APIRouter()

router.include_router(auth.router, prefix="/auth", tags=["auth"])
