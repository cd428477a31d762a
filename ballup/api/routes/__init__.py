"""
API routes - combined router from all domain modules.

The shared rate limiter lives in ballup.api.rate_limit; every sub-router
imports its tier limits from there.
"""

from fastapi import APIRouter

from ballup import config
from ballup.api.routes.auth import router as auth_router
from ballup.api.routes.users import router as users_router
from ballup.api.routes.games import router as games_router
from ballup.api.routes.locations import router as locations_router
from ballup.api.routes.admin import router as admin_router
from ballup.api.routes.realtime import router as realtime_router

router = APIRouter()
router.include_router(auth_router)
router.include_router(users_router)
router.include_router(games_router)
router.include_router(locations_router)
router.include_router(admin_router)
if config.ENABLE_SOCKETS:
    router.include_router(realtime_router)
