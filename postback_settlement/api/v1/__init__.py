"""
API v1 router initialization and setup.
"""
from fastapi import APIRouter
from .endpoints import admin, cron

api_router = APIRouter()

api_router.include_router(
    cron.router,
    prefix="/cron",
    tags=["cron"]
)

api_router.include_router(
    admin.router,
    prefix="/admin/settlement",
    tags=["settlement"]
)
