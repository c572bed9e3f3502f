"""Main API router that includes versioned routers."""

from fastapi import APIRouter

from api.v1 import db_check, health

# Main API router
api_router = APIRouter()

# Include v1 routers
v1_router = APIRouter(prefix="/v1")
v1_router.include_router(health.router, tags=["health"])
v1_router.include_router(db_check.router, tags=["database"])

api_router.include_router(v1_router)
