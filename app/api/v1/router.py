"""
Version 1 routes: contract operations and service status
"""

from fastapi import APIRouter

from app.api.v1 import contracts, health

api_router = APIRouter()

api_router.include_router(contracts.router, prefix="/contracts", tags=["contracts"])
api_router.include_router(health.router, prefix="/health", tags=["health"])
