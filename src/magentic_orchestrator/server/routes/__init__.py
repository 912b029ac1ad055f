"""
API Routes Module

Combines all API routes into a single router.
"""

from fastapi import APIRouter

from .execute import router as execute_router
from .executions import router as executions_router
from .health import router as health_router

api_router = APIRouter()

api_router.include_router(health_router, tags=["health"])
api_router.include_router(execute_router, tags=["execution"])
api_router.include_router(executions_router, tags=["executions"])
