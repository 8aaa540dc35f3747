from fastapi import APIRouter

from app.api.v1.routers import (
    health,
    loan_applications,
    notifications,
    workflow,
)

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(loan_applications.router)
api_router.include_router(workflow.router)
api_router.include_router(notifications.router)

__all__ = ["api_router"]
