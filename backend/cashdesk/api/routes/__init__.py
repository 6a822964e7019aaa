"""API routes."""

from fastapi import APIRouter

from cashdesk.api.routes import cashier, notifications, supervisor

api_router = APIRouter()

api_router.include_router(cashier.router, prefix="/cashier", tags=["cashier-sessions"])
api_router.include_router(supervisor.router, prefix="/supervisor", tags=["supervisor", "monitoring"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
