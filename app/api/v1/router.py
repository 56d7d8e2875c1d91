from fastapi import APIRouter
from app.api.v1.routes import subscriptions, admin, cycles, pricing

api_router = APIRouter()

api_router.include_router(subscriptions.router, prefix="/subscriptions", tags=["subscriptions"])
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
api_router.include_router(cycles.router, prefix="/cycles", tags=["cycles"])
api_router.include_router(pricing.router, prefix="/pricing", tags=["pricing"])
