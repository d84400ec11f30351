"""
Main API router that includes all route modules.
"""
from fastapi import APIRouter
from app.api.routes import auth, users, trips, spends, balances, settlements, fx_rates

api_router = APIRouter()

api_router.include_router(auth.router)
api_router.include_router(users.router)
api_router.include_router(trips.router)
api_router.include_router(spends.router)
api_router.include_router(balances.router)
api_router.include_router(settlements.router)
api_router.include_router(fx_rates.router)
