from fastapi import APIRouter

from odds_engine.api.v1.closing import router as closing_router
from odds_engine.api.v1.clv import router as clv_router
from odds_engine.api.v1.odds import router as odds_router
from odds_engine.api.v1.picks import router as picks_router
from odds_engine.api.v1.price_check import router as price_check_router
from odds_engine.api.v1.system import router as system_router

api_router = APIRouter()
api_router.include_router(odds_router)
api_router.include_router(picks_router)
api_router.include_router(closing_router)
api_router.include_router(clv_router)
api_router.include_router(price_check_router)
api_router.include_router(system_router)
