from fastapi import APIRouter

from app.posledger.core.config import settings
from app.posledger.routers.approvals import router as approvals_router
from app.posledger.routers.health import router as health_router
from app.posledger.routers.metrics import router as metrics_router
from app.posledger.routers.purchases import router as purchases_router
from app.posledger.routers.sales import router as sales_router
from app.posledger.routers.serials import router as serials_router
from app.posledger.routers.stock import router as stock_router
from app.posledger.routers.transfers import router as transfers_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(stock_router, tags=["stock"])
api_router.include_router(serials_router, tags=["serials"])
api_router.include_router(purchases_router, tags=["purchases"])
api_router.include_router(sales_router, tags=["sales"])
api_router.include_router(transfers_router, tags=["transfers"])
api_router.include_router(approvals_router)
if settings.METRICS_ENABLED:
    api_router.include_router(metrics_router, tags=["ops"])
