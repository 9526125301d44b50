from fastapi import APIRouter

from app.api.v1.health import router as health_router
from app.api.v1.users import router as users_router
from app.api.v1.products import router as products_router
from app.api.v1.wallet import router as wallet_router
from app.api.v1.notifications import router as notifications_router
from app.api.v1.ratings import router as ratings_router
from app.api.v1.maintenance import router as maintenance_router


v1_router = APIRouter()

# ------------------------------------------------------------------
# SYSTEM / CORE
# ------------------------------------------------------------------
v1_router.include_router(health_router, tags=["health"])
v1_router.include_router(users_router)

# ------------------------------------------------------------------
# MARKET OPS
# ------------------------------------------------------------------
v1_router.include_router(products_router)
v1_router.include_router(wallet_router)
v1_router.include_router(ratings_router)
v1_router.include_router(notifications_router)

# ------------------------------------------------------------------
# SCHEDULER HOOKS
# ------------------------------------------------------------------
v1_router.include_router(maintenance_router)
