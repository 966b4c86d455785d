from fastapi import APIRouter

from .endpoints import (
    admin,
    credits,
    gift_cards,
    health,
    maker,
    observability,
    orders,
)

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(credits.router)
router.include_router(gift_cards.router)
router.include_router(orders.router)
router.include_router(orders.admin_router)
router.include_router(maker.router)
router.include_router(admin.router)
router.include_router(observability.router)
