from fastapi import APIRouter

from .endpoints import (
    accounts,
    boost,
    commissions,
    configuration,
    health,
    ledger,
    loyalty,
    payments,
)

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(accounts.router)
router.include_router(loyalty.router)
router.include_router(ledger.router)
router.include_router(commissions.router)
router.include_router(configuration.router)
router.include_router(boost.router)
router.include_router(payments.router)
