from fastapi import APIRouter
from haulage.api.v1.routes.bookings import router as bookings_router
from haulage.api.v1.routes.payments import router as payments_router
from haulage.api.v1.routes.carrier import router as carrier_router
from haulage.api.v1.routes.admin import router as admin_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(bookings_router)
api_router.include_router(payments_router)
api_router.include_router(carrier_router)
api_router.include_router(admin_router)
