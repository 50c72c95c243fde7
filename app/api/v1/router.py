from fastapi import APIRouter

# Public: catalog reads
from app.api.v1.public.catalog import slots_router, rooms_router, products_router

# Public: bookings, payments, vouchers
from app.api.v1.public.bookings import router as bookings_router
from app.api.v1.public.payments import router as payments_router
from app.api.v1.public.vouchers import router as vouchers_router

# Admin
from app.api.v1.admin.tickets import router as admin_tickets_router
from app.api.v1.admin.promotions import router as admin_promotions_router

api_router = APIRouter()

# --- Public: catalog ---
api_router.include_router(slots_router)
api_router.include_router(rooms_router)
api_router.include_router(products_router)

# --- Public: booking flow ---
api_router.include_router(bookings_router)
api_router.include_router(payments_router)
api_router.include_router(vouchers_router)

# --- Admin ---
api_router.include_router(admin_tickets_router)
api_router.include_router(admin_promotions_router)
