from fastapi import APIRouter

from rentbill.api.v1.endpoints import bills, payments, rooms, tenants

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(rooms.building_router, prefix="/buildings", tags=["Buildings"])
api_router.include_router(rooms.router, prefix="/rooms", tags=["Rooms"])
api_router.include_router(tenants.router, prefix="/tenants", tags=["Tenants"])
api_router.include_router(bills.router, prefix="/bills", tags=["Bills"])
api_router.include_router(payments.router, prefix="/payments", tags=["Payments"])
