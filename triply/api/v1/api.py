from fastapi import APIRouter
from triply.api.v1.routes.users import router as users_router
from triply.api.v1.routes.bus_routes import router as routes_router
from triply.api.v1.routes.schedules import router as schedules_router
from triply.api.v1.routes.bookings import router as bookings_router
from triply.api.v1.routes.manifests import router as manifests_router
from triply.api.v1.routes.outbox import router as outbox_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(users_router)
api_router.include_router(routes_router)
api_router.include_router(schedules_router)
api_router.include_router(bookings_router)
api_router.include_router(manifests_router)
api_router.include_router(outbox_router)
