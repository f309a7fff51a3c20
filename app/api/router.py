from fastapi import APIRouter

from app.api.routes.availability import router as availability_router
from app.api.routes.bookings import router as bookings_router
from app.api.routes.health import router as health_router
from app.api.routes.scheduling import router as scheduling_router
from app.api.routes.timezones import router as timezones_router

api_router = APIRouter()
v1_router = APIRouter(prefix="/v1")

api_router.include_router(health_router)

# Unversioned routes used by the current web client.
api_router.include_router(scheduling_router)
api_router.include_router(availability_router)
api_router.include_router(bookings_router)
api_router.include_router(timezones_router)

v1_router.include_router(scheduling_router)
v1_router.include_router(availability_router)
v1_router.include_router(bookings_router)
v1_router.include_router(timezones_router)
api_router.include_router(v1_router)
