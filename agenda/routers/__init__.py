"""API routers."""

from agenda.routers.appointments import router as appointments_router
from agenda.routers.calendar import router as calendar_router
from agenda.routers.customers import router as customers_router
from agenda.routers.income import router as income_router
from agenda.routers.integrations import router as integrations_router
from agenda.routers.settings import router as settings_router

__all__ = [
    "appointments_router",
    "calendar_router",
    "customers_router",
    "income_router",
    "integrations_router",
    "settings_router",
]
