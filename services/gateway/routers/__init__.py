from .auth import router as auth_router
from .company import router as company_router
from .employee import router as employee_router
from .owner import router as owner_router
from .hotels import router as hotels_router

__all__ = [
    "auth_router",
    "company_router",
    "employee_router",
    "owner_router",
    "hotels_router",
]
