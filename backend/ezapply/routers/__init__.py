"""EZApply - API Routers"""
from .auth import router as auth_router
from .account import router as account_router
from .reactivation import router as reactivation_router
from .admin import router as admin_router
from .credits import router as credits_router
from .scheduler import router as scheduler_router

__all__ = [
    "auth_router",
    "account_router",
    "reactivation_router",
    "admin_router",
    "credits_router",
    "scheduler_router",
]
