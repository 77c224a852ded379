"""HTTP routers."""

from .admin import router as admin_router
from .analytics import router as analytics_router
from .auth import router as auth_router
from .campaigns import router as campaigns_router
from .escrow import router as escrow_router
from .pages import router as pages_router
from .razorpay import router as razorpay_router
from .tracking import router as tracking_router
from .wallet import router as wallet_router

__all__ = [
    "admin_router",
    "analytics_router",
    "auth_router",
    "campaigns_router",
    "escrow_router",
    "pages_router",
    "razorpay_router",
    "tracking_router",
    "wallet_router",
]
