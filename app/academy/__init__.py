"""
Academy Module

Youth sports academy membership and session registration
- Plan catalog, entitlement rules and monthly quota
- Session registration with a derived capacity ledger
- QR check-in at the door
- Stripe subscription mirror
"""

from .router import router as academy_router
from .models import (
    UserRole,
    SubscriptionStatus,
)
from .dependencies import AcademyCaller

__all__ = [
    "academy_router",
    "UserRole",
    "SubscriptionStatus",
    "AcademyCaller",
]
