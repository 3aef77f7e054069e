"""
Academy Dependencies

Caller context, role checks and service wiring
"""

from functools import lru_cache
from typing import Optional

from fastapi import Depends, HTTPException, Request, status

from app.config import get_settings
from database.store import AcademyStore, get_store
from .billing import BillingBridge
from .catalog import PlanCatalog, build_catalog
from .checkin import CheckInProcessor
from .entitlement import EntitlementEngine
from .errors import PermissionDenied
from .models import UserRole
from .registration import AdminOperations, RegistrationOperations

# Test mode: ACADEMY_TEST_MODE=1 logs in as the fixed staff account
TEST_CALLER_CONFIG = {
    "user_id": "00000000-0000-0000-0000-000000000001",
    "role": UserRole.ADMIN,
    "full_name": "Test Coach",
    "email": "coach@example.com",
}


class AcademyCaller:
    """Authenticated account making the request"""

    def __init__(
        self,
        user_id: str,
        role: UserRole,
        full_name: str = "",
        email: Optional[str] = None
    ):
        self.user_id = user_id
        self.role = role
        self.full_name = full_name
        self.email = email

    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


async def get_current_caller(request: Request) -> AcademyCaller:
    """
    Resolve the caller from a Supabase Auth bearer token and the profiles row.
    """
    settings = get_settings()

    if settings.ACADEMY_TEST_MODE:
        return AcademyCaller(**TEST_CALLER_CONFIG)

    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required"
        )

    token = auth_header.split(" ")[1]

    try:
        from database.supabase_client import get_supabase_client

        supabase = get_supabase_client()
        user_response = supabase.auth.get_user(token)

        if not user_response or not user_response.user:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token"
            )

        user = user_response.user
        profile = get_store().get_profile(user.id)
        if not profile:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Profile not found"
            )

        return AcademyCaller(
            user_id=user.id,
            role=UserRole(profile.get("role") or UserRole.PARENT.value),
            full_name=f"{profile.get('first_name') or ''} {profile.get('last_name') or ''}".strip(),
            email=profile.get("email") or user.email
        )

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Authentication error: {str(e)}"
        )


def require_admin(caller: AcademyCaller = Depends(get_current_caller)) -> AcademyCaller:
    """Staff (ADMIN) only"""
    if not caller.is_admin():
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return caller


# =============================================
# Service wiring
# =============================================

@lru_cache()
def get_catalog() -> PlanCatalog:
    return build_catalog(get_settings())


def get_academy_store() -> AcademyStore:
    return get_store()


def get_engine(
    store: AcademyStore = Depends(get_academy_store),
    catalog: PlanCatalog = Depends(get_catalog)
) -> EntitlementEngine:
    return EntitlementEngine(store, catalog)


def get_registration_ops(
    caller: AcademyCaller = Depends(get_current_caller),
    store: AcademyStore = Depends(get_academy_store),
    engine: EntitlementEngine = Depends(get_engine)
) -> RegistrationOperations:
    return RegistrationOperations(store, engine, caller, enforce_capacity=get_settings().ENFORCE_CAPACITY)


def get_admin_ops(
    caller: AcademyCaller = Depends(require_admin),
    store: AcademyStore = Depends(get_academy_store),
    engine: EntitlementEngine = Depends(get_engine)
) -> AdminOperations:
    try:
        return AdminOperations(store, engine, caller)
    except PermissionDenied as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=e.message)


def get_checkin_processor(
    store: AcademyStore = Depends(get_academy_store)
) -> CheckInProcessor:
    return CheckInProcessor(store, allow_walk_in=get_settings().ALLOW_WALK_IN_CHECKIN)


def get_billing_bridge(
    store: AcademyStore = Depends(get_academy_store)
) -> BillingBridge:
    return BillingBridge(store)
