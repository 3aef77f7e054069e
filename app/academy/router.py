"""
Academy Router

Session schedule, registration, QR check-in, admin roster and billing webhook
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from loguru import logger

from app.config import get_settings
from database.store import StoreError
from .billing import BillingBridge, WebhookVerificationError, verify_event
from .catalog import AGE_BRACKETS, PlanCatalog
from .checkin import CheckInProcessor
from .dependencies import (
    AcademyCaller,
    get_admin_ops,
    get_billing_bridge,
    get_catalog,
    get_checkin_processor,
    get_registration_ops,
    require_admin,
)
from .errors import AcademyError
from .models import (
    ActiveSubscription,
    AthleteCreate,
    AthleteView,
    BillingSyncRequest,
    CheckInRequest,
    CheckInResponse,
    EligibilityResponse,
    GuardianView,
    RegistrationRequest,
    RegistrationResponse,
    SeriesDeleteResponse,
    SessionBulkCreate,
    SessionCreate,
    SessionUpdate,
    SessionView,
    UnregisterResponse,
    WebhookAck,
)
from .registration import AdminOperations, RegistrationOperations

router = APIRouter(prefix="/academy", tags=["Academy"])


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, AcademyError):
        return HTTPException(status_code=e.status_code, detail=e.message)
    logger.error(f"Storage error: {e}")
    return HTTPException(status_code=503, detail="Storage temporarily unavailable, please retry")


# =============================================
# Plans
# =============================================

@router.get("/plans")
async def list_plans(catalog: PlanCatalog = Depends(get_catalog)):
    """Training packages (reference data)"""
    return [
        {
            "id": plan.id,
            "name": plan.name,
            "price": plan.price,
            "billing_period": plan.billing_period,
            "max_sessions": plan.max_sessions,
            "description": plan.description,
            "features": list(plan.features),
            "sibling_discount_eligible": plan.sibling_discount_eligible,
        }
        for plan in catalog
    ]


@router.get("/age-brackets")
async def age_brackets():
    """Age presets for session creation"""
    return AGE_BRACKETS


# =============================================
# Sessions & registration
# =============================================

@router.get("/sessions", response_model=List[SessionView])
async def list_sessions(ops: RegistrationOperations = Depends(get_registration_ops)):
    """Schedule, start time ascending, with capacity"""
    try:
        return await ops.list_sessions()
    except (AcademyError, StoreError) as e:
        raise _http_error(e)


@router.get("/sessions/{session_id}", response_model=SessionView)
async def get_session(session_id: str, ops: RegistrationOperations = Depends(get_registration_ops)):
    try:
        return await ops.get_session(session_id)
    except (AcademyError, StoreError) as e:
        raise _http_error(e)


@router.get("/athletes/{athlete_id}/eligibility/{session_id}", response_model=EligibilityResponse)
async def check_eligibility(
    session_id: str,
    athlete_id: str,
    ops: RegistrationOperations = Depends(get_registration_ops)
):
    """
    Advisory eligibility (used by the schedule page to label the button).
    Registration re-checks everything.
    """
    try:
        result = await ops.eligibility(session_id, athlete_id)
    except (AcademyError, StoreError) as e:
        raise _http_error(e)

    return EligibilityResponse(
        allowed=result.allowed,
        code=result.reason.code if result.reason else None,
        message=result.reason.message if result.reason else None,
        plan_name=result.plan.name if result.plan else None,
        used=result.used,
        limit=result.limit
    )


@router.post("/sessions/{session_id}/register", response_model=RegistrationResponse)
async def register(
    session_id: str,
    body: RegistrationRequest,
    ops: RegistrationOperations = Depends(get_registration_ops)
):
    """Register an athlete; a full session still accepts the join (waitlisted)"""
    try:
        outcome = await ops.register(session_id, body.athlete_id)
    except (AcademyError, StoreError) as e:
        raise _http_error(e)

    return RegistrationResponse(
        message=outcome.message,
        waitlisted=outcome.waitlisted,
        session=outcome.session
    )


@router.delete("/sessions/{session_id}/register/{athlete_id}", response_model=UnregisterResponse)
async def unregister(
    session_id: str,
    athlete_id: str,
    ops: RegistrationOperations = Depends(get_registration_ops)
):
    """Cancel a registration (idempotent)"""
    return await ops.unregister(session_id, athlete_id)


@router.post("/sessions/{session_id}/check-in", response_model=CheckInResponse)
async def check_in(
    session_id: str,
    body: CheckInRequest,
    caller: AcademyCaller = Depends(require_admin),
    processor: CheckInProcessor = Depends(get_checkin_processor)
):
    """QR scan at the door (coach device)"""
    return await processor.check_in(session_id, body.code)


# =============================================
# Athletes (guardian)
# =============================================

@router.get("/athletes", response_model=List[AthleteView])
async def my_athletes(ops: RegistrationOperations = Depends(get_registration_ops)):
    """Caller's athletes with subscription status and monthly usage"""
    try:
        return await ops.list_athletes()
    except (AcademyError, StoreError) as e:
        raise _http_error(e)


@router.get("/athletes/{athlete_id}/subscription", response_model=Optional[ActiveSubscription])
async def athlete_subscription(
    athlete_id: str,
    ops: RegistrationOperations = Depends(get_registration_ops),
    bridge: BillingBridge = Depends(get_billing_bridge)
):
    """Current mirrored subscription, null when there is none"""
    try:
        ops.own_athlete(athlete_id)
        return bridge.get_active_subscription(athlete_id)
    except (AcademyError, StoreError) as e:
        raise _http_error(e)


@router.post("/athletes", response_model=AthleteView)
async def add_athlete(body: AthleteCreate, ops: RegistrationOperations = Depends(get_registration_ops)):
    try:
        return await ops.add_athlete(body)
    except (AcademyError, StoreError) as e:
        raise _http_error(e)


# =============================================
# Admin
# =============================================

@router.post("/admin/sessions", response_model=SessionView)
async def create_session(body: SessionCreate, admin: AdminOperations = Depends(get_admin_ops)):
    try:
        return await admin.create_session(body)
    except (AcademyError, StoreError) as e:
        raise _http_error(e)


@router.post("/admin/sessions/bulk", response_model=List[SessionView])
async def create_sessions(body: SessionBulkCreate, admin: AdminOperations = Depends(get_admin_ops)):
    """Publish a whole schedule at once"""
    try:
        return await admin.create_sessions(body.sessions)
    except (AcademyError, StoreError) as e:
        raise _http_error(e)


@router.put("/admin/sessions/{session_id}", response_model=SessionView)
async def update_session(
    session_id: str,
    body: SessionUpdate,
    admin: AdminOperations = Depends(get_admin_ops)
):
    try:
        return await admin.update_session(session_id, body)
    except (AcademyError, StoreError) as e:
        raise _http_error(e)


@router.delete("/admin/sessions/{session_id}")
async def delete_session(session_id: str, admin: AdminOperations = Depends(get_admin_ops)):
    try:
        await admin.delete_session(session_id)
    except (AcademyError, StoreError) as e:
        raise _http_error(e)
    return {"success": True, "message": "Session deleted"}


@router.delete("/admin/sessions/{session_id}/series", response_model=SeriesDeleteResponse)
async def delete_series(session_id: str, admin: AdminOperations = Depends(get_admin_ops)):
    """This session and every later one with the same title"""
    try:
        deleted = await admin.delete_future_series(session_id)
    except (AcademyError, StoreError) as e:
        raise _http_error(e)
    return SeriesDeleteResponse(deleted=deleted)


@router.post("/admin/sessions/{session_id}/roster/{athlete_id}", response_model=SessionView)
async def roster_add(session_id: str, athlete_id: str, admin: AdminOperations = Depends(get_admin_ops)):
    """Staff override: add without entitlement checks"""
    try:
        return await admin.roster_add(session_id, athlete_id)
    except (AcademyError, StoreError) as e:
        raise _http_error(e)


@router.delete("/admin/sessions/{session_id}/roster/{athlete_id}", response_model=SessionView)
async def roster_remove(session_id: str, athlete_id: str, admin: AdminOperations = Depends(get_admin_ops)):
    try:
        return await admin.roster_remove(session_id, athlete_id)
    except (AcademyError, StoreError) as e:
        raise _http_error(e)


@router.get("/admin/athletes", response_model=List[AthleteView])
async def all_athletes(admin: AdminOperations = Depends(get_admin_ops)):
    try:
        return await admin.list_all_athletes()
    except (AcademyError, StoreError) as e:
        raise _http_error(e)


@router.get("/admin/users", response_model=List[GuardianView])
async def all_users(admin: AdminOperations = Depends(get_admin_ops)):
    try:
        return await admin.list_users()
    except (AcademyError, StoreError) as e:
        raise _http_error(e)


# =============================================
# Billing
# =============================================

@router.post("/billing/webhook", response_model=WebhookAck)
async def stripe_webhook(request: Request, bridge: BillingBridge = Depends(get_billing_bridge)):
    """
    Stripe webhook relay target.

    Errors other than a bad signature return 500 and Stripe redelivers.
    """
    payload = await request.body()
    signature = request.headers.get("Stripe-Signature")

    try:
        event = verify_event(payload, signature, get_settings().STRIPE_WEBHOOK_SECRET)
    except WebhookVerificationError as e:
        logger.warning(f"Webhook signature verification failed: {e}")
        raise HTTPException(status_code=400, detail=f"Webhook Error: {e}")

    try:
        handled = await bridge.apply_event(event)
    except StoreError as e:
        logger.error(f"Webhook processing error: {e}")
        raise HTTPException(status_code=500, detail="Webhook processing failed")

    return WebhookAck(handled=handled, event_type=event.get("type"))


@router.post("/billing/sync")
async def sync_checkout(
    body: BillingSyncRequest,
    caller: AcademyCaller = Depends(require_admin),
    bridge: BillingBridge = Depends(get_billing_bridge)
):
    """Force a subscription sync from a retrieved checkout session"""
    try:
        saved = await bridge.sync_checkout_session(body.checkout_session)
    except StoreError as e:
        raise _http_error(e)
    return {"success": True, "subscription": saved}
