"""
Academy Models

Pydantic request/response models
"""

from datetime import date, datetime
from typing import Optional, List, Dict, Any
from enum import Enum
from pydantic import BaseModel, Field, model_validator


# =============================================
# Enums
# =============================================

class UserRole(str, Enum):
    """Account role (profiles.role)"""
    ADMIN = "ADMIN"
    PARENT = "PARENT"


class SubscriptionStatus(str, Enum):
    """Subscription status as mirrored from the processor"""
    active = "active"
    trialing = "trialing"
    paused = "paused"
    past_due = "past_due"
    canceled = "canceled"
    none = "none"         # no subscription row at all


# Statuses that entitle an athlete to register
ENTITLED_STATUSES = (SubscriptionStatus.active.value, SubscriptionStatus.trialing.value)

# Statuses shown as a current plan in listings (paused keeps its plan)
CURRENT_STATUSES = ENTITLED_STATUSES + (SubscriptionStatus.paused.value,)


# =============================================
# Session Models
# =============================================

class SessionCreate(BaseModel):
    """Session creation (admin)"""
    title: str = Field(..., min_length=1, max_length=120)
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    location: Optional[str] = None
    max_slots: int = Field(default=20, ge=1, le=500)
    allowed_packages: Optional[List[str]] = None  # plan ids, e.g. ["p_elite", "p_pro"]
    min_age: Optional[int] = Field(default=None, ge=0, le=99)
    max_age: Optional[int] = Field(default=None, ge=0, le=99)

    @model_validator(mode="after")
    def _check_ranges(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        if self.min_age is not None and self.max_age is not None and self.min_age > self.max_age:
            raise ValueError("min_age must not exceed max_age")
        return self

    def to_row(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "location": self.location,
            "max_slots": self.max_slots,
            "allowed_packages": self.allowed_packages,
            "min_age": self.min_age,
            "max_age": self.max_age,
        }


class SessionUpdate(BaseModel):
    """Session update (admin)"""
    title: Optional[str] = None
    description: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    location: Optional[str] = None
    max_slots: Optional[int] = Field(default=None, ge=1, le=500)
    allowed_packages: Optional[List[str]] = None
    min_age: Optional[int] = Field(default=None, ge=0, le=99)
    max_age: Optional[int] = Field(default=None, ge=0, le=99)

    @model_validator(mode="after")
    def _check_ranges(self):
        # Pairs given together are checked here; a partial update is checked
        # against the stored row by AdminOperations.update_session
        if self.start_time and self.end_time and self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        if self.min_age is not None and self.max_age is not None and self.min_age > self.max_age:
            raise ValueError("min_age must not exceed max_age")
        return self

    def to_fields(self) -> Dict[str, Any]:
        fields = self.model_dump(exclude_none=True)
        for key in ("start_time", "end_time"):
            if key in fields:
                fields[key] = fields[key].isoformat()
        return fields


class SessionView(BaseModel):
    """Session with its derived capacity view"""
    id: str
    title: str
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    location: Optional[str] = None
    max_slots: int
    booked_slots: int = 0
    available_slots: int = 0
    checked_in_count: int = 0
    is_full: bool = False
    status_label: str = "open"   # open | waitlist
    registered_athlete_ids: List[str] = []
    checked_in_athlete_ids: List[str] = []
    allowed_packages: Optional[List[str]] = None
    min_age: Optional[int] = None
    max_age: Optional[int] = None


class SessionBulkCreate(BaseModel):
    """Several sessions at once (weekly schedule)"""
    sessions: List[SessionCreate] = Field(..., min_length=1)


# =============================================
# Athlete / Usage Models
# =============================================

class UsageStats(BaseModel):
    """Current billing-month usage"""
    used: int
    limit: int
    plan_name: str


class AthleteView(BaseModel):
    """Athlete with derived subscription status and usage"""
    id: str
    parent_id: str
    first_name: str
    last_name: str
    dob: Optional[date] = None
    sports: List[str] = []
    qr_code: str
    image_url: Optional[str] = None
    subscription_status: SubscriptionStatus = SubscriptionStatus.none
    subscription_package_id: Optional[str] = None
    usage_stats: Optional[UsageStats] = None


class AthleteCreate(BaseModel):
    """Athlete registration by a guardian"""
    first_name: str = Field(..., min_length=1, max_length=60)
    last_name: str = Field(..., min_length=1, max_length=60)
    dob: Optional[date] = None
    sports: List[str] = []


class GuardianView(BaseModel):
    """Guardian / staff account"""
    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    role: UserRole = UserRole.PARENT
    stripe_customer_id: Optional[str] = None


# =============================================
# Registration / Check-in Models
# =============================================

class EligibilityResponse(BaseModel):
    """Advisory eligibility answer"""
    allowed: bool
    code: Optional[str] = None
    message: Optional[str] = None
    plan_name: Optional[str] = None
    used: Optional[int] = None
    limit: Optional[int] = None


class RegistrationRequest(BaseModel):
    """Register an athlete for a session"""
    athlete_id: str


class RegistrationResponse(BaseModel):
    """Registration result with the re-read session ledger"""
    success: bool = True
    message: str
    waitlisted: bool = False
    session: SessionView


class UnregisterResponse(BaseModel):
    """Unregistration result (idempotent)"""
    success: bool
    message: str
    removed: bool = False
    code: Optional[str] = None


class CheckInRequest(BaseModel):
    """Scanned QR payload (an empty scan is answered with InvalidCode)"""
    code: str = ""


class CheckInResponse(BaseModel):
    """Check-in result, never an error response"""
    success: bool
    message: str
    code: Optional[str] = None
    athlete_name: Optional[str] = None


class SeriesDeleteResponse(BaseModel):
    """Future series deletion"""
    success: bool = True
    deleted: int


# =============================================
# Billing Models
# =============================================

class BillingSyncRequest(BaseModel):
    """Manual sync with an already retrieved checkout session object"""
    checkout_session: Dict[str, Any]


class WebhookAck(BaseModel):
    """Webhook acknowledgement"""
    received: bool = True
    handled: bool = False
    event_type: Optional[str] = None


class ActiveSubscription(BaseModel):
    """Billing Bridge view of an athlete's subscription"""
    plan_id: str
    status: SubscriptionStatus
    current_period_end: Optional[datetime] = None
