"""
Entitlement Engine

Decides whether an athlete may register for a session:
active subscription -> known plan -> age range -> plan restriction -> monthly quota.
Purely advisory, never writes.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from loguru import logger

from database.store import AcademyStore
from .catalog import Plan, PlanCatalog, calculate_age
from .clock import Clock, month_start, parse_date, utc_now
from .errors import (
    AcademyError,
    AgeOutOfRange,
    MonthlyQuotaExceeded,
    NoActiveSubscription,
    PlanRestricted,
    UnknownPlan,
)
from .models import CURRENT_STATUSES, ENTITLED_STATUSES, UsageStats


@dataclass
class EligibilityResult:
    """Outcome of an eligibility check"""
    allowed: bool
    reason: Optional[AcademyError] = None
    plan: Optional[Plan] = None
    used: Optional[int] = None
    limit: Optional[int] = None

    def raise_for_reason(self) -> None:
        if not self.allowed and self.reason is not None:
            raise self.reason


def pick_subscription(subscriptions: List[Dict[str, Any]], statuses) -> Optional[Dict[str, Any]]:
    """First subscription (newest first) whose status is in statuses"""
    for sub in subscriptions:
        if sub.get("status") in statuses:
            return sub
    return None


class EntitlementEngine:
    """Eligibility and usage rules"""

    def __init__(self, store: AcademyStore, catalog: PlanCatalog, clock: Clock = utc_now):
        self.store = store
        self.catalog = catalog
        self.clock = clock

    def billing_month_start(self) -> str:
        return month_start(self.clock()).isoformat()

    def count_usage(self, athlete_id: str) -> int:
        """Registrations created this billing month (recounted every call)"""
        return self.store.count_registrations_since(athlete_id, self.billing_month_start())

    async def check_eligibility(
        self,
        athlete: Dict[str, Any],
        session: Dict[str, Any],
        subscriptions: Optional[List[Dict[str, Any]]] = None
    ) -> EligibilityResult:
        """
        Evaluate the rules for (athlete, session).

        subscriptions may be passed when the caller already fetched them;
        otherwise they are read from the store.
        """
        if subscriptions is None:
            subscriptions = self.store.list_subscriptions(athlete["id"])

        # 1. Active subscription
        active = pick_subscription(subscriptions, ENTITLED_STATUSES)
        if active is None:
            return self._deny(athlete, NoActiveSubscription())

        # 2. Plan
        plan = self.catalog.resolve(active.get("package_id"))
        if plan is None:
            logger.warning(f"Unknown package_id {active.get('package_id')!r} on athlete {athlete['id']}")
            return self._deny(athlete, UnknownPlan())

        # 3. Age range
        min_age = session.get("min_age")
        max_age = session.get("max_age")
        dob = parse_date(athlete.get("dob"))
        if dob is not None and (min_age is not None or max_age is not None):
            age = calculate_age(dob, self.clock().date())
            low = min_age if min_age is not None else 0
            high = max_age if max_age is not None else 99
            if age < low or age > high:
                return self._deny(athlete, AgeOutOfRange(low, high, age), plan)

        # 4. Plan restriction
        allowed_packages = session.get("allowed_packages") or []
        if allowed_packages and plan.id not in allowed_packages:
            reason = PlanRestricted(self.catalog.names_for(allowed_packages), plan.name)
            return self._deny(athlete, reason, plan)

        # 5. Monthly quota
        used = self.count_usage(athlete["id"])
        if used >= plan.max_sessions:
            reason = MonthlyQuotaExceeded(plan.name, plan.max_sessions)
            return self._deny(athlete, reason, plan, used)

        return EligibilityResult(allowed=True, plan=plan, used=used, limit=plan.max_sessions)

    def _deny(self, athlete, reason: AcademyError, plan: Optional[Plan] = None,
              used: Optional[int] = None) -> EligibilityResult:
        logger.info(f"Eligibility denied for athlete {athlete['id']}: {reason.code}")
        return EligibilityResult(
            allowed=False,
            reason=reason,
            plan=plan,
            used=used,
            limit=plan.max_sessions if plan else None
        )

    def usage_stats(
        self,
        subscriptions: List[Dict[str, Any]],
        used: int
    ) -> Optional[UsageStats]:
        """Usage for a current (active/trialing/paused) subscription, None otherwise"""
        current = pick_subscription(subscriptions, CURRENT_STATUSES)
        if current is None:
            return None
        plan = self.catalog.resolve(current.get("package_id"))
        return UsageStats(
            used=used,
            limit=plan.max_sessions if plan else 0,
            plan_name=plan.name if plan else "Unknown Plan"
        )
