"""
Entitlement Engine Tests - subscription, plan, age, restriction, quota
"""
import pytest

from app.academy.catalog import PRICE_IDS
from app.academy.errors import (
    AgeOutOfRange,
    MonthlyQuotaExceeded,
    NoActiveSubscription,
    PlanRestricted,
    UnknownPlan,
)


def _use_sessions(store, make_session, athlete, count, created_at=None):
    """count past registrations for athlete"""
    for _ in range(count):
        store.add_registration(make_session()["id"], athlete["id"], created_at=created_at)


class TestSubscription:
    """Active subscription"""

    async def test_no_subscription(self, engine, athlete, session):
        result = await engine.check_eligibility(athlete, session)
        assert not result.allowed
        assert isinstance(result.reason, NoActiveSubscription)
        assert result.reason.message == "Athlete does not have an active membership."

    @pytest.mark.parametrize("status", ["canceled", "past_due", "paused"])
    async def test_inactive_statuses(self, engine, athlete, session, subscribe, status):
        subscribe(athlete, status=status)
        result = await engine.check_eligibility(athlete, session)
        assert isinstance(result.reason, NoActiveSubscription)

    async def test_trialing_is_entitled(self, engine, athlete, session, subscribe):
        subscribe(athlete, status="trialing")
        result = await engine.check_eligibility(athlete, session)
        assert result.allowed

    async def test_active_alongside_canceled(self, engine, athlete, session, subscribe):
        subscribe(athlete, package_id="p_rookie", status="canceled")
        subscribe(athlete, package_id="p_pro", status="active")
        result = await engine.check_eligibility(athlete, session)
        assert result.allowed
        assert result.plan.id == "p_pro"

    async def test_unknown_plan(self, engine, athlete, session, subscribe):
        subscribe(athlete, package_id="price_retired_plan")
        result = await engine.check_eligibility(athlete, session)
        assert isinstance(result.reason, UnknownPlan)

    async def test_processor_price_id(self, engine, athlete, session, subscribe):
        subscribe(athlete, package_id=PRICE_IDS["all_pro"]["live"])
        result = await engine.check_eligibility(athlete, session)
        assert result.allowed
        assert result.limit == 8


class TestAgeRange:
    """Inclusive age bounds, birthday-aware"""

    async def test_upper_bound_inclusive(self, engine, make_athlete, make_session, subscribe):
        athlete = make_athlete(dob="2014-03-16")  # 10, birthday tomorrow
        subscribe(athlete)
        result = await engine.check_eligibility(athlete, make_session(min_age=8, max_age=10))
        assert result.allowed

    async def test_one_over_upper_bound(self, engine, make_athlete, make_session, subscribe):
        athlete = make_athlete(dob="2014-03-15")  # 11 today
        subscribe(athlete)
        result = await engine.check_eligibility(athlete, make_session(min_age=8, max_age=10))
        assert isinstance(result.reason, AgeOutOfRange)
        assert result.reason.message == "Age restriction: 8-10. Athlete is 11."

    async def test_only_min_age(self, engine, athlete, make_session, subscribe):
        subscribe(athlete)
        result = await engine.check_eligibility(athlete, make_session(min_age=12))
        assert result.reason.message == "Age restriction: 12-99. Athlete is 9."

    async def test_only_max_age(self, engine, athlete, make_session, subscribe):
        subscribe(athlete)
        result = await engine.check_eligibility(athlete, make_session(max_age=9))
        assert result.allowed

    async def test_no_dob_skips_age_check(self, engine, make_athlete, make_session, subscribe):
        athlete = make_athlete(dob=None)
        subscribe(athlete)
        result = await engine.check_eligibility(athlete, make_session(min_age=13, max_age=19))
        assert result.allowed


class TestPlanRestriction:

    async def test_restricted(self, engine, athlete, make_session, subscribe):
        subscribe(athlete, package_id="p_pro")
        result = await engine.check_eligibility(athlete, make_session(allowed_packages=["p_elite", "p_all_pro"]))
        assert isinstance(result.reason, PlanRestricted)
        assert result.reason.message == "Restricted session. Requires: Elite or All-Pro. Your plan: Pro."

    async def test_included(self, engine, athlete, make_session, subscribe):
        subscribe(athlete, package_id="p_elite")
        result = await engine.check_eligibility(athlete, make_session(allowed_packages=["p_elite"]))
        assert result.allowed

    async def test_empty_list_means_open(self, engine, athlete, make_session, subscribe):
        subscribe(athlete, package_id="p_rookie")
        result = await engine.check_eligibility(athlete, make_session(allowed_packages=[]))
        assert result.allowed


class TestMonthlyQuota:
    """Registrations since the first of the month, 00:00 UTC"""

    async def test_below_limit(self, store, engine, athlete, make_session, subscribe):
        subscribe(athlete, package_id="p_pro")
        _use_sessions(store, make_session, athlete, 3)
        result = await engine.check_eligibility(athlete, make_session())
        assert result.allowed
        assert result.used == 3
        assert result.limit == 4

    async def test_at_limit(self, store, engine, athlete, make_session, subscribe):
        subscribe(athlete, package_id="p_pro")
        _use_sessions(store, make_session, athlete, 4)
        result = await engine.check_eligibility(athlete, make_session())
        assert isinstance(result.reason, MonthlyQuotaExceeded)
        assert result.reason.message == "Plan limit reached! Pro allows 4 sessions per month."
        assert result.used == 4

    async def test_last_month_not_counted(self, store, engine, athlete, make_session, subscribe):
        subscribe(athlete, package_id="p_rookie")
        _use_sessions(store, make_session, athlete, 2, created_at="2025-02-28T23:59:59+00:00")
        result = await engine.check_eligibility(athlete, make_session())
        assert result.allowed
        assert result.used == 0

    async def test_month_boundary_counts(self, store, engine, athlete, make_session, subscribe):
        subscribe(athlete, package_id="p_rookie")
        _use_sessions(store, make_session, athlete, 2, created_at="2025-03-01T00:00:00+00:00")
        result = await engine.check_eligibility(athlete, make_session())
        assert isinstance(result.reason, MonthlyQuotaExceeded)

    def test_billing_month_start(self, engine):
        assert engine.billing_month_start() == "2025-03-01T00:00:00+00:00"


class TestCheckOrder:
    """First failing rule wins"""

    async def test_subscription_before_restriction(self, engine, athlete, make_session):
        result = await engine.check_eligibility(athlete, make_session(allowed_packages=["p_elite"]))
        assert isinstance(result.reason, NoActiveSubscription)

    async def test_age_before_restriction(self, engine, athlete, make_session, subscribe):
        subscribe(athlete, package_id="p_pro")
        session = make_session(min_age=13, allowed_packages=["p_elite"])
        result = await engine.check_eligibility(athlete, session)
        assert isinstance(result.reason, AgeOutOfRange)

    async def test_restriction_before_quota(self, store, engine, athlete, make_session, subscribe):
        subscribe(athlete, package_id="p_rookie")
        _use_sessions(store, make_session, athlete, 2)
        result = await engine.check_eligibility(athlete, make_session(allowed_packages=["p_elite"]))
        assert isinstance(result.reason, PlanRestricted)


class TestUsageStats:

    def test_paused_shows_usage(self, engine, subscribe, athlete, store):
        subscribe(athlete, package_id="p_elite", status="paused")
        stats = engine.usage_stats(store.list_subscriptions(athlete["id"]), 5)
        assert stats.plan_name == "Elite"
        assert stats.limit == 12
        assert stats.used == 5

    def test_no_current_subscription(self, engine, subscribe, athlete, store):
        subscribe(athlete, status="canceled")
        assert engine.usage_stats(store.list_subscriptions(athlete["id"]), 0) is None

    def test_unknown_plan(self, engine, subscribe, athlete, store):
        subscribe(athlete, package_id="price_unknown")
        stats = engine.usage_stats(store.list_subscriptions(athlete["id"]), 1)
        assert stats.plan_name == "Unknown Plan"
        assert stats.limit == 0
