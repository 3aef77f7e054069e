"""
Pytest configuration and fixtures for Ascend Academy tests
"""

import pytest
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.academy.catalog import build_catalog
from app.academy.dependencies import AcademyCaller
from app.academy.entitlement import EntitlementEngine
from app.academy.models import UserRole
from app.config import AcademySettings
from database.memory_store import InMemoryStore

# Mid-month, so "this billing month" starts 2025-03-01T00:00:00+00:00
FIXED_NOW = datetime(2025, 3, 15, 12, 0, tzinfo=timezone.utc)
SESSION_START = datetime(2025, 3, 20, 17, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="function")
def clock():
    return lambda: FIXED_NOW


@pytest.fixture(scope="function")
def store(clock):
    """Empty in-memory store on the fixed clock"""
    return InMemoryStore(clock=clock)


@pytest.fixture(scope="session")
def settings():
    return AcademySettings(
        STRIPE_MODE="live",
        PRICE_ELITE=None,
        PRICE_ALL_PRO=None,
        PRICE_PRO=None,
        PRICE_ROOKIE=None,
        STRIPE_WEBHOOK_SECRET="",
    )


@pytest.fixture(scope="session")
def catalog(settings):
    return build_catalog(settings)


@pytest.fixture(scope="function")
def engine(store, catalog, clock):
    return EntitlementEngine(store, catalog, clock=clock)


@pytest.fixture(scope="function")
def guardian(store):
    return store.add_profile(
        email="jordan@example.com",
        first_name="Jordan",
        last_name="Cole",
    )


@pytest.fixture(scope="function")
def other_guardian(store):
    return store.add_profile(
        email="sam@example.com",
        first_name="Sam",
        last_name="Reyes",
    )


@pytest.fixture(scope="function")
def staff(store):
    return store.add_profile(
        email="coach@example.com",
        first_name="Alex",
        last_name="Park",
        role=UserRole.ADMIN.value,
    )


@pytest.fixture(scope="function")
def parent_caller(guardian):
    return AcademyCaller(user_id=guardian["id"], role=UserRole.PARENT, full_name="Jordan Cole")


@pytest.fixture(scope="function")
def admin_caller(staff):
    return AcademyCaller(user_id=staff["id"], role=UserRole.ADMIN, full_name="Alex Park")


@pytest.fixture(scope="function")
def athlete(store, guardian):
    """Mia, 9 years old on FIXED_NOW"""
    return store.create_athlete({
        "parent_id": guardian["id"],
        "first_name": "Mia",
        "last_name": "Cole",
        "dob": "2015-06-01",
        "sports": ["Soccer"],
        "qr_code": "ascend_1700000000000_a1b2c3d4",
    })


@pytest.fixture(scope="function")
def make_athlete(store, guardian):
    """Factory: extra athletes with unique QR codes"""
    counter = {"n": 0}

    def _make(first_name="Leo", dob="2014-01-10", parent_id=None):
        counter["n"] += 1
        return store.create_athlete({
            "parent_id": parent_id or guardian["id"],
            "first_name": first_name,
            "last_name": "Test",
            "dob": dob,
            "sports": [],
            "qr_code": f"ascend_1700000000000_extra{counter['n']:03d}",
        })

    return _make


@pytest.fixture(scope="function")
def make_session(store):
    """Factory: sessions one day apart starting SESSION_START"""
    counter = {"n": 0}

    def _make(**overrides):
        start = SESSION_START + timedelta(days=counter["n"])
        counter["n"] += 1
        row = {
            "title": "Speed & Agility",
            "description": "Footwork and acceleration",
            "start_time": start.isoformat(),
            "end_time": (start + timedelta(hours=1, minutes=15)).isoformat(),
            "location": "Field House",
            "max_slots": 10,
        }
        row.update(overrides)
        return store.create_sessions([row])[0]

    return _make


@pytest.fixture(scope="function")
def subscribe(store):
    """Factory: mirror a processor subscription for an athlete"""
    counter = {"n": 0}

    def _subscribe(athlete, package_id="p_pro", status="active"):
        counter["n"] += 1
        return store.upsert_subscription({
            "stripe_subscription_id": f"sub_test_{counter['n']}",
            "user_id": athlete["parent_id"],
            "child_id": athlete["id"],
            "package_id": package_id,
            "status": status,
            "current_period_end": (FIXED_NOW + timedelta(days=20)).isoformat(),
        })

    return _subscribe


@pytest.fixture(scope="function")
def session(make_session):
    return make_session()
