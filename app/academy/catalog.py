"""
Package Catalog

Static plan table: price, billing cadence and monthly session quota.
Built once from settings and injected into the services.
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from app.config import AcademySettings


@dataclass(frozen=True)
class Plan:
    """Training package"""
    id: str
    key: str
    name: str
    price: int
    max_sessions: int
    processor_price_id: str
    billing_period: str = "Monthly"
    description: str = ""
    features: Tuple[str, ...] = field(default_factory=tuple)
    sibling_discount_eligible: bool = True


# Processor price ids per environment
PRICE_IDS: Dict[str, Dict[str, str]] = {
    "elite": {
        "live": "price_1SgU61IQ7QGupvoPTnwh2LCN",
        "test": "price_1SguwgIQ7QGupvoP9udmnyo5",
    },
    "all_pro": {
        "live": "price_1SgU5ZIQ7QGupvoP2XQ6JvOB",
        "test": "price_1SguwqIQ7QGupvoPeseEUBqR",
    },
    "pro": {
        "live": "price_1SgU5DIQ7QGupvoPjxNtibuT",
        "test": "price_1SguwzIQ7QGupvoPkRbBW25a",
    },
    "rookie": {
        "live": "price_1SgU4sIQ7QGupvoPibE6fbry",
        "test": "price_1SguxAIQ7QGupvoPktEZ4PgY",
    },
}

# (id, key, name, monthly price, sessions per month, description, features)
PLAN_TABLE = [
    ("p_elite", "elite", "Elite", 310, 12, "The ultimate performance package.", (
        "12 Sessions / Month",
        "4 Opportunities/Week (MWF + 2 Fri)",
        "2x 30min 1-on-1 Sessions",
        "Physical Analysis",
        "Physical Assessment",
    )),
    ("p_all_pro", "all_pro", "All-Pro", 215, 8, "High-intensity training.", (
        "8 Sessions / Month",
        "1hr 15min Sessions",
        "4 Opportunities/Week (MWF)",
        "1x 30min 1-on-1 Session",
    )),
    ("p_pro", "pro", "Pro", 120, 4, "Consistent training foundation.", (
        "4 Sessions / Month",
        "1hr 15min Sessions",
        "4 Opportunities/Week (MWF)",
    )),
    ("p_rookie", "rookie", "Rookie", 100, 2, "Intro to sports fitness.", (
        "2 Sessions / Month",
        "45min Sessions",
        "Monday & Wednesday Only",
        "Fundamentals Focus",
    )),
]

# Sibling discounts: first additional sibling, every sibling after that
SIBLING_DISCOUNTS = (0.45, 0.65)

AGE_BRACKETS = [
    {"label": "All Ages", "min": 0, "max": 99},
    {"label": "Rookie (5-8)", "min": 5, "max": 8},
    {"label": "Pro (9-12)", "min": 9, "max": 12},
    {"label": "Elite (13-19)", "min": 13, "max": 19},
]


def calculate_age(dob: date, today: date) -> int:
    """Whole years, birthday-aware (month/day comparison)"""
    age = today.year - dob.year
    if (today.month, today.day) < (dob.month, dob.day):
        age -= 1
    return age


def sibling_discount(sibling_index: int) -> float:
    """
    Discount rate for the n-th athlete of a household (0-based).
    The first athlete pays full price.
    """
    if sibling_index <= 0:
        return 0.0
    if sibling_index == 1:
        return SIBLING_DISCOUNTS[0]
    return SIBLING_DISCOUNTS[1]


class PlanCatalog:
    """Read-only plan lookup"""

    def __init__(self, plans: Iterable[Plan]):
        self._plans: List[Plan] = list(plans)
        self._by_id = {p.id: p for p in self._plans}

    def __iter__(self) -> Iterator[Plan]:
        return iter(self._plans)

    def __len__(self) -> int:
        return len(self._plans)

    def get(self, plan_id: str) -> Optional[Plan]:
        return self._by_id.get(plan_id)

    def resolve(self, package_id: Optional[str]) -> Optional[Plan]:
        """
        Plan for a subscription's package_id.

        Subscriptions store either an internal plan id or a processor price id,
        so: exact id, exact processor id, then containment against processor ids.
        """
        if not package_id:
            return None
        plan = self._by_id.get(package_id)
        if plan:
            return plan
        for plan in self._plans:
            if plan.processor_price_id == package_id:
                return plan
        for plan in self._plans:
            pid = plan.processor_price_id
            if pid and (pid in package_id or package_id in pid):
                return plan
        return None

    def names_for(self, plan_ids: Iterable[str]) -> str:
        """'Elite or Pro' for display"""
        names = []
        for pid in plan_ids:
            plan = self._by_id.get(pid)
            names.append(plan.name if plan else pid)
        return " or ".join(names)


def build_catalog(settings: AcademySettings) -> PlanCatalog:
    """Catalog for the configured processor environment"""
    mode = "test" if settings.is_test_mode_stripe else "live"
    plans = []
    for plan_id, key, name, price, max_sessions, description, features in PLAN_TABLE:
        price_id = settings.price_override(key) or PRICE_IDS[key][mode]
        plans.append(Plan(
            id=plan_id,
            key=key,
            name=name,
            price=price,
            max_sessions=max_sessions,
            processor_price_id=price_id,
            description=description,
            features=features,
        ))
    return PlanCatalog(plans)
