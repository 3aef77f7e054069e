"""
Capacity Ledger

Derived per-session view over the registration rows. Nothing here is stored:
booked/checked-in counts are recomputed from the join rows on every read.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Tuple

from .clock import parse_timestamp
from .models import SessionView


@dataclass(frozen=True)
class CapacityLedger:
    """Capacity state of one session"""
    session_id: str
    max_slots: int
    registered_ids: Tuple[str, ...] = field(default_factory=tuple)
    checked_in_ids: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_rows(cls, session: Dict[str, Any], registrations: Iterable[Dict[str, Any]]) -> "CapacityLedger":
        registered: List[str] = []
        checked_in: List[str] = []
        for reg in registrations:
            athlete_id = reg["child_id"]
            if athlete_id in registered:
                continue
            registered.append(athlete_id)
            if reg.get("checked_in"):
                checked_in.append(athlete_id)
        return cls(
            session_id=session["id"],
            max_slots=int(session.get("max_slots") or 0),
            registered_ids=tuple(registered),
            checked_in_ids=tuple(checked_in),
        )

    @property
    def booked_slots(self) -> int:
        return len(self.registered_ids)

    @property
    def checked_in_count(self) -> int:
        return len(self.checked_in_ids)

    @property
    def is_full(self) -> bool:
        return self.booked_slots >= self.max_slots

    @property
    def available_slots(self) -> int:
        return max(self.max_slots - self.booked_slots, 0)

    @property
    def overbooked(self) -> int:
        """Registrations beyond max_slots (waitlisted joins)"""
        return max(self.booked_slots - self.max_slots, 0)

    @property
    def status_label(self) -> str:
        # Display only; a full session still accepts joins
        return "waitlist" if self.is_full else "open"


def session_view(session: Dict[str, Any], ledger: CapacityLedger) -> SessionView:
    """Session row + ledger -> API view"""
    return SessionView(
        id=session["id"],
        title=session["title"],
        description=session.get("description"),
        start_time=parse_timestamp(session["start_time"]),
        end_time=parse_timestamp(session["end_time"]),
        location=session.get("location"),
        max_slots=ledger.max_slots,
        booked_slots=ledger.booked_slots,
        available_slots=ledger.available_slots,
        checked_in_count=ledger.checked_in_count,
        is_full=ledger.is_full,
        status_label=ledger.status_label,
        registered_athlete_ids=list(ledger.registered_ids),
        checked_in_athlete_ids=list(ledger.checked_in_ids),
        allowed_packages=session.get("allowed_packages"),
        min_age=session.get("min_age"),
        max_age=session.get("max_age"),
    )


def sort_by_start(sessions: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Start time ascending"""
    return sorted(sessions, key=lambda s: parse_timestamp(s["start_time"]))
