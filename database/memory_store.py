"""
In-memory store

Fallback when Supabase is not configured (local demo, tests).
Enforces the same unique keys as the Postgres schema.
"""
import threading
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from database.store import AcademyStore, DuplicateKeyError, Row


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


def _instant(value: Optional[str]) -> datetime:
    """ISO timestamp -> aware datetime; rows with no time sort first"""
    if not value:
        return datetime.min.replace(tzinfo=timezone.utc)
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


class InMemoryStore(AcademyStore):
    """AcademyStore kept in process memory"""

    def __init__(self, clock: Callable[[], datetime] = _utc_now):
        self.clock = clock
        self._lock = threading.RLock()
        self.profiles: Dict[str, Row] = {}
        self.children: Dict[str, Row] = {}
        self.events: Dict[str, Row] = {}
        self.registrations: Dict[str, Row] = {}
        self.subscriptions: Dict[str, Row] = {}

    def _now_iso(self) -> str:
        return self.clock().isoformat()

    # ==================== seeding ====================

    def add_profile(self, **data) -> Row:
        row = {"id": _new_id(), "role": "PARENT", "stripe_customer_id": None, **data}
        self.profiles[row["id"]] = row
        return dict(row)

    def add_registration(self, session_id: str, athlete_id: str, created_at: Optional[str] = None,
                         checked_in: bool = False) -> Row:
        """Insert a registration with an explicit created_at (history)"""
        row = self.insert_registration(session_id, athlete_id)
        with self._lock:
            stored = self.registrations[row["id"]]
            if created_at:
                stored["created_at"] = created_at
            if checked_in:
                stored["checked_in"] = True
                stored["checked_in_at"] = stored["created_at"]
            return dict(stored)

    # ==================== profiles ====================

    def get_profile(self, user_id: str) -> Optional[Row]:
        row = self.profiles.get(user_id)
        return dict(row) if row else None

    def list_profiles(self) -> List[Row]:
        return sorted((dict(p) for p in self.profiles.values()), key=lambda p: p.get("last_name") or "")

    def set_stripe_customer_id(self, user_id: str, customer_id: str) -> bool:
        with self._lock:
            profile = self.profiles.get(user_id)
            if not profile:
                return False
            profile["stripe_customer_id"] = customer_id
            return True

    # ==================== children ====================

    def get_athlete(self, athlete_id: str) -> Optional[Row]:
        row = self.children.get(athlete_id)
        return dict(row) if row else None

    def find_athlete_by_qr(self, code: str) -> Optional[Row]:
        for row in self.children.values():
            if row.get("qr_code") == code:
                return dict(row)
        return None

    def list_athletes(self, parent_id: Optional[str] = None) -> List[Row]:
        rows = [dict(c) for c in self.children.values()
                if parent_id is None or c.get("parent_id") == parent_id]
        return sorted(rows, key=lambda c: c.get("first_name") or "")

    def create_athlete(self, data: Row) -> Row:
        with self._lock:
            qr = data.get("qr_code")
            if qr and any(c.get("qr_code") == qr for c in self.children.values()):
                raise DuplicateKeyError("children", "qr_code")
            row = {"id": _new_id(), "sports": [], "image_url": None, **data,
                   "created_at": self._now_iso()}
            self.children[row["id"]] = row
            return dict(row)

    # ==================== subscriptions ====================

    def list_subscriptions(self, athlete_id: str) -> List[Row]:
        rows = [dict(s) for s in self.subscriptions.values() if s.get("child_id") == athlete_id]
        return sorted(rows, key=lambda s: s.get("created_at") or "", reverse=True)

    def get_subscription(self, stripe_subscription_id: str) -> Optional[Row]:
        for row in self.subscriptions.values():
            if row.get("stripe_subscription_id") == stripe_subscription_id:
                return dict(row)
        return None

    def upsert_subscription(self, data: Row) -> Row:
        with self._lock:
            key = data.get("stripe_subscription_id")
            for row in self.subscriptions.values():
                if key and row.get("stripe_subscription_id") == key:
                    row.update(data)
                    return dict(row)
            row = {"id": _new_id(), "created_at": self._now_iso(), **data}
            self.subscriptions[row["id"]] = row
            return dict(row)

    def set_subscription_status(self, stripe_subscription_id: str, status: str) -> int:
        with self._lock:
            updated = 0
            for row in self.subscriptions.values():
                if row.get("stripe_subscription_id") == stripe_subscription_id:
                    row["status"] = status
                    updated += 1
            return updated

    # ==================== events ====================

    def get_session(self, session_id: str) -> Optional[Row]:
        row = self.events.get(session_id)
        return dict(row) if row else None

    def list_sessions(self) -> List[Row]:
        sessions = []
        for event in sorted(self.events.values(), key=lambda e: _instant(e.get("start_time"))):
            row = dict(event)
            row["registrations"] = self.list_registrations(event["id"])
            sessions.append(row)
        return sessions

    def create_sessions(self, rows: List[Row]) -> List[Row]:
        created = []
        with self._lock:
            for data in rows:
                row = {"id": _new_id(), "allowed_packages": None, "min_age": None,
                       "max_age": None, **data, "created_at": self._now_iso()}
                self.events[row["id"]] = row
                created.append(dict(row))
        return created

    def update_session(self, session_id: str, fields: Row) -> Optional[Row]:
        with self._lock:
            row = self.events.get(session_id)
            if not row:
                return None
            row.update(fields)
            return dict(row)

    def delete_sessions(self, session_ids: List[str]) -> int:
        with self._lock:
            return sum(1 for sid in session_ids if self.events.pop(sid, None) is not None)

    def find_series(self, title: str, start_from: str) -> List[str]:
        since = _instant(start_from)
        return [e["id"] for e in self.events.values()
                if e.get("title") == title and _instant(e.get("start_time")) >= since]

    # ==================== registrations ====================

    def list_registrations(self, session_id: str) -> List[Row]:
        return [dict(r) for r in self.registrations.values() if r["event_id"] == session_id]

    def get_registration(self, session_id: str, athlete_id: str) -> Optional[Row]:
        for row in self.registrations.values():
            if row["event_id"] == session_id and row["child_id"] == athlete_id:
                return dict(row)
        return None

    def count_registrations_since(self, athlete_id: str, since: str) -> int:
        return sum(1 for r in self.registrations.values()
                   if r["child_id"] == athlete_id and r["created_at"] >= since)

    def registration_counts_since(self, since: str) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for row in self.registrations.values():
            if row["created_at"] >= since:
                counts[row["child_id"]] = counts.get(row["child_id"], 0) + 1
        return counts

    def insert_registration(self, session_id: str, athlete_id: str) -> Row:
        with self._lock:
            if self.get_registration(session_id, athlete_id) is not None:
                raise DuplicateKeyError("registrations", f"{session_id},{athlete_id}")
            row = {
                "id": _new_id(),
                "event_id": session_id,
                "child_id": athlete_id,
                "checked_in": False,
                "checked_in_at": None,
                "created_at": self._now_iso(),
            }
            self.registrations[row["id"]] = row
            return dict(row)

    def delete_registration(self, session_id: str, athlete_id: str) -> int:
        with self._lock:
            doomed = [rid for rid, r in self.registrations.items()
                      if r["event_id"] == session_id and r["child_id"] == athlete_id]
            for rid in doomed:
                del self.registrations[rid]
            return len(doomed)

    def delete_registrations_for_sessions(self, session_ids: List[str]) -> int:
        with self._lock:
            doomed = [rid for rid, r in self.registrations.items() if r["event_id"] in session_ids]
            for rid in doomed:
                del self.registrations[rid]
            return len(doomed)

    def mark_checked_in(self, registration_id: str, checked_in_at: str) -> bool:
        with self._lock:
            row = self.registrations.get(registration_id)
            if row is None or row["checked_in"]:
                return False
            row["checked_in"] = True
            row["checked_in_at"] = checked_in_at
            return True
