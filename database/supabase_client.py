"""
Supabase database client
"""
from typing import Any, Dict, List, Optional

from loguru import logger
from postgrest.exceptions import APIError
from supabase import Client, create_client

from app.config import get_settings
from database.store import AcademyStore, DuplicateKeyError, Row, StoreError


# Singleton client
_supabase_client: Optional[Client] = None

UNIQUE_VIOLATION = "23505"


def get_supabase_client() -> Client:
    """
    Supabase client instance (singleton)

    Prefers the service role key so webhook writes bypass RLS.
    """
    global _supabase_client
    if _supabase_client is None:
        settings = get_settings()
        key = settings.SUPABASE_SERVICE_KEY or settings.SUPABASE_KEY
        if not settings.SUPABASE_URL or not key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set")
        _supabase_client = create_client(settings.SUPABASE_URL, key)
    return _supabase_client


def _execute(query, table: str, what: str, key: str = ""):
    """Run a PostgREST query, mapping failures onto store errors"""
    try:
        return query.execute()
    except APIError as e:
        if getattr(e, "code", None) == UNIQUE_VIOLATION:
            raise DuplicateKeyError(table, key) from e
        logger.error(f"{what} failed: {e}")
        raise StoreError(f"{what} failed") from e
    except Exception as e:
        logger.error(f"{what} failed: {e}")
        raise StoreError(f"{what} failed") from e


def _first(response) -> Optional[Row]:
    data = response.data or []
    return data[0] if data else None


class SupabaseStore(AcademyStore):
    """AcademyStore backed by Supabase (PostgREST)"""

    def __init__(self, client: Client):
        self.client = client

    # ==================== profiles ====================

    def get_profile(self, user_id: str) -> Optional[Row]:
        response = _execute(
            self.client.table("profiles").select("*").eq("id", user_id).limit(1),
            "profiles", "profile lookup"
        )
        return _first(response)

    def list_profiles(self) -> List[Row]:
        response = _execute(
            self.client.table("profiles").select("*").order("last_name"),
            "profiles", "profile list"
        )
        return response.data or []

    def set_stripe_customer_id(self, user_id: str, customer_id: str) -> bool:
        response = _execute(
            self.client.table("profiles").update({
                "stripe_customer_id": customer_id
            }).eq("id", user_id),
            "profiles", "customer id sync"
        )
        return len(response.data or []) > 0

    # ==================== children ====================

    def get_athlete(self, athlete_id: str) -> Optional[Row]:
        response = _execute(
            self.client.table("children").select("*").eq("id", athlete_id).limit(1),
            "children", "athlete lookup"
        )
        return _first(response)

    def find_athlete_by_qr(self, code: str) -> Optional[Row]:
        response = _execute(
            self.client.table("children").select(
                "id, parent_id, first_name, last_name, qr_code"
            ).eq("qr_code", code).limit(1),
            "children", "QR lookup"
        )
        return _first(response)

    def list_athletes(self, parent_id: Optional[str] = None) -> List[Row]:
        query = self.client.table("children").select("*")
        if parent_id:
            query = query.eq("parent_id", parent_id)
        response = _execute(query.order("first_name"), "children", "athlete list")
        return response.data or []

    def create_athlete(self, data: Row) -> Row:
        response = _execute(
            self.client.table("children").insert(data),
            "children", "athlete insert", key="qr_code"
        )
        row = _first(response)
        if row is None:
            raise StoreError("athlete insert returned no row")
        return row

    # ==================== subscriptions ====================

    def list_subscriptions(self, athlete_id: str) -> List[Row]:
        response = _execute(
            self.client.table("subscriptions").select("*").eq(
                "child_id", athlete_id
            ).order("created_at", desc=True),
            "subscriptions", "subscription list"
        )
        return response.data or []

    def get_subscription(self, stripe_subscription_id: str) -> Optional[Row]:
        response = _execute(
            self.client.table("subscriptions").select("*").eq(
                "stripe_subscription_id", stripe_subscription_id
            ).limit(1),
            "subscriptions", "subscription lookup"
        )
        return _first(response)

    def upsert_subscription(self, data: Row) -> Row:
        response = _execute(
            self.client.table("subscriptions").upsert(
                data,
                on_conflict="stripe_subscription_id"
            ),
            "subscriptions", "subscription upsert"
        )
        return _first(response) or data

    def set_subscription_status(self, stripe_subscription_id: str, status: str) -> int:
        response = _execute(
            self.client.table("subscriptions").update({
                "status": status
            }).eq("stripe_subscription_id", stripe_subscription_id),
            "subscriptions", "subscription status update"
        )
        return len(response.data or [])

    # ==================== events ====================

    def get_session(self, session_id: str) -> Optional[Row]:
        response = _execute(
            self.client.table("events").select("*").eq("id", session_id).limit(1),
            "events", "session lookup"
        )
        return _first(response)

    def list_sessions(self) -> List[Row]:
        response = _execute(
            self.client.table("events").select(
                "*, registrations (child_id, checked_in, checked_in_at, created_at)"
            ).order("start_time", desc=False),
            "events", "session list"
        )
        return response.data or []

    def create_sessions(self, rows: List[Row]) -> List[Row]:
        response = _execute(
            self.client.table("events").insert(rows),
            "events", "session insert"
        )
        return response.data or []

    def update_session(self, session_id: str, fields: Row) -> Optional[Row]:
        response = _execute(
            self.client.table("events").update(fields).eq("id", session_id),
            "events", "session update"
        )
        return _first(response)

    def delete_sessions(self, session_ids: List[str]) -> int:
        if not session_ids:
            return 0
        response = _execute(
            self.client.table("events").delete().in_("id", session_ids),
            "events", "session delete"
        )
        return len(response.data or [])

    def find_series(self, title: str, start_from: str) -> List[str]:
        response = _execute(
            self.client.table("events").select("id").eq(
                "title", title
            ).gte("start_time", start_from),
            "events", "series lookup"
        )
        return [row["id"] for row in (response.data or [])]

    # ==================== registrations ====================

    def list_registrations(self, session_id: str) -> List[Row]:
        response = _execute(
            self.client.table("registrations").select("*").eq("event_id", session_id),
            "registrations", "registration list"
        )
        return response.data or []

    def get_registration(self, session_id: str, athlete_id: str) -> Optional[Row]:
        response = _execute(
            self.client.table("registrations").select("*").eq(
                "event_id", session_id
            ).eq("child_id", athlete_id).limit(1),
            "registrations", "registration lookup"
        )
        return _first(response)

    def count_registrations_since(self, athlete_id: str, since: str) -> int:
        response = _execute(
            self.client.table("registrations").select("id", count="exact").eq(
                "child_id", athlete_id
            ).gte("created_at", since),
            "registrations", "usage count"
        )
        return response.count or 0

    def registration_counts_since(self, since: str) -> Dict[str, int]:
        response = _execute(
            self.client.table("registrations").select("child_id").gte("created_at", since),
            "registrations", "usage counts"
        )
        counts: Dict[str, int] = {}
        for row in (response.data or []):
            counts[row["child_id"]] = counts.get(row["child_id"], 0) + 1
        return counts

    def insert_registration(self, session_id: str, athlete_id: str) -> Row:
        response = _execute(
            self.client.table("registrations").insert({
                "event_id": session_id,
                "child_id": athlete_id
            }),
            "registrations", "registration insert",
            key=f"{session_id},{athlete_id}"
        )
        row = _first(response)
        if row is None:
            raise StoreError("registration insert returned no row")
        return row

    def delete_registration(self, session_id: str, athlete_id: str) -> int:
        response = _execute(
            self.client.table("registrations").delete().match({
                "event_id": session_id,
                "child_id": athlete_id
            }),
            "registrations", "registration delete"
        )
        return len(response.data or [])

    def delete_registrations_for_sessions(self, session_ids: List[str]) -> int:
        if not session_ids:
            return 0
        response = _execute(
            self.client.table("registrations").delete().in_("event_id", session_ids),
            "registrations", "registration cleanup"
        )
        return len(response.data or [])

    def mark_checked_in(self, registration_id: str, checked_in_at: str) -> bool:
        # Conditional update: only the first scan flips the flag
        response = _execute(
            self.client.table("registrations").update({
                "checked_in": True,
                "checked_in_at": checked_in_at
            }).eq("id", registration_id).eq("checked_in", False),
            "registrations", "check-in update"
        )
        return len(response.data or []) > 0


def row_counts(client: Client) -> Dict[str, Any]:
    """Table row counts (health endpoint)"""
    stats = {}
    for table in ["profiles", "children", "events", "registrations", "subscriptions"]:
        try:
            result = client.table(table).select("id", count="exact").limit(1).execute()
            stats[table] = result.count or 0
        except Exception as e:
            logger.error(f"{table} count failed: {e}")
            stats[table] = None
    return stats
