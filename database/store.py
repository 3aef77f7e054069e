"""
Academy storage contract

Rows are plain dicts shaped like the Supabase tables:
profiles, children, events, registrations, subscriptions.
Uniqueness is owned by the store: (event_id, child_id) on registrations,
stripe_subscription_id on subscriptions.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from loguru import logger


Row = Dict[str, Any]


class StoreError(Exception):
    """Generic storage failure (timeout, connectivity, unexpected response)"""


class DuplicateKeyError(StoreError):
    """Unique constraint violation"""

    def __init__(self, table: str, key: str):
        super().__init__(f"duplicate key on {table} ({key})")
        self.table = table
        self.key = key


class AcademyStore(ABC):
    """Persistence operations used by the academy services"""

    # ==================== profiles ====================

    @abstractmethod
    def get_profile(self, user_id: str) -> Optional[Row]: ...

    @abstractmethod
    def list_profiles(self) -> List[Row]: ...

    @abstractmethod
    def set_stripe_customer_id(self, user_id: str, customer_id: str) -> bool: ...

    # ==================== children ====================

    @abstractmethod
    def get_athlete(self, athlete_id: str) -> Optional[Row]: ...

    @abstractmethod
    def find_athlete_by_qr(self, code: str) -> Optional[Row]: ...

    @abstractmethod
    def list_athletes(self, parent_id: Optional[str] = None) -> List[Row]: ...

    @abstractmethod
    def create_athlete(self, data: Row) -> Row: ...

    # ==================== subscriptions ====================

    @abstractmethod
    def list_subscriptions(self, athlete_id: str) -> List[Row]: ...

    @abstractmethod
    def get_subscription(self, stripe_subscription_id: str) -> Optional[Row]: ...

    @abstractmethod
    def upsert_subscription(self, data: Row) -> Row:
        """Insert or replace by stripe_subscription_id"""

    @abstractmethod
    def set_subscription_status(self, stripe_subscription_id: str, status: str) -> int: ...

    # ==================== events ====================

    @abstractmethod
    def get_session(self, session_id: str) -> Optional[Row]: ...

    @abstractmethod
    def list_sessions(self) -> List[Row]:
        """All sessions by start_time ascending, each with a `registrations` list"""

    @abstractmethod
    def create_sessions(self, rows: List[Row]) -> List[Row]: ...

    @abstractmethod
    def update_session(self, session_id: str, fields: Row) -> Optional[Row]: ...

    @abstractmethod
    def delete_sessions(self, session_ids: List[str]) -> int: ...

    @abstractmethod
    def find_series(self, title: str, start_from: str) -> List[str]:
        """Ids of sessions with the same title starting at or after start_from"""

    # ==================== registrations ====================

    @abstractmethod
    def list_registrations(self, session_id: str) -> List[Row]: ...

    @abstractmethod
    def get_registration(self, session_id: str, athlete_id: str) -> Optional[Row]: ...

    @abstractmethod
    def count_registrations_since(self, athlete_id: str, since: str) -> int: ...

    @abstractmethod
    def registration_counts_since(self, since: str) -> Dict[str, int]: ...

    @abstractmethod
    def insert_registration(self, session_id: str, athlete_id: str) -> Row:
        """Raises DuplicateKeyError when the pair already exists"""

    @abstractmethod
    def delete_registration(self, session_id: str, athlete_id: str) -> int: ...

    @abstractmethod
    def delete_registrations_for_sessions(self, session_ids: List[str]) -> int: ...

    @abstractmethod
    def mark_checked_in(self, registration_id: str, checked_in_at: str) -> bool:
        """Flip checked_in false -> true; False when the row was already checked in"""


_store: Optional[AcademyStore] = None


def get_store() -> AcademyStore:
    """
    Store instance (singleton)

    Supabase when configured, otherwise the in-process fallback store.
    """
    global _store
    if _store is None:
        from app.config import get_settings

        settings = get_settings()
        if settings.supabase_configured:
            from database.supabase_client import SupabaseStore, get_supabase_client
            _store = SupabaseStore(get_supabase_client())
        else:
            from database.memory_store import InMemoryStore
            logger.warning("SUPABASE_URL not set - using in-memory fallback store")
            _store = InMemoryStore()
    return _store


def set_store(store: Optional[AcademyStore]) -> None:
    """Replace the singleton (tests, scripts)"""
    global _store
    _store = store
