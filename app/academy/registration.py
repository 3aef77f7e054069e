"""
Registration Manager

Guardian-facing registration operations and the admin-only operations that
bypass the entitlement rules. Capacity and usage are always re-read from the
store after a mutation.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from loguru import logger

from database.store import AcademyStore, DuplicateKeyError, StoreError
from .checkin import issue_qr_code
from .clock import parse_timestamp
from .entitlement import EligibilityResult, EntitlementEngine, pick_subscription
from .errors import (
    AcademyError,
    AlreadyRegistered,
    AthleteNotFound,
    InvalidSession,
    PermissionDenied,
    SessionFull,
    SessionNotFound,
    StorageConflict,
)
from .ledger import CapacityLedger, session_view, sort_by_start
from .models import (
    CURRENT_STATUSES,
    AthleteCreate,
    AthleteView,
    GuardianView,
    SessionCreate,
    SessionUpdate,
    SessionView,
    SubscriptionStatus,
    UnregisterResponse,
)


@dataclass
class RegistrationOutcome:
    """Successful registration"""
    session: SessionView
    waitlisted: bool
    used: Optional[int] = None
    limit: Optional[int] = None

    @property
    def message(self) -> str:
        if self.waitlisted:
            return "Added to the waitlist."
        return "Registration confirmed."


def _check_session_row(row: Dict[str, Any]) -> None:
    start = parse_timestamp(row.get("start_time"))
    end = parse_timestamp(row.get("end_time"))
    if start and end and end <= start:
        raise InvalidSession("Session must end after it starts.")
    min_age, max_age = row.get("min_age"), row.get("max_age")
    if min_age is not None and max_age is not None and min_age > max_age:
        raise InvalidSession(f"Minimum age {min_age} exceeds maximum age {max_age}.")


def _status_of(subscription: Optional[Dict[str, Any]]) -> SubscriptionStatus:
    # Processor-only states (incomplete, unpaid, ...) read as no subscription
    if not subscription:
        return SubscriptionStatus.none
    try:
        return SubscriptionStatus(subscription.get("status"))
    except ValueError:
        return SubscriptionStatus.none


class _AcademyService:
    """Shared store access for both operation sets"""

    def __init__(self, store: AcademyStore, engine: EntitlementEngine, caller):
        self.store = store
        self.engine = engine
        self.caller = caller

    def _require_session(self, session_id: str) -> Dict[str, Any]:
        session = self.store.get_session(session_id)
        if not session:
            raise SessionNotFound()
        return session

    def _require_athlete(self, athlete_id: str) -> Dict[str, Any]:
        athlete = self.store.get_athlete(athlete_id)
        if not athlete:
            raise AthleteNotFound()
        return athlete

    def _ledger(self, session: Dict[str, Any]) -> CapacityLedger:
        return CapacityLedger.from_rows(session, self.store.list_registrations(session["id"]))

    def _view(self, session: Dict[str, Any]) -> SessionView:
        return session_view(session, self._ledger(session))

    def _athlete_views(self, athletes: List[Dict[str, Any]]) -> List[AthleteView]:
        counts = self.store.registration_counts_since(self.engine.billing_month_start())
        views = []
        for athlete in athletes:
            subs = self.store.list_subscriptions(athlete["id"])
            current = pick_subscription(subs, CURRENT_STATUSES)
            shown = current or (subs[0] if subs else None)
            views.append(AthleteView(
                id=athlete["id"],
                parent_id=athlete["parent_id"],
                first_name=athlete["first_name"],
                last_name=athlete["last_name"],
                dob=athlete.get("dob"),
                sports=athlete.get("sports") or [],
                qr_code=athlete["qr_code"],
                image_url=athlete.get("image_url"),
                subscription_status=_status_of(shown),
                subscription_package_id=current.get("package_id") if current else None,
                usage_stats=self.engine.usage_stats(subs, counts.get(athlete["id"], 0)),
            ))
        return views

    async def list_sessions(self) -> List[SessionView]:
        """All sessions, start time ascending"""
        views = []
        for session in sort_by_start(self.store.list_sessions()):
            ledger = CapacityLedger.from_rows(session, session.get("registrations") or [])
            views.append(session_view(session, ledger))
        return views

    async def get_session(self, session_id: str) -> SessionView:
        return self._view(self._require_session(session_id))


class RegistrationOperations(_AcademyService):
    """Operations available to guardians (and staff acting as guardians)"""

    def __init__(self, store: AcademyStore, engine: EntitlementEngine, caller,
                 enforce_capacity: bool = False):
        super().__init__(store, engine, caller)
        self.enforce_capacity = enforce_capacity

    def _require_guardian_of(self, athlete: Dict[str, Any]) -> None:
        if self.caller.is_admin():
            return
        if athlete.get("parent_id") != self.caller.user_id:
            raise PermissionDenied("You can only manage your own athletes.")

    def own_athlete(self, athlete_id: str) -> Dict[str, Any]:
        athlete = self._require_athlete(athlete_id)
        self._require_guardian_of(athlete)
        return athlete

    async def eligibility(self, session_id: str, athlete_id: str) -> EligibilityResult:
        session = self._require_session(session_id)
        athlete = self.own_athlete(athlete_id)
        return await self.engine.check_eligibility(athlete, session)

    async def register(self, session_id: str, athlete_id: str) -> RegistrationOutcome:
        """
        Register an athlete for a session.

        Subscription and usage are read fresh from the store, never taken from
        the client. The quota check and the insert are separate round trips;
        two concurrent requests for the same athlete can both pass the quota
        check. Only the (session, athlete) unique key is enforced atomically.
        """
        session = self._require_session(session_id)
        athlete = self.own_athlete(athlete_id)

        if self.store.get_registration(session_id, athlete_id) is not None:
            raise AlreadyRegistered()

        result = await self.engine.check_eligibility(athlete, session)
        result.raise_for_reason()

        before = self._ledger(session)
        if before.is_full and self.enforce_capacity:
            raise SessionFull()

        try:
            self.store.insert_registration(session_id, athlete_id)
        except DuplicateKeyError:
            raise AlreadyRegistered()

        after = self._ledger(session)
        logger.info(
            f"Registered athlete {athlete_id} for session {session_id} "
            f"({after.booked_slots}/{after.max_slots}{', waitlist' if before.is_full else ''})"
        )
        return RegistrationOutcome(
            session=session_view(session, after),
            waitlisted=before.is_full,
            used=self.engine.count_usage(athlete_id),
            limit=result.limit
        )

    async def unregister(self, session_id: str, athlete_id: str) -> UnregisterResponse:
        """Delete the (session, athlete) registration; a missing row is a success"""
        try:
            athlete = self.store.get_athlete(athlete_id)
            if athlete is not None:
                self._require_guardian_of(athlete)
            removed = self.store.delete_registration(session_id, athlete_id)
        except AcademyError as e:
            return UnregisterResponse(success=False, message=e.message, code=e.code)
        except StoreError as e:
            logger.error(f"Unregister failed for {athlete_id} on {session_id}: {e}")
            return UnregisterResponse(success=False, message="Could not cancel registration. Please try again.")

        if removed:
            logger.info(f"Unregistered athlete {athlete_id} from session {session_id}")
            return UnregisterResponse(success=True, message="Registration cancelled.", removed=True)
        return UnregisterResponse(success=True, message="Athlete was not registered.", removed=False)

    async def list_athletes(self) -> List[AthleteView]:
        """Caller's own athletes with status and usage"""
        return self._athlete_views(self.store.list_athletes(parent_id=self.caller.user_id))

    async def add_athlete(self, data: AthleteCreate) -> AthleteView:
        """New athlete for the caller; the QR code is issued here and never changed"""
        row = {
            "parent_id": self.caller.user_id,
            "first_name": data.first_name,
            "last_name": data.last_name,
            "dob": data.dob.isoformat() if data.dob else None,
            "sports": data.sports,
            "qr_code": issue_qr_code(),
        }
        try:
            athlete = self.store.create_athlete(row)
        except DuplicateKeyError:
            raise StorageConflict()
        logger.info(f"Athlete {athlete['id']} created for guardian {self.caller.user_id}")
        return self._athlete_views([athlete])[0]


class AdminOperations(_AcademyService):
    """Staff-only operations; constructing one requires an admin caller"""

    def __init__(self, store: AcademyStore, engine: EntitlementEngine, caller):
        if not caller.is_admin():
            raise PermissionDenied("Admin access required.")
        super().__init__(store, engine, caller)

    # =============================================
    # Sessions
    # =============================================

    async def create_session(self, data: SessionCreate) -> SessionView:
        created = self.store.create_sessions([data.to_row()])
        if not created:
            raise StorageConflict("Session could not be created.")
        logger.info(f"Session created: {created[0]['id']} {data.title}")
        return self._view(created[0])

    async def create_sessions(self, sessions: List[SessionCreate]) -> List[SessionView]:
        created = self.store.create_sessions([s.to_row() for s in sessions])
        logger.info(f"{len(created)} sessions created")
        return [session_view(row, CapacityLedger.from_rows(row, [])) for row in created]

    async def update_session(self, session_id: str, data: SessionUpdate) -> SessionView:
        """Partial update; the merged row must keep end > start and min_age <= max_age"""
        existing = self._require_session(session_id)
        fields = data.to_fields()
        if not fields:
            return self._view(existing)
        _check_session_row({**existing, **fields})
        updated = self.store.update_session(session_id, fields)
        if not updated:
            raise SessionNotFound()
        return self._view(updated)

    async def delete_session(self, session_id: str) -> bool:
        """Registrations first, then the session"""
        self._require_session(session_id)
        self.store.delete_registrations_for_sessions([session_id])
        deleted = self.store.delete_sessions([session_id])
        logger.info(f"Session {session_id} deleted")
        return deleted > 0

    async def delete_future_series(self, session_id: str) -> int:
        """Delete this session and every later one with the same title"""
        base = self._require_session(session_id)
        ids = self.store.find_series(base["title"], base["start_time"])
        if not ids:
            return 0
        self.store.delete_registrations_for_sessions(ids)
        deleted = self.store.delete_sessions(ids)
        logger.info(f"Series '{base['title']}' from {base['start_time']}: {deleted} sessions deleted")
        return deleted

    # =============================================
    # Roster (no entitlement checks)
    # =============================================

    async def roster_add(self, session_id: str, athlete_id: str) -> SessionView:
        session = self._require_session(session_id)
        self._require_athlete(athlete_id)
        try:
            self.store.insert_registration(session_id, athlete_id)
        except DuplicateKeyError:
            raise AlreadyRegistered()
        logger.info(f"Roster override: {self.caller.user_id} added {athlete_id} to {session_id}")
        return self._view(session)

    async def roster_remove(self, session_id: str, athlete_id: str) -> SessionView:
        session = self._require_session(session_id)
        removed = self.store.delete_registration(session_id, athlete_id)
        if removed:
            logger.info(f"Roster override: {self.caller.user_id} removed {athlete_id} from {session_id}")
        return self._view(session)

    # =============================================
    # Directory
    # =============================================

    async def list_all_athletes(self) -> List[AthleteView]:
        return self._athlete_views(self.store.list_athletes())

    async def list_users(self) -> List[GuardianView]:
        return [GuardianView(**{k: v for k, v in p.items() if k in GuardianView.model_fields})
                for p in self.store.list_profiles()]
