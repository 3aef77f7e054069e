"""
Check-in Processor

QR scan -> athlete -> registration -> checked_in flip (exactly once).
Results are always structured; nothing is raised to the scanner UI.
"""
import secrets
import time
from typing import Any, Dict

from loguru import logger

from database.store import AcademyStore, DuplicateKeyError, StoreError
from .clock import Clock, utc_now
from .errors import (
    AcademyError,
    AlreadyCheckedIn,
    InvalidCode,
    RegistrationNotFound,
    SessionNotFound,
)
from .models import CheckInResponse

SUCCESS_MESSAGE = "Check-in Successful!"


def issue_qr_code() -> str:
    """New athlete QR identifier: ascend_<ms timestamp>_<random>"""
    return f"ascend_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


def full_name(athlete: Dict[str, Any]) -> str:
    return f"{athlete.get('first_name', '')} {athlete.get('last_name', '')}".strip()


class CheckInProcessor:
    """Marks registrations as attended"""

    def __init__(self, store: AcademyStore, clock: Clock = utc_now, allow_walk_in: bool = False):
        self.store = store
        self.clock = clock
        self.allow_walk_in = allow_walk_in

    async def check_in(self, session_id: str, code: str) -> CheckInResponse:
        try:
            athlete = self._check_in(session_id, code)
        except AlreadyCheckedIn as e:
            return CheckInResponse(
                success=False,
                message=e.message,
                code=e.code,
                athlete_name=getattr(e, "athlete_name", None)
            )
        except AcademyError as e:
            return CheckInResponse(success=False, message=e.message, code=e.code)
        except StoreError as e:
            logger.error(f"Check-in failed on session {session_id}: {e}")
            return CheckInResponse(success=False, message="Check-in failed.", code="StorageError")

        return CheckInResponse(
            success=True,
            message=SUCCESS_MESSAGE,
            athlete_name=full_name(athlete)
        )

    def _check_in(self, session_id: str, code: str) -> Dict[str, Any]:
        # Exact, case-sensitive match only
        athlete = self.store.find_athlete_by_qr(code) if code else None
        if not athlete:
            raise InvalidCode()

        registration = self.store.get_registration(session_id, athlete["id"])
        if registration is None:
            if not self.allow_walk_in:
                raise RegistrationNotFound()
            registration = self._walk_in(session_id, athlete)

        if registration.get("checked_in"):
            raise self._already(athlete)

        flipped = self.store.mark_checked_in(registration["id"], self.clock().isoformat())
        if not flipped:
            # Lost the race against an identical scan
            raise self._already(athlete)

        logger.info(f"Checked in athlete {athlete['id']} for session {session_id}")
        return athlete

    def _walk_in(self, session_id: str, athlete: Dict[str, Any]) -> Dict[str, Any]:
        """Register on the spot; checked-in stays within registered"""
        if not self.store.get_session(session_id):
            raise SessionNotFound()
        try:
            registration = self.store.insert_registration(session_id, athlete["id"])
            logger.warning(f"Walk-in registration for athlete {athlete['id']} on session {session_id}")
        except DuplicateKeyError:
            registration = self.store.get_registration(session_id, athlete["id"])
            if registration is None:
                raise RegistrationNotFound()
        return registration

    @staticmethod
    def _already(athlete: Dict[str, Any]) -> AlreadyCheckedIn:
        error = AlreadyCheckedIn()
        error.athlete_name = athlete.get("first_name")
        return error
