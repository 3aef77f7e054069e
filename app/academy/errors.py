"""
Academy error taxonomy

All of these are expected, user-facing outcomes. `code` is stable and is
what the API and the check-in results expose.
"""
from typing import Optional


class AcademyError(Exception):
    """Base class for academy business-rule failures"""

    code = "AcademyError"
    status_code = 400
    default_message = "Request could not be completed."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# --- Entitlement ---

class NoActiveSubscription(AcademyError):
    code = "NoActiveSubscription"
    status_code = 403
    default_message = "Athlete does not have an active membership."


class UnknownPlan(AcademyError):
    code = "UnknownPlan"
    status_code = 409
    default_message = "Unknown subscription package."


class MonthlyQuotaExceeded(AcademyError):
    code = "MonthlyQuotaExceeded"
    status_code = 409

    def __init__(self, plan_name: str, limit: int):
        super().__init__(f"Plan limit reached! {plan_name} allows {limit} sessions per month.")
        self.plan_name = plan_name
        self.limit = limit


class AgeOutOfRange(AcademyError):
    code = "AgeOutOfRange"
    status_code = 409

    def __init__(self, min_age: int, max_age: int, age: int):
        super().__init__(f"Age restriction: {min_age}-{max_age}. Athlete is {age}.")
        self.min_age = min_age
        self.max_age = max_age
        self.age = age


class PlanRestricted(AcademyError):
    code = "PlanRestricted"
    status_code = 409

    def __init__(self, allowed_names: str, plan_name: str):
        super().__init__(f"Restricted session. Requires: {allowed_names}. Your plan: {plan_name}.")


# --- Registration / capacity ---

class AlreadyRegistered(AcademyError):
    code = "AlreadyRegistered"
    status_code = 409
    default_message = "Athlete is already registered for this session."


class SessionFull(AcademyError):
    code = "SessionFull"
    status_code = 409
    default_message = "Session is full."


class InvalidSession(AcademyError):
    code = "InvalidSession"
    status_code = 422
    default_message = "Session times or age range are invalid."


class SessionNotFound(AcademyError):
    code = "SessionNotFound"
    status_code = 404
    default_message = "Event not found."


class AthleteNotFound(AcademyError):
    code = "AthleteNotFound"
    status_code = 404
    default_message = "Could not find athlete profile."


# --- Check-in ---

class InvalidCode(AcademyError):
    code = "InvalidCode"
    status_code = 404
    default_message = "Invalid QR Code"


class RegistrationNotFound(AcademyError):
    code = "NotFound"
    status_code = 404
    default_message = "Athlete not registered."


class AlreadyCheckedIn(AcademyError):
    code = "AlreadyCheckedIn"
    status_code = 409
    default_message = "Already checked in."


# --- Storage / access ---

class StorageConflict(AcademyError):
    code = "StorageConflict"
    status_code = 409
    default_message = "The record was changed by another request. Please retry."


class PermissionDenied(AcademyError):
    code = "PermissionDenied"
    status_code = 403
    default_message = "You do not have access to this resource."
