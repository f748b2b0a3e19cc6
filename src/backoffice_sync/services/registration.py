"""Registration pre-validation against the back office.

A local account is only created once the back office has accepted the
candidate; otherwise the two systems would disagree about who exists.
"""

import re
from dataclasses import dataclass, field

import structlog

from backoffice_sync.exceptions import ConfigMissing, TransportFailure
from backoffice_sync.infrastructure.backoffice_client import BackOfficeClient
from backoffice_sync.infrastructure.database.repositories import CommerceRepository
from backoffice_sync.services.pending_registration import PendingRegistrationStore
from shared.constants import UNKNOWN_ERROR, VALIDATE_USER_ENDPOINT

logger = structlog.get_logger()

CONNECT_ERROR = "Failed to connect to the back office. Please try again later."
STORE_ERROR = "Registration is temporarily unavailable. Please try again later."

_USERNAME_UNSAFE = re.compile(r"[^a-z0-9_.\-]")


@dataclass
class RegistrationCandidate:
    """Account details collected by a registration or checkout form."""

    email: str = ""
    password: str = ""
    username: str = ""
    referral: str = ""
    first_name: str = ""
    last_name: str = ""
    phone: str = ""

    def to_payload(self) -> dict[str, str]:
        payload = {
            "username": self.username,
            "email": self.email,
            "password": self.password,
        }
        optional = {
            "referral": self.referral,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "phone": self.phone,
        }
        payload.update({key: value for key, value in optional.items() if value})
        return payload


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str


@dataclass
class ValidationResult:
    username: str = ""
    errors: list[FieldError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def add(self, field_name: str, message: str) -> None:
        self.errors.append(FieldError(field_name, message))


def username_base(email: str) -> str:
    """Sanitized local part of an email address."""
    local_part = email.split("@", 1)[0].strip().lower()
    return _USERNAME_UNSAFE.sub("", local_part) or "user"


class RegistrationValidator:
    """Shared by the standalone registration form and checkout registration."""

    def __init__(
        self,
        repository: CommerceRepository,
        client: BackOfficeClient,
        pending_registrations: PendingRegistrationStore,
    ):
        self.repository = repository
        self.client = client
        self.pending_registrations = pending_registrations

    async def derive_username(self, email: str) -> str:
        """Email local part, suffixed with 1, 2, ... until no local user has it."""
        base = username_base(email)
        taken = await self.repository.usernames_starting_with(base)
        candidate = base
        suffix = 1
        while candidate in taken:
            candidate = f"{base}{suffix}"
            suffix += 1
        return candidate

    async def validate(self, candidate: RegistrationCandidate) -> ValidationResult:
        result = ValidationResult()
        candidate.email = candidate.email.strip()
        candidate.username = candidate.username.strip()

        if not candidate.email:
            result.add("email", "Please provide a valid email address.")
        if not candidate.password:
            result.add("password", "Please enter an account password.")
        if not result.ok:
            return result

        if not candidate.username:
            candidate.username = await self.derive_username(candidate.email)
        result.username = candidate.username

        try:
            response = await self.client.post(VALIDATE_USER_ENDPOINT, candidate.to_payload())
        except (ConfigMissing, TransportFailure) as e:
            logger.error("User validation request failed", email=candidate.email, error=str(e))
            result.add("backoffice", CONNECT_ERROR)
            return result

        if response.status_code == 200 and response.status_flag:
            if not await self.pending_registrations.put(
                candidate.email, candidate.password, candidate.referral
            ):
                result.add("backoffice", STORE_ERROR)
                return result
            logger.info("User validated by back office", username=candidate.username)
            return result

        errors = response.body.get("errors")
        if isinstance(errors, dict) and errors:
            for field_name, messages in errors.items():
                if not isinstance(messages, (list, tuple)):
                    messages = [messages]
                for message in messages:
                    if message not in (None, ""):
                        result.add(str(field_name), str(message))
        if result.ok:
            message = response.body.get("message") or UNKNOWN_ERROR
            result.add("backoffice", str(message))

        logger.warning(
            "Back office rejected registration",
            username=candidate.username,
            status=response.status_code,
            errors=[e.field for e in result.errors],
        )
        return result
