"""Business logic services."""

from backoffice_sync.services.browser_session import BrowserSessionService
from backoffice_sync.services.pending_registration import PendingRegistrationStore
from backoffice_sync.services.referral import ReferralCapture
from backoffice_sync.services.registration import RegistrationValidator
from backoffice_sync.services.sso import SSOHandoff
from backoffice_sync.services.sync_dispatcher import SyncDispatcher

__all__ = [
    "BrowserSessionService",
    "PendingRegistrationStore",
    "ReferralCapture",
    "RegistrationValidator",
    "SSOHandoff",
    "SyncDispatcher",
]
