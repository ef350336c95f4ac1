"""
Identity provider adapter over Firebase Authentication.

Accounts are addressed by account name (the Firebase Auth uid stored on the
profile as ``authUid``), which is not necessarily the profile document key.
"""
from typing import Optional

import firebase_admin
from firebase_admin import auth
from firebase_admin.exceptions import FirebaseError

from safety_admin.common.errors import ExternalSystemError
from safety_admin.services.system.logger_service import get_logger, log_error

logger = get_logger(__name__)


class FirebaseIdentityProvider:
    def __init__(self, app: Optional[firebase_admin.App] = None):
        self.app = app

    def disable_account(self, account_name: str) -> None:
        """Disable sign-in and revoke refresh tokens so live sessions end."""
        self._call('disable_account', account_name,
                   lambda: auth.update_user(account_name, disabled=True, app=self.app))
        # A disabled account can no longer refresh, so revocation is best-effort.
        try:
            auth.revoke_refresh_tokens(account_name, app=self.app)
        except FirebaseError as exc:
            logger.warning("Failed to revoke refresh tokens", extra={
                "account_name": account_name, "error": str(exc)
            })
        logger.info("Identity account disabled", extra={"account_name": account_name})

    def enable_account(self, account_name: str) -> None:
        self._call('enable_account', account_name,
                   lambda: auth.update_user(account_name, disabled=False, app=self.app))
        logger.info("Identity account enabled", extra={"account_name": account_name})

    def _call(self, operation: str, account_name: str, fn) -> None:
        try:
            fn()
        except (FirebaseError, ValueError) as exc:
            log_error(logger, exc, {"operation": operation, "account_name": account_name})
            raise ExternalSystemError('identity_provider', f"{operation} for '{account_name}': {exc}") from exc
