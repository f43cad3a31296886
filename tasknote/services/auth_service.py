from __future__ import annotations

import logging

from tasknote.domain.entities import LoginResult, TotpSecret
from tasknote.domain.enums import TotpState
from tasknote.domain.errors import ApiError, AuthenticationError, ValidationError
from tasknote.infra.api_client import ApiClient

from .session import SessionContext

logger = logging.getLogger(__name__)

TOTP_CODE_LENGTH = 6


def _check_code(code: str) -> str:
    code = code.strip()
    if len(code) != TOTP_CODE_LENGTH or not code.isdigit():
        raise ValidationError(f"Enter the {TOTP_CODE_LENGTH}-digit verification code")
    return code


def _check_credentials(username: str, password: str) -> str:
    username = username.strip()
    if not username or not password:
        raise ValidationError("Username and password are required")
    return username


class AuthService:
    def __init__(self, api: ApiClient, session: SessionContext) -> None:
        self._api = api
        self._session = session

    def login(self, username: str, password: str, totp_token: str | None = None) -> LoginResult:
        username = _check_credentials(username, password)
        if totp_token is not None:
            totp_token = _check_code(totp_token)
        result = self._api.login(username, password, totp_token)
        if result.require_2fa:
            logger.info("Second factor required for %s", username)
            return result
        self._session.activate(result.token, result.username or username)
        return result

    def register(self, username: str, password: str, confirm_password: str) -> None:
        username = _check_credentials(username, password)
        if password != confirm_password:
            raise ValidationError("Passwords do not match")
        self._api.register(username, password)
        logger.info("Registered %s", username)

    def reset_password(
        self, username: str, new_password: str, confirm_password: str, totp_token: str
    ) -> None:
        username = _check_credentials(username, new_password)
        if new_password != confirm_password:
            raise ValidationError("Passwords do not match")
        code = _check_code(totp_token)
        self._api.reset_password(username, new_password, code)
        logger.info("Password reset for %s", username)

    def logout(self) -> None:
        self._session.clear()


class TotpEnrollment:
    """Two-factor enrollment as shown in the account settings dialog."""

    def __init__(self, api: ApiClient, session: SessionContext) -> None:
        self._api = api
        self._session = session
        self.state = TotpState.IDLE
        self.secret: TotpSecret | None = None
        self.error = ""

    @property
    def enabled(self) -> bool:
        return self.state == TotpState.ENABLED

    def check_status(self) -> bool:
        try:
            enabled = self._api.totp_status()
        except ApiError as exc:
            self._fail("check two-factor status", exc)
            return self.enabled
        self.state = TotpState.ENABLED if enabled else TotpState.IDLE
        return enabled

    def start(self) -> TotpSecret | None:
        self.error = ""
        try:
            self.secret = self._api.totp_generate()
        except ApiError as exc:
            self._fail("generate a two-factor secret", exc)
            self.error = "Failed to load 2FA configuration"
            return None
        self.state = TotpState.PENDING
        return self.secret

    def verify(self, code: str) -> bool:
        if self.state != TotpState.PENDING:
            self.error = "Generate a secret before verifying"
            return False
        try:
            code = _check_code(code)
            self._api.totp_verify(code)
        except ValidationError as exc:
            self.error = str(exc)
            return False
        except ApiError as exc:
            self._fail("verify the two-factor code", exc)
            self.error = str(exc) or "Verification failed"
            return False
        self.state = TotpState.ENABLED
        self.secret = None
        self.error = ""
        return True

    def reset(self) -> None:
        self.secret = None
        self.error = ""
        if self.state == TotpState.PENDING:
            self.state = TotpState.IDLE

    def _fail(self, action: str, exc: ApiError) -> None:
        if isinstance(exc, AuthenticationError):
            logger.warning("Failed to %s: session rejected, signing out", action)
            self._session.clear()
            return
        logger.error("Failed to %s: %s", action, exc, exc_info=exc)
