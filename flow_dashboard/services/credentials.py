"""
Credential lifecycle.

Owns the personal access token and its validity state:

    UNSET -> VALIDATING -> VALID | INVALID
    VALID -> VALIDATING           (re-check)
    VALID | INVALID -> UNSET      (removal)

The raw token lives in memory only; what reaches disk is the encrypted
envelope written through SecureStorage.
"""

from __future__ import annotations

import logging

import httpx

from flow_dashboard.config import Settings
from flow_dashboard.exceptions import (
    CredentialRequiredError,
    FlowDashboardError,
    InvalidCredentialError,
    StorageError,
)
from flow_dashboard.models.credential import CredentialState, TokenValidationResult
from flow_dashboard.models.github import RateLimit
from flow_dashboard.services.events import (
    CREDENTIAL_INVALIDATED,
    CREDENTIAL_REMOVED,
    CREDENTIAL_VALIDATED,
    EventBus,
)
from flow_dashboard.services.github_client import GitHubClient
from flow_dashboard.services.secure_storage import SecureStorage, StorageKeys
from flow_dashboard.services.token_validation import validate_github_token
from flow_dashboard.utils.redaction import mask_token

logger = logging.getLogger(__name__)

STORED_TOKEN_REJECTED = "Stored token is no longer valid"


class CredentialManager:
    """Validate, persist and hand out the GitHub token."""

    def __init__(
        self,
        storage: SecureStorage,
        bus: EventBus,
        settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the manager.

        Args:
            storage: Encrypted store for the token and cached user id
            bus: Event bus for credential.* events
            settings: API base URL, version and timeout
            transport: Optional httpx transport shared by every client it creates
        """
        self._storage = storage
        self._bus = bus
        self._settings = settings or Settings()
        self._transport = transport

        self._state = CredentialState.UNSET
        self._token: str | None = None
        self._user_id: str | None = None
        self._rate_limit: RateLimit | None = None
        self._error: str | None = None

    @property
    def state(self) -> CredentialState:
        return self._state

    @property
    def is_valid(self) -> bool:
        return self._state == CredentialState.VALID

    @property
    def token(self) -> str | None:
        return self._token

    @property
    def user_id(self) -> str | None:
        """Login of the token's owner."""
        return self._user_id

    @property
    def rate_limit(self) -> RateLimit | None:
        return self._rate_limit

    @property
    def error(self) -> str | None:
        return self._error

    def client(self) -> GitHubClient:
        """
        API client bound to the current token.

        Raises:
            CredentialRequiredError: If no token is set
        """
        if not self._token:
            msg = "GitHub token required"
            raise CredentialRequiredError(msg, context={"state": self._state.value})
        return GitHubClient(
            self._token,
            self._settings.api_base_url,
            api_version=self._settings.api_version,
            timeout_seconds=self._settings.request_timeout_seconds,
            transport=self._transport,
        )

    async def _validate_token(self, token: str) -> TokenValidationResult:
        return await validate_github_token(
            token,
            base_url=self._settings.api_base_url,
            api_version=self._settings.api_version,
            timeout_seconds=self._settings.request_timeout_seconds,
            transport=self._transport,
        )

    async def _persist(self, key: str, value: str) -> None:
        try:
            await self._storage.put(key, value)
        except StorageError as e:
            logger.warning(
                "Secure storage unavailable, value kept in memory only",
                extra={"key": key, "error": e.message},
            )

    def _forget_persisted(self) -> None:
        self._storage.remove(StorageKeys.GITHUB_TOKEN)
        self._storage.remove(StorageKeys.GITHUB_USER_ID)

    async def initialize(self) -> None:
        """Load and re-validate the persisted token, if any."""
        if not self._storage.available():
            logger.info("Secure storage unavailable; starting without a token")
            self._state = CredentialState.UNSET
            return

        token = await self._storage.get(StorageKeys.GITHUB_TOKEN)
        if not token:
            self._state = CredentialState.UNSET
            return

        self._token = token
        self._state = CredentialState.VALIDATING
        result = await self._validate_token(token)

        if result.is_valid and result.user is not None:
            self._state = CredentialState.VALID
            self._rate_limit = result.rate_limit
            self._error = None

            user_id = await self._storage.get(StorageKeys.GITHUB_USER_ID)
            if not user_id:
                user_id = result.user.login
                await self._persist(StorageKeys.GITHUB_USER_ID, user_id)
            self._user_id = user_id

            logger.info("Stored token validated", extra={"user_id": user_id})
            await self._bus.emit(CREDENTIAL_VALIDATED, {"user_id": user_id})
            return

        self._state = CredentialState.INVALID
        if result.is_auth_rejection:
            self._error = STORED_TOKEN_REJECTED
            self._token = None
            self._user_id = None
            self._forget_persisted()
            logger.warning("Stored token rejected; removed", extra={"status": result.status})
            await self._bus.emit(CREDENTIAL_INVALIDATED, {"status": result.status})
        else:
            # Transient failure: keep the stored token so validate() can retry
            self._error = result.error
            logger.warning(
                "Stored token could not be validated",
                extra={"status": result.status, "error": result.error},
            )

    async def set_credential(self, raw_token: str) -> None:
        """
        Validate and adopt a new token.

        Raises:
            InvalidCredentialError: If the token is empty or rejected; the
                previous credential state is restored
        """
        token = (raw_token or "").strip()
        previous = (self._state, self._token, self._user_id, self._rate_limit, self._error)

        self._state = CredentialState.VALIDATING
        result = await self._validate_token(token)

        if not result.is_valid or result.user is None:
            self._state, self._token, self._user_id, self._rate_limit, self._error = previous
            reason = result.error or "Invalid token"
            logger.info(
                "Token validation failed",
                extra={"token": mask_token(token), "status": result.status},
            )
            raise InvalidCredentialError(reason, context={"status": result.status})

        await self._persist(StorageKeys.GITHUB_TOKEN, token)

        self._token = token
        self._state = CredentialState.VALID
        self._rate_limit = result.rate_limit
        self._error = None

        try:
            user = await self.client().get_authenticated_user()
            user_id = user.login
        except FlowDashboardError as e:
            logger.warning(
                "Identity lookup failed; using validation login",
                extra={"error": e.message},
            )
            user_id = result.user.login

        self._user_id = user_id
        await self._persist(StorageKeys.GITHUB_USER_ID, user_id)

        logger.info("Token set", extra={"user_id": user_id, "token": mask_token(token)})
        await self._bus.emit(CREDENTIAL_VALIDATED, {"user_id": user_id})

    async def validate(self) -> bool:
        """Re-check the in-memory token."""
        if not self._token:
            self._state = CredentialState.UNSET
            return False

        was_valid = self._state == CredentialState.VALID
        self._state = CredentialState.VALIDATING
        result = await self._validate_token(self._token)

        if result.is_valid and result.user is not None:
            self._state = CredentialState.VALID
            self._rate_limit = result.rate_limit
            self._error = None
            if self._user_id is None:
                self._user_id = result.user.login
                await self._persist(StorageKeys.GITHUB_USER_ID, self._user_id)
            if not was_valid:
                await self._bus.emit(CREDENTIAL_VALIDATED, {"user_id": self._user_id})
            return True

        self._state = CredentialState.INVALID
        self._error = result.error
        if result.is_auth_rejection:
            logger.warning("Token rejected on re-check", extra={"status": result.status})
            await self._bus.emit(CREDENTIAL_INVALIDATED, {"status": result.status})
        return False

    async def remove_credential(self) -> None:
        """Forget the token everywhere. Always succeeds."""
        self._forget_persisted()
        self._state = CredentialState.UNSET
        self._token = None
        self._user_id = None
        self._rate_limit = None
        self._error = None
        logger.info("Token removed")
        await self._bus.emit(CREDENTIAL_REMOVED, {})
