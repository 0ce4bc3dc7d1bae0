"""
Encrypted local storage keyed by a device fingerprint.

Every value is sealed with AES-256-GCM. The key is derived with
PBKDF2-HMAC-SHA256 from a device password (a hash of stable environment
attributes, no user passphrase) and a fresh per-write salt, so a store file
copied to another machine does not decrypt there.

Stored envelope (JSON, byte arrays as lists of ints):

    {"encrypted": [...], "salt": [...], "iv": [...], "timestamp": <epoch ms>}

Reads never raise: a malformed envelope or a failed decryption deletes the
entry and reads as absent.
"""

from __future__ import annotations

import asyncio
import functools
import hashlib
import json
import locale
import logging
import os
import platform
import time
from dataclasses import dataclass
from datetime import datetime

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from flow_dashboard.exceptions import (
    CorruptedDataError,
    DecryptionFailedError,
    StorageError,
    StorageUnavailableError,
)
from flow_dashboard.services.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_APP_SALT = "github-flow-dashboard-v1"
KDF_ITERATIONS = 100_000
KEY_LENGTH = 32
SALT_LENGTH = 16
NONCE_LENGTH = 12

_PROBE_KEY = "__test_storage__"


class StorageKeys:
    """Logical keys, one encrypted envelope each."""

    GITHUB_TOKEN = "github_flow_dashboard_token"
    GITHUB_USER_ID = "github_flow_dashboard_user_id"
    SELECTED_REPOSITORIES = "github_flow_dashboard_selected_repos"
    USER_PREFERENCES = "github_flow_dashboard_preferences"
    LAST_SYNC = "github_flow_dashboard_last_sync"

    @classmethod
    def all(cls) -> tuple[str, ...]:
        return (
            cls.GITHUB_TOKEN,
            cls.GITHUB_USER_ID,
            cls.SELECTED_REPOSITORIES,
            cls.USER_PREFERENCES,
            cls.LAST_SYNC,
        )


@dataclass(frozen=True)
class DeviceFingerprint:
    """Environment attributes the device password is derived from."""

    user_agent: str
    locale: str
    host: str
    timezone_offset: int
    app_salt: str = DEFAULT_APP_SALT

    @classmethod
    def from_environment(cls, app_salt: str = DEFAULT_APP_SALT) -> DeviceFingerprint:
        """Collect the fingerprint of the machine this process runs on."""
        user_agent = f"flow-dashboard ({platform.system()} {platform.release()}; {platform.machine()})"
        lang = locale.getlocale()[0] or os.environ.get("LANG") or "unknown"
        offset = datetime.now().astimezone().utcoffset()
        # Same sign convention as JavaScript getTimezoneOffset (UTC+2 -> -120)
        offset_minutes = -int(offset.total_seconds() // 60) if offset is not None else 0
        return cls(
            user_agent=user_agent,
            locale=lang,
            host=platform.node() or "unknown",
            timezone_offset=offset_minutes,
            app_salt=app_salt,
        )

    def as_string(self) -> str:
        return "|".join(
            [
                self.user_agent or "unknown",
                self.locale or "unknown",
                self.host or "unknown",
                str(self.timezone_offset),
                self.app_salt,
            ]
        )


def derive_device_password(fingerprint: DeviceFingerprint) -> str:
    """Hash the fingerprint into a fixed-length secret: ``pwd_`` + 32 hex chars."""
    digest = hashlib.sha256(fingerprint.as_string().encode("utf-8")).hexdigest()
    return "pwd_" + digest[:32]


class _Encryptor:
    """Derived key usable for sealing only."""

    def __init__(self, key: bytes) -> None:
        self._aead = AESGCM(key)

    def encrypt(self, nonce: bytes, plaintext: bytes) -> bytes:
        return self._aead.encrypt(nonce, plaintext, None)


class _Decryptor:
    """Derived key usable for opening only."""

    def __init__(self, key: bytes) -> None:
        self._aead = AESGCM(key)

    def decrypt(self, nonce: bytes, ciphertext: bytes) -> bytes:
        return self._aead.decrypt(nonce, ciphertext, None)


def _pbkdf2(password: str, salt: bytes, iterations: int) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(password.encode("utf-8"))


def derive_encryption_key(password: str, salt: bytes, iterations: int = KDF_ITERATIONS) -> _Encryptor:
    return _Encryptor(_pbkdf2(password, salt, iterations))


def derive_decryption_key(password: str, salt: bytes, iterations: int = KDF_ITERATIONS) -> _Decryptor:
    return _Decryptor(_pbkdf2(password, salt, iterations))


def _byte_array(envelope: dict, field: str) -> bytes:
    value = envelope.get(field)
    if not isinstance(value, list) or not value:
        msg = f"Invalid storage format: '{field}' missing or not a byte array"
        raise CorruptedDataError(msg, context={"field": field})
    if not all(isinstance(b, int) and not isinstance(b, bool) and 0 <= b <= 255 for b in value):
        msg = f"Invalid storage format: '{field}' contains non-byte values"
        raise CorruptedDataError(msg, context={"field": field})
    return bytes(value)


def parse_envelope(raw: str) -> tuple[bytes, bytes, bytes]:
    """
    Parse a stored envelope into (ciphertext, salt, iv).

    Raises:
        CorruptedDataError: If the JSON or any of the three byte arrays is malformed
    """
    try:
        envelope = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        msg = "Invalid storage format: not JSON"
        raise CorruptedDataError(msg) from e

    if not isinstance(envelope, dict):
        msg = "Invalid storage format: not an object"
        raise CorruptedDataError(msg)

    return (
        _byte_array(envelope, "encrypted"),
        _byte_array(envelope, "salt"),
        _byte_array(envelope, "iv"),
    )


class SecureStorage:
    """Authenticated-encryption wrapper around a local key-value substrate."""

    def __init__(
        self,
        substrate: KeyValueStore | None,
        fingerprint: DeviceFingerprint | None = None,
        *,
        iterations: int = KDF_ITERATIONS,
    ) -> None:
        """
        Initialize secure storage.

        Args:
            substrate: Key-value persistence; None means no persistence is available
            fingerprint: Device fingerprint; collected from the environment when omitted
            iterations: PBKDF2 iteration count
        """
        self._substrate = substrate
        self._fingerprint = fingerprint or DeviceFingerprint.from_environment()
        self._iterations = iterations
        self._device_password: str | None = None

    @property
    def device_password(self) -> str:
        """Device password, derived once per instance."""
        if self._device_password is None:
            self._device_password = derive_device_password(self._fingerprint)
        return self._device_password

    def available(self) -> bool:
        """
        Check that both the crypto provider and the substrate work.

        Fails closed: any error during the self-test or the write/delete probe
        reports unavailable.
        """
        if self._substrate is None:
            return False

        try:
            aead = AESGCM(AESGCM.generate_key(bit_length=256))
            nonce = os.urandom(NONCE_LENGTH)
            if aead.decrypt(nonce, aead.encrypt(nonce, b"probe", None), None) != b"probe":
                return False
        except Exception as e:
            logger.warning("Crypto self-test failed", extra={"error": str(e)})
            return False

        try:
            self._substrate.set_item(_PROBE_KEY, "test")
            self._substrate.remove_item(_PROBE_KEY)
        except Exception as e:
            logger.warning(
                "Storage substrate probe failed",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
            return False

        return True

    def _seal(self, plaintext: str) -> str:
        salt = os.urandom(SALT_LENGTH)
        iv = os.urandom(NONCE_LENGTH)
        encryptor = derive_encryption_key(self.device_password, salt, self._iterations)
        ciphertext = encryptor.encrypt(iv, plaintext.encode("utf-8"))
        return json.dumps(
            {
                "encrypted": list(ciphertext),
                "salt": list(salt),
                "iv": list(iv),
                "timestamp": int(time.time() * 1000),
            }
        )

    def _open(self, ciphertext: bytes, salt: bytes, iv: bytes) -> str:
        try:
            decryptor = derive_decryption_key(self.device_password, salt, self._iterations)
            return decryptor.decrypt(iv, ciphertext).decode("utf-8")
        except InvalidTag as e:
            msg = "Authentication tag mismatch"
            raise DecryptionFailedError(msg) from e
        except Exception as e:
            msg = f"Decryption failed: {e}"
            raise DecryptionFailedError(msg) from e

    async def put(self, key: str, value: str) -> None:
        """
        Encrypt and store a value.

        Raises:
            StorageUnavailableError: If there is no substrate
            StorageError: If encryption or the substrate write fails
        """
        if self._substrate is None:
            msg = "Secure storage not available"
            raise StorageUnavailableError(msg, context={"key": key})

        loop = asyncio.get_running_loop()
        try:
            envelope = await loop.run_in_executor(None, functools.partial(self._seal, value))
            self._substrate.set_item(key, envelope)
        except Exception as e:
            msg = f"Failed to securely store item: {e}"
            raise StorageError(msg, context={"key": key, "error_type": type(e).__name__}) from e

    async def get(self, key: str) -> str | None:
        """
        Retrieve and decrypt a value.

        Returns:
            The plaintext, or None if absent, malformed or undecryptable. The
            latter two also delete the entry.
        """
        if self._substrate is None:
            return None

        try:
            raw = self._substrate.get_item(key)
        except Exception as e:
            logger.warning(
                "Failed to read storage entry",
                extra={"key": key, "error": str(e), "error_type": type(e).__name__},
            )
            return None

        if raw is None:
            return None

        loop = asyncio.get_running_loop()
        try:
            ciphertext, salt, iv = parse_envelope(raw)
            return await loop.run_in_executor(
                None, functools.partial(self._open, ciphertext, salt, iv)
            )
        except (CorruptedDataError, DecryptionFailedError) as e:
            logger.warning(
                "Discarding unreadable storage entry",
                extra={"key": key, "error": str(e), "error_type": type(e).__name__},
            )
            self.remove(key)
            return None

    def remove(self, key: str) -> None:
        """Remove an entry. Best-effort: never raises."""
        if self._substrate is None:
            return
        try:
            self._substrate.remove_item(key)
        except Exception as e:
            logger.debug(
                "Ignoring storage removal failure",
                extra={"key": key, "error": str(e)},
            )

    def clear_all(self) -> None:
        """Remove every application key."""
        for key in StorageKeys.all():
            self.remove(key)
